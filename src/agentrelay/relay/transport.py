"""Chat transport protocol definition."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Optional

from agentrelay.relay.models import InboundMessage

DEFAULT_MAX_MESSAGE_LENGTH = 3900


class ChatTransport(ABC):
    """Abstract base class for chat transports.

    A transport posts and edits messages in destinations (channels or
    conversations) and delivers inbound messages tagged with sender,
    destination, optional thread root and timestamp.
    """

    def __init__(self) -> None:
        """Initialize the transport."""
        self._running = False
        self._identity: Optional[str] = None

    @property
    def is_running(self) -> bool:
        """Check if the transport is currently running."""
        return self._running

    @property
    def identity(self) -> Optional[str]:
        """User id the relay posts as (known once started)."""
        return self._identity

    @property
    def max_message_length(self) -> int:
        """Maximum characters per outbound message."""
        return DEFAULT_MAX_MESSAGE_LENGTH

    @abstractmethod
    async def start(self) -> None:
        """Connect, resolve ``identity`` and begin receiving messages."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect and stop receiving messages."""
        ...

    @abstractmethod
    def receive_messages(self) -> AsyncIterator[InboundMessage]:
        """Receive inbound messages.

        Yields:
            InboundMessage objects in the order the transport delivered them
        """
        ...

    @abstractmethod
    async def post_message(self, destination: str, text: str) -> str:
        """Post a new top-level message.

        Args:
            destination: Channel or conversation id
            text: Message text

        Returns:
            Transport timestamp (ts) of the new message

        Raises:
            TransportError: If posting fails
        """
        ...

    @abstractmethod
    async def update_message(self, destination: str, message_id: str, text: str) -> None:
        """Replace the text of an existing message.

        Args:
            destination: Channel or conversation id
            message_id: Transport timestamp of the message to edit
            text: New text

        Raises:
            MessageNotFoundError: If the message no longer exists
            TransportError: If the edit fails for any other reason
        """
        ...

    async def health_check(self) -> bool:
        """Check if the transport connection is healthy."""
        return self._running
