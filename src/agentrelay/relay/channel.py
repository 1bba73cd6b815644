"""Thread-correlated two-way conversations.

A ``CorrelatedChannel`` posts top-level messages and receives the threaded
replies to them. The ``ThreadRouter`` remembers which channel posted which
message, so a reply is delivered to the conversation that started the
thread rather than to anyone listening on the destination.
"""

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator
from typing import Optional

from agentrelay.relay.exceptions import ChannelClosedError
from agentrelay.relay.models import InboundMessage, make_message_id
from agentrelay.relay.transport import ChatTransport

logger = logging.getLogger(__name__)

_END_OF_STREAM = object()


class CorrelatedChannel:
    """One logical two-way conversation over threaded replies.

    Inbound replies are handed over in one of three states: queued (no
    consumer waiting), delivered straight to the single waiting consumer, or
    dropped because the channel is closed.
    """

    def __init__(self, router: "ThreadRouter", destination: str) -> None:
        self._router = router
        self._destination = destination
        self._tracked: set[str] = set()
        self._queue: deque[str] = deque()
        self._waiter: Optional[asyncio.Future] = None
        self._closed = False

    @property
    def destination(self) -> str:
        return self._destination

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def tracked_message_ids(self) -> frozenset[str]:
        """Ids of the messages this channel posted or received."""
        return frozenset(self._tracked)

    async def send(self, text: str) -> str:
        """Post ``text`` as a new top-level message and track it for replies.

        Args:
            text: Message text

        Returns:
            Relay-wide id of the posted message

        Raises:
            ChannelClosedError: If the channel was closed
            RuntimeError: If the relay identity is not known yet
            TransportError: If posting fails
        """
        if self._closed:
            raise ChannelClosedError(f"Channel to {self._destination} is closed")
        if self._router.identity is None:
            raise RuntimeError("Relay identity is unknown; start the transport first")

        ts = await self._router.transport.post_message(self._destination, text)
        message_id = make_message_id(self._destination, ts)
        self._router.track(message_id, self)
        return message_id

    async def receive(self) -> AsyncIterator[str]:
        """Yield inbound replies until the channel is closed.

        Only one consumer may iterate at a time.

        Yields:
            Reply texts in transport arrival order

        Raises:
            RuntimeError: If another consumer is already waiting
        """
        while not self._closed:
            if self._queue:
                yield self._queue.popleft()
                continue

            if self._waiter is not None:
                raise RuntimeError("Channel already has a waiting consumer")

            waiter = asyncio.get_running_loop().create_future()
            self._waiter = waiter
            try:
                value = await waiter
            finally:
                if self._waiter is waiter:
                    self._waiter = None

            if value is _END_OF_STREAM:
                return
            yield value

    def deliver(self, text: str) -> None:
        """Hand an inbound reply to the consumer, or queue it."""
        if self._closed:
            return

        waiter = self._waiter
        if waiter is not None and not waiter.done():
            self._waiter = None
            waiter.set_result(text)
        else:
            self._queue.append(text)

    def track(self, message_id: str) -> None:
        self._tracked.add(message_id)

    async def close(self) -> None:
        """Close the channel, ending ``receive`` and releasing tracked messages."""
        if self._closed:
            return

        self._closed = True
        waiter, self._waiter = self._waiter, None
        if waiter is not None and not waiter.done():
            waiter.set_result(_END_OF_STREAM)

        self._router.release(self)
        self._tracked.clear()
        self._queue.clear()
        logger.debug(f"Closed channel to {self._destination}")

    async def __aenter__(self) -> "CorrelatedChannel":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class ThreadRouter:
    """Registry of tracked messages and the channels that own them.

    Entries are added when a channel posts a message or accepts a reply and
    removed when the owning channel closes or the router shuts down.
    """

    def __init__(self, transport: ChatTransport) -> None:
        """Initialize the router.

        Args:
            transport: Transport used by channels to post messages
        """
        self._transport = transport
        self._identity: Optional[str] = None
        self._channels: dict[str, CorrelatedChannel] = {}  # message id -> channel
        self._senders: dict[str, str] = {}  # message id -> posting identity
        self._live: list[CorrelatedChannel] = []

    @property
    def transport(self) -> ChatTransport:
        return self._transport

    @property
    def identity(self) -> Optional[str]:
        """Identity the relay posts as; falls back to the transport's."""
        return self._identity or self._transport.identity

    @identity.setter
    def identity(self, value: Optional[str]) -> None:
        self._identity = value

    @property
    def channels(self) -> list[CorrelatedChannel]:
        """Channels that have not been closed."""
        return list(self._live)

    def create_channel(self, destination: str) -> CorrelatedChannel:
        """Open a correlated channel bound to ``destination``."""
        channel = CorrelatedChannel(self, destination)
        self._live.append(channel)
        logger.debug(f"Created channel to {destination}")
        return channel

    def track(self, message_id: str, channel: CorrelatedChannel) -> None:
        """Register ``message_id`` as owned by ``channel`` and posted by this relay."""
        identity = self.identity
        if identity is None:
            raise RuntimeError("Relay identity is unknown; start the transport first")

        channel.track(message_id)
        self._channels[message_id] = channel
        self._senders[message_id] = identity

    def is_tracked(self, message_id: str) -> bool:
        return message_id in self._channels

    def get_channel(self, message_id: str) -> Optional[CorrelatedChannel]:
        return self._channels.get(message_id)

    def route_reply(self, message: InboundMessage) -> bool:
        """Deliver a threaded reply to the channel that owns its thread root.

        Args:
            message: Inbound message with a thread root

        Returns:
            True if the reply was accepted
        """
        root_id = message.thread_root_id
        if root_id is None:
            return False

        if self._senders.get(root_id) != self.identity:
            logger.debug(f"Ignoring reply to message not posted by this relay: {root_id}")
            return False

        channel = self._channels.get(root_id)
        if channel is None or channel.closed:
            return False

        # Chained replies keep routing to the same channel
        self.track(message.message_id, channel)
        channel.deliver(message.text)
        return True

    def release(self, channel: CorrelatedChannel) -> None:
        """Forget every tracked message owned by ``channel``."""
        for message_id in channel.tracked_message_ids:
            if self._channels.get(message_id) is channel:
                del self._channels[message_id]
                self._senders.pop(message_id, None)

        if channel in self._live:
            self._live.remove(channel)

    async def close_all(self) -> None:
        """Close every live channel."""
        for channel in list(self._live):
            await channel.close()
