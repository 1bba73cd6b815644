"""Data models for the message relay."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


def make_message_id(destination: str, ts: str) -> str:
    """Compose a relay-wide message id from a destination and transport timestamp."""
    return f"{destination}-{ts}"


class InboundMessage(BaseModel):
    """A message delivered by the chat transport."""

    sender: Optional[str] = None  # Transport user id
    destination: str  # Channel or conversation the message was posted in
    text: str = ""
    ts: str  # Transport timestamp, unique within the destination
    thread_ts: Optional[str] = None  # Thread root timestamp for threaded replies
    is_bot: bool = False
    received_at: datetime = Field(default_factory=datetime.now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def message_id(self) -> str:
        """Relay-wide id of this message."""
        return make_message_id(self.destination, self.ts)

    @property
    def thread_root_id(self) -> Optional[str]:
        """Relay-wide id of the thread root, if this is a threaded reply."""
        if not self.thread_ts or self.thread_ts == self.ts:
            return None
        return make_message_id(self.destination, self.thread_ts)

    @property
    def is_thread_reply(self) -> bool:
        return self.thread_root_id is not None

    def __str__(self) -> str:
        """String representation for logging."""
        return f"[{self.destination}] {self.sender}: {self.text[:50]}"


@dataclass
class DestinationBuffer:
    """Accumulated, not yet fully transmitted output for one destination.

    ``editable_message_id`` is the transport id of the message that may
    still be edited in place; once a message is full it is sealed and the
    id is cleared.
    """

    text: str = ""
    last_sent_text: str = ""
    editable_message_id: Optional[str] = None

    @property
    def is_dirty(self) -> bool:
        """Whether a flush would transmit anything."""
        return bool(self.text) and self.text != self.last_sent_text


@dataclass(frozen=True)
class CorrelationResult:
    """Outcome of one agent request/response cycle."""

    request_id: Optional[str]
    output_seen: bool = False
    completed: bool = False
    timed_out: bool = False
