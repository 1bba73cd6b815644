"""Agent event log with replayable cursors."""

import asyncio
import logging
from collections.abc import AsyncIterator
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from agentrelay.agent.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Agent event types observed by the relay."""

    OUTPUT_CHAT = "output.chat"  # Partial chat output fragment
    OUTPUT_INFO = "output.info"
    OUTPUT_WARNING = "output.warning"
    OUTPUT_ERROR = "output.error"
    INPUT_RECEIVED = "input.received"
    INPUT_HANDLED = "input.handled"  # Request finished

    @property
    def is_system_output(self) -> bool:
        """Whether this is a discrete info/warning/error emission."""
        return self in (EventType.OUTPUT_INFO, EventType.OUTPUT_WARNING, EventType.OUTPUT_ERROR)

    @property
    def level(self) -> str:
        """Level suffix of the event type ("chat", "info", ...)."""
        return self.value.split(".", 1)[1]


class AgentEvent(BaseModel):
    """Event emitted by an agent while it handles input."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    message: str = ""
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class EventCursor:
    """Opaque position into an ``EventLog``.

    Cursors advance as events are read through them, so two subscribers
    started from different cursors never see each other's history.
    """

    __slots__ = ("_position",)

    def __init__(self, position: int) -> None:
        self._position = position

    @property
    def position(self) -> int:
        return self._position

    def __repr__(self) -> str:
        return f"EventCursor({self._position})"


class EventLog:
    """Append-only log of agent events.

    Readers capture a cursor and then either pull events with
    ``read_from`` or iterate ``subscribe``, which waits for new events
    until a cancellation token fires.
    """

    def __init__(self) -> None:
        self._events: list[AgentEvent] = []
        self._appended = asyncio.Event()

    def __len__(self) -> int:
        return len(self._events)

    def cursor(self) -> EventCursor:
        """Get a cursor positioned after the last event currently in the log."""
        return EventCursor(len(self._events))

    def append(self, event: AgentEvent) -> None:
        """Append an event and wake every waiting subscriber."""
        self._events.append(event)
        waker, self._appended = self._appended, asyncio.Event()
        waker.set()

    def read_from(self, cursor: EventCursor) -> list[AgentEvent]:
        """Return every event at or after ``cursor`` and advance it.

        Args:
            cursor: Cursor to read from (advanced in place)

        Returns:
            Events appended since the cursor position
        """
        events = self._events[cursor._position :]
        cursor._position = len(self._events)
        return events

    async def subscribe(
        self,
        cursor: EventCursor,
        token: CancellationToken,
    ) -> AsyncIterator[AgentEvent]:
        """Yield events from ``cursor`` onwards until ``token`` is cancelled.

        Events already in the log past the cursor are replayed first.
        Cancellation ends the iteration without raising.

        Args:
            cursor: Replay position (advanced as events are yielded)
            token: Cancellation signal shared with the caller

        Yields:
            AgentEvent objects in log order
        """
        cancelled = asyncio.ensure_future(token.wait())
        try:
            while not token.cancelled:
                if cursor._position < len(self._events):
                    event = self._events[cursor._position]
                    cursor._position += 1
                    yield event
                    continue

                appended = asyncio.ensure_future(self._appended.wait())
                try:
                    await asyncio.wait({appended, cancelled}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    if not appended.done():
                        appended.cancel()
        finally:
            if not cancelled.done():
                cancelled.cancel()
