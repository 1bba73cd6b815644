"""Rate-limited, coalescing output flush scheduler."""

import asyncio
import logging
from typing import Optional

from agentrelay.relay.exceptions import MessageNotFoundError
from agentrelay.relay.models import DestinationBuffer
from agentrelay.relay.transport import DEFAULT_MAX_MESSAGE_LENGTH, ChatTransport

logger = logging.getLogger(__name__)

DEFAULT_MIN_FLUSH_INTERVAL = 0.25


class FlushScheduler:
    """Coalesces output fragments per destination and flushes them to a transport.

    Scheduling rules:
    - At most one flush cycle runs at a time, across all destinations
    - A cycle starts no sooner than ``min_interval`` after the previous one ended
    - Requests while a cycle is scheduled or running do not schedule another
    - Destinations that became pending during a cycle get a follow-up cycle

    Within a cycle each pending destination is flushed once. A buffer longer
    than ``max_message_length`` sends its first chunk, seals that message and
    stays pending for the remainder; otherwise the whole buffer is posted or
    edited into the current message.
    """

    def __init__(
        self,
        transport: ChatTransport,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
        min_interval: float = DEFAULT_MIN_FLUSH_INTERVAL,
    ) -> None:
        """Initialize the scheduler.

        Args:
            transport: Transport used to post and edit messages
            max_message_length: Maximum characters per transmitted message
            min_interval: Minimum seconds between flush cycles
        """
        if max_message_length < 1:
            raise ValueError("max_message_length must be positive")

        self._transport = transport
        self._max_message_length = max_message_length
        self._min_interval = min_interval

        self._buffers: dict[str, DestinationBuffer] = {}
        # Insertion-ordered set of destinations with unflushed content
        self._pending: dict[str, None] = {}
        # Destinations whose buffer is dropped once fully flushed
        self._released: set[str] = set()

        self._timer: Optional[asyncio.TimerHandle] = None
        self._cycle: Optional[asyncio.Task] = None
        self._processing = False
        self._last_flush = float("-inf")
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def min_interval(self) -> float:
        return self._min_interval

    @property
    def max_message_length(self) -> int:
        return self._max_message_length

    @property
    def pending(self) -> list[str]:
        """Destinations with unflushed content."""
        return list(self._pending)

    def get_buffer(self, destination: str) -> Optional[DestinationBuffer]:
        """Get the buffer for a destination, if one exists."""
        return self._buffers.get(destination)

    def record_output(self, destination: str, text: str) -> None:
        """Append an output fragment for a destination and schedule a flush.

        Args:
            destination: Channel or conversation id
            text: Fragment to append
        """
        if not text:
            return

        buffer = self._buffers.get(destination)
        if buffer is None:
            buffer = DestinationBuffer()
            self._buffers[destination] = buffer

        buffer.text += text
        # New output after a release belongs to the same message again
        self._released.discard(destination)
        self.mark_pending(destination)

    def release(self, destination: str) -> None:
        """Flush a destination one last time and drop its buffer afterwards.

        Called when the request producing output for ``destination`` is done,
        so the next request starts a new message instead of editing this one.
        """
        if destination not in self._buffers:
            return

        self._released.add(destination)
        self.mark_pending(destination)

    def mark_pending(self, destination: str) -> None:
        """Mark a destination as having unflushed content."""
        self._pending[destination] = None
        self._schedule()

    def _schedule(self) -> None:
        if self._timer is not None or self._processing:
            return

        self._idle.clear()
        loop = asyncio.get_running_loop()
        delay = max(0.0, self._last_flush + self._min_interval - loop.time())
        self._timer = loop.call_later(delay, self._start_cycle)

    def _start_cycle(self) -> None:
        self._timer = None
        self._processing = True
        self._cycle = asyncio.ensure_future(self._process_pending())

    async def _process_pending(self) -> None:
        try:
            destinations = list(self._pending)
            self._pending.clear()
            for destination in destinations:
                await self._flush_destination(destination)
            self._last_flush = asyncio.get_running_loop().time()
        finally:
            self._cycle = None
            self._finish_cycle()

    def _finish_cycle(self) -> None:
        self._processing = False
        if self._pending:
            self._schedule()
        else:
            self._idle.set()

    async def _flush_destination(self, destination: str) -> None:
        """Flush one destination, logging instead of raising transport errors."""
        try:
            await self._flush_buffer(destination)
        except Exception as e:
            logger.error(f"Error flushing output for {destination}: {e}", exc_info=True)
            return

        buffer = self._buffers.get(destination)
        if (
            destination in self._released
            and destination not in self._pending
            and (buffer is None or not buffer.is_dirty)
        ):
            self._released.discard(destination)
            self._buffers.pop(destination, None)
            logger.debug(f"Dropped output buffer for {destination}")

    async def _flush_buffer(self, destination: str) -> None:
        buffer = self._buffers.get(destination)
        if buffer is None or not buffer.is_dirty:
            return

        if len(buffer.text) > self._max_message_length:
            chunk = buffer.text[: self._max_message_length]
            try:
                await self._send(destination, buffer, chunk)
            except MessageNotFoundError:
                # Sealed anyway; the remainder starts a new message
                logger.debug(
                    f"Editable message {buffer.editable_message_id} in {destination} is gone; "
                    "skipping overflow chunk"
                )

            # The message is full: seal it and start a fresh one for the rest
            buffer.text = buffer.text[self._max_message_length :]
            buffer.editable_message_id = None
            buffer.last_sent_text = ""
            self._pending[destination] = None
            return

        text = buffer.text
        if buffer.editable_message_id is None:
            await self._send(destination, buffer, text)
            buffer.last_sent_text = text
            return

        try:
            await self._transport.update_message(destination, buffer.editable_message_id, text)
        except MessageNotFoundError:
            # Dropped rather than reposted, so nothing is shown twice
            logger.debug(
                f"Editable message {buffer.editable_message_id} in {destination} is gone; "
                "skipping update"
            )
        buffer.last_sent_text = text

    async def _send(self, destination: str, buffer: DestinationBuffer, text: str) -> None:
        """Edit the buffer's editable message, or post a new one and make it editable."""
        if buffer.editable_message_id is not None:
            await self._transport.update_message(destination, buffer.editable_message_id, text)
            return

        buffer.editable_message_id = await self._transport.post_message(destination, text)

    async def flush_all(self) -> None:
        """Flush every pending destination now, ignoring the interval.

        Waits for a running cycle first so flushes never overlap. Overflow
        splits are followed until every buffer is transmitted or a
        destination fails.
        """
        while self._timer is not None or self._processing:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self._cycle is not None:
                await asyncio.gather(self._cycle, return_exceptions=True)
            elif self._processing:
                # Another forced flush is in progress
                await self._idle.wait()

        self._processing = True
        self._idle.clear()
        try:
            while self._pending:
                destinations = list(self._pending)
                self._pending.clear()
                for destination in destinations:
                    await self._flush_destination(destination)
            self._last_flush = asyncio.get_running_loop().time()
        finally:
            self._finish_cycle()

    async def wait_idle(self) -> None:
        """Suspend until nothing is scheduled, running or pending."""
        await self._idle.wait()

    async def close(self) -> None:
        """Perform a final forced flush and drop all buffers."""
        await self.flush_all()
        self._buffers.clear()
        self._released.clear()
        logger.debug("Flush scheduler closed")
