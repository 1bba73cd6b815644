"""Cooperative cancellation shared between a request and its subscriptions."""

import asyncio
from typing import Optional


class CancellationToken:
    """A one-shot cancellation signal.

    The token is passed into long-running subscriptions, which await
    ``wait()`` alongside their own suspension points. Cancelling more than
    once is harmless; only the first reason is kept.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        """Whether the token has been cancelled."""
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        """Reason given to the first ``cancel`` call."""
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel the token.

        Args:
            reason: Short description, e.g. "timeout" or "completed"
        """
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        await self._event.wait()
