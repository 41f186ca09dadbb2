"""Cooperative cancellation shared by every task belonging to one run."""

from __future__ import annotations

import asyncio
from typing import Optional


class CancellationToken:
    """
    One-shot cancellation signal checked at every suspension point.

    Workers never get force-cancelled; they poll ``cancelled`` before each
    dispatch and sleep through ``sleep()`` so that raising the token wakes
    them immediately.
    """

    EXPIRED = "expired"
    ABORTED = "aborted"

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    @property
    def aborted(self) -> bool:
        return self._reason == self.ABORTED

    def cancel(self, reason: str = ABORTED) -> bool:
        """Raise the token. Returns False if it was already raised."""

        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep for ``seconds`` unless the token is raised first.

        Returns True when the sleep was interrupted by cancellation.
        """

        if self._event.is_set():
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
