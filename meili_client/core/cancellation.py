"""Explicit cancellation handle passed into task waits."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """One-shot signal a caller flips to abort the waits observing it.

    Each waiter only reads the token; sharing one token across several waits
    cancels all of them at once.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def sleep(self, delay: float) -> bool:
        """Sleep up to `delay` seconds; return True if cancelled meanwhile."""
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(delay, 0.0))
        except asyncio.TimeoutError:
            return False
        return True
