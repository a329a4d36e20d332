"""
Cooperative cancellation for gateway calls and task polling.

A ``CancelToken`` is passed down from the request handler. Cancelling it
wakes any backoff or poll sleep immediately; the sleeper raises
``OperationCancelled``.
"""

import asyncio
from typing import Optional

from .errors import OperationCancelled


class CancelToken:
    """One-shot cancellation signal backed by an ``asyncio.Event``."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None
        self._timer = None

    @classmethod
    def with_deadline(cls, seconds: float) -> "CancelToken":
        """Token that cancels itself after ``seconds`` on the running loop."""
        token = cls()
        loop = asyncio.get_running_loop()
        token._timer = loop.call_later(seconds, token.cancel, f"deadline of {seconds}s exceeded")
        return token

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
        self.release()

    def release(self) -> None:
        """Drop the pending deadline without cancelling."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(f"Operation cancelled: {self.reason}")

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()
