"""
Cooperative cancellation for in-flight gateway calls.

A token is created per request and threaded through every gateway call, the
batch queue and the stream accumulator. Firing it makes the guarded
awaitable raise OperationCancelled.
"""

import asyncio
import contextlib
from typing import Awaitable, Optional, TypeVar

from common.errors import OperationCancelled

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal shared between a request and its work."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason or "Cancelled")

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, waking early with OperationCancelled."""
        await self.guard(asyncio.sleep(delay))

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        The losing side is cancelled; when the token wins the awaitable is
        cancelled and OperationCancelled is raised.
        """
        if self._event.is_set():
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        raise OperationCancelled(self.reason or "Cancelled")


async def guarded(awaitable: Awaitable[T], cancel: Optional[CancellationToken]) -> T:
    """Await ``awaitable``, racing it against ``cancel`` when one is supplied."""
    if cancel is None:
        return await awaitable
    return await cancel.guard(awaitable)
