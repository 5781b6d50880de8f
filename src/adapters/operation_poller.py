"""
Waiting on long-running service operations (video generation).

Bounded by a poll count and an overall timeout, and interruptible through a
cancellation token.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from common.cancellation import CancellationToken
from common.errors import OperationTimeout, TransportFailure
from common.logging import get_logger

logger = get_logger(__name__)


def _operation_done(operation: Any) -> bool:
    return bool(getattr(operation, "done", False))


class OperationPoller:
    """Refresh an operation at a fixed interval until it reports done."""

    def __init__(
        self,
        refresh: Callable[[Any], Awaitable[Any]],
        *,
        interval: float,
        max_polls: int,
        timeout: Optional[float] = None,
        is_done: Callable[[Any], bool] = _operation_done,
    ):
        if max_polls < 1:
            raise ValueError("max_polls must be at least 1")
        self.refresh = refresh
        self.interval = interval
        self.max_polls = max_polls
        self.timeout = timeout
        self.is_done = is_done

    async def wait(self, operation: Any, *, cancel: Optional[CancellationToken] = None) -> Any:
        """
        Return the finished operation.

        Raises:
            OperationTimeout: after ``max_polls`` refreshes or ``timeout`` seconds
            OperationCancelled: when ``cancel`` fires
            TransportFailure: when the finished operation reports an error
        """
        try:
            return await asyncio.wait_for(self._poll(operation, cancel), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise OperationTimeout(f"Operation did not finish within {self.timeout}s") from e

    async def _poll(self, operation: Any, cancel: Optional[CancellationToken]) -> Any:
        polls = 0
        while not self.is_done(operation):
            if polls >= self.max_polls:
                raise OperationTimeout(f"Operation not finished after {polls} polls")

            if cancel is not None:
                await cancel.sleep(self.interval)
            else:
                await asyncio.sleep(self.interval)

            operation = await self.refresh(operation)
            polls += 1
            logger.debug(
                event="operation_polled",
                operation=getattr(operation, "name", None),
                polls=polls,
                done=self.is_done(operation),
            )

        error = getattr(operation, "error", None)
        if error:
            raise TransportFailure(f"Operation failed: {error}")
        return operation
