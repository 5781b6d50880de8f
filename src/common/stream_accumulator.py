"""
Accumulation of streamed model output into a single growing string.

Provider-agnostic: consumes any async sequence of text fragments and
publishes the latest snapshot after every fragment.
"""

import asyncio
from enum import Enum
from typing import AsyncGenerator, AsyncIterable, Awaitable, Callable, Optional, Union

from common.cancellation import CancellationToken, guarded
from common.errors import OperationCancelled
from common.logging import get_logger

logger = get_logger(__name__)

UpdateCallback = Callable[[str], Union[None, Awaitable[None]]]


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AccumulationMode(str, Enum):
    """How a fragment is folded into the running text."""

    APPEND = "append"  # fragments are deltas
    REPLACE = "replace"  # each fragment is the full text so far


class FailurePresentation(str, Enum):
    """How a stream failure is shown in place of, or after, partial content."""

    REPLACE = "replace"
    REPLACE_IF_EMPTY = "replace_if_empty"


class StreamAccumulator:
    """
    State machine idle -> streaming -> (complete | failed | cancelled).

    Scoped to one in-flight request; ``start()`` discards the previous text.
    """

    def __init__(
        self,
        mode: AccumulationMode = AccumulationMode.APPEND,
        on_update: Optional[UpdateCallback] = None,
    ):
        self.mode = mode
        self.on_update = on_update
        self.text = ""
        self.state = StreamState.IDLE
        self.error: Optional[str] = None
        self.fragment_count = 0

    @property
    def finished(self) -> bool:
        return self.state in (StreamState.COMPLETE, StreamState.FAILED, StreamState.CANCELLED)

    def start(self) -> None:
        self.text = ""
        self.error = None
        self.fragment_count = 0
        self.state = StreamState.STREAMING

    def feed(self, fragment: str) -> str:
        if self.state != StreamState.STREAMING:
            raise RuntimeError(f"Cannot feed a fragment in state '{self.state.value}'")

        if self.mode == AccumulationMode.APPEND:
            self.text += fragment
        else:
            self.text = fragment
        self.fragment_count += 1
        return self.text

    def complete(self) -> str:
        if self.state == StreamState.STREAMING:
            self.state = StreamState.COMPLETE
        return self.text

    def fail(
        self,
        message: str,
        presentation: FailurePresentation = FailurePresentation.REPLACE_IF_EMPTY,
    ) -> str:
        """Move to ``failed`` and surface ``message`` according to ``presentation``."""
        self.error = message
        self.state = StreamState.FAILED
        if presentation == FailurePresentation.REPLACE or not self.text:
            self.text = message
        else:
            self.text = f"{self.text}\n\n{message}"
        return self.text

    def cancel(self) -> str:
        """Stop accumulating; the partial text is kept exactly as it was."""
        if not self.finished:
            self.state = StreamState.CANCELLED
            self.error = "Cancelled"
        return self.text

    async def _publish(self) -> None:
        if self.on_update is None:
            return
        result = self.on_update(self.text)
        if asyncio.iscoroutine(result):
            await result

    async def consume(
        self,
        fragments: AsyncIterable[str],
        *,
        error_message: str,
        presentation: FailurePresentation = FailurePresentation.REPLACE_IF_EMPTY,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Drive the whole lifecycle over ``fragments``.

        Yields the snapshot after every fragment and once more after a failure.
        Stream errors are recorded in ``state``/``error`` instead of raised;
        a token cancellation ends the generator in ``cancelled``; task
        cancellation is re-raised after the state is recorded.
        """
        self.start()
        iterator = fragments.__aiter__()
        try:
            while True:
                try:
                    fragment = await guarded(iterator.__anext__(), cancel)
                except StopAsyncIteration:
                    break
                self.feed(fragment)
                await self._publish()
                yield self.text
            self.complete()
        except OperationCancelled:
            self.cancel()
            await self._publish()
        except asyncio.CancelledError:
            self.cancel()
            raise
        except Exception as e:
            logger.warning(
                event="stream_failed",
                message="Stream ended with an error",
                error=str(e),
                error_type=type(e).__name__,
                fragments_received=self.fragment_count,
            )
            self.fail(error_message, presentation)
            self.error = str(e) or error_message
            await self._publish()
            yield self.text
        finally:
            # Consumer walked away mid-stream
            if self.state == StreamState.STREAMING:
                self.cancel()
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None and self.state != StreamState.COMPLETE:
                await aclose()
