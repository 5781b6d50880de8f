"""
Shared one-shot document synthesis for the lab report and thesis views.
"""

from typing import Optional

from pydantic import BaseModel, Field

from adapters.base import GenerativeGateway
from common.cancellation import CancellationToken
from common.entities import PromptRequest
from common.errors import EmptyResult, OperationCancelled
from common.logging import TimedLogger, get_logger

logger = get_logger(__name__)


class DraftResult(BaseModel):
    """Outcome of one document synthesis, ready for display."""

    text: str = Field(default="", description="Document text, or the failure notice")
    failed: bool = Field(default=False, description="True when text is a failure notice")
    cancelled: bool = Field(default=False, description="True when the request was cancelled")
    error: Optional[str] = Field(default=None, description="Underlying error message")


async def synthesize_draft(
    gateway: GenerativeGateway,
    request: PromptRequest,
    *,
    failure_text: str,
    empty_text: str,
    cancel: Optional[CancellationToken] = None,
) -> DraftResult:
    """Run ``request`` as a single text generation and convert any failure to display text."""
    try:
        with TimedLogger(logger, "draft_synthesized", feature=request.feature.value):
            text = await gateway.generate_text(request, cancel=cancel)
    except OperationCancelled as e:
        return DraftResult(failed=True, cancelled=True, error=str(e))
    except EmptyResult as e:
        return DraftResult(text=empty_text, failed=True, error=str(e))
    except Exception as e:
        logger.error(
            event="draft_synthesis_failed",
            feature=request.feature.value,
            error=str(e),
            error_type=type(e).__name__,
        )
        return DraftResult(text=failure_text, failed=True, error=str(e))
    return DraftResult(text=text)
