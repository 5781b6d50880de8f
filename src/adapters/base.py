"""
Gateway interface for the hosted generative-AI service.

- Single responsibility: define the one-call-per-feature boundary
- Type safety with Pydantic models
- Async design for I/O operations
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Iterable,
    List,
    Optional,
    Union,
)

from pydantic import BaseModel

from common.cancellation import CancellationToken
from common.entities import (
    GroundingReference,
    MediaKind,
    MediaPayload,
    MediaReference,
    PromptRequest,
)


class TextStream:
    """
    Lazy, single-pass sequence of text fragments for one response.

    Grounding references reported by the service are collected on
    ``references`` while the stream is consumed.
    """

    def __init__(self) -> None:
        self._fragments: Optional[AsyncIterator[str]] = None
        self._consumed = False
        self.references: List[GroundingReference] = []

    def bind(self, fragments: AsyncIterator[str]) -> "TextStream":
        self._fragments = fragments
        return self

    def add_references(self, references: Iterable[GroundingReference]) -> None:
        seen = {(ref.kind, ref.uri) for ref in self.references}
        for ref in references:
            if (ref.kind, ref.uri) not in seen:
                seen.add((ref.kind, ref.uri))
                self.references.append(ref)

    def __aiter__(self) -> AsyncIterator[str]:
        if self._fragments is None:
            raise RuntimeError("TextStream has no source bound")
        if self._consumed:
            raise RuntimeError("TextStream can only be iterated once")
        self._consumed = True
        return self._fragments

    async def aclose(self) -> None:
        aclose = getattr(self._fragments, "aclose", None)
        if aclose is not None:
            await aclose()


class LiveEventKind(str, Enum):
    AUDIO = "audio"
    TRANSCRIPT = "transcript"
    INTERRUPTED = "interrupted"
    TURN_COMPLETE = "turn_complete"
    STATUS = "status"


class LiveEvent(BaseModel):
    kind: LiveEventKind
    audio: Optional[MediaPayload] = None
    text: Optional[str] = None


class LiveSession(ABC):
    """An open real-time voice session."""

    @abstractmethod
    async def send_audio(self, data: bytes, mime_type: str = "audio/pcm;rate=16000") -> None:
        """Forward one captured microphone frame."""

    @abstractmethod
    def receive(self) -> AsyncIterator[LiveEvent]:
        """Events from the service until the session closes."""


class GenerativeGateway(ABC):
    """One operation per feature against the external generative service."""

    @abstractmethod
    async def edit_asset(
        self,
        image: MediaPayload,
        directive: str,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> Optional[MediaPayload]:
        """Apply ``directive`` to ``image``; None when no image part came back."""

    @abstractmethod
    def stream_text(
        self, request: PromptRequest, *, cancel: Optional[CancellationToken] = None
    ) -> TextStream:
        """Lazily stream text; the first non-empty fragment is preamble-stripped."""

    @abstractmethod
    async def generate_text(
        self, request: PromptRequest, *, cancel: Optional[CancellationToken] = None
    ) -> str:
        """Generate a complete text response."""

    @abstractmethod
    async def generate_structured(
        self,
        request: PromptRequest,
        schema: Any,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> Any:
        """Generate JSON constrained to ``schema``; raises ParseFailure on bad output."""

    @abstractmethod
    async def generate_media(
        self,
        kind: MediaKind,
        request: PromptRequest,
        *,
        reference: Optional[MediaPayload] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Union[MediaPayload, MediaReference]:
        """Generate an image (inline payload) or a video (remote reference)."""

    @abstractmethod
    async def fetch_media(
        self, reference: MediaReference, *, cancel: Optional[CancellationToken] = None
    ) -> MediaPayload:
        """Download a finished remote result."""

    @abstractmethod
    async def generate_speech(
        self, request: PromptRequest, *, cancel: Optional[CancellationToken] = None
    ) -> MediaPayload:
        """Synthesize speech for ``request.directive``."""

    @abstractmethod
    async def transcribe(
        self,
        audio: MediaPayload,
        request: PromptRequest,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        """Transcribe recorded audio."""

    @abstractmethod
    async def analyze_media(
        self,
        media: MediaPayload,
        request: PromptRequest,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        """Describe or analyze an image, audio or video payload."""

    @abstractmethod
    def live_session(self, request: PromptRequest) -> AsyncContextManager[LiveSession]:
        """Open a real-time voice session, closed when the context exits."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the service is reachable."""
