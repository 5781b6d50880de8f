"""
Media lab view: one-shot image, video, speech, edit, analysis and
transcription requests.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel

from adapters.base import GenerativeGateway
from common.cancellation import CancellationToken
from common.entities import MediaKind, MediaPayload
from common.errors import EmptyResult, OperationCancelled
from common.logging import TimedLogger, get_logger
from prompts.builder import (
    build_analysis_prompt,
    build_image_prompt,
    build_speech_prompt,
    build_transcription_prompt,
    build_video_prompt,
)

logger = get_logger(__name__)

MISSING_DIRECTIVE = "Please provide a neural directive."
MISSING_SOURCE_IMAGE = "Source image required for neural shift."
MISSING_SOURCE_AUDIO = "Source audio required for transcription."
GENERIC_FAILURE = "Uplink disrupted. Synthesis failed."


class MediaTab(str, Enum):
    VIDEO = "video"
    IMAGE = "image"
    EDIT = "edit"
    ANALYSIS = "analysis"
    SPEECH = "speech"
    TRANSCRIBE = "transcribe"


# Tabs whose builders supply a default directive
_DIRECTIVE_OPTIONAL = (MediaTab.SPEECH, MediaTab.ANALYSIS, MediaTab.TRANSCRIBE)

STATUS_MESSAGES = {
    MediaTab.VIDEO: "Initializing Veo-3.1 Synthesis...",
    MediaTab.IMAGE: "Compiling Pro-Image Grid...",
    MediaTab.EDIT: "Applying Neural Shift Protocol...",
    MediaTab.ANALYSIS: "Analyzing Media DNA...",
    MediaTab.SPEECH: "Modulating TTS Frequency...",
    MediaTab.TRANSCRIBE: "Decoding Audio Stream...",
}

EMPTY_MESSAGES = {
    MediaTab.VIDEO: "Video synthesis returned no data.",
    MediaTab.IMAGE: "Image synthesis returned no data.",
    MediaTab.EDIT: "Image edit failed.",
    MediaTab.ANALYSIS: "Analysis returned no data.",
    MediaTab.SPEECH: "Speech synthesis failed.",
    MediaTab.TRANSCRIBE: "Transcription returned no data.",
}


class MediaLabResult(BaseModel):
    tab: MediaTab
    status: str  # complete | error | cancelled
    result: Optional[str] = None  # data URL for media, plain text otherwise
    mime_type: Optional[str] = None
    media: Optional[MediaPayload] = None
    error: Optional[str] = None


class MediaLabController:
    def __init__(self, gateway: GenerativeGateway):
        self.gateway = gateway

    @staticmethod
    def validate(
        tab: Union[MediaTab, str], directive: str, source: Optional[MediaPayload]
    ) -> Optional[str]:
        """Return the notice for a request that cannot be sent, or None."""
        tab = MediaTab(tab)
        if not (directive or "").strip() and tab not in _DIRECTIVE_OPTIONAL:
            return MISSING_DIRECTIVE
        if source is None and tab in (MediaTab.EDIT, MediaTab.ANALYSIS):
            return MISSING_SOURCE_IMAGE
        if source is None and tab == MediaTab.TRANSCRIBE:
            return MISSING_SOURCE_AUDIO
        return None

    @staticmethod
    def _error(tab: MediaTab, message: str) -> MediaLabResult:
        return MediaLabResult(tab=tab, status="error", error=message)

    async def run(
        self,
        tab: Union[MediaTab, str],
        directive: str = "",
        *,
        aspect_ratio: Optional[str] = None,
        image_size: str = "1K",
        source: Optional[MediaPayload] = None,
        voice: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> MediaLabResult:
        """
        Execute one media request for ``tab``.

        Validation problems and gateway failures are returned as an error
        result, never raised.
        """
        tab = MediaTab(tab)
        directive = (directive or "").strip()

        problem = self.validate(tab, directive, source)
        if problem is not None:
            return self._error(tab, problem)

        try:
            with TimedLogger(logger, "media_lab_request", tab=tab.value):
                return await self._dispatch(
                    tab, directive, aspect_ratio, image_size, source, voice, cancel
                )
        except OperationCancelled as e:
            return MediaLabResult(tab=tab, status="cancelled", error=str(e))
        except EmptyResult:
            return self._error(tab, EMPTY_MESSAGES[tab])
        except ValueError as e:
            return self._error(tab, str(e))
        except Exception as e:
            logger.error(
                event="media_lab_failed",
                tab=tab.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return self._error(tab, str(e) or GENERIC_FAILURE)

    async def _dispatch(
        self,
        tab: MediaTab,
        directive: str,
        aspect_ratio: Optional[str],
        image_size: str,
        source: Optional[MediaPayload],
        voice: Optional[str],
        cancel: Optional[CancellationToken],
    ) -> MediaLabResult:
        if tab == MediaTab.VIDEO:
            request = build_video_prompt(directive, aspect_ratio or "16:9")
            reference = await self.gateway.generate_media(
                MediaKind.VIDEO, request, reference=source, cancel=cancel
            )
            payload = await self.gateway.fetch_media(reference, cancel=cancel)
        elif tab == MediaTab.IMAGE:
            request = build_image_prompt(directive, aspect_ratio or "16:9", image_size)
            payload = await self.gateway.generate_media(MediaKind.IMAGE, request, cancel=cancel)
        elif tab == MediaTab.EDIT:
            payload = await self.gateway.edit_asset(source, directive, cancel=cancel)
            if payload is None:
                raise EmptyResult()
        elif tab == MediaTab.SPEECH:
            payload = await self.gateway.generate_speech(
                build_speech_prompt(directive, voice), cancel=cancel
            )
        elif tab == MediaTab.ANALYSIS:
            text = await self.gateway.analyze_media(
                source, build_analysis_prompt(directive), cancel=cancel
            )
            return MediaLabResult(tab=tab, status="complete", result=text, mime_type="text/plain")
        else:
            text = await self.gateway.transcribe(
                source, build_transcription_prompt(), cancel=cancel
            )
            return MediaLabResult(tab=tab, status="complete", result=text, mime_type="text/plain")

        return MediaLabResult(
            tab=tab,
            status="complete",
            result=payload.to_data_url(),
            mime_type=payload.mime_type,
            media=payload,
        )
