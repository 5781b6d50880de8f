"""
Google Gemini gateway.

- Async I/O for all operations
- Single responsibility: one external call per portal feature
- Structured logging with elapsed_ms
- Never log secrets or API keys
- Timeout handling with explicit errors
"""

import asyncio
import base64
import io
import os
import re
import wave
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Dict, Optional, TypeVar, Union

import httpx
from google import genai
from google.genai import types
from pydantic import TypeAdapter, ValidationError

from adapters.base import GenerativeGateway, LiveEvent, LiveEventKind, LiveSession, TextStream
from adapters.grounding import resolve_grounding
from adapters.operation_poller import OperationPoller
from common.cancellation import CancellationToken, guarded
from common.config import GenAIConfig, VideoPollingConfig
from common.entities import Feature, MediaKind, MediaPayload, MediaReference, PromptRequest
from common.errors import (
    EmptyResult,
    GatewayError,
    OperationTimeout,
    ParseFailure,
    TransportFailure,
    classify_error,
)
from common.logging import TimedLogger, get_logger
from prompts.builder import build_edit_prompt
from prompts.preamble import strip_preamble, strip_stream_preamble

logger = get_logger(__name__)

T = TypeVar("T")

_END_OF_STREAM = object()
_PCM_RATE = re.compile(r"rate=(\d+)")
_DEFAULT_PCM_RATE = 24000

# Features that get the configured thinking budget when the request has none
_DEEP_REASONING = (Feature.THESIS,)


def pcm_to_wav(pcm: bytes, sample_rate: int = _DEFAULT_PCM_RATE) -> bytes:
    """Wrap raw 16-bit mono PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


def _inline_payload(part: Any) -> Optional[MediaPayload]:
    inline = getattr(part, "inline_data", None)
    if inline is None or not inline.data:
        return None
    data = inline.data
    if isinstance(data, str):
        data = base64.b64decode(data)
    return MediaPayload(data=data, mime_type=inline.mime_type or "application/octet-stream")


def _response_parts(response: Any) -> list:
    candidates = getattr(response, "candidates", None) or []
    if not candidates or candidates[0].content is None:
        return []
    return candidates[0].content.parts or []


def first_inline_payload(response: Any) -> Optional[MediaPayload]:
    """The first inline binary part of the first candidate, if any."""
    for part in _response_parts(response):
        payload = _inline_payload(part)
        if payload is not None:
            return payload
    return None


async def _next_or_end(iterator: AsyncIterator[T]) -> Union[T, object]:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _END_OF_STREAM


class GeminiLiveSession(LiveSession):
    """LiveSession over an open google-genai live connection."""

    def __init__(self, session: Any):
        self._session = session

    async def send_audio(self, data: bytes, mime_type: str = "audio/pcm;rate=16000") -> None:
        await self._session.send_realtime_input(audio=types.Blob(data=data, mime_type=mime_type))

    async def receive(self) -> AsyncGenerator[LiveEvent, None]:
        # session.receive() ends after each model turn
        while True:
            received = False
            async for message in self._session.receive():
                received = True
                content = getattr(message, "server_content", None)
                if content is None:
                    continue

                if content.model_turn is not None:
                    for part in content.model_turn.parts or []:
                        payload = _inline_payload(part)
                        if payload is not None:
                            yield LiveEvent(kind=LiveEventKind.AUDIO, audio=payload)

                if content.interrupted:
                    yield LiveEvent(kind=LiveEventKind.INTERRUPTED)

                transcription = getattr(content, "output_transcription", None)
                if transcription is not None and transcription.text:
                    yield LiveEvent(kind=LiveEventKind.TRANSCRIPT, text=transcription.text)

                if content.turn_complete:
                    yield LiveEvent(kind=LiveEventKind.TURN_COMPLETE)

            if not received:
                return


class GeminiGateway(GenerativeGateway):
    """GenerativeGateway backed by the google-genai async client."""

    def __init__(
        self,
        config: GenAIConfig,
        polling: Optional[VideoPollingConfig] = None,
        client: Optional[Any] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.polling = polling or VideoPollingConfig()

        # Get API key from environment
        self._api_key = os.getenv(config.api_key_env)
        if client is None:
            if not self._api_key:
                raise ValueError(f"{config.api_key_env} environment variable not set")
            client = genai.Client(api_key=self._api_key)

        self._client = client
        self._http_client = http_client

        self._models: Dict[Feature, str] = {
            Feature.CHAT: config.text_model,
            Feature.LESSON: config.text_model,
            Feature.SLIDES: config.text_model,
            Feature.LAB_REPORT: config.text_model,
            Feature.TRANSCRIPTION: config.text_model,
            Feature.THESIS: config.pro_model,
            Feature.ANALYSIS: config.pro_model,
            Feature.IMAGE_EDIT: config.image_edit_model,
            Feature.IMAGE: config.image_model,
            Feature.VIDEO: config.video_model,
            Feature.SPEECH: config.speech_model,
            Feature.LIVE: config.live_model,
        }

        logger.info(
            event="gemini_gateway_initialized",
            message="Gemini gateway initialized",
            text_model=config.text_model,
            request_timeout=config.request_timeout,
        )

    def model_for(self, request: PromptRequest) -> str:
        return request.model or self._models[request.feature]

    def _generation_config(
        self, request: PromptRequest, **overrides: Any
    ) -> types.GenerateContentConfig:
        kwargs: Dict[str, Any] = {}
        if request.system_instruction:
            kwargs["system_instruction"] = request.system_instruction

        tools = []
        if request.web_grounding:
            tools.append(types.Tool(google_search=types.GoogleSearch()))
        if request.maps_grounding:
            tools.append(types.Tool(google_maps=types.GoogleMaps()))
        if tools:
            kwargs["tools"] = tools

        budget = request.thinking_budget
        if budget is None and request.feature in _DEEP_REASONING:
            budget = self.config.thinking_budget
        if budget is not None:
            kwargs["thinking_config"] = types.ThinkingConfig(thinking_budget=budget)

        kwargs.update(overrides)
        return types.GenerateContentConfig(**kwargs)

    async def _call(
        self,
        operation: str,
        awaitable: Awaitable[T],
        cancel: Optional[CancellationToken],
        timeout: Optional[float] = None,
    ) -> T:
        """Await one SDK call with timeout, cancellation and error translation."""
        timeout = self.config.request_timeout if timeout is None else timeout
        try:
            return await guarded(asyncio.wait_for(awaitable, timeout=timeout), cancel)
        except GatewayError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(
                event="gemini_api_timeout",
                message="Gemini call timed out",
                operation=operation,
                timeout=timeout,
            )
            raise OperationTimeout(f"{operation} timed out after {timeout}s") from e
        except Exception as e:
            error_type = classify_error(e)
            logger.error(
                event="gemini_api_error",
                message="Gemini API error",
                operation=operation,
                error=str(e),
                error_type=error_type,
            )
            raise TransportFailure(str(e), error_type) from e

    async def edit_asset(
        self,
        image: MediaPayload,
        directive: str,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> Optional[MediaPayload]:
        request = build_edit_prompt(directive)
        model = self.model_for(request)
        contents = [
            types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
            types.Part.from_text(text=request.directive),
        ]
        with TimedLogger(logger, "gemini_edit_asset", model=model, size=len(image.data)):
            response = await self._call(
                "edit_asset",
                self._client.aio.models.generate_content(model=model, contents=contents),
                cancel,
            )
        return first_inline_payload(response)

    def stream_text(
        self, request: PromptRequest, *, cancel: Optional[CancellationToken] = None
    ) -> TextStream:
        stream = TextStream()
        return stream.bind(strip_stream_preamble(self._stream_fragments(request, stream, cancel)))

    async def _stream_fragments(
        self,
        request: PromptRequest,
        stream: TextStream,
        cancel: Optional[CancellationToken],
    ) -> AsyncGenerator[str, None]:
        model = self.model_for(request)
        logger.info(
            event="gemini_stream_started",
            feature=request.feature.value,
            model=model,
            web_grounding=request.web_grounding,
            maps_grounding=request.maps_grounding,
        )
        response = await self._call(
            "stream_text",
            self._client.aio.models.generate_content_stream(
                model=model,
                contents=request.directive,
                config=self._generation_config(request),
            ),
            cancel,
        )

        iterator = response.__aiter__()
        fragments = 0
        while True:
            chunk = await self._call("stream_text", _next_or_end(iterator), cancel)
            if chunk is _END_OF_STREAM:
                break

            candidates = getattr(chunk, "candidates", None) or []
            if candidates:
                stream.add_references(resolve_grounding(candidates[0].grounding_metadata))

            text = chunk.text
            if text:
                fragments += 1
                yield text

        logger.info(
            event="gemini_stream_completed",
            feature=request.feature.value,
            fragments=fragments,
            references=len(stream.references),
        )

    async def generate_text(
        self, request: PromptRequest, *, cancel: Optional[CancellationToken] = None
    ) -> str:
        model = self.model_for(request)
        with TimedLogger(logger, "gemini_generate_text", feature=request.feature.value, model=model):
            response = await self._call(
                "generate_text",
                self._client.aio.models.generate_content(
                    model=model,
                    contents=request.directive,
                    config=self._generation_config(request),
                ),
                cancel,
            )
        text = strip_preamble(response.text or "").strip()
        if not text:
            raise EmptyResult()
        return text

    async def generate_structured(
        self,
        request: PromptRequest,
        schema: Any,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> Any:
        model = self.model_for(request)
        config = self._generation_config(
            request, response_mime_type="application/json", response_schema=schema
        )
        with TimedLogger(
            logger, "gemini_generate_structured", feature=request.feature.value, model=model
        ):
            response = await self._call(
                "generate_structured",
                self._client.aio.models.generate_content(
                    model=model, contents=request.directive, config=config
                ),
                cancel,
            )

        raw_text = (response.text or "").strip()
        if not raw_text:
            raise ParseFailure("Structured response was empty")
        try:
            return TypeAdapter(schema).validate_json(raw_text)
        except ValidationError as e:
            logger.warning(
                event="gemini_structured_parse_failed",
                feature=request.feature.value,
                error_count=e.error_count(),
                raw_length=len(raw_text),
            )
            raise ParseFailure(f"Structured response did not match schema: {e}", raw_text) from e

    async def generate_media(
        self,
        kind: MediaKind,
        request: PromptRequest,
        *,
        reference: Optional[MediaPayload] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Union[MediaPayload, MediaReference]:
        if kind == MediaKind.VIDEO:
            return await self._generate_video(request, reference, cancel)
        return await self._generate_image(request, reference, cancel)

    async def _generate_image(
        self,
        request: PromptRequest,
        reference: Optional[MediaPayload],
        cancel: Optional[CancellationToken],
    ) -> MediaPayload:
        model = self.model_for(request)
        contents = []
        if reference is not None:
            contents.append(types.Part.from_bytes(data=reference.data, mime_type=reference.mime_type))
        contents.append(types.Part.from_text(text=request.directive))

        config = self._generation_config(
            request,
            response_modalities=["IMAGE", "TEXT"],
            image_config=types.ImageConfig(
                aspect_ratio=request.parameters.get("aspect_ratio", "1:1"),
                image_size=request.parameters.get("image_size", "1K"),
            ),
        )
        with TimedLogger(logger, "gemini_generate_image", model=model, **request.parameters):
            response = await self._call(
                "generate_image",
                self._client.aio.models.generate_content(
                    model=model, contents=contents, config=config
                ),
                cancel,
            )

        payload = first_inline_payload(response)
        if payload is None:
            raise EmptyResult("Image synthesis returned no data.")
        return payload

    async def _generate_video(
        self,
        request: PromptRequest,
        reference: Optional[MediaPayload],
        cancel: Optional[CancellationToken],
    ) -> MediaReference:
        model = self.model_for(request)
        kwargs: Dict[str, Any] = {
            "model": model,
            "prompt": request.directive,
            "config": types.GenerateVideosConfig(
                number_of_videos=1,
                aspect_ratio=request.parameters.get("aspect_ratio", "16:9"),
                resolution=request.parameters.get("resolution", "720p"),
            ),
        }
        if reference is not None:
            kwargs["image"] = types.Image(image_bytes=reference.data, mime_type=reference.mime_type)

        with TimedLogger(logger, "gemini_generate_video", model=model, **request.parameters):
            operation = await self._call(
                "generate_video", self._client.aio.models.generate_videos(**kwargs), cancel
            )
            poller = OperationPoller(
                lambda op: self._call(
                    "poll_video", self._client.aio.operations.get(op), cancel
                ),
                interval=self.polling.interval_seconds,
                max_polls=self.polling.max_polls,
                timeout=self.polling.timeout_seconds,
            )
            operation = await poller.wait(operation, cancel=cancel)

        response = getattr(operation, "response", None)
        videos = getattr(response, "generated_videos", None) or []
        video = videos[0].video if videos else None
        if video is None or not video.uri:
            raise EmptyResult("Video synthesis returned no data.")
        return MediaReference(uri=video.uri, mime_type=video.mime_type or "video/mp4")

    async def fetch_media(
        self, reference: MediaReference, *, cancel: Optional[CancellationToken] = None
    ) -> MediaPayload:
        headers = {"x-goog-api-key": self._api_key} if self._api_key else {}
        async with AsyncExitStack() as stack:
            client = self._http_client
            if client is None:
                client = await stack.enter_async_context(
                    httpx.AsyncClient(follow_redirects=True)
                )
            with TimedLogger(logger, "gemini_fetch_media", mime_type=reference.mime_type):
                response = await self._call(
                    "fetch_media",
                    client.get(reference.uri, headers=headers),
                    cancel,
                    timeout=self.polling.timeout_seconds,
                )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportFailure(
                f"Media download failed with status {response.status_code}",
                classify_error(e),
            ) from e

        if not response.content:
            raise EmptyResult("Downloaded media was empty.")
        return MediaPayload(data=response.content, mime_type=reference.mime_type)

    async def generate_speech(
        self, request: PromptRequest, *, cancel: Optional[CancellationToken] = None
    ) -> MediaPayload:
        model = self.model_for(request)
        voice = request.parameters.get("voice") or self.config.speech_voice
        config = self._generation_config(
            request,
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice)
                )
            ),
        )
        with TimedLogger(logger, "gemini_generate_speech", model=model, voice=voice):
            response = await self._call(
                "generate_speech",
                self._client.aio.models.generate_content(
                    model=model, contents=request.directive, config=config
                ),
                cancel,
            )

        payload = first_inline_payload(response)
        if payload is None:
            raise EmptyResult("Speech synthesis returned no data.")
        if payload.mime_type in ("audio/wav", "audio/x-wav"):
            return payload

        match = _PCM_RATE.search(payload.mime_type)
        rate = int(match.group(1)) if match else _DEFAULT_PCM_RATE
        return MediaPayload(data=pcm_to_wav(payload.data, rate), mime_type="audio/wav")

    async def _describe(
        self,
        operation: str,
        media: MediaPayload,
        request: PromptRequest,
        cancel: Optional[CancellationToken],
        *,
        verbatim: bool = False,
    ) -> str:
        model = self.model_for(request)
        contents = [
            types.Part.from_bytes(data=media.data, mime_type=media.mime_type),
            types.Part.from_text(text=request.directive),
        ]
        with TimedLogger(
            logger, f"gemini_{operation}", model=model, mime_type=media.mime_type, size=len(media.data)
        ):
            response = await self._call(
                operation,
                self._client.aio.models.generate_content(
                    model=model, contents=contents, config=self._generation_config(request)
                ),
                cancel,
            )
        text = (response.text or "").strip()
        # Transcripts keep spoken openers such as "Okay, so"
        if not verbatim:
            text = strip_preamble(text).strip()
        if not text:
            raise EmptyResult()
        return text

    async def transcribe(
        self,
        audio: MediaPayload,
        request: PromptRequest,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        return await self._describe("transcribe", audio, request, cancel, verbatim=True)

    async def analyze_media(
        self,
        media: MediaPayload,
        request: PromptRequest,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        return await self._describe("analyze_media", media, request, cancel)

    @asynccontextmanager
    async def live_session(self, request: PromptRequest) -> AsyncIterator[LiveSession]:
        model = self.model_for(request)
        voice = request.parameters.get("voice") or self.config.live_voice
        config = types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            system_instruction=request.system_instruction,
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice)
                )
            ),
            output_audio_transcription=types.AudioTranscriptionConfig(),
        )

        async with AsyncExitStack() as stack:
            try:
                session = await stack.enter_async_context(
                    self._client.aio.live.connect(model=model, config=config)
                )
            except Exception as e:
                error_type = classify_error(e)
                logger.error(
                    event="gemini_live_connect_failed",
                    model=model,
                    error=str(e),
                    error_type=error_type,
                )
                raise TransportFailure(str(e), error_type) from e

            logger.info(event="gemini_live_session_opened", model=model, voice=voice)
            try:
                yield GeminiLiveSession(session)
            finally:
                logger.info(event="gemini_live_session_closed", model=model)

    async def health_check(self) -> bool:
        """Check Gemini API health by looking up the text model."""
        try:
            await asyncio.wait_for(
                self._client.aio.models.get(model=self.config.text_model),
                timeout=self.config.request_timeout,
            )
            return True
        except Exception as e:
            logger.warning(
                event="gemini_health_check_failed",
                message="Gemini health check failed",
                error=str(e),
            )
            return False
