"""
Tests for the Gemini gateway against a scripted google-genai client.
"""

import asyncio
import io
import wave
from contextlib import asynccontextmanager
from types import SimpleNamespace

import httpx
import pytest

from adapters.base import LiveEventKind
from adapters.gemini_adapter import GeminiGateway, first_inline_payload, pcm_to_wav
from adapters.grounding import resolve_grounding
from common.cancellation import CancellationToken
from common.config import GenAIConfig, VideoPollingConfig
from common.entities import (
    Faculty,
    Feature,
    MapSource,
    MediaKind,
    MediaPayload,
    MediaReference,
    WebSource,
)
from common.errors import (
    EmptyResult,
    OperationCancelled,
    OperationTimeout,
    ParseFailure,
    TransportFailure,
)
from prompts.builder import (
    SLIDE_DECK_SCHEMA,
    build_analysis_prompt,
    build_chat_prompt,
    build_image_prompt,
    build_lab_report_prompt,
    build_live_prompt,
    build_speech_prompt,
    build_thesis_prompt,
    build_transcription_prompt,
    build_video_prompt,
)

PNG = MediaPayload(data=b"png-bytes", mime_type="image/png")


def _inline(data, mime_type):
    return SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type), text=None)


def _text_part(text):
    return SimpleNamespace(inline_data=None, text=text)


def _response(parts=(), text=None):
    candidate = SimpleNamespace(
        content=SimpleNamespace(parts=list(parts)), grounding_metadata=None
    )
    return SimpleNamespace(text=text, candidates=[candidate])


def _grounding(*chunks):
    return SimpleNamespace(grounding_chunks=list(chunks))


def _web(uri, title=None):
    return SimpleNamespace(web=SimpleNamespace(uri=uri, title=title), maps=None)


def _maps(uri, title=None):
    return SimpleNamespace(web=None, maps=SimpleNamespace(uri=uri, title=title))


def _stream_chunk(text, metadata=None):
    return SimpleNamespace(text=text, candidates=[SimpleNamespace(grounding_metadata=metadata)])


class FakeModels:
    def __init__(self):
        self.calls = []
        self.response = _response(text="")
        self.stream = []
        self.error = None
        self.delay = 0.0
        self.operation = None

    async def generate_content(self, **kwargs):
        self.calls.append(("generate_content", kwargs))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response

    async def generate_content_stream(self, **kwargs):
        self.calls.append(("generate_content_stream", kwargs))
        if self.error is not None:
            raise self.error

        async def chunks():
            for chunk in self.stream:
                yield chunk

        return chunks()

    async def generate_videos(self, **kwargs):
        self.calls.append(("generate_videos", kwargs))
        return self.operation

    async def get(self, model):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(name=model)


class FakeOperations:
    def __init__(self):
        self.refreshed = []
        self.results = []

    async def get(self, operation):
        self.refreshed.append(operation)
        return self.results.pop(0)


class FakeLiveConnection:
    def __init__(self, turns):
        self.turns = list(turns)
        self.sent = []

    async def send_realtime_input(self, audio):
        self.sent.append(audio)

    async def receive(self):
        turn = self.turns.pop(0) if self.turns else []
        for message in turn:
            yield message


class FakeLive:
    def __init__(self):
        self.connection = FakeLiveConnection([])
        self.config = None
        self.error = None

    def connect(self, model, config):
        self.config = config

        @asynccontextmanager
        async def session():
            if self.error is not None:
                raise self.error
            yield self.connection

        return session()


@pytest.fixture
def client():
    return SimpleNamespace(
        aio=SimpleNamespace(models=FakeModels(), operations=FakeOperations(), live=FakeLive())
    )


@pytest.fixture
def genai_config():
    return GenAIConfig(request_timeout=1.0, thinking_budget=2048)


@pytest.fixture
def gemini(client, genai_config):
    polling = VideoPollingConfig(interval_seconds=0, max_polls=3, timeout_seconds=5)
    return GeminiGateway(genai_config, polling, client=client)


def test_missing_api_key_rejected(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(ValueError, match="GEMINI_API_KEY"):
        GeminiGateway(GenAIConfig())


def test_model_routing(gemini, genai_config):
    assert gemini.model_for(build_chat_prompt("q")) == genai_config.text_model
    assert gemini.model_for(build_thesis_prompt("t", Faculty.ENGINEERING)) == genai_config.pro_model
    assert gemini.model_for(build_image_prompt("x")) == genai_config.image_model
    assert gemini.model_for(build_video_prompt("x")) == genai_config.video_model


def test_generation_config_tools_and_thinking(gemini):
    chat = gemini._generation_config(build_chat_prompt("q", web_grounding=True, maps_grounding=True))
    assert len(chat.tools) == 2
    assert chat.thinking_config is None

    thesis = gemini._generation_config(build_thesis_prompt("t", Faculty.ENGINEERING))
    assert thesis.thinking_config.thinking_budget == 2048
    assert thesis.system_instruction.startswith("Output ONLY")


@pytest.mark.asyncio
async def test_generate_text_strips_preamble(gemini, client):
    client.aio.models.response = _response(text="Sure, here is the report:\nTITLE: Diodes\n")

    text = await gemini.generate_text(build_lab_report_prompt("E1", "Name", "R1"))

    assert text == "TITLE: Diodes"


@pytest.mark.asyncio
async def test_generate_text_empty_result(gemini, client):
    client.aio.models.response = _response(text="   ")
    with pytest.raises(EmptyResult):
        await gemini.generate_text(build_lab_report_prompt("E1", "Name", "R1"))


@pytest.mark.asyncio
async def test_sdk_error_becomes_transport_failure(gemini, client):
    client.aio.models.error = RuntimeError("429 quota exceeded")

    with pytest.raises(TransportFailure) as info:
        await gemini.generate_text(build_chat_prompt("q"))
    assert info.value.error_type == "rate_limit"


@pytest.mark.asyncio
async def test_slow_call_times_out(client):
    client.aio.models.delay = 1.0
    gateway = GeminiGateway(GenAIConfig(request_timeout=0.01), client=client)

    with pytest.raises(OperationTimeout):
        await gateway.generate_text(build_chat_prompt("q"))


@pytest.mark.asyncio
async def test_cancelled_call(gemini, client):
    client.aio.models.delay = 1.0
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.01, token.cancel)

    with pytest.raises(OperationCancelled):
        await gemini.generate_text(build_chat_prompt("q"), cancel=token)


@pytest.mark.asyncio
async def test_stream_text_strips_first_fragment_and_collects_references(gemini, client):
    client.aio.models.stream = [
        _stream_chunk("Certainly. "),
        _stream_chunk("# Title\n", _grounding(_web("https://a.test", "Paper"))),
        _stream_chunk("Body", _grounding(_web("https://a.test", "Paper"), _maps("https://m.test"))),
    ]

    stream = gemini.stream_text(build_chat_prompt("q", web_grounding=True))
    fragments = [fragment async for fragment in stream]

    assert fragments == ["# Title\n", "Body"]
    assert stream.references == [
        WebSource(title="Paper", uri="https://a.test"),
        MapSource(title="https://m.test", uri="https://m.test"),
    ]


@pytest.mark.asyncio
async def test_stream_is_lazy_and_single_pass(gemini, client):
    stream = gemini.stream_text(build_chat_prompt("q"))
    assert client.aio.models.calls == []

    assert [f async for f in stream] == []
    with pytest.raises(RuntimeError):
        stream.__aiter__()


@pytest.mark.asyncio
async def test_stream_error_raised_to_consumer(gemini, client):
    client.aio.models.error = RuntimeError("network down")
    with pytest.raises(TransportFailure):
        async for _ in gemini.stream_text(build_chat_prompt("q")):
            pass


@pytest.mark.asyncio
async def test_generate_structured_validates_schema(gemini, client):
    client.aio.models.response = _response(
        text='[{"title": "Bus Systems", "points": ["Address bus"], "footer": "SPM 101"}]'
    )

    slides = await gemini.generate_structured(build_chat_prompt("q"), SLIDE_DECK_SCHEMA)

    assert slides[0].title == "Bus Systems"
    config = client.aio.models.calls[0][1]["config"]
    assert config.response_mime_type == "application/json"


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["", "not json", '[{"title": "missing fields"}]'])
async def test_generate_structured_parse_failure(gemini, client, raw):
    client.aio.models.response = _response(text=raw)
    with pytest.raises(ParseFailure):
        await gemini.generate_structured(build_chat_prompt("q"), SLIDE_DECK_SCHEMA)


@pytest.mark.asyncio
async def test_edit_asset_returns_first_image_part(gemini, client):
    client.aio.models.response = _response(
        [_text_part("ignored"), _inline(b"edited", "image/png")]
    )

    result = await gemini.edit_asset(PNG, "Sharpen")

    assert result == MediaPayload(data=b"edited", mime_type="image/png")
    call = client.aio.models.calls[0][1]
    assert call["model"] == GenAIConfig().image_edit_model


@pytest.mark.asyncio
async def test_edit_asset_without_image_returns_none(gemini, client):
    client.aio.models.response = _response([_text_part("I cannot edit this.")])
    assert await gemini.edit_asset(PNG, "Sharpen") is None


@pytest.mark.asyncio
async def test_generate_image(gemini, client):
    client.aio.models.response = _response([_inline(b"img", "image/png")])
    result = await gemini.generate_media(MediaKind.IMAGE, build_image_prompt("chip", "4:3", "2K"))

    assert result.data == b"img"
    config = client.aio.models.calls[0][1]["config"]
    assert config.image_config.aspect_ratio == "4:3"
    assert config.image_config.image_size == "2K"

    client.aio.models.response = _response([])
    with pytest.raises(EmptyResult):
        await gemini.generate_media(MediaKind.IMAGE, build_image_prompt("chip"))


@pytest.mark.asyncio
async def test_generate_video_polls_until_done(gemini, client):
    pending = SimpleNamespace(name="op-1", done=False, error=None)
    finished = SimpleNamespace(
        name="op-1",
        done=True,
        error=None,
        response=SimpleNamespace(
            generated_videos=[SimpleNamespace(video=SimpleNamespace(uri="https://v.test/1", mime_type=None))]
        ),
    )
    client.aio.models.operation = pending
    client.aio.operations.results = [pending, finished]

    reference = await gemini.generate_media(MediaKind.VIDEO, build_video_prompt("orbit"))

    assert reference == MediaReference(uri="https://v.test/1", mime_type="video/mp4")
    assert len(client.aio.operations.refreshed) == 2


@pytest.mark.asyncio
async def test_generate_video_gives_up_after_max_polls(gemini, client):
    pending = SimpleNamespace(name="op-1", done=False, error=None)
    client.aio.models.operation = pending
    client.aio.operations.results = [pending] * 5

    with pytest.raises(OperationTimeout):
        await gemini.generate_media(MediaKind.VIDEO, build_video_prompt("orbit"))
    assert len(client.aio.operations.refreshed) == 3


@pytest.mark.asyncio
async def test_fetch_media_sends_key_header(client, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "secret-key")
    seen = {}

    def handler(request):
        seen["key"] = request.headers.get("x-goog-api-key")
        return httpx.Response(200, content=b"mp4-bytes")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        gateway = GeminiGateway(GenAIConfig(), client=client, http_client=http_client)
        payload = await gateway.fetch_media(MediaReference(uri="https://v.test/1"))

    assert payload == MediaPayload(data=b"mp4-bytes", mime_type="video/mp4")
    assert seen["key"] == "secret-key"


@pytest.mark.asyncio
async def test_fetch_media_http_error(client):
    transport = httpx.MockTransport(lambda request: httpx.Response(403))
    async with httpx.AsyncClient(transport=transport) as http_client:
        gateway = GeminiGateway(GenAIConfig(), client=client, http_client=http_client)
        with pytest.raises(TransportFailure):
            await gateway.fetch_media(MediaReference(uri="https://v.test/1"))


@pytest.mark.asyncio
async def test_generate_speech_wraps_pcm_in_wav(gemini, client):
    pcm = b"\x00\x00\x01\x00" * 10
    client.aio.models.response = _response([_inline(pcm, "audio/L16;codec=pcm;rate=24000")])

    payload = await gemini.generate_speech(build_speech_prompt("Hello", voice="Puck"))

    assert payload.mime_type == "audio/wav"
    with wave.open(io.BytesIO(payload.data)) as wav:
        assert wav.getframerate() == 24000
        assert wav.readframes(wav.getnframes()) == pcm
    config = client.aio.models.calls[0][1]["config"]
    assert config.speech_config.voice_config.prebuilt_voice_config.voice_name == "Puck"


@pytest.mark.asyncio
async def test_transcribe_and_analyze(gemini, client):
    client.aio.models.response = _response(text="Okay. The lecture covers latches.")
    audio = MediaPayload(data=b"RIFF", mime_type="audio/wav")

    assert await gemini.transcribe(audio, build_transcription_prompt()) == "Okay. The lecture covers latches."
    assert await gemini.analyze_media(PNG, build_analysis_prompt()) == "The lecture covers latches."
    models = [call[1]["model"] for call in client.aio.models.calls]
    assert models == [GenAIConfig().text_model, GenAIConfig().pro_model]


@pytest.mark.asyncio
async def test_live_session_events(gemini, client):
    turn = [
        SimpleNamespace(
            server_content=SimpleNamespace(
                model_turn=SimpleNamespace(parts=[_inline(b"pcm", "audio/pcm;rate=24000")]),
                interrupted=False,
                output_transcription=SimpleNamespace(text="Welcome"),
                turn_complete=True,
            )
        ),
        SimpleNamespace(server_content=None),
    ]
    client.aio.live.connection = FakeLiveConnection([turn])

    async with gemini.live_session(build_live_prompt("Puck")) as session:
        await session.send_audio(b"mic")
        events = [event async for event in session.receive()]

    assert [e.kind for e in events] == [
        LiveEventKind.AUDIO,
        LiveEventKind.TRANSCRIPT,
        LiveEventKind.TURN_COMPLETE,
    ]
    assert events[1].text == "Welcome"
    assert client.aio.live.connection.sent[0].data == b"mic"
    voice = client.aio.live.config.speech_config.voice_config.prebuilt_voice_config
    assert voice.voice_name == "Puck"


@pytest.mark.asyncio
async def test_live_connect_failure(gemini, client):
    client.aio.live.error = RuntimeError("permission denied")
    with pytest.raises(TransportFailure):
        async with gemini.live_session(build_live_prompt()):
            pass


@pytest.mark.asyncio
async def test_health_check(gemini, client):
    assert await gemini.health_check() is True
    client.aio.models.error = RuntimeError("API key not valid")
    assert await gemini.health_check() is False


def test_pcm_to_wav_header():
    data = pcm_to_wav(b"\x00\x00", 16000)
    assert data[:4] == b"RIFF"
    with wave.open(io.BytesIO(data)) as wav:
        assert wav.getframerate() == 16000


def test_first_inline_payload_decodes_base64_strings():
    response = _response([_inline("aGk=", "image/png")])
    assert first_inline_payload(response).data == b"hi"
    assert first_inline_payload(SimpleNamespace(candidates=None)) is None


def test_resolve_grounding_drops_chunks_without_uri():
    metadata = _grounding(_web(None, "No link"), _web("https://a.test"), SimpleNamespace(web=None, maps=None))
    assert resolve_grounding(metadata) == [WebSource(title="https://a.test", uri="https://a.test")]
    assert resolve_grounding(None) == []


def test_feature_models_cover_every_feature(gemini):
    assert set(gemini._models) == set(Feature)


@pytest.mark.asyncio
async def test_transcript_keeps_spoken_opener(gemini, client):
    spoken = "Okay, so today we will cover the 8085 interrupt system. Then timers."
    client.aio.models.response = _response(text=f"  {spoken}\n")
    audio = MediaPayload(data=b"RIFF", mime_type="audio/wav")

    assert await gemini.transcribe(audio, build_transcription_prompt()) == spoken


@pytest.mark.asyncio
async def test_empty_transcript_is_an_empty_result(gemini, client):
    client.aio.models.response = _response(text="   ")
    audio = MediaPayload(data=b"RIFF", mime_type="audio/wav")

    with pytest.raises(EmptyResult):
        await gemini.transcribe(audio, build_transcription_prompt())
