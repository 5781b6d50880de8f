"""
Tests for the course, lab report, thesis and media lab views.
"""

import pytest

from common.cancellation import CancellationToken
from common.entities import Faculty, Feature, MediaKind, MediaPayload, Slide
from common.errors import EmptyResult, ParseFailure, TransportFailure
from common.stream_accumulator import StreamState
from controllers.course import INITIAL_PROGRESS, LESSON_ERROR, CourseController
from controllers.lab_report import LAB_REPORT_EMPTY, LAB_REPORT_ERROR, LabReportController
from controllers.media_lab import (
    EMPTY_MESSAGES,
    GENERIC_FAILURE,
    MISSING_DIRECTIVE,
    MISSING_SOURCE_AUDIO,
    MISSING_SOURCE_IMAGE,
    MediaLabController,
    MediaTab,
)
from controllers.thesis import THESIS_EMPTY, THESIS_ERROR, ThesisController
from fakes import EDITED, PNG

COURSE_ID = "uon-micro-001"
LESSON_ID = "uon-mt-101"

WAV = MediaPayload(data=b"RIFF-recording", mime_type="audio/wav")


# Course view


@pytest.mark.asyncio
async def test_lesson_progress_is_monotonic_and_ends_at_100(gateway):
    gateway.fragments = ["# Title\n"] + ["body "] * 120
    controller = CourseController(gateway)

    snapshots = [s async for s in controller.synthesize_lesson(COURSE_ID, LESSON_ID)]

    progress = [s.progress for s in snapshots]
    assert progress[0] == INITIAL_PROGRESS
    assert progress == sorted(progress)
    assert max(progress[:-1]) == 99
    assert snapshots[-1].progress == 100
    assert snapshots[-1].state == StreamState.COMPLETE
    assert snapshots[-1].content.startswith("# Title\n")


@pytest.mark.asyncio
async def test_lesson_failure_replaces_content(gateway):
    gateway.fragments = ["# Partial lecture"]
    gateway.stream_error = TransportFailure("quota")
    controller = CourseController(gateway)

    snapshots = [s async for s in controller.synthesize_lesson(COURSE_ID, LESSON_ID)]

    assert snapshots[-1].content == LESSON_ERROR
    assert snapshots[-1].state == StreamState.FAILED
    assert snapshots[-1].progress < 100


@pytest.mark.asyncio
async def test_lesson_cancel_keeps_partial(gateway):
    gateway.fragments = ["# Partial"]
    gateway.stream_hang = True
    token = CancellationToken()
    controller = CourseController(gateway)

    snapshots = []
    async for snapshot in controller.synthesize_lesson(COURSE_ID, LESSON_ID, cancel=token):
        snapshots.append(snapshot)
        if snapshot.content == "# Partial":
            token.cancel()

    assert snapshots[-1].state == StreamState.CANCELLED
    assert snapshots[-1].content == "# Partial"


@pytest.mark.asyncio
async def test_unknown_lesson_raises_lookup_error(gateway):
    controller = CourseController(gateway)
    with pytest.raises(LookupError):
        async for _ in controller.synthesize_lesson(COURSE_ID, "missing"):
            pass
    with pytest.raises(LookupError):
        await controller.generate_slides("missing", LESSON_ID)


@pytest.mark.asyncio
async def test_slides_passed_through(gateway):
    slides = [Slide(title="Bus Systems", points=["Address bus"], footer="SPM 101")]
    gateway.structured_result = slides

    result = await CourseController(gateway).generate_slides(COURSE_ID, LESSON_ID)

    assert result == slides
    assert gateway.called("generate_structured")[0][1].feature == Feature.SLIDES


@pytest.mark.asyncio
async def test_slides_parse_failure_propagates(gateway):
    gateway.structured_result = ParseFailure("bad json", "{")
    with pytest.raises(ParseFailure):
        await CourseController(gateway).generate_slides(COURSE_ID, LESSON_ID)


# Lab report and thesis


@pytest.mark.asyncio
async def test_lab_report_success(gateway):
    gateway.text_result = "TITLE: Op-Amp Characterisation"
    controller = LabReportController(gateway)

    result = await controller.generate("EXP-3", "Amina", "P15/1/2024")

    assert result.text == "TITLE: Op-Amp Characterisation"
    assert not result.failed
    assert controller.last_result is result


@pytest.mark.asyncio
async def test_lab_report_requires_fields(gateway):
    with pytest.raises(ValueError):
        await LabReportController(gateway).generate("EXP-3", "", "P15/1/2024")
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_lab_report_failure_messages(gateway):
    controller = LabReportController(gateway)

    gateway.text_result = TransportFailure("API key not valid", "auth")
    failed = await controller.generate("EXP-3", "Amina", "P15/1/2024")
    assert failed.text == LAB_REPORT_ERROR
    assert failed.failed and failed.error == "API key not valid"

    gateway.text_result = EmptyResult()
    empty = await controller.generate("EXP-3", "Amina", "P15/1/2024")
    assert empty.text == LAB_REPORT_EMPTY


@pytest.mark.asyncio
async def test_lab_report_cancelled(gateway):
    gateway.hang = True
    token = CancellationToken()
    token.cancel()

    result = await LabReportController(gateway).generate("E", "N", "R", cancel=token)

    assert result.cancelled
    assert result.text == ""


@pytest.mark.asyncio
async def test_thesis_uses_faculty_and_failure_text(gateway):
    controller = ThesisController(gateway)

    result = await controller.generate("Graphene sensors", "Faculty of Engineering", "nano")
    request = gateway.called("generate_text")[0][1]
    assert request.feature == Feature.THESIS
    assert request.parameters["faculty"] == Faculty.ENGINEERING.value
    assert result.text == "Generated document."

    gateway.text_result = RuntimeError("boom")
    assert (await controller.generate("Graphene sensors")).text == THESIS_ERROR

    gateway.text_result = EmptyResult()
    assert (await controller.generate("Graphene sensors")).text == THESIS_EMPTY


@pytest.mark.asyncio
async def test_thesis_rejects_unknown_faculty(gateway):
    with pytest.raises(ValueError):
        await ThesisController(gateway).generate("Topic", "Faculty of Arts")


# Media lab


@pytest.mark.parametrize(
    "tab, directive, source, expected",
    [
        (MediaTab.VIDEO, "", None, MISSING_DIRECTIVE),
        (MediaTab.IMAGE, "  ", None, MISSING_DIRECTIVE),
        (MediaTab.EDIT, "Sharpen", None, MISSING_SOURCE_IMAGE),
        (MediaTab.ANALYSIS, "", None, MISSING_SOURCE_IMAGE),
        (MediaTab.TRANSCRIBE, "", None, MISSING_SOURCE_AUDIO),
        (MediaTab.SPEECH, "", None, None),
        (MediaTab.EDIT, "Sharpen", PNG, None),
    ],
)
def test_media_lab_validation(tab, directive, source, expected):
    assert MediaLabController.validate(tab, directive, source) == expected


@pytest.mark.asyncio
async def test_media_lab_invalid_request_never_calls_gateway(gateway):
    result = await MediaLabController(gateway).run(MediaTab.VIDEO, "")

    assert result.status == "error"
    assert result.error == MISSING_DIRECTIVE
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_media_lab_video_downloads_result(gateway):
    result = await MediaLabController(gateway).run("video", "Rotating die", aspect_ratio="9:16")

    assert result.status == "complete"
    assert result.mime_type == "video/mp4"
    assert result.result.startswith("data:video/mp4;base64,")
    kind, request = gateway.called("generate_media")[0][1:3]
    assert kind == MediaKind.VIDEO
    assert request.parameters["aspect_ratio"] == "9:16"
    assert gateway.called("fetch_media")[0][1] == gateway.video_reference


@pytest.mark.asyncio
async def test_media_lab_image_defaults_to_landscape(gateway):
    result = await MediaLabController(gateway).run(MediaTab.IMAGE, "CMOS cross-section")

    assert result.result == EDITED.to_data_url()
    request = gateway.called("generate_media")[0][2]
    assert request.parameters == {"aspect_ratio": "16:9", "image_size": "1K"}


@pytest.mark.asyncio
async def test_media_lab_bad_option_reported(gateway):
    result = await MediaLabController(gateway).run(MediaTab.IMAGE, "Chip", aspect_ratio="5:4")

    assert result.status == "error"
    assert "aspect ratio" in result.error


@pytest.mark.asyncio
async def test_media_lab_edit_without_image_part(gateway):
    gateway.edit_results = [None]
    result = await MediaLabController(gateway).run(MediaTab.EDIT, "Sharpen", source=PNG)

    assert result.error == EMPTY_MESSAGES[MediaTab.EDIT]


@pytest.mark.asyncio
async def test_media_lab_text_tabs(gateway):
    controller = MediaLabController(gateway)

    analysis = await controller.run(MediaTab.ANALYSIS, source=PNG)
    transcript = await controller.run(MediaTab.TRANSCRIBE, source=WAV)

    assert analysis.result == "Described media."
    assert analysis.mime_type == "text/plain"
    assert transcript.status == "complete"
    assert gateway.called("transcribe")[0][1] == WAV


@pytest.mark.asyncio
async def test_media_lab_speech_uses_voice(gateway):
    result = await MediaLabController(gateway).run(MediaTab.SPEECH, "Hello", voice="Puck")

    assert result.mime_type == "audio/wav"
    assert gateway.called("generate_speech")[0][1].parameters == {"voice": "Puck"}


@pytest.mark.asyncio
async def test_media_lab_gateway_failure(gateway):
    gateway.speech_result = TransportFailure("")
    result = await MediaLabController(gateway).run(MediaTab.SPEECH, "Hello")

    assert result.status == "error"
    assert result.error == GENERIC_FAILURE


@pytest.mark.asyncio
async def test_media_lab_cancelled(gateway):
    gateway.hang = True
    token = CancellationToken()
    token.cancel()

    result = await MediaLabController(gateway).run(MediaTab.IMAGE, "Chip", cancel=token)

    assert result.status == "cancelled"
