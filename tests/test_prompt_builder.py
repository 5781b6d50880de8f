"""
Tests for prompt construction and preamble removal.
"""

import pytest

from common.catalog import ADVISOR_SYSTEM_INSTRUCTION, find_course, find_lesson
from common.entities import Faculty, Feature
from prompts.builder import (
    DEFAULT_ANALYSIS_DIRECTIVE,
    DEFAULT_SPEECH_TEXT,
    SLIDE_COUNT,
    build_analysis_prompt,
    build_chat_prompt,
    build_edit_prompt,
    build_image_prompt,
    build_lab_report_prompt,
    build_lesson_prompt,
    build_live_prompt,
    build_slides_prompt,
    build_speech_prompt,
    build_thesis_prompt,
    build_video_prompt,
)
from prompts.preamble import strip_preamble, strip_stream_preamble


@pytest.fixture
def course_and_lesson():
    course = find_course("uon-micro-001")
    return course, find_lesson(course, "uon-mt-101")


def test_chat_prompt_carries_grounding_flags():
    request = build_chat_prompt("  What is a latch?  ", web_grounding=True)

    assert request.feature == Feature.CHAT
    assert request.directive == "What is a latch?"
    assert request.web_grounding is True
    assert request.maps_grounding is False
    assert request.system_instruction.startswith(ADVISOR_SYSTEM_INSTRUCTION)


def test_chat_prompt_requires_question():
    with pytest.raises(ValueError):
        build_chat_prompt("   ")


def test_lesson_prompt_names_course_and_module(course_and_lesson):
    course, lesson = course_and_lesson
    request = build_lesson_prompt(lesson, course)

    assert request.feature == Feature.LESSON
    assert course.name in request.directive
    assert f"{lesson.code} - {lesson.title}" in request.directive
    assert lesson.content in request.directive
    assert request.parameters == {"course_id": course.id, "lesson_id": lesson.id}


def test_slides_prompt_asks_for_json(course_and_lesson):
    course, lesson = course_and_lesson
    request = build_slides_prompt(lesson, course)

    assert request.feature == Feature.SLIDES
    assert f"{SLIDE_COUNT}-slide" in request.directive
    assert "JSON" in request.directive


def test_lab_report_prompt_embeds_student_fields():
    request = build_lab_report_prompt("SPM-201-EXP3", "Amina Otieno", "P15/1234/2024")

    assert "STUDENT: Amina Otieno. REG: P15/1234/2024. EXP_CODE: SPM-201-EXP3." in request.directive
    assert request.system_instruction == "Output ONLY the technical lab report. No greetings."


@pytest.mark.parametrize("missing", [0, 1, 2])
def test_lab_report_prompt_requires_every_field(missing):
    fields = ["EXP-1", "Name", "REG-1"]
    fields[missing] = " "
    with pytest.raises(ValueError):
        build_lab_report_prompt(*fields)


def test_thesis_prompt_uses_faculty_and_budget():
    request = build_thesis_prompt(
        "Graphene sensors", Faculty.ENGINEERING, " nanotech ", thinking_budget=4096
    )

    assert "TOPIC: Graphene sensors." in request.directive
    assert "FACULTY: Faculty of Engineering." in request.directive
    assert "KEYWORDS: nanotech." in request.directive
    assert request.thinking_budget == 4096


def test_edit_prompt_quotes_directive():
    request = build_edit_prompt("Apply retro-blueprint schematic filter")

    assert request.feature == Feature.IMAGE_EDIT
    assert '"Apply retro-blueprint schematic filter"' in request.directive
    assert "Output ONLY the image data" in request.directive


def test_image_prompt_validates_options():
    request = build_image_prompt("A chip die", "16:9", "2K")
    assert request.parameters == {"aspect_ratio": "16:9", "image_size": "2K"}

    with pytest.raises(ValueError):
        build_image_prompt("A chip die", "5:4")
    with pytest.raises(ValueError):
        build_image_prompt("A chip die", "1:1", "8K")


def test_video_prompt_only_accepts_landscape_or_portrait():
    assert build_video_prompt("Orbit", "9:16").parameters["aspect_ratio"] == "9:16"
    with pytest.raises(ValueError):
        build_video_prompt("Orbit", "1:1")


def test_defaults_for_optional_directives():
    assert build_speech_prompt("  ").directive == DEFAULT_SPEECH_TEXT
    assert build_speech_prompt("Hi", voice="Puck").parameters == {"voice": "Puck"}
    assert build_analysis_prompt().directive == DEFAULT_ANALYSIS_DIRECTIVE
    assert build_live_prompt().parameters == {}


def test_strip_preamble_removes_filler_line():
    text = "Sure, here is the report:\nTITLE: Op-Amp Characterisation\nObjectives..."
    assert strip_preamble(text) == "TITLE: Op-Amp Characterisation\nObjectives..."


def test_strip_preamble_removes_here_is_the_line():
    text = "Here is the academic lecture you requested:\n# Bus Systems"
    assert strip_preamble(text) == "# Bus Systems"


def test_strip_preamble_removes_stacked_openers():
    text = "Sure. Absolutely, here is the report:\nTITLE body"
    assert strip_preamble(text) == "TITLE body"


@pytest.mark.parametrize(
    "text",
    [
        "Sure. Absolutely, here is the report:\nTITLE body",
        "Okay. Certainly. Here is the thesis draft:\n# Abstract",
        "Certainly. Here is the lab report you asked for:\nHere is the technical summary:\nTITLE",
        "  Sure, I can help.\nAs a specialized tutor: # Lecture\nBody",
        "# Abstract\nThe 8086 uses a segmented memory model.",
        "Certainly. ",
    ],
)
def test_strip_preamble_is_idempotent(text):
    once = strip_preamble(text)
    assert strip_preamble(once) == once


def test_strip_preamble_leaves_clean_text():
    text = "# Abstract\nThe 8086 uses a segmented memory model."
    assert strip_preamble(text) == text
    assert strip_preamble("") == ""


@pytest.mark.asyncio
async def test_strip_stream_preamble_only_touches_first_fragment():
    async def fragments():
        for fragment in ["", "Certainly. ", "# Title\n", "Sure, body continues."]:
            yield fragment

    result = [fragment async for fragment in strip_stream_preamble(fragments())]

    assert result == ["# Title\n", "Sure, body continues."]
