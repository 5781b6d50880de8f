"""
Prompt construction for every portal feature.

Pure functions: feature inputs in, a fresh PromptRequest out. No network
access and no persistence.
"""

from typing import Optional

from common.catalog import ADVISOR_SYSTEM_INSTRUCTION, LIVE_SYSTEM_INSTRUCTION
from common.entities import Course, Faculty, Feature, Lesson, PromptRequest, Slide

IMAGE_ASPECT_RATIOS = ("1:1", "16:9", "9:16", "3:4", "4:3", "21:9", "2:3", "3:2")
IMAGE_SIZES = ("1K", "2K", "4K")
VIDEO_ASPECT_RATIOS = ("16:9", "9:16")

SLIDE_DECK_SCHEMA = list[Slide]
SLIDE_COUNT = 10

DEFAULT_SPEECH_TEXT = "Frequency test initiated."
DEFAULT_ANALYSIS_DIRECTIVE = "Provide high-fidelity analysis."


def _require(value: str, field_name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{field_name} is required")
    return value


def build_chat_prompt(
    question: str, *, web_grounding: bool = False, maps_grounding: bool = False
) -> PromptRequest:
    return PromptRequest(
        feature=Feature.CHAT,
        directive=_require(question, "question"),
        system_instruction=(
            ADVISOR_SYSTEM_INSTRUCTION
            + " Provide high-density technical responses. No conversational filler."
        ),
        web_grounding=web_grounding,
        maps_grounding=maps_grounding,
    )


def build_lesson_prompt(lesson: Lesson, course: Course) -> PromptRequest:
    directive = (
        "ACT AS A SENIOR ACADEMIC EDITOR.\n"
        f"SUBJECT: {course.name}.\n"
        f"MODULE: {lesson.code} - {lesson.title}.\n"
        f"SYLLABUS NOTES: {lesson.content}\n\n"
        "TASK: Synthesize a full-length, publication-quality academic lecture.\n"
        "STRICT COMPLIANCE RULES:\n"
        "1. NO CONVERSATIONAL FILLER. START DIRECTLY WITH THE TITLE.\n"
        '2. NO INTRODUCTIONS LIKE "Sure", "Here is", OR "Let\'s dive in".\n'
        "3. USE RIGOROUS TECHNICAL LANGUAGE AND MATHEMATICAL NOTATION.\n"
        "4. STRUCTURE: # [Title], Abstract, Core Theory, Circuit Analysis/Schematics, "
        "Mathematical Modeling, Real-World Application, Conclusion."
    )
    return PromptRequest(
        feature=Feature.LESSON,
        directive=directive,
        system_instruction=(
            ADVISOR_SYSTEM_INSTRUCTION
            + " You are a machine that outputs ONLY structured Markdown academic content."
            " No preamble."
        ),
        parameters={"course_id": course.id, "lesson_id": lesson.id},
    )


def build_slides_prompt(lesson: Lesson, course: Course) -> PromptRequest:
    directive = (
        f"Generate a {SLIDE_COUNT}-slide academic deck for: {lesson.code} - {lesson.title} "
        f"({course.name}).\n"
        "Each slide has a title, a list of concise bullet points and a footer.\n"
        "Return strictly JSON. No text before or after."
    )
    return PromptRequest(
        feature=Feature.SLIDES,
        directive=directive,
        parameters={"slide_count": SLIDE_COUNT, "course_id": course.id, "lesson_id": lesson.id},
    )


def build_lab_report_prompt(
    experiment_code: str, student_name: str, registration_number: str
) -> PromptRequest:
    code = _require(experiment_code, "experiment code")
    name = _require(student_name, "student name")
    reg = _require(registration_number, "registration number")
    directive = (
        "OFFICIAL LABORATORY REPORT SYNTHESIS.\n"
        f"STUDENT: {name}. REG: {reg}. EXP_CODE: {code}.\n\n"
        "STRICT RULES:\n"
        "1. START DIRECTLY WITH THE REPORT.\n"
        "2. ZERO AI PREAMBLE.\n"
        "3. SECTIONS: Title, Objectives, List of Apparatus, Theoretical Background, "
        "Detailed Procedure, Data Processing Logic, Error Estimation, Final Remarks."
    )
    return PromptRequest(
        feature=Feature.LAB_REPORT,
        directive=directive,
        system_instruction="Output ONLY the technical lab report. No greetings.",
        parameters={"experiment_code": code},
    )


def build_thesis_prompt(
    title: str, faculty: Faculty, keywords: str = "", *, thinking_budget: Optional[int] = None
) -> PromptRequest:
    topic = _require(title, "research topic")
    directive = (
        "FORMAL UNIVERSITY RESEARCH PROPOSAL.\n"
        f"TOPIC: {topic}.\n"
        f"FACULTY: {faculty.value}.\n"
        f"KEYWORDS: {keywords.strip()}.\n\n"
        "STRICT INSTRUCTION: START IMMEDIATELY WITH THE DOCUMENT CONTENT.\n"
        "NO GREETINGS. NO AI CHATTER.\n"
        "FORMAT:\n"
        "# RESEARCH PROPOSAL: [Title]\n"
        "## 1. ABSTRACT\n"
        "## 2. PROBLEM STATEMENT\n"
        "## 3. SPECIFIC OBJECTIVES\n"
        "## 4. THEORETICAL FRAMEWORK\n"
        "## 5. METHODOLOGY\n"
        "## 6. BIBLIOGRAPHIC DIRECTIONS"
    )
    return PromptRequest(
        feature=Feature.THESIS,
        directive=directive,
        system_instruction="Output ONLY the structured research document. No conversation.",
        parameters={"faculty": faculty.value},
        thinking_budget=thinking_budget,
    )


def build_edit_prompt(directive: str) -> PromptRequest:
    text = _require(directive, "directive")
    return PromptRequest(
        feature=Feature.IMAGE_EDIT,
        directive=(
            "TRANSFORMATION PROTOCOL: Modify this technical schematic or image based on: "
            f'"{text}".\n'
            "CRITICAL: Output ONLY the image data. DO NOT provide any text, descriptions, "
            "or conversational filler."
        ),
    )


def build_image_prompt(
    directive: str, aspect_ratio: str = "1:1", image_size: str = "1K"
) -> PromptRequest:
    text = _require(directive, "directive")
    if aspect_ratio not in IMAGE_ASPECT_RATIOS:
        raise ValueError(f"Unsupported aspect ratio: {aspect_ratio}")
    if image_size not in IMAGE_SIZES:
        raise ValueError(f"Unsupported image size: {image_size}")
    return PromptRequest(
        feature=Feature.IMAGE,
        directive=text,
        parameters={"aspect_ratio": aspect_ratio, "image_size": image_size},
    )


def build_video_prompt(directive: str, aspect_ratio: str = "16:9") -> PromptRequest:
    text = _require(directive, "directive")
    if aspect_ratio not in VIDEO_ASPECT_RATIOS:
        raise ValueError(f"Unsupported video aspect ratio: {aspect_ratio}")
    return PromptRequest(
        feature=Feature.VIDEO,
        directive=text,
        parameters={"aspect_ratio": aspect_ratio, "resolution": "720p"},
    )


def build_speech_prompt(text: str, voice: Optional[str] = None) -> PromptRequest:
    parameters = {"voice": voice} if voice else {}
    return PromptRequest(
        feature=Feature.SPEECH,
        directive=(text or "").strip() or DEFAULT_SPEECH_TEXT,
        parameters=parameters,
    )


def build_transcription_prompt() -> PromptRequest:
    return PromptRequest(
        feature=Feature.TRANSCRIPTION,
        directive=(
            "Transcribe this audio verbatim. Output ONLY the transcript text, "
            "with no commentary."
        ),
    )


def build_analysis_prompt(directive: str = "") -> PromptRequest:
    return PromptRequest(
        feature=Feature.ANALYSIS,
        directive=(directive or "").strip() or DEFAULT_ANALYSIS_DIRECTIVE,
        system_instruction=ADVISOR_SYSTEM_INSTRUCTION,
    )


def build_live_prompt(voice: Optional[str] = None) -> PromptRequest:
    parameters = {"voice": voice} if voice else {}
    return PromptRequest(
        feature=Feature.LIVE,
        directive="",
        system_instruction=LIVE_SYSTEM_INSTRUCTION,
        parameters=parameters,
    )
