"""
Course detail view: streamed lesson synthesis and slide decks.
"""

from typing import AsyncGenerator, List, Optional, Tuple

from pydantic import BaseModel, Field

from adapters.base import GenerativeGateway
from common.cancellation import CancellationToken
from common.catalog import find_course, find_lesson
from common.entities import Course, Lesson, Slide
from common.logging import TimedLogger, get_logger
from common.stream_accumulator import FailurePresentation, StreamAccumulator, StreamState
from prompts.builder import SLIDE_DECK_SCHEMA, build_lesson_prompt, build_slides_prompt

logger = get_logger(__name__)

LESSON_ERROR = "CRITICAL ERROR: Synthesis uplink failed. Academic data lost."
INITIAL_PROGRESS = 5
MAX_STREAMING_PROGRESS = 99


class LessonProgress(BaseModel):
    """One snapshot of a lesson being synthesized."""

    content: str = ""
    progress: int = Field(default=0, ge=0, le=100)
    state: StreamState = StreamState.IDLE
    error: Optional[str] = None


class CourseController:
    def __init__(self, gateway: GenerativeGateway):
        self.gateway = gateway

    @staticmethod
    def resolve(course_id: str, lesson_id: str) -> Tuple[Course, Lesson]:
        course = find_course(course_id)
        if course is None:
            raise LookupError(f"Unknown course: {course_id}")
        lesson = find_lesson(course, lesson_id)
        if lesson is None:
            raise LookupError(f"Unknown lesson {lesson_id} in course {course_id}")
        return course, lesson

    async def synthesize_lesson(
        self,
        course_id: str,
        lesson_id: str,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncGenerator[LessonProgress, None]:
        """
        Stream a full lecture for the lesson.

        Progress starts at 5, advances by one per fragment up to 99 and jumps
        to 100 only when the stream completes. On failure the content is
        replaced by the fixed error notice.
        """
        course, lesson = self.resolve(course_id, lesson_id)
        progress = INITIAL_PROGRESS
        yield LessonProgress(progress=progress, state=StreamState.STREAMING)

        accumulator = StreamAccumulator()
        stream = self.gateway.stream_text(build_lesson_prompt(lesson, course), cancel=cancel)
        with TimedLogger(logger, "lesson_synthesized", course_id=course.id, lesson_id=lesson.id):
            async for content in accumulator.consume(
                stream,
                error_message=LESSON_ERROR,
                presentation=FailurePresentation.REPLACE,
                cancel=cancel,
            ):
                if accumulator.state == StreamState.STREAMING:
                    progress = min(MAX_STREAMING_PROGRESS, progress + 1)
                yield LessonProgress(
                    content=content,
                    progress=progress,
                    state=accumulator.state,
                    error=accumulator.error,
                )

        if accumulator.state == StreamState.COMPLETE:
            yield LessonProgress(content=accumulator.text, progress=100, state=StreamState.COMPLETE)
        elif accumulator.state == StreamState.CANCELLED:
            yield LessonProgress(
                content=accumulator.text,
                progress=progress,
                state=StreamState.CANCELLED,
                error=accumulator.error,
            )

    async def generate_slides(
        self,
        course_id: str,
        lesson_id: str,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> List[Slide]:
        """Generate the slide deck. Malformed model output raises ParseFailure."""
        course, lesson = self.resolve(course_id, lesson_id)
        with TimedLogger(logger, "slides_generated", course_id=course.id, lesson_id=lesson.id):
            return await self.gateway.generate_structured(
                build_slides_prompt(lesson, course), SLIDE_DECK_SCHEMA, cancel=cancel
            )
