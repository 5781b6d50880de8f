"""Thesis architect view."""

from typing import Optional, Union

from adapters.base import GenerativeGateway
from common.cancellation import CancellationToken
from common.entities import Faculty
from controllers.drafts import DraftResult, synthesize_draft
from prompts.builder import build_thesis_prompt

THESIS_ERROR = "UPLINK FAILURE: Research architecture synthesis failed."
THESIS_EMPTY = "Drafting interrupted."


class ThesisController:
    def __init__(self, gateway: GenerativeGateway):
        self.gateway = gateway
        self.last_result: Optional[DraftResult] = None

    async def generate(
        self,
        topic: str,
        faculty: Union[Faculty, str] = Faculty.SCIENCE_TECH,
        keywords: str = "",
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> DraftResult:
        # Faculty("...") raises ValueError for unknown names
        request = build_thesis_prompt(topic, Faculty(faculty), keywords)
        self.last_result = await synthesize_draft(
            self.gateway,
            request,
            failure_text=THESIS_ERROR,
            empty_text=THESIS_EMPTY,
            cancel=cancel,
        )
        return self.last_result
