"""Lab report view."""

from typing import Optional

from adapters.base import GenerativeGateway
from common.cancellation import CancellationToken
from controllers.drafts import DraftResult, synthesize_draft
from prompts.builder import build_lab_report_prompt

LAB_REPORT_ERROR = "ERROR: Synthesis disrupted. Verify credentials."
LAB_REPORT_EMPTY = "Report generation failed."


class LabReportController:
    def __init__(self, gateway: GenerativeGateway):
        self.gateway = gateway
        self.last_result: Optional[DraftResult] = None

    async def generate(
        self,
        experiment_code: str,
        student_name: str,
        registration_number: str,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> DraftResult:
        """
        Synthesize a lab report. All three fields are required (ValueError).
        """
        request = build_lab_report_prompt(experiment_code, student_name, registration_number)
        self.last_result = await synthesize_draft(
            self.gateway,
            request,
            failure_text=LAB_REPORT_ERROR,
            empty_text=LAB_REPORT_EMPTY,
            cancel=cancel,
        )
        return self.last_result
