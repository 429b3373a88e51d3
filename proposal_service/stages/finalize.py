"""Finalizing stage."""

from proposal_service.errors import RenderError
from proposal_service.pipeline.steps import StepName
from proposal_service.stages.base import BaseStage, StageContext, StageResult


class FinalizeStage(BaseStage):
    """Confirm the rendered document was stored before the job completes."""

    step = StepName.FINALIZING
    running_message = "Saving proposal..."
    failure_message = "Failed to save proposal"

    def execute(self, context: StageContext) -> StageResult:
        ref = context.artifact("rendered_document")
        if not ref or not ref.get("file_id") or not ref.get("size"):
            raise RenderError("No rendered document was stored for this job")
        return StageResult(message="Proposal ready for download")
