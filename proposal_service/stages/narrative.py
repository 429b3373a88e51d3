"""Narrative generation stage."""

import logging
from typing import Optional

from proposal_service.pipeline.steps import StepName
from proposal_service.services.llm_client import LLMClient
from proposal_service.services.narrative import NarrativeGenerator
from proposal_service.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)


class GenerateNarrativeStage(BaseStage):
    """Ask the LLM for headline, summary, recommendation and talking points."""

    step = StepName.GENERATING_NARRATIVE
    running_message = "Writing proposal narrative with AI..."
    fallback_message = "Proceeding with standard proposal wording"

    def __init__(self, generator: Optional[NarrativeGenerator] = None):
        self.generator = generator or NarrativeGenerator(LLMClient())

    def execute(self, context: StageContext) -> StageResult:
        narrative = self.generator.generate(
            {
                "merchant": context.artifact("merchant_data", {}),
                "pricing": context.artifact("pricing_comparison", {}),
                "salesperson": context.input_snapshot.get("salesperson", {}),
            }
        )
        logger.info(f"Job {context.job_id}: narrative headline \"{narrative.headline}\"")
        return StageResult(
            message="Proposal narrative written",
            artifacts={"narrative": narrative.model_dump(mode="json")},
        )
