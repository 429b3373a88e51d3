"""Default stage wiring: one executor per step, collaborators built explicitly."""

from typing import Dict

from proposal_service.pipeline.steps import STEP_TABLE
from proposal_service.services.image_client import ImageClient
from proposal_service.services.llm_client import LLMClient
from proposal_service.services.merchant_scraper import MerchantScraper
from proposal_service.services.narrative import NarrativeGenerator
from proposal_service.services.renderer import ProposalRenderer
from proposal_service.services.statement_parser import StatementParser
from proposal_service.stages.base import BaseStage
from proposal_service.stages.enrich import EnrichMerchantStage
from proposal_service.stages.finalize import FinalizeStage
from proposal_service.stages.images import GenerateImagesStage
from proposal_service.stages.narrative import GenerateNarrativeStage
from proposal_service.stages.parse import ParseDocumentsStage
from proposal_service.stages.pricing import ComputeComparisonStage
from proposal_service.stages.render import RenderDocumentStage


def build_default_stages() -> Dict[str, BaseStage]:
    """Stage executors keyed by step name, configured from settings."""
    stages = [
        ParseDocumentsStage(StatementParser()),
        EnrichMerchantStage(MerchantScraper()),
        ComputeComparisonStage(),
        GenerateNarrativeStage(NarrativeGenerator(LLMClient())),
        GenerateImagesStage(ImageClient()),
        RenderDocumentStage(ProposalRenderer()),
        FinalizeStage(),
    ]
    registry = {stage.step.value: stage for stage in stages}
    missing = [d.name.value for d in STEP_TABLE if d.name.value not in registry]
    if missing:
        raise ValueError(f"No stage registered for steps: {missing}")
    return registry
