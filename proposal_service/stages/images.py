"""Image generation stage.

The three proposal images are requested concurrently. Each request resolves
to an :class:`ImageGenerated` or :class:`ImageFailed` outcome within the
per-call timeout, and the stage resolves only after all three have. Generated
images are then stored as job files; the artifact carries only references.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Union

from proposal_service.config import settings
from proposal_service.pipeline.steps import StepName
from proposal_service.schemas.proposal import GeneratedImages, ImageFailed, ImageGenerated
from proposal_service.services.image_client import ImageClient
from proposal_service.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)

ImageOutcome = Union[ImageGenerated, ImageFailed]


def build_prompts(industry: Optional[str], business_name: Optional[str]) -> Dict[str, str]:
    industry_label = industry or "business"
    business_context = f" for {business_name}" if business_name else ""
    return {
        "heroBanner": (
            f"Professional, clean hero banner image for a payment processing proposal for a "
            f"{industry_label} business{business_context}. Modern corporate style, subtle blue and "
            f"green gradients, no text, abstract shapes, 16:9 aspect ratio"
        ),
        "comparisonBackground": (
            "Minimalist abstract background for a pricing comparison section. Clean lines, "
            "subtle gradients in blue and green, professional, no text"
        ),
        "trustVisual": (
            "Professional handshake in small business setting, warm lighting, clean background, "
            "business partnership concept, no faces visible"
        ),
    }


def aggregate(outcomes: List[ImageOutcome]) -> GeneratedImages:
    """complete when every image was generated, partial when some were, failed when none."""
    images = {o.key: o.file for o in outcomes if isinstance(o, ImageGenerated) and o.file}
    errors = [f"{o.key}: {o.error}" for o in outcomes if isinstance(o, ImageFailed)]

    if outcomes and len(images) == len(outcomes):
        status = "complete"
    elif images:
        status = "partial"
    else:
        status = "failed"
    return GeneratedImages(generation_status=status, images=images, errors=errors)


class GenerateImagesStage(BaseStage):
    """Generate hero, comparison and trust images for the proposal."""

    step = StepName.GENERATING_IMAGES
    running_message = "Creating proposal images with AI..."
    fallback_message = "Proceeding without custom images"

    def __init__(
        self,
        client: Optional[ImageClient] = None,
        timeout: float = settings.IMAGE_TIMEOUT_SECONDS,
    ):
        self.client = client or ImageClient()
        self.timeout = timeout

    def _generate_one(self, key: str, prompt: str) -> ImageOutcome:
        try:
            return ImageGenerated(key=key, data_url=self.client.generate(prompt))
        except Exception as e:
            logger.warning(f"Image {key} failed: {e}")
            return ImageFailed(key=key, error=str(e) or e.__class__.__name__)

    def generate_all(self, prompts: Dict[str, str]) -> List[ImageOutcome]:
        """Run every prompt concurrently; calls still running after the timeout fail."""
        executor = ThreadPoolExecutor(max_workers=len(prompts), thread_name_prefix="proposal-image")
        try:
            futures = {key: executor.submit(self._generate_one, key, prompt) for key, prompt in prompts.items()}
            wait(futures.values(), timeout=self.timeout)
            outcomes: List[ImageOutcome] = []
            for key, future in futures.items():
                if future.done():
                    outcomes.append(future.result())
                else:
                    future.cancel()
                    outcomes.append(ImageFailed(key=key, error=f"timed out ({self.timeout:.0f}s limit)"))
            return outcomes
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _store(self, context: StageContext, outcome: ImageOutcome) -> ImageOutcome:
        if isinstance(outcome, ImageFailed):
            return outcome
        try:
            ref = context.save_data_url(outcome.key, outcome.data_url, kind=outcome.key)
        except ValueError as e:
            logger.warning(f"Job {context.job_id}: image {outcome.key} is unusable: {e}")
            return ImageFailed(key=outcome.key, error=str(e))
        return outcome.model_copy(update={"file": ref})

    def execute(self, context: StageContext) -> StageResult:
        merchant = context.artifact("merchant_data", {})
        prompts = build_prompts(merchant.get("industry"), merchant.get("business_name"))
        outcomes = [self._store(context, outcome) for outcome in self.generate_all(prompts)]
        result = aggregate(outcomes)

        logger.info(f"Job {context.job_id}: generated {len(result.images)}/{len(prompts)} images")
        if result.generation_status == "complete":
            message = "Custom images generated"
        elif result.generation_status == "partial":
            message = f"Generated {len(result.images)} of {len(prompts)} custom images"
        else:
            message = self.fallback_message
        return StageResult(message=message, artifacts={"generated_images": result.model_dump(mode="json")})

    def fallback(self, context: StageContext, error: Exception) -> Dict[str, object]:
        failed = GeneratedImages(generation_status="failed", errors=[str(error) or error.__class__.__name__])
        return {"generated_images": failed.model_dump(mode="json")}
