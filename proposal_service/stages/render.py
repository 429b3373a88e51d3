"""Document rendering stage."""

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from proposal_service.errors import RenderError
from proposal_service.pipeline.steps import StepName
from proposal_service.schemas.proposal import MerchantData, PricingComparison, ProposalNarrative
from proposal_service.services.renderer import ProposalRenderer, format_currency
from proposal_service.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)

NEXT_STEPS = [
    "Review this proposal and the savings comparison",
    "Schedule a brief call to discuss your questions",
    "Complete the simple application process",
    "Receive your new equipment and start saving",
]


def default_narrative(merchant_name: str, pricing: PricingComparison) -> ProposalNarrative:
    """Standard wording used when no generated narrative is available."""
    best = pricing.best_monthly_savings
    if pricing.recommended_option == "dual_pricing":
        recommendation = (
            "We recommend our Dual Pricing program. A small non-cash adjustment offsets "
            "processing costs, eliminating nearly all of your monthly card fees."
        )
    else:
        recommendation = (
            "We recommend our Interchange Plus program. You pay the true card network cost "
            "plus a small, transparent markup, with no hidden fees."
        )
    return ProposalNarrative(
        headline="Payment Processing Cost Savings Proposal",
        executive_summary=(
            f"Based on a review of the current processing statement for {merchant_name}, "
            f"we have identified savings of up to {format_currency(best)} per month."
        ),
        recommendation=recommendation,
        talking_points=[],
        call_to_action="Contact your account representative to get started.",
    )


def document_filename(merchant_name: str, extension: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", merchant_name.lower()).strip("-") or "merchant"
    return f"{slug}-proposal.{extension}"


class RenderDocumentStage(BaseStage):
    """Render the proposal and store the bytes as the job's output."""

    step = StepName.BUILDING_DOCUMENT
    running_message = "Assembling professional proposal..."
    failure_message = "Document generation failed"

    def __init__(
        self,
        renderer: Optional[ProposalRenderer] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.renderer = renderer or ProposalRenderer()
        self.clock = clock

    def build_context(self, context: StageContext) -> Dict[str, Any]:
        """
        Assemble the template context from the job's artifacts.

        Missing soft-fail artifacts are replaced by defaults: merchant data from
        the comparison, standard narrative wording, and no images. Stored logo
        and image references are loaded back as data URLs for the template.

        Raises:
            RenderError: If the pricing comparison is missing
        """
        pricing_data = context.artifact("pricing_comparison")
        if not pricing_data:
            raise RenderError("Pricing comparison is required to build the document")
        pricing = PricingComparison.model_validate(pricing_data)

        merchant = dict(
            context.artifact("merchant_data")
            or MerchantData(business_name=pricing.merchant_name).model_dump(mode="json")
        )
        merchant["logo_data_url"] = context.data_url(merchant.get("logo_file"))

        narrative = context.artifact("narrative")
        if not narrative:
            narrative = default_narrative(merchant["business_name"], pricing).model_dump(mode="json")

        images = {}
        for key, ref in (context.artifact("generated_images", {}).get("images") or {}).items():
            data_url = context.data_url(ref)
            if data_url:
                images[key] = data_url

        if pricing.recommended_option == "dual_pricing" and pricing.dual_pricing:
            annual_savings = pricing.dual_pricing.annual_savings
        elif pricing.interchange_plus:
            annual_savings = pricing.interchange_plus.annual_savings
        else:
            annual_savings = 0.0

        return {
            "merchant": merchant,
            "pricing": pricing.model_dump(mode="json"),
            "salesperson": context.input_snapshot.get("salesperson") or {},
            "narrative": narrative,
            "images": images,
            "annual_savings": annual_savings,
            "next_steps": NEXT_STEPS,
            "prepared_on": self.clock().strftime("%B %d, %Y"),
        }

    def execute(self, context: StageContext) -> StageResult:
        render_context = self.build_context(context)
        output_format = context.input_snapshot.get("output_format") or "html"

        document = self.renderer.render(render_context, output_format)
        filename = document_filename(render_context["merchant"]["business_name"], document.extension)
        ref = context.save_output(filename, document.content_type, document.content)

        logger.info(f"Job {context.job_id}: rendered {output_format} document ({ref['size']} bytes)")
        return StageResult(message="Proposal document generated", artifacts={"rendered_document": ref})
