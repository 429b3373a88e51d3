"""Pricing comparison stage."""

import logging
from typing import Any, Dict, Optional

from proposal_service.errors import DocumentParseError
from proposal_service.pipeline.steps import StepName
from proposal_service.schemas.proposal import (
    CARD_BRANDS,
    CardCost,
    CurrentProcessorSummary,
    DualPricingSummary,
    InterchangePlusSummary,
    ParsedStatement,
    PricingComparison,
)
from proposal_service.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)


def _statement(parsed: Dict[str, Any], kind: str) -> Optional[ParsedStatement]:
    data = parsed.get(kind)
    return ParsedStatement.model_validate(data) if data else None


def build_comparison(
    dual_pricing: Optional[ParsedStatement],
    interchange_plus: Optional[ParsedStatement],
) -> PricingComparison:
    """
    Combine parsed statements into a side-by-side comparison.

    The current processor figures come from the dual pricing statement when
    present, otherwise from the interchange plus one. Dual pricing is
    recommended when its monthly savings are at least those of interchange plus.

    Raises:
        DocumentParseError: If neither statement is available
    """
    primary = dual_pricing or interchange_plus
    if primary is None:
        raise DocumentParseError("No parsed documents available for pricing comparison")

    current = primary.current_state
    comparison = PricingComparison(
        merchant_name=primary.merchant_name,
        current_processor=CurrentProcessorSummary(
            monthly_volume=current.total_volume,
            monthly_transactions=current.total_transactions,
            avg_ticket=current.avg_ticket,
            monthly_fees=current.total_monthly_cost,
            effective_rate=current.effective_rate_percent,
            annual_cost=current.total_monthly_cost * 12,
            card_breakdown={
                brand: CardCost(
                    volume=current.card_breakdown[brand].volume if brand in current.card_breakdown else 0.0,
                    cost=current.card_breakdown[brand].total_cost if brand in current.card_breakdown else 0.0,
                )
                for brand in CARD_BRANDS
            },
        ),
    )

    if dual_pricing is not None and dual_pricing.option_dual_pricing is not None:
        option = dual_pricing.option_dual_pricing
        comparison.dual_pricing = DualPricingSummary(
            monthly_fees=option.total_monthly_cost,
            monthly_savings=option.monthly_savings,
            annual_savings=option.annual_savings,
            savings_percent=option.savings_percent,
            program_fee=option.monthly_program_fee,
        )

    if interchange_plus is not None and interchange_plus.option_interchange_plus is not None:
        option = interchange_plus.option_interchange_plus
        comparison.interchange_plus = InterchangePlusSummary(
            monthly_fees=option.total_monthly_cost,
            monthly_savings=option.monthly_savings,
            annual_savings=option.annual_savings,
            savings_percent=option.savings_percent,
            discount_rate=option.discount_rate_percent,
            per_tx_fee=option.per_transaction_fee,
        )

    dp_savings = comparison.dual_pricing.monthly_savings if comparison.dual_pricing else 0.0
    ic_savings = comparison.interchange_plus.monthly_savings if comparison.interchange_plus else 0.0
    comparison.recommended_option = "dual_pricing" if dp_savings >= ic_savings else "interchange_plus"
    return comparison


class ComputeComparisonStage(BaseStage):
    """Build the pricing comparison from the parsed statements."""

    step = StepName.EXTRACTING_PRICING
    running_message = "Building pricing comparison..."
    failure_message = "Failed to extract pricing"

    def execute(self, context: StageContext) -> StageResult:
        parsed = context.artifact("parsed_documents", {})
        comparison = build_comparison(
            _statement(parsed, "dual_pricing"),
            _statement(parsed, "interchange_plus"),
        )
        logger.info(
            f"Job {context.job_id}: recommending {comparison.recommended_option} "
            f"(best monthly savings {comparison.best_monthly_savings:.2f})"
        )
        return StageResult(
            message="Pricing comparison ready",
            artifacts={"pricing_comparison": comparison.model_dump(mode="json")},
        )
