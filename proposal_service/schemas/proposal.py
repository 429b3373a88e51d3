"""Proposal data schemas exchanged between pipeline stages."""

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

CARD_BRANDS = ("visa", "mastercard", "discover", "amex")


# Parsed cost analysis
class CardBreakdown(BaseModel):
    """Volume and cost for one card brand."""

    volume: float = 0.0
    transactions: int = 0
    rate_percent: float = 0.0
    per_tx_fee: float = 0.0
    total_cost: float = 0.0


class StatementFees(BaseModel):
    statement_fee: float = 0.0
    pci_non_compliance: float = 0.0
    credit_passthrough: float = 0.0
    other_fees: float = 0.0
    batch_header: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.statement_fee
            + self.pci_non_compliance
            + self.credit_passthrough
            + self.other_fees
            + self.batch_header
        )


class CurrentState(BaseModel):
    """What the merchant pays today."""

    total_volume: float = 0.0
    total_transactions: int = 0
    avg_ticket: float = 0.0
    card_breakdown: Dict[str, CardBreakdown] = Field(default_factory=dict)
    fees: StatementFees = Field(default_factory=StatementFees)
    total_monthly_cost: float = 0.0
    effective_rate_percent: float = 0.0


class DualPricingOption(BaseModel):
    monthly_program_fee: float
    total_monthly_cost: float
    monthly_savings: float = 0.0
    savings_percent: float = 0.0
    annual_savings: float = 0.0


class InterchangePlusOption(BaseModel):
    discount_rate_percent: float
    per_transaction_fee: float
    on_file_fee: float = 0.0
    total_monthly_cost: float
    monthly_savings: float = 0.0
    savings_percent: float = 0.0
    annual_savings: float = 0.0


class ParsedStatement(BaseModel):
    """Structured content of one cost analysis document."""

    source_filename: str
    document_kind: Optional[str] = None
    merchant_name: str
    prepared_date: Optional[date] = None
    agent_name: Optional[str] = None
    agent_title: Optional[str] = None
    proposal_type: Literal["dual_pricing", "interchange_plus"]
    current_state: CurrentState
    option_dual_pricing: Optional[DualPricingOption] = None
    option_interchange_plus: Optional[InterchangePlusOption] = None


# Merchant enrichment
class MerchantData(BaseModel):
    business_name: str
    website_url: Optional[str] = None
    logo_url: Optional[str] = None
    logo_file: Optional[Dict[str, Any]] = None
    business_description: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    industry: Optional[str] = None
    scraped: bool = False


# Pricing comparison
class CardCost(BaseModel):
    volume: float = 0.0
    cost: float = 0.0


class CurrentProcessorSummary(BaseModel):
    monthly_volume: float = 0.0
    monthly_transactions: int = 0
    avg_ticket: float = 0.0
    monthly_fees: float = 0.0
    effective_rate: float = 0.0
    annual_cost: float = 0.0
    card_breakdown: Dict[str, CardCost] = Field(default_factory=dict)


class DualPricingSummary(BaseModel):
    monthly_fees: float
    monthly_savings: float
    annual_savings: float
    savings_percent: float
    program_fee: float


class InterchangePlusSummary(BaseModel):
    monthly_fees: float
    monthly_savings: float
    annual_savings: float
    savings_percent: float
    discount_rate: float
    per_tx_fee: float


class PricingComparison(BaseModel):
    merchant_name: str
    current_processor: CurrentProcessorSummary
    dual_pricing: Optional[DualPricingSummary] = None
    interchange_plus: Optional[InterchangePlusSummary] = None
    recommended_option: Literal["dual_pricing", "interchange_plus"] = "dual_pricing"

    @property
    def best_monthly_savings(self) -> float:
        return max(
            self.dual_pricing.monthly_savings if self.dual_pricing else 0.0,
            self.interchange_plus.monthly_savings if self.interchange_plus else 0.0,
        )


# Narrative
class ProposalNarrative(BaseModel):
    headline: str
    executive_summary: str
    recommendation: str
    talking_points: List[str] = Field(default_factory=list)
    call_to_action: str


# Images
class ImageGenerated(BaseModel):
    """Image returned by the collaborator; ``file`` is set once it is stored."""

    outcome: Literal["generated"] = "generated"
    key: str
    data_url: str
    file: Optional[Dict[str, Any]] = None


class ImageFailed(BaseModel):
    outcome: Literal["failed"] = "failed"
    key: str
    error: str


class GeneratedImages(BaseModel):
    generation_status: Literal["complete", "partial", "failed"]
    images: Dict[str, Dict[str, Any]] = Field(default_factory=dict)  # variant -> stored file reference
    errors: List[str] = Field(default_factory=list)


# Salesperson
class SalespersonInfo(BaseModel):
    name: str
    title: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
