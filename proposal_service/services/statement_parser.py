"""Cost analysis statement parser.

Turns the text of an uploaded cost analysis (PDF or text export) into a
:class:`ParsedStatement`. Matching is regex based and tolerant: any field
that cannot be found defaults to zero. A document where neither a merchant
name nor any card volume can be found is rejected.
"""

import logging
import re
from datetime import date, datetime
from typing import Optional, Tuple

from proposal_service.errors import DocumentParseError
from proposal_service.schemas.proposal import (
    CARD_BRANDS,
    CardBreakdown,
    CurrentState,
    DualPricingOption,
    InterchangePlusOption,
    ParsedStatement,
    StatementFees,
)
from proposal_service.services.pdf_parser import extract_text

logger = logging.getLogger(__name__)

UNKNOWN_MERCHANT = "Unknown Merchant"

DEFAULT_DUAL_PRICING_FEE = 64.95
DEFAULT_IC_RATE_PERCENT = 2.0
DEFAULT_IC_PER_TX_FEE = 0.15
DEFAULT_ON_FILE_FEE = 9.95

MERCHANT_PATTERNS = [
    re.compile(r"Prepared For:\s*(.+?)(?:\n|$)", re.I),
    re.compile(r"Statement for:\s*(.+?)(?:\n|$)", re.I),
    re.compile(r"Merchant(?: Name)?:\s*(.+?)(?:\n|$)", re.I),
]

AGENT_PATTERNS = [
    re.compile(r"Prepared By:\s*(.+?)(?:\n|$)", re.I),
    re.compile(r"Account Executive:\s*(.+?)(?:\n|$)", re.I),
]

AGENT_TITLE_PATTERN = re.compile(r"Title:\s*(.+?)(?:\n|$)", re.I)

DATE_PATTERNS = [
    (re.compile(r"(\d{1,2}/\d{1,2}/\d{4})"), "%m/%d/%Y"),
    (re.compile(r"(\d{4}-\d{2}-\d{2})"), "%Y-%m-%d"),
]

CARD_SECTION_PATTERNS = {
    "visa": [re.compile(r"VS\s+Interchange", re.I), re.compile(r"Visa\s+Interchange", re.I)],
    "mastercard": [re.compile(r"MC\s+Interchange", re.I), re.compile(r"Mastercard\s+Interchange", re.I)],
    "discover": [re.compile(r"Discover", re.I)],
    "amex": [re.compile(r"American\s*Express", re.I), re.compile(r"Amex", re.I)],
}

CARD_FEE_PREFIX = {"visa": "VS", "mastercard": "MC", "discover": "Discover", "amex": "Amex"}

VOLUME_LINE = re.compile(r"\$?([\d,]+\.?\d*)\s+(\d+\.?\d*)%\s+\$?([\d,]+\.?\d*)")

FEE_PATTERNS = {
    "statement_fee": re.compile(r"Statement\s+Fee\s+\$?([\d,]+\.?\d*)", re.I),
    "pci_non_compliance": re.compile(r"(?:Non\s*PCI|PCI\s+(?:Non-?)?Compliance)\s+\$?([\d,]+\.?\d*)", re.I),
    "credit_passthrough": re.compile(r"Credit\s+Pass-?through\s+\$?([\d,]+\.?\d*)", re.I),
    "batch_header": re.compile(r"(?:Batch\s+Header|Settlement/Batch\s+Fees?)\s+\$?([\d,]+\.?\d*)", re.I),
    "other_fees": re.compile(r"Other\s+Fees\s+\$?([\d,]+\.?\d*)", re.I),
}

TOTAL_PROCESSING_FEES = re.compile(r"TOTAL\s+PROCESSING\s+FEES:\s+\$?([\d,]+\.?\d*)", re.I)

SAVINGS_MONTHLY = re.compile(
    r"Estimated\s+Monthly\s+(?:Processing\s+)?Savings\s+(?:over\s+IC\s+)?\$?([\d,]+\.?\d*)", re.I
)
SAVINGS_PERCENT = re.compile(
    r"Estimated\s+Percentage\s+of\s+Monthly\s+Savings\s+(?:over\s+IC\s+)?([\d.]+)%", re.I
)
SAVINGS_YEARLY = re.compile(
    r"Estimated\s+Yearly\s+(?:Processing\s+)?Savings\s+(?:over\s+IC\s+)?\$?([\d,]+\.?\d*)", re.I
)

DUAL_PRICING_INDICATORS = [
    re.compile(r"Dual\s+Pricing\s+Monthly", re.I),
    re.compile(r"Merchant\s+Discount\s+Rate.*0\.00%", re.I),
]
DUAL_PRICING_FEE = re.compile(r"Dual\s+Pricing\s+Monthly\s+\$?([\d,]+\.?\d*)", re.I)

IC_PROPOSED_RATE = re.compile(r"Proposed.*?(\d+\.?\d*)%", re.I)
IC_PROPOSED_FEE = re.compile(r"Proposed\s+(?:Per\s+)?(?:Transaction|Item)\s+Fee\s+\$?(\d*\.\d+)", re.I)
IC_PROPOSED_TOTAL = re.compile(r"Proposed\s+TOTAL:\s+\$?([\d,]+\.?\d*)", re.I)
ON_FILE_FEE = re.compile(r"On\s+File\s+Fee\s+\$?([\d,]+\.?\d*)", re.I)


def parse_number(value: Optional[str]) -> float:
    """Parse '$1,234.50' or '2.5%' style strings; 0 when unparseable."""
    if not value:
        return 0.0
    cleaned = re.sub(r"[$,\s%]", "", value)
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def _first_group(patterns, text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def _search_number(pattern: re.Pattern, text: str) -> Optional[float]:
    match = pattern.search(text)
    return parse_number(match.group(1)) if match else None


def extract_date(text: str) -> Optional[date]:
    for pattern, fmt in DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            try:
                return datetime.strptime(match.group(1), fmt).date()
            except ValueError:
                continue
    return None


def extract_card(text: str, brand: str) -> CardBreakdown:
    """Volume, rate and cost for one card brand from the current-pricing section."""
    card = CardBreakdown()

    for pattern in CARD_SECTION_PATTERNS[brand]:
        section = pattern.search(text)
        if not section:
            continue
        window = text[section.start(): section.start() + 500]
        volume = VOLUME_LINE.search(window)
        if volume:
            card.volume = parse_number(volume.group(1))
            card.rate_percent = parse_number(volume.group(2))
            card.total_cost = parse_number(volume.group(3))
            break

    fee_pattern = re.compile(
        rf"{CARD_FEE_PREFIX[brand]}\s+Item\s+Fee\s+\$?([\d.]+)\s+(\d+)\s+\$?([\d.]+)", re.I
    )
    fee = fee_pattern.search(text)
    if fee:
        card.per_tx_fee = parse_number(fee.group(1))
        card.transactions = int(parse_number(fee.group(2)))

    return card


def extract_fees(text: str) -> StatementFees:
    values = {}
    for field, pattern in FEE_PATTERNS.items():
        amount = _search_number(pattern, text)
        if amount is not None:
            values[field] = amount
    return StatementFees(**values)


def extract_savings(text: str) -> Tuple[float, float, float]:
    """Return (monthly, percent, yearly) savings; yearly defaults to 12x monthly."""
    monthly = _search_number(SAVINGS_MONTHLY, text) or 0.0
    percent = _search_number(SAVINGS_PERCENT, text) or 0.0
    yearly = _search_number(SAVINGS_YEARLY, text)
    if yearly is None:
        yearly = monthly * 12
    return monthly, percent, yearly


def is_dual_pricing(text: str) -> bool:
    return any(pattern.search(text) for pattern in DUAL_PRICING_INDICATORS)


def parse_statement_text(text: str, source_filename: str, document_kind: Optional[str] = None) -> ParsedStatement:
    """
    Parse the text of a cost analysis.

    Args:
        text: Extracted document text
        source_filename: Name of the uploaded file
        document_kind: 'dual_pricing' or 'interchange_plus' as declared by the uploader

    Returns:
        ParsedStatement

    Raises:
        DocumentParseError: If the text holds no recognizable cost analysis data
    """
    merchant_name = _first_group(MERCHANT_PATTERNS, text)
    cards = {brand: extract_card(text, brand) for brand in CARD_BRANDS}
    total_volume = sum(c.volume for c in cards.values())

    if merchant_name is None and total_volume == 0:
        raise DocumentParseError(f"{source_filename} does not contain recognizable cost analysis data")

    total_transactions = sum(c.transactions for c in cards.values())
    fees = extract_fees(text)
    processing_fees = _search_number(TOTAL_PROCESSING_FEES, text)
    if processing_fees is None:
        processing_fees = sum(c.total_cost for c in cards.values())
    total_monthly_cost = processing_fees + fees.total

    current = CurrentState(
        total_volume=total_volume,
        total_transactions=total_transactions,
        avg_ticket=total_volume / total_transactions if total_transactions else 0.0,
        card_breakdown=cards,
        fees=fees,
        total_monthly_cost=total_monthly_cost,
        effective_rate_percent=(total_monthly_cost / total_volume * 100) if total_volume else 0.0,
    )

    monthly, percent, yearly = extract_savings(text)
    proposal_type = "dual_pricing" if is_dual_pricing(text) else "interchange_plus"
    if document_kind in ("dual_pricing", "interchange_plus"):
        proposal_type = document_kind

    statement = ParsedStatement(
        source_filename=source_filename,
        document_kind=document_kind,
        merchant_name=merchant_name or UNKNOWN_MERCHANT,
        prepared_date=extract_date(text),
        agent_name=_first_group(AGENT_PATTERNS, text),
        agent_title=_first_group([AGENT_TITLE_PATTERN], text) or "Account Executive",
        proposal_type=proposal_type,
        current_state=current,
    )

    if proposal_type == "dual_pricing":
        program_fee = _search_number(DUAL_PRICING_FEE, text) or DEFAULT_DUAL_PRICING_FEE
        statement.option_dual_pricing = DualPricingOption(
            monthly_program_fee=program_fee,
            total_monthly_cost=program_fee,
            monthly_savings=monthly,
            savings_percent=percent,
            annual_savings=yearly,
        )
    else:
        rate = _search_number(IC_PROPOSED_RATE, text) or DEFAULT_IC_RATE_PERCENT
        per_tx = _search_number(IC_PROPOSED_FEE, text) or DEFAULT_IC_PER_TX_FEE
        on_file = _search_number(ON_FILE_FEE, text) or DEFAULT_ON_FILE_FEE
        proposed_total = _search_number(IC_PROPOSED_TOTAL, text)
        if proposed_total:
            total = proposed_total + on_file + fees.credit_passthrough
        else:
            total = max(total_monthly_cost - monthly, 0.0)
        statement.option_interchange_plus = InterchangePlusOption(
            discount_rate_percent=rate,
            per_transaction_fee=per_tx,
            on_file_fee=on_file,
            total_monthly_cost=total,
            monthly_savings=monthly,
            savings_percent=percent,
            annual_savings=yearly,
        )

    logger.info(
        f"Parsed {source_filename}: merchant={statement.merchant_name}, "
        f"type={proposal_type}, volume={total_volume:.2f}"
    )
    return statement


class StatementParser:
    """Document parser collaborator: raw bytes to structured pricing data."""

    def parse(self, filename: str, content: bytes, kind: Optional[str] = None) -> ParsedStatement:
        text = extract_text(filename, content)
        return parse_statement_text(text, filename, document_kind=kind)
