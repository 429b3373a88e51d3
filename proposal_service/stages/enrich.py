"""Merchant website enrichment stage."""

import logging
from typing import Any, Dict, Optional

from proposal_service.pipeline.steps import StepName
from proposal_service.schemas.proposal import MerchantData
from proposal_service.services.merchant_scraper import MerchantScraper
from proposal_service.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)

DEFAULT_BUSINESS_NAME = "Merchant"


def default_merchant(context: StageContext) -> MerchantData:
    """Merchant data built from the parsed documents alone."""
    parsed = context.artifact("parsed_documents", {})
    name = DEFAULT_BUSINESS_NAME
    for kind in ("dual_pricing", "interchange_plus"):
        statement = parsed.get(kind)
        if statement and statement.get("merchant_name"):
            name = statement["merchant_name"]
            break
    return MerchantData(
        business_name=name,
        website_url=context.input_snapshot.get("merchant_website_url") or None,
    )


class EnrichMerchantStage(BaseStage):
    """Scrape the merchant website for a logo and business details."""

    step = StepName.SCRAPING_WEBSITE
    running_message = "Fetching merchant website..."
    fallback_message = "Proceeding without website data"

    def __init__(self, scraper: Optional[MerchantScraper] = None):
        self.scraper = scraper or MerchantScraper()

    def execute(self, context: StageContext) -> StageResult:
        merchant = default_merchant(context)
        url = context.input_snapshot.get("merchant_website_url")
        if not url:
            return StageResult(
                message="No website provided; using document details",
                artifacts={"merchant_data": merchant.model_dump(mode="json")},
            )

        scraped = self.scraper.scrape(url)
        merchant = scraped.model_copy(
            update={"business_name": scraped.business_name or merchant.business_name}
        )
        logo = self.scraper.fetch_logo(scraped.logo_url) if scraped.logo_url else None
        if logo:
            try:
                merchant.logo_file = context.save_data_url("logo", logo, kind="logo")
            except ValueError as e:
                logger.warning(f"Job {context.job_id}: discarding logo from {scraped.logo_url}: {e}")
        logger.info(f"Job {context.job_id}: scraped {url} (logo: {bool(merchant.logo_file)})")

        message = "Merchant info and logo retrieved" if merchant.logo_file else "Merchant info retrieved (no logo found)"
        return StageResult(message=message, artifacts={"merchant_data": merchant.model_dump(mode="json")})

    def fallback(self, context: StageContext, error: Exception) -> Dict[str, Any]:
        return {"merchant_data": default_merchant(context).model_dump(mode="json")}
