"""Merchant website enrichment: logo, name, contact details and industry."""

import logging
import re
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from proposal_service.config import settings
from proposal_service.errors import CollaboratorError, CollaboratorTimeoutError
from proposal_service.schemas.proposal import MerchantData
from proposal_service.services.assets import to_data_url

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

LOGO_SELECTORS = [
    'link[rel="icon"]',
    'link[rel="shortcut icon"]',
    'link[rel="apple-touch-icon"]',
    'meta[property="og:image"]',
    'meta[name="twitter:image"]',
    'img[class*="logo"]',
    'img[id*="logo"]',
    'img[src*="logo"]',
    'a[class*="logo"] img',
    "header img",
    "nav img",
    ".logo img",
    "#logo img",
    '[class*="brand"] img',
]

INDUSTRY_KEYWORDS = {
    "restaurant": ["restaurant", "dining", "menu", "cuisine", "chef", "bistro", "cafe", "pizza", "grill"],
    "retail": ["shop", "store", "retail", "merchandise", "boutique"],
    "auto repair": ["auto repair", "mechanic", "automotive", "tire", "oil change"],
    "healthcare": ["medical", "doctor", "clinic", "dental", "therapy", "wellness"],
    "salon/spa": ["salon", "spa", "hair", "beauty", "nail", "massage", "barber"],
    "professional services": ["consulting", "attorney", "lawyer", "accountant", "tax", "financial"],
    "fitness": ["gym", "fitness", "workout", "yoga", "crossfit"],
    "hotel/lodging": ["hotel", "motel", "lodging", "accommodation"],
}

PHONE_PATTERN = re.compile(r"(?:\+1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")

DEFAULT_INDUSTRY = "general business"


def normalize_website_url(url: str) -> str:
    """Add a scheme when missing.

    Raises:
        CollaboratorError: If the URL has no host
    """
    url = (url or "").strip()
    if not url:
        raise CollaboratorError("No website URL provided")
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    if not urlparse(url).netloc:
        raise CollaboratorError(f"Invalid URL format: {url}")
    return url


def extract_logo_url(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    for selector in LOGO_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        src = element.get("href") or element.get("content") or element.get("src")
        if not src:
            continue
        if src.startswith("data:"):
            if not src.startswith("data:image/svg"):
                return src
            continue
        return urljoin(base_url, src)
    return None


def extract_business_name(soup: BeautifulSoup, url: str) -> str:
    site_name = soup.select_one('meta[property="og:site_name"]')
    if site_name and site_name.get("content"):
        return site_name["content"].strip()

    if soup.title and soup.title.string:
        cleaned = re.split(r"\s[|\-–]\s", soup.title.string)[0].strip()
        if cleaned and len(cleaned) < 100:
            return cleaned

    hostname = urlparse(url).hostname or ""
    name = hostname.replace("www.", "").split(".")[0]
    return name.capitalize()


def extract_description(soup: BeautifulSoup) -> Optional[str]:
    for selector in ('meta[property="og:description"]', 'meta[name="description"]'):
        element = soup.select_one(selector)
        if element and element.get("content"):
            return element["content"].strip()

    h1 = soup.find("h1")
    if h1:
        text = h1.get_text(strip=True)
        if 10 < len(text) < 200:
            return text
    return None


def extract_phone(soup: BeautifulSoup) -> Optional[str]:
    tel = soup.select_one('a[href^="tel:"]')
    if tel:
        return tel["href"].replace("tel:", "").strip()
    match = PHONE_PATTERN.search(soup.get_text(" "))
    return match.group(0) if match else None


def extract_address(soup: BeautifulSoup) -> Optional[str]:
    address = soup.find("address")
    if address:
        text = " ".join(address.get_text(" ").split())
        if len(text) > 10:
            return text

    postal = soup.select_one('[itemtype*="PostalAddress"]')
    if postal:
        parts = []
        for prop in ("streetAddress", "addressLocality", "addressRegion", "postalCode"):
            element = postal.select_one(f'[itemprop="{prop}"]')
            if element and element.get_text(strip=True):
                parts.append(element.get_text(strip=True))
        if len(parts) > 1:
            return ", ".join(parts)
    return None


def detect_industry(text: str) -> str:
    lowered = text.lower()
    for industry, keywords in INDUSTRY_KEYWORDS.items():
        if any(keyword in lowered for keyword in keywords):
            return industry
    return DEFAULT_INDUSTRY


class MerchantScraper:
    """Enrichment collaborator backed by a plain HTTP fetch of the merchant site."""

    def __init__(
        self,
        timeout: float = settings.SCRAPE_TIMEOUT_SECONDS,
        logo_timeout: float = settings.LOGO_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.timeout = timeout
        self.logo_timeout = logo_timeout
        self.transport = transport

    def _client(self, timeout: float) -> httpx.Client:
        return httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self.transport,
        )

    def scrape(self, website_url: str) -> MerchantData:
        """
        Fetch a merchant website and extract business metadata.

        Args:
            website_url: Merchant site, scheme optional

        Returns:
            MerchantData with scraped=True

        Raises:
            CollaboratorTimeoutError: If the site does not answer in time
            CollaboratorError: On invalid URL, HTTP errors or transport failures
        """
        url = normalize_website_url(website_url)
        logger.info(f"Fetching merchant website {url}")

        try:
            with self._client(self.timeout) as client:
                response = client.get(
                    url,
                    headers={
                        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                        "Accept-Language": "en-US,en;q=0.5",
                    },
                )
        except httpx.TimeoutException as e:
            raise CollaboratorTimeoutError(f"Request timed out ({self.timeout:.0f}s limit)") from e
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Scraping failed: {e}") from e

        if response.status_code >= 400:
            raise CollaboratorError(f"HTTP error: {response.status_code}")

        soup = BeautifulSoup(response.text, "html.parser")
        merchant = MerchantData(
            business_name=extract_business_name(soup, url),
            website_url=url,
            logo_url=extract_logo_url(soup, url),
            business_description=extract_description(soup),
            phone=extract_phone(soup),
            address=extract_address(soup),
            industry=detect_industry(soup.get_text(" ")),
            scraped=True,
        )
        logger.info(f"Scraped {merchant.business_name}; logo found: {'yes' if merchant.logo_url else 'no'}")
        return merchant

    def fetch_logo(self, logo_url: str) -> Optional[str]:
        """Download a logo and return it as a data URL, or None on any failure."""
        if not logo_url:
            return None
        if logo_url.startswith("data:image"):
            return logo_url

        try:
            with self._client(self.logo_timeout) as client:
                response = client.get(logo_url)
        except httpx.HTTPError as e:
            logger.warning(f"Logo fetch failed for {logo_url}: {e}")
            return None

        if response.status_code >= 400:
            logger.warning(f"Logo fetch failed for {logo_url}: HTTP {response.status_code}")
            return None

        content_type = response.headers.get("content-type", "image/png")
        if "jpeg" in content_type or "jpg" in content_type:
            mime_type = "image/jpeg"
        elif "webp" in content_type:
            mime_type = "image/webp"
        else:
            mime_type = "image/png"

        logger.info(f"Logo fetched ({len(response.content) // 1024}KB)")
        return to_data_url(mime_type, response.content)
