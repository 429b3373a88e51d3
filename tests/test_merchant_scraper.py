"""Tests for merchant website enrichment."""

import httpx
import pytest
from bs4 import BeautifulSoup

from proposal_service.errors import CollaboratorError, CollaboratorTimeoutError
from proposal_service.services.merchant_scraper import (
    MerchantScraper,
    detect_industry,
    extract_business_name,
    extract_logo_url,
    normalize_website_url,
)

HOMEPAGE = """<html>
<head>
  <title>Joe's Pizza | Best Slices in Town</title>
  <meta name="description" content="Family pizza restaurant since 1982.">
  <link rel="icon" href="/favicon.png">
</head>
<body>
  <h1>Welcome to Joe's</h1>
  <a href="tel:555-123-4567">Call us</a>
  <address>123 Main Street, Springfield, IL 62701</address>
  <p>Order from our menu for dine-in or delivery.</p>
</body>
</html>"""


def make_scraper(handler) -> MerchantScraper:
    return MerchantScraper(timeout=1, logo_timeout=1, transport=httpx.MockTransport(handler))


def test_normalize_website_url():
    assert normalize_website_url("joespizza.example") == "https://joespizza.example"
    assert normalize_website_url(" http://a.example ") == "http://a.example"
    with pytest.raises(CollaboratorError):
        normalize_website_url("")


def test_extract_business_name_from_title():
    soup = BeautifulSoup(HOMEPAGE, "html.parser")
    assert extract_business_name(soup, "https://joespizza.example") == "Joe's Pizza"


def test_extract_business_name_from_host():
    soup = BeautifulSoup("<html></html>", "html.parser")
    assert extract_business_name(soup, "https://www.tonys.example") == "Tonys"


def test_extract_logo_url_is_absolute():
    soup = BeautifulSoup(HOMEPAGE, "html.parser")
    assert extract_logo_url(soup, "https://joespizza.example/") == "https://joespizza.example/favicon.png"


def test_detect_industry():
    assert detect_industry("Our salon offers hair and nail care") == "salon/spa"
    assert detect_industry("We sell widgets") == "general business"


def test_scrape():
    """Test a homepage is turned into merchant data."""

    def handler(request):
        return httpx.Response(200, text=HOMEPAGE)

    merchant = make_scraper(handler).scrape("joespizza.example")

    assert merchant.scraped is True
    assert merchant.business_name == "Joe's Pizza"
    assert merchant.website_url == "https://joespizza.example"
    assert merchant.business_description == "Family pizza restaurant since 1982."
    assert merchant.phone == "555-123-4567"
    assert merchant.address == "123 Main Street, Springfield, IL 62701"
    assert merchant.industry == "restaurant"


def test_scrape_http_error():
    scraper = make_scraper(lambda request: httpx.Response(503))
    with pytest.raises(CollaboratorError, match="HTTP error: 503"):
        scraper.scrape("https://joespizza.example")


def test_scrape_timeout():
    """Test a timeout is reported as a collaborator timeout."""

    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(CollaboratorTimeoutError):
        make_scraper(handler).scrape("https://joespizza.example")


def test_fetch_logo():
    def handler(request):
        return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})

    logo = make_scraper(handler).fetch_logo("https://joespizza.example/logo.png")
    assert logo == "data:image/png;base64,iVBORw=="


def test_fetch_logo_failure_returns_none():
    scraper = make_scraper(lambda request: httpx.Response(404))
    assert scraper.fetch_logo("https://joespizza.example/logo.png") is None
