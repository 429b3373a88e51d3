"""Tests for proposal rendering."""

from datetime import datetime
from io import BytesIO

import httpx
import pytest
from pypdf import PdfReader

from proposal_service.errors import RenderError
from proposal_service.schemas.proposal import CurrentProcessorSummary, DualPricingSummary, PricingComparison
from proposal_service.services.job_store import StoredFile
from proposal_service.services.renderer import ProposalRenderer, format_currency, format_percent
from proposal_service.stages.base import StageContext
from proposal_service.stages.render import RenderDocumentStage, default_narrative, document_filename


def pricing() -> PricingComparison:
    return PricingComparison(
        merchant_name="Joe's Pizza",
        current_processor=CurrentProcessorSummary(monthly_volume=18000, monthly_fees=415, effective_rate=2.3),
        dual_pricing=DualPricingSummary(
            monthly_fees=64.95,
            monthly_savings=350,
            annual_savings=4200,
            savings_percent=84.4,
            program_fee=64.95,
        ),
    )


def stage_context(artifacts, output_format="html", saved=None, files=None) -> StageContext:
    saved = saved if saved is not None else []
    files = files or {}

    def save_output(filename, content_type, content):
        saved.append((filename, content_type, content))
        return {"file_id": "file-1", "filename": filename, "content_type": content_type, "size": len(content)}

    return StageContext(
        job_id="job-1",
        input_snapshot={"salesperson": {"name": "Dana Smith"}, "output_format": output_format},
        artifacts=artifacts,
        load_inputs=lambda: [],
        save_output=save_output,
        save_asset=lambda *args: {},
        load_file=files.get,
    )


def test_filters():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(None) == "$0.00"
    assert format_percent(2.5) == "2.50%"


def test_document_filename():
    assert document_filename("Joe's Pizza & Grill", "pdf") == "joe-s-pizza-grill-proposal.pdf"
    assert document_filename("!!!", "html") == "merchant-proposal.html"


def test_default_narrative_mentions_savings():
    narrative = default_narrative("Joe's Pizza", pricing())
    assert "$350.00" in narrative.executive_summary
    assert "Dual Pricing" in narrative.recommendation


def test_render_html():
    """Test HTML output contains the comparison and contact sections."""
    stage = RenderDocumentStage(ProposalRenderer(render_service_url=""), clock=lambda: datetime(2025, 3, 15))
    saved = []
    result = stage.execute(stage_context({"pricing_comparison": pricing().model_dump(mode="json")}, saved=saved))

    filename, content_type, content = saved[0]
    html = content.decode("utf-8")
    assert filename == "joe-s-pizza-proposal.html"
    assert content_type.startswith("text/html")
    assert "Your Current Processing" in html
    assert "$4,200.00" in html
    assert "March 15, 2025" in html
    assert "Dana Smith" in html
    assert "90-Day Risk-Free Guarantee" in html
    assert result.artifacts["rendered_document"]["file_id"] == "file-1"


def test_render_requires_pricing():
    stage = RenderDocumentStage(ProposalRenderer(render_service_url=""))
    with pytest.raises(RenderError):
        stage.execute(stage_context({}))


def test_render_pdf_through_service():
    """Test the HTML is posted to the conversion service."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, content=b"%PDF-1.7 fake")

    renderer = ProposalRenderer(
        render_service_url="http://renderer.local/forms/chromium/convert/html",
        transport=httpx.MockTransport(handler),
    )
    document = renderer.render({"merchant": {"business_name": "Joe's"}, "pricing": pricing().model_dump()}, "pdf")

    assert document.content_type == "application/pdf"
    assert document.extension == "pdf"
    assert document.content.startswith(b"%PDF")
    assert b"index.html" in requests[0].content


def test_render_pdf_rejects_non_pdf():
    renderer = ProposalRenderer(
        render_service_url="http://renderer.local/convert",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>error</html>")),
    )
    with pytest.raises(RenderError):
        renderer.render({"merchant": {"business_name": "Joe's"}, "pricing": pricing().model_dump()}, "pdf")


def test_render_unknown_format():
    with pytest.raises(RenderError):
        ProposalRenderer(render_service_url="").render({}, "docx")


def test_render_pdf_in_process():
    """Test PDF output is laid out locally when no conversion service is configured."""
    stage = RenderDocumentStage(ProposalRenderer(render_service_url=""), clock=lambda: datetime(2025, 3, 15))
    saved = []
    stage.execute(stage_context({"pricing_comparison": pricing().model_dump(mode="json")}, "pdf", saved=saved))

    filename, content_type, content = saved[0]
    assert filename == "joe-s-pizza-proposal.pdf"
    assert content_type == "application/pdf"
    assert content.startswith(b"%PDF")

    reader = PdfReader(BytesIO(content))
    text = "".join(page.extract_text() for page in reader.pages)
    assert "Dana Smith" in text


def test_render_loads_stored_images():
    """Test logo and image references are embedded as data URLs."""
    logo = StoredFile(
        id="logo-1",
        job_id="job-1",
        role="asset",
        kind="logo",
        filename="logo.png",
        content_type="image/png",
        size=5,
        content=b"image",
    )
    artifacts = {
        "pricing_comparison": pricing().model_dump(mode="json"),
        "merchant_data": {"business_name": "Joe's Pizza", "logo_file": {"file_id": "logo-1"}},
        "generated_images": {
            "generation_status": "partial",
            "images": {"heroBanner": {"file_id": "logo-1"}, "trustVisual": {"file_id": "missing"}},
        },
    }
    stage = RenderDocumentStage(ProposalRenderer(render_service_url=""))
    context = stage.build_context(stage_context(artifacts, files={"logo-1": logo}))

    assert context["merchant"]["logo_data_url"] == "data:image/png;base64,aW1hZ2U="
    assert context["images"] == {"heroBanner": "data:image/png;base64,aW1hZ2U="}
