"""Proposal document renderer.

HTML is produced from a Jinja2 template. PDF output is laid out in-process
from that HTML with PyMuPDF, or obtained from an HTML-to-PDF conversion
service when ``RENDER_SERVICE_URL`` is set.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import fitz  # PyMuPDF
import httpx
from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from proposal_service.config import settings
from proposal_service.errors import RenderError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
TEMPLATE_NAME = "proposal.html.j2"

OUTPUT_FORMATS = ("pdf", "html")

# Page margin in points
PDF_MARGIN = 36

# Sections the template can render empty
TEMPLATE_DEFAULTS: Dict[str, Any] = {
    "merchant": {},
    "salesperson": {},
    "narrative": {},
    "images": {},
    "next_steps": [],
    "annual_savings": 0.0,
    "prepared_on": "",
}


@dataclass
class RenderedDocument:
    content: bytes
    content_type: str
    extension: str


def format_currency(value: Optional[float]) -> str:
    return f"${(value or 0):,.2f}"


def format_percent(value: Optional[float]) -> str:
    return f"{(value or 0):.2f}%"


def build_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "html.j2"]),
    )
    env.filters["currency"] = format_currency
    env.filters["percent"] = format_percent
    return env


class ProposalRenderer:
    """Document renderer collaborator: render context to document bytes."""

    def __init__(
        self,
        render_service_url: Optional[str] = None,
        timeout: float = settings.RENDER_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
        page_size: str = settings.PDF_PAGE_SIZE,
    ):
        self.render_service_url = render_service_url if render_service_url is not None else settings.RENDER_SERVICE_URL
        self.timeout = timeout
        self.transport = transport
        self.page_size = page_size
        self.env = build_environment()

    def render_html(self, context: Dict[str, Any]) -> str:
        values = dict(TEMPLATE_DEFAULTS)
        values.update(context)
        try:
            return self.env.get_template(TEMPLATE_NAME).render(**values)
        except TemplateError as e:
            raise RenderError(f"Template rendering failed: {e}") from e

    def render(self, context: Dict[str, Any], output_format: str = "html") -> RenderedDocument:
        """
        Render the proposal document.

        Args:
            context: Template context with merchant, pricing, salesperson,
                narrative, images and prepared_on
            output_format: 'pdf' or 'html'

        Returns:
            RenderedDocument

        Raises:
            RenderError: On unknown format, template errors, or PDF conversion failure
        """
        if output_format not in OUTPUT_FORMATS:
            raise RenderError(f"Unsupported output format: {output_format}")

        html = self.render_html(context)
        if output_format == "html":
            return RenderedDocument(html.encode("utf-8"), "text/html; charset=utf-8", "html")

        if self.render_service_url:
            content = self._convert_with_service(html)
        else:
            content = self._layout_pdf(html)
        return RenderedDocument(content, "application/pdf", "pdf")

    def _layout_pdf(self, html: str) -> bytes:
        """Flow the HTML over as many pages as it needs."""
        logger.info(f"Laying out {len(html)} chars of HTML as PDF ({self.page_size})")
        try:
            mediabox = fitz.paper_rect(self.page_size)
            where = mediabox + (PDF_MARGIN, PDF_MARGIN, -PDF_MARGIN, -PDF_MARGIN)
            buffer = io.BytesIO()
            writer = fitz.DocumentWriter(buffer)
            story = fitz.Story(html=html)
            more = True
            while more:
                device = writer.begin_page(mediabox)
                more, _ = story.place(where)
                story.draw(device)
                writer.end_page()
            writer.close()
        except Exception as e:
            raise RenderError(f"PDF layout failed: {e}") from e
        return buffer.getvalue()

    def _convert_with_service(self, html: str) -> bytes:
        logger.info(f"Converting {len(html)} chars of HTML to PDF via {self.render_service_url}")
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    self.render_service_url,
                    files={"files": ("index.html", html.encode("utf-8"), "text/html")},
                )
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise RenderError(f"PDF conversion timed out ({self.timeout:.0f}s limit)") from e
        except httpx.HTTPError as e:
            raise RenderError(f"PDF conversion failed: {e}") from e

        if not response.content.startswith(b"%PDF"):
            raise RenderError("PDF conversion returned a non-PDF response")
        return response.content
