"""PDF and text extraction for uploaded documents."""

import io
import logging
from typing import Union

from pypdf import PdfReader

from proposal_service.errors import DocumentParseError

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = (".txt", ".text", ".md")


def extract_text_from_pdf(pdf_content: Union[bytes, io.BytesIO]) -> str:
    """
    Extract text from a PDF file.

    Args:
        pdf_content: PDF file content as bytes or BytesIO

    Returns:
        Extracted text as string

    Raises:
        DocumentParseError: If PDF cannot be parsed
    """
    try:
        if isinstance(pdf_content, bytes):
            pdf_file = io.BytesIO(pdf_content)
        else:
            pdf_file = pdf_content

        reader = PdfReader(pdf_file)

        text_parts = []
        for page_num, page in enumerate(reader.pages, start=1):
            try:
                text = page.extract_text()
                if text and text.strip():
                    text_parts.append(text)
                    logger.debug(f"Extracted {len(text)} characters from page {page_num}")
            except Exception as e:
                logger.warning(f"Failed to extract text from page {page_num}: {e}")
                continue

        if not text_parts:
            raise DocumentParseError("No text could be extracted from PDF")

        full_text = "\n\n".join(text_parts)
        logger.info(f"Successfully extracted {len(full_text)} characters from {len(reader.pages)} pages")

        return full_text

    except DocumentParseError:
        raise
    except Exception as e:
        logger.error(f"Failed to parse PDF: {e}")
        raise DocumentParseError(f"Failed to parse PDF: {str(e)}") from e


def extract_text(filename: str, content: bytes) -> str:
    """
    Extract text from an uploaded PDF or plain-text document.

    Args:
        filename: Original file name, used to pick the extractor
        content: Raw file bytes

    Returns:
        Document text

    Raises:
        DocumentParseError: On unsupported type, bad encoding or empty content
    """
    name = (filename or "").lower()

    if name.endswith(".pdf") or content[:5] == b"%PDF-":
        return extract_text_from_pdf(content)

    if name.endswith(TEXT_EXTENSIONS):
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DocumentParseError(f"{filename} must be UTF-8 encoded text") from e
        if not text.strip():
            raise DocumentParseError(f"{filename} contains no text")
        return text

    raise DocumentParseError(f"Unsupported file type: {filename}. Only PDF and text files are supported.")
