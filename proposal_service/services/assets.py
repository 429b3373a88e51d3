"""Data URL helpers for images stored as job files."""

import base64
import binascii
import re
from typing import Tuple

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[\w=.+-]+)*;base64,(?P<data>.*)$", re.DOTALL)

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/svg+xml": "svg",
}


def to_data_url(content_type: str, content: bytes) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def parse_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    Split a base64 data URL into its content type and bytes.

    Raises:
        ValueError: If the value is not a base64 data URL
    """
    match = DATA_URL_PATTERN.match(data_url or "")
    if not match:
        raise ValueError("Not a base64 data URL")
    try:
        content = base64.b64decode(match.group("data"), validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
    if not content:
        raise ValueError("Empty data URL")
    return match.group("mime").lower(), content


def extension_for(content_type: str) -> str:
    return EXTENSIONS.get(content_type, "bin")
