"""Image generation client for an OpenAI-compatible images endpoint."""

import logging
from typing import Optional

import httpx

from proposal_service.config import settings
from proposal_service.errors import CollaboratorError, CollaboratorTimeoutError

logger = logging.getLogger(__name__)


class ImageClient:
    """Image collaborator: prompt to a single image as a data URL."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = settings.IMAGE_MODEL,
        timeout: float = settings.IMAGE_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.IMAGE_API_KEY
        self.base_url = (base_url if base_url is not None else settings.IMAGE_API_BASE_URL).rstrip("/")
        self.model = model
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.base_url)

    def generate(self, prompt: str) -> str:
        """
        Generate one image.

        Args:
            prompt: Image description

        Returns:
            Image as a data URL

        Raises:
            CollaboratorTimeoutError: If generation exceeds the timeout
            CollaboratorError: If not configured, on HTTP errors or when no image is returned
        """
        if not self.configured:
            raise CollaboratorError("Image generation not configured")

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    f"{self.base_url}/images/generations",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "model": self.model,
                        "prompt": prompt,
                        "n": 1,
                        "response_format": "b64_json",
                    },
                )
                response.raise_for_status()
                result = response.json()
        except httpx.TimeoutException as e:
            raise CollaboratorTimeoutError("Image generation timed out") from e
        except httpx.HTTPError as e:
            logger.warning(f"Image request to {self.base_url} failed: {e}")
            raise CollaboratorError(f"Image generation failed: {e}") from e

        for item in result.get("data") or []:
            if item.get("b64_json"):
                mime_type = item.get("mime_type") or "image/png"
                return f"data:{mime_type};base64,{item['b64_json']}"

        raise CollaboratorError("No image data in response")
