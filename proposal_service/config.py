"""Application configuration using Pydantic Settings."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # OpenRouter (narrative generation)
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    SITE_URL: str = ""
    SITE_NAME: str = "Proposal-Builder"
    NARRATIVE_MODEL: str = "meta-llama/llama-3.3-70b-instruct:free"

    # Image generation (OpenAI-compatible images endpoint)
    IMAGE_API_KEY: str = ""
    IMAGE_API_BASE_URL: str = ""
    IMAGE_MODEL: str = "gemini-2.5-flash-image"

    # Rendering: PDFs are rendered in-process unless an HTML-to-PDF service is set
    RENDER_SERVICE_URL: Optional[str] = None
    PDF_PAGE_SIZE: str = "letter"

    # External call timeouts (seconds)
    SCRAPE_TIMEOUT_SECONDS: float = 15.0
    LOGO_TIMEOUT_SECONDS: float = 10.0
    LLM_TIMEOUT_SECONDS: float = 30.0
    IMAGE_TIMEOUT_SECONDS: float = 30.0
    RENDER_TIMEOUT_SECONDS: float = 30.0

    # Worker
    MAX_CONCURRENT_JOBS: int = 4
    RECOVER_JOBS_ON_STARTUP: bool = True
    # A running job whose owner has not written for this long may be taken over
    WORKER_LEASE_SECONDS: float = 300.0

    # Uploads
    MAX_UPLOAD_BYTES: int = 20 * 1024 * 1024

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
