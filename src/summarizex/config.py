from typing import Dict, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class LengthPreset(BaseModel):
    """Target word band for one summary length."""
    min_words: int = Field(ge=1)
    max_words: int = Field(ge=1)
    max_tokens: int = Field(ge=1)


class Defaults:
    """Default values used throughout the application."""

    DEFAULT_LENGTH: str = "medium"
    DEFAULT_STYLE: str = "paragraph"

    SYSTEM_PROMPT: str = "You are a helpful assistant that summarizes documents clearly."

    SUMMARY_LENGTHS: Dict[str, LengthPreset] = {
        "short": LengthPreset(min_words=50, max_words=120, max_tokens=300),
        "medium": LengthPreset(min_words=150, max_words=300, max_tokens=700),
        "long": LengthPreset(min_words=350, max_words=600, max_tokens=1400),
    }

    SUMMARY_STYLES: Dict[str, str] = {
        "paragraph": "Write the summary as flowing prose in one or more paragraphs.",
        "bullets": "Write the summary as a list of concise bullet points, one idea per bullet.",
        "executive": (
            "Write an executive summary: open with a one-sentence overview, "
            "then the key findings, then recommended actions."
        ),
    }


class Settings(BaseSettings):
    # OpenAI
    openai_api_key: str = Field(default="")
    openai_model: str = Field(default="gpt-4o-mini")
    openai_base_url: Optional[str] = Field(default=None, description="OpenAI-compatible endpoint")
    openai_timeout: float = Field(default=120.0, gt=0)
    openai_temperature: float = Field(default=0.2, ge=0, le=2)

    # Retries
    max_attempts: int = Field(default=3, ge=1)
    retry_backoff: float = Field(default=0.5, ge=0)
    retry_backoff_max: float = Field(default=8.0, ge=0)
    retry_jitter: float = Field(default=0.25, ge=0, le=1)

    # Map-reduce
    max_input_chars: int = Field(default=12000, ge=1, description="Above this, text is chunked")
    chunk_summary_words: int = Field(default=150, ge=1, description="Word cap for each part summary")
    length_tolerance: float = Field(default=0.2, ge=0, description="Allowed drift outside a length band")

    # OCR
    ocr_lang: str = Field(default="eng")
    ocr_config: str = Field(default="")
    tesseract_cmd: Optional[str] = Field(default=None, description="Path to the tesseract binary")
    ocr_max_concurrency: int = Field(default=2, ge=1)

    log_level: str = Field(default="INFO")

    summary_lengths: Dict[str, LengthPreset] = Field(default_factory=lambda: dict(Defaults.SUMMARY_LENGTHS))
    summary_styles: Dict[str, str] = Field(default_factory=lambda: dict(Defaults.SUMMARY_STYLES))

    @property
    def is_summarizer_enabled(self) -> bool:
        """Check if summarizer can run without an explicit key."""
        return bool(self.openai_api_key)

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
