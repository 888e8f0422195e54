from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field


DEFAULT_AI_API_URL = "https://api.deepseek.com/v1/chat/completions"
DEFAULT_AI_MODEL = "deepseek-reasoner"


@dataclass(frozen=True)
class ReasoningConfig:
    """Connection details for the external reasoning service.

    An instance with ``configured`` False is the explicit "not configured"
    variant; the extractor then goes straight to the local fallback.
    """

    api_url: str = ""
    api_key: str = ""
    model: str = DEFAULT_AI_MODEL
    timeout_s: float = 40.0
    temperature: float = 0.3

    @property
    def configured(self) -> bool:
        return bool(self.api_url.strip()) and bool(self.api_key.strip())

    @classmethod
    def not_configured(cls) -> "ReasoningConfig":
        return cls()


class Settings(BaseSettings):
    """Application settings.

    Values may be provided via environment variables prefixed with
    ``SUGGEST_`` (for example ``SUGGEST_AI_API_KEY``).
    """

    # HTTP
    cors_allow_origins: str = Field("*", description="Comma-separated origins")

    # Storage
    db_path: Optional[str] = Field(None, description="SQLite file; defaults to suggestions.db beside the package")

    # Logging
    log_level: Optional[str] = Field(None, description="Level name or number")

    # Reasoning service
    ai_api_url: str = Field(DEFAULT_AI_API_URL, description="Chat-completions endpoint")
    ai_api_key: str = Field("", description="Bearer credential; blank disables the service")
    ai_model: str = DEFAULT_AI_MODEL
    ai_timeout_s: float = Field(40.0, gt=0, description="Per-request timeout in seconds")
    ai_temperature: float = Field(0.3, ge=0.0, le=2.0)

    class Config:
        env_prefix = "SUGGEST_"
        case_sensitive = False

    def reasoning_config(self) -> ReasoningConfig:
        cfg = ReasoningConfig(
            api_url=(self.ai_api_url or "").strip(),
            api_key=(self.ai_api_key or "").strip(),
            model=(self.ai_model or DEFAULT_AI_MODEL).strip(),
            timeout_s=float(self.ai_timeout_s),
            temperature=float(self.ai_temperature),
        )
        if not cfg.configured:
            return ReasoningConfig.not_configured()
        return cfg


def load_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
