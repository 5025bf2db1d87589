"""Application configuration settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def _find_env_file() -> str | None:
    """Find .env file in common locations.

    Checks (in order):
    1. .env (running from project root)
    2. ../.env (running from a subdirectory)
    3. None (rely on environment variables - production)
    """
    candidates = [
        Path(".env"),
        Path("../.env"),
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=_find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Redis (empty = in-process store, development only)
    redis_url: str = ""

    # GitHub
    github_api_url: str = "https://api.github.com"
    github_api_token: str = ""

    # Text generation (via LiteLLM)
    gemini_api_key: str = ""
    generation_model: str = "gemini/gemini-pro"
    generation_temperature: float = 0.2
    generation_max_tokens: int = 8192

    # Tree traversal limits
    max_file_size: int = Field(default=1_000_000, description="Bytes; larger files are listed without content")
    max_tree_depth: int = 32
    max_tree_nodes: int = 10_000

    # Cache TTLs (seconds)
    analysis_cache_ttl: int = 86400
    status_cache_ttl: int = 3600

    @model_validator(mode="after")
    def validate_pipeline_settings(self) -> "Settings":
        """Validate settings the analysis pipeline depends on.

        Missing credentials only degrade the pipeline (unauthenticated GitHub
        calls, canned generation output, in-process cache) so they are logged.
        Non-positive limits make traversal impossible and always raise.
        """
        warnings: list[str] = []
        errors: list[str] = []

        if not self.github_api_token:
            warnings.append(
                "GITHUB_API_TOKEN not set. GitHub requests are unauthenticated "
                "and subject to the anonymous rate limit."
            )

        if not self.gemini_api_key:
            msg = (
                "GEMINI_API_KEY not set. Analyses will use the offline fallback "
                "response instead of the generation service."
            )
            if self.app_env == "production":
                errors.append(msg)
            else:
                warnings.append(msg)

        if not self.redis_url:
            msg = "REDIS_URL not set. Using the in-process analysis cache."
            if self.app_env == "production":
                errors.append(msg)
            else:
                warnings.append(msg)

        for name in ("max_file_size", "max_tree_depth", "max_tree_nodes", "analysis_cache_ttl", "status_cache_ttl"):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be a positive integer.")

        for warning in warnings:
            logger.warning(f"CONFIG WARNING: {warning}")

        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_msg)

        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
