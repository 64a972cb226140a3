"""Trakt sync run configuration."""

import logging
import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

MediaKind = Literal["tv", "movies"]


class Settings(BaseSettings):
    """Read-only settings for a single sync run."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ============================================================================
    # CREDENTIALS & INPUTS
    # ============================================================================

    trakt_api_key: str | None = Field(
        default=None, description="Trakt API key (TRAKT_API_KEY)"
    )
    tv_file: str | None = Field(default=None, description="Path to TV input JSON")
    movie_file: str | None = Field(
        default=None, description="Path to movie input JSON"
    )
    output_file: str | None = Field(
        default=None,
        description="Explicit output path; defaults to <output_dir>/<input>_ex.json",
    )

    # ============================================================================
    # DATA DIRECTORIES
    # ============================================================================

    output_dir: str = Field(default="json/output", description="Output directory")
    not_found_dir: str = Field(
        default="json/not_found", description="Directory of not-found ledgers"
    )
    overrides_dir: str = Field(
        default="json/overrides", description="Directory of manual override files"
    )

    # ============================================================================
    # RUN MODE
    # ============================================================================

    force: bool = Field(
        default=False, description="Re-fetch every record, bypassing cache and skips"
    )
    verbose: bool = Field(default=False, description="Enable debug logging")
    no_progress: bool = Field(default=False, description="Disable the progress bar")
    log_level: str = Field(default="INFO", description="Logging level")

    # ============================================================================
    # UPSTREAM SERVICES
    # ============================================================================

    trakt_base_url: str = Field(default="https://api.trakt.tv")
    trakt_api_version: str = Field(default="2")
    trakt_max_requests: int = Field(
        default=1000, description="Trakt requests allowed per window"
    )
    trakt_window_seconds: float = Field(
        default=300.0, description="Trakt rate limit window (5 minutes)"
    )

    letterboxd_base_url: str = Field(default="https://letterboxd.com")
    letterboxd_max_requests: int = Field(
        default=100, description="Letterboxd requests allowed per window"
    )
    letterboxd_window_seconds: float = Field(
        default=60.0, description="Letterboxd rate limit window"
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="Browser-like User-Agent required by Letterboxd",
    )

    # ============================================================================
    # HTTP BEHAVIOUR
    # ============================================================================

    request_pacing_seconds: float = Field(
        default=0.5, description="Fixed delay applied after each limiter token"
    )
    request_timeout_seconds: float = Field(default=30.0)
    redirect_timeout_seconds: float = Field(default=15.0)
    max_retries: int = Field(default=3, description="Retries on HTTP 429/403")
    initial_backoff_seconds: float = Field(default=1.0)
    max_backoff_seconds: float = Field(default=32.0)

    @field_validator("trakt_max_requests", "letterboxd_max_requests")
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Rate limit capacity must be at least 1")
        return v

    @field_validator(
        "trakt_window_seconds",
        "letterboxd_window_seconds",
        "request_timeout_seconds",
        "redirect_timeout_seconds",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Windows and timeouts must be positive")
        return v

    @field_validator(
        "max_retries",
        "request_pacing_seconds",
        "initial_backoff_seconds",
        "max_backoff_seconds",
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retry and pacing values must be non-negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{v}'")
        return level

    @model_validator(mode="after")
    def validate_backoff_range(self) -> "Settings":
        if self.max_backoff_seconds < self.initial_backoff_seconds:
            raise ValueError("max_backoff_seconds must be >= initial_backoff_seconds")
        return self

    @model_validator(mode="after")
    def validate_output_target(self) -> "Settings":
        if self.output_file and self.tv_file and self.movie_file:
            raise ValueError(
                "output_file can only be used with a single input; "
                "shows and movies need separate output files"
            )
        return self

    def output_path_for(self, input_file: str) -> str:
        """Return the output path for an input file.

        An explicit ``output_file`` always wins; otherwise the output is
        ``<output_dir>/<input stem>_ex.json``.
        """
        if self.output_file:
            return self.output_file
        stem = os.path.splitext(os.path.basename(input_file))[0]
        return os.path.join(self.output_dir, f"{stem}_ex.json")

    def not_found_path_for(self, output_file: str) -> str:
        return os.path.join(
            self.not_found_dir, "not_exist_" + os.path.basename(output_file)
        )

    def overrides_path_for(self, media: MediaKind) -> str:
        return os.path.join(self.overrides_dir, f"{media}_overrides.json")

    def log_configuration(self) -> None:
        """Log the effective configuration (API key redacted)."""
        logger.info("Trakt sync configuration:")
        logger.info(f"  API key: {'set' if self.trakt_api_key else 'missing'}")
        logger.info(f"  TV input: {self.tv_file or '-'}")
        logger.info(f"  Movie input: {self.movie_file or '-'}")
        logger.info(f"  Force refresh: {'Enabled' if self.force else 'Disabled'}")
        logger.info(
            f"  Trakt rate limit: {self.trakt_max_requests} req / {self.trakt_window_seconds:.0f}s"
        )
        logger.info(
            f"  Letterboxd rate limit: {self.letterboxd_max_requests} req / "
            f"{self.letterboxd_window_seconds:.0f}s"
        )
        logger.info(
            f"  Retries: {self.max_retries} "
            f"(backoff {self.initial_backoff_seconds}s..{self.max_backoff_seconds}s)"
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings populated from environment variables and ``.env``.

    Note:
        For testing, call ``get_settings.cache_clear()`` to reset the cache.
    """
    return Settings()
