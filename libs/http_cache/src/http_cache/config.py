"""
Cache configuration for upstream responses in the Trakt sync.

Responses are stored as one file per (entity type, id) under ``cache_dir``.
"""

import os
import tempfile
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SHOWS = "shows"
MOVIES = "movies"
SEASONS = "seasons"
LETTERBOXD = "letterboxd"


def _default_cache_dir() -> str:
    return os.path.join(tempfile.gettempdir(), "trakt_data")


class CacheConfig(BaseSettings):
    """Response cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    cache_enabled: bool = Field(default=True, description="Enable the response cache")
    cache_dir: str = Field(
        default_factory=_default_cache_dir,
        description="Scratch directory holding one sub-directory per entity type",
    )
    volatile_entity_types: list[str] = Field(
        default=[SHOWS, MOVIES, SEASONS],
        description=(
            "Entity types deleted at the end of every run. Letterboxd lookups "
            "change slowly and are kept across runs."
        ),
    )

    @field_validator("volatile_entity_types")
    @classmethod
    def validate_entity_types(cls, v: list[str]) -> list[str]:
        for entity_type in v:
            if not entity_type or os.sep in entity_type or entity_type in {".", ".."}:
                raise ValueError(f"Invalid cache entity type: {entity_type!r}")
        return v


@lru_cache
def get_cache_config() -> CacheConfig:
    """Get cached CacheConfig instance populated from environment variables.

    Environment variables are read by Pydantic BaseSettings:
        CACHE_CACHE_ENABLED (default: true)
        CACHE_CACHE_DIR (default: <system temp>/trakt_data)
        CACHE_VOLATILE_ENTITY_TYPES (default: ["shows", "movies", "seasons"])

    Note:
        For testing, call get_cache_config.cache_clear() to reset the cache.
    """
    return CacheConfig()
