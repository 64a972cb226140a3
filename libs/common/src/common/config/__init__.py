"""Configuration package for the Trakt sync."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
