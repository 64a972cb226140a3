"""Response caching infrastructure for the Trakt sync."""

from .config import CacheConfig, get_cache_config
from .storage import FileResponseCache, InMemoryResponseCache, ResponseCache

__all__ = [
    "CacheConfig",
    "FileResponseCache",
    "InMemoryResponseCache",
    "ResponseCache",
    "get_cache_config",
]
