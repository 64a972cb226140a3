"""Custom exceptions for HTTP cache library."""


class CacheError(Exception):
    """Base exception for cache-related errors."""


class InvalidCacheKeyError(CacheError):
    """Raised when an entity type or id cannot be mapped to a cache entry."""

    def __init__(self, entity_type: str, entity_id: object):
        super().__init__(f"Invalid cache key: ({entity_type!r}, {entity_id!r})")
        self.entity_type = entity_type
        self.entity_id = entity_id
