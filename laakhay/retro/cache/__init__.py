"""In-memory caching for completed units of work."""

from .store import (
    DEFAULT_CATEGORY,
    CacheEntry,
    CacheStats,
    CacheStore,
    make_content_key,
    make_options_digest,
)

__all__ = [
    "CacheStore",
    "CacheEntry",
    "CacheStats",
    "DEFAULT_CATEGORY",
    "make_content_key",
    "make_options_digest",
]
