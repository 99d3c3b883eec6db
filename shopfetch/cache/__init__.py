"""Time-to-live response cache."""

from shopfetch.cache.ttl_cache import DEFAULT_TTL_SECONDS, CacheEntry, TtlCache


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "CacheEntry",
    "TtlCache",
]
