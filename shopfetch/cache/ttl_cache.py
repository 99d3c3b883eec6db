"""In-process time-to-live response cache."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog


logger = structlog.get_logger()

V = TypeVar("V")

# Default TTL: 5 minutes
DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value and the monotonic time it was stored.

    Attributes:
        key: Cache key.
        value: Cached value.
        stored_at: Monotonic timestamp of the write.
    """

    key: str
    value: V
    stored_at: float


class TtlCache(Generic[V]):
    """Key/value store whose entries expire ``ttl_seconds`` after writing.

    Expiry is lazy: an old entry is treated as absent on read and dropped
    then. ``get`` does not distinguish absent from expired keys. There is
    no size bound; ``purge_expired`` sweeps stale entries on demand.

    Thread-safe for concurrent ``get``/``set`` from many requests.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry in seconds.
            clock: Monotonic clock (tests inject a fake).

        Raises:
            ValueError: If ttl_seconds is not positive.
        """
        if ttl_seconds <= 0:
            msg = f"ttl_seconds must be positive, got {ttl_seconds}"
            raise ValueError(msg)
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._log = logger.bind(component="cache")

    @property
    def ttl_seconds(self) -> float:
        """Get the entry lifetime in seconds."""
        return self._ttl

    def get(self, key: str) -> V | None:
        """Look up a fresh value.

        Args:
            key: Cache key.

        Returns:
            The cached value, or None when absent or expired.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._is_fresh(entry):
                self._hits += 1
                return entry.value
            if entry is not None:
                del self._entries[key]
            self._misses += 1
        self._log.debug("cache_miss", key=key, expired=entry is not None)
        return None

    def set(self, key: str, value: V) -> None:
        """Store a value, replacing any previous entry for the key.

        Args:
            key: Cache key.
            value: Value to store.
        """
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key, value=value, stored_at=self._clock()
            )

    def purge_expired(self) -> int:
        """Drop every expired entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            stale = [k for k, e in self._entries.items() if not self._is_fresh(e)]
            for key in stale:
                del self._entries[key]
        if stale:
            self._log.debug("cache_purged", removed=len(stale))
        return len(stale)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int]:
        """Get hit/miss counters and current size."""
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._entries),
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_fresh(self, entry: CacheEntry[V]) -> bool:
        """Check entry age. Must be called while holding the lock."""
        return self._clock() - entry.stored_at < self._ttl
