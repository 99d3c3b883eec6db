"""Metrics collection for the aggregator."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar

from shopfetch.aggregator.models import ItemStatus


@dataclass
class AggregatorMetrics:
    """Metrics for aggregation requests.

    Singleton class that tracks request outcomes, cache hits and
    per-item degradation.
    """

    requests_total: dict[str, int] = field(default_factory=dict)
    cache_hits_total: int = 0
    requests_failed_total: dict[str, int] = field(default_factory=dict)
    items_total: dict[str, int] = field(default_factory=dict)
    item_timeouts_total: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    _instance: ClassVar["AggregatorMetrics | None"] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def get_instance(cls) -> "AggregatorMetrics":
        """Get singleton metrics instance."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        with cls._instance_lock:
            cls._instance = None

    def record_request(self, kind: str) -> None:
        """Record an incoming request of the given kind (listing/product)."""
        with self._lock:
            self.requests_total[kind] = self.requests_total.get(kind, 0) + 1

    def record_cache_hit(self) -> None:
        """Record a request answered from cache."""
        with self._lock:
            self.cache_hits_total += 1

    def record_failure(self, error_kind: str) -> None:
        """Record a request that ended in an error.

        Args:
            error_kind: ErrorKind value of the failure.
        """
        with self._lock:
            self.requests_failed_total[error_kind] = (
                self.requests_failed_total.get(error_kind, 0) + 1
            )

    def record_item(self, status: ItemStatus, timed_out: bool = False) -> None:
        """Record one item outcome.

        Args:
            status: Final item status.
            timed_out: Whether the item hit its deadline.
        """
        with self._lock:
            self.items_total[status.value] = self.items_total.get(status.value, 0) + 1
            if timed_out:
                self.item_timeouts_total += 1

    def to_dict(self) -> dict[str, int | dict[str, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        with self._lock:
            return {
                "requests_total": dict(self.requests_total),
                "cache_hits_total": self.cache_hits_total,
                "requests_failed_total": dict(self.requests_failed_total),
                "items_total": dict(self.items_total),
                "item_timeouts_total": self.item_timeouts_total,
            }
