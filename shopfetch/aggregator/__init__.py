"""Fetch-and-aggregate orchestration."""

from shopfetch.aggregator.aggregator import (
    LISTING_KEY_PREFIX,
    PRODUCT_KEY_PREFIX,
    DocumentFetcher,
    ListingAggregator,
)
from shopfetch.aggregator.config import AggregatorConfig
from shopfetch.aggregator.metrics import AggregatorMetrics
from shopfetch.aggregator.models import (
    AggregateResult,
    DetailResult,
    ItemStatus,
    ProductResult,
)
from shopfetch.aggregator.state_machine import (
    RequestState,
    RequestStateMachine,
    RequestStateTransitionError,
)


__all__ = [
    "LISTING_KEY_PREFIX",
    "PRODUCT_KEY_PREFIX",
    "AggregateResult",
    "AggregatorConfig",
    "AggregatorMetrics",
    "DetailResult",
    "DocumentFetcher",
    "ItemStatus",
    "ListingAggregator",
    "ProductResult",
    "RequestState",
    "RequestStateMachine",
    "RequestStateTransitionError",
]
