"""Process-wide wiring of the aggregator from settings."""

from shopfetch.aggregator.aggregator import ListingAggregator
from shopfetch.aggregator.models import AggregateResult, ProductResult
from shopfetch.cache import TtlCache
from shopfetch.extract import TokopediaExtractor
from shopfetch.fetch import HttpFetcher
from shopfetch.scheduler import ConcurrencyGate
from shopfetch.settings import AppSettings


def build_aggregator(settings: AppSettings) -> ListingAggregator:
    """Construct the cache, gate, fetcher and extractor once and wire them.

    Args:
        settings: Application settings.

    Returns:
        A ready ListingAggregator.
    """
    cache: TtlCache[AggregateResult | ProductResult] = TtlCache(
        ttl_seconds=settings.cache_ttl_seconds
    )
    return ListingAggregator(
        fetcher=HttpFetcher(settings.to_fetch_config()),
        extractor=TokopediaExtractor(max_items=settings.max_listing_items),
        cache=cache,
        gate=ConcurrencyGate(limit=settings.concurrency_limit),
        config=settings.to_aggregator_config(),
    )
