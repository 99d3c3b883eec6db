"""Unit tests for ListingAggregator."""

import time

import pytest

from shopfetch.aggregator import (
    LISTING_KEY_PREFIX,
    PRODUCT_KEY_PREFIX,
    AggregateResult,
    AggregatorConfig,
    AggregatorMetrics,
    ItemStatus,
    ListingAggregator,
    ProductResult,
)
from shopfetch.aggregator.aggregator import NO_REFERENCE_REASON
from shopfetch.cache import TtlCache
from shopfetch.errors import (
    AggregationFailedError,
    ErrorKind,
    InvalidInputError,
    RequestTimeoutError,
)
from shopfetch.extract import TokopediaExtractor
from shopfetch.scheduler import ConcurrencyGate
from tests.helpers.fakes import Page, ScriptedFetcher
from tests.helpers.pages import Card, Product, listing_html, product_html


LISTING_URL = "https://shop.example.com/store"


def item_url(i: int) -> str:
    return f"https://shop.example.com/store/item-{i}"


def build_pages(
    count: int,
    slow: set[int] | None = None,
    delay: float = 0.0,
    slow_delay: float = 1.0,
) -> dict[str, Page]:
    """Script a listing with ``count`` linked items and their detail pages."""
    slow = slow or set()
    cards = [
        Card(title=f"Summary {i}", price=f"Rp{i}000", href=f"/store/item-{i}")
        for i in range(count)
    ]
    pages = {LISTING_URL: Page(text=listing_html(cards, shop_name="Test Store"))}
    for i in range(count):
        pages[item_url(i)] = Page(
            text=product_html(Product(title=f"Detail {i}", description=f"About {i}")),
            delay=slow_delay if i in slow else delay,
        )
    return pages


def make_aggregator(
    fetcher: ScriptedFetcher,
    limit: int = 5,
    item_timeout: float = 2.0,
    request_timeout: float = 4.0,
) -> ListingAggregator:
    cache: TtlCache[AggregateResult | ProductResult] = TtlCache(ttl_seconds=300.0)
    return ListingAggregator(
        fetcher=fetcher,
        extractor=TokopediaExtractor(),
        cache=cache,
        gate=ConcurrencyGate(limit=limit),
        config=AggregatorConfig(
            item_timeout_seconds=item_timeout,
            request_timeout_seconds=request_timeout,
        ),
    )


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Start every test with fresh aggregator metrics."""
    AggregatorMetrics.reset()


class TestAggregateHappyPath:
    """Tests for a fully successful aggregation."""

    def test_all_items_complete_in_listing_order(self) -> None:
        """Test every item merges summary and detail in listing order."""
        fetcher = ScriptedFetcher(build_pages(6))
        aggregator = make_aggregator(fetcher)

        result = aggregator.aggregate(LISTING_URL)

        assert result.source_url == LISTING_URL
        assert result.header_fields["shop_name"] == "Test Store"
        assert [item.status for item in result.items] == [ItemStatus.COMPLETE] * 6
        assert [item.fields["product_title"] for item in result.items] == [
            f"Detail {i}" for i in range(6)
        ]
        assert [item.fields["product_price"] for item in result.items] == [
            "Rp100.000"
        ] * 6
        assert result.items[2].summary_fields["product_title"] == "Summary 2"
        assert result.items[2].fields["product_description"] == "About 2"
        assert result.items[2].error is None

    def test_order_preserved_when_completion_order_differs(self) -> None:
        """Test earlier items that finish last still come first."""
        pages = build_pages(5)
        pages[item_url(0)] = Page(text=pages[item_url(0)].text, delay=0.15)
        pages[item_url(1)] = Page(text=pages[item_url(1)].text, delay=0.08)
        fetcher = ScriptedFetcher(pages)
        aggregator = make_aggregator(fetcher)

        result = aggregator.aggregate(LISTING_URL)

        assert [item.fields["product_title"] for item in result.items] == [
            f"Detail {i}" for i in range(5)
        ]

    def test_detail_fetches_respect_limit(self) -> None:
        """Test no more than the gate limit of detail fetches run at once."""
        fetcher = ScriptedFetcher(build_pages(12, delay=0.03))
        aggregator = make_aggregator(fetcher, limit=3)

        result = aggregator.aggregate(LISTING_URL)

        assert len(result.items) == 12
        assert fetcher.peak_active <= 3
        assert aggregator.gate.peak_running <= 3
        assert aggregator.gate.running == 0

    def test_empty_listing_with_header(self) -> None:
        """Test a listing with a header but no cards yields no items."""
        fetcher = ScriptedFetcher(
            {LISTING_URL: Page(text=listing_html([], shop_name="Closed Store"))}
        )
        aggregator = make_aggregator(fetcher)

        result = aggregator.aggregate(LISTING_URL)

        assert result.items == []
        assert result.header_fields["shop_name"] == "Closed Store"


class TestAggregateDegradation:
    """Tests for per-item failure isolation."""

    def test_slow_items_degrade_to_partial(self) -> None:
        """Test 2 of 10 items past the item deadline become PARTIAL."""
        fetcher = ScriptedFetcher(build_pages(10, slow={3, 7}, slow_delay=1.0))
        aggregator = make_aggregator(
            fetcher, limit=5, item_timeout=0.3, request_timeout=2.0
        )

        started = time.monotonic()
        result = aggregator.aggregate(LISTING_URL)
        elapsed = time.monotonic() - started

        statuses = [item.status for item in result.items]
        assert statuses.count(ItemStatus.COMPLETE) == 8
        assert statuses.count(ItemStatus.PARTIAL) == 2
        assert result.items[3].status == ItemStatus.PARTIAL
        assert result.items[7].status == ItemStatus.PARTIAL
        assert result.items[3].fields["product_title"] == "Summary 3"
        assert "deadline" in (result.items[3].error or "")
        assert elapsed < 1.0

        metrics = AggregatorMetrics.get_instance().to_dict()
        assert metrics["item_timeouts_total"] == 2

    def test_queue_time_not_counted_against_item_deadline(self) -> None:
        """Test items queued behind the gate get their full item deadline.

        20 items of 0.1s through 5 slots finish in four waves (~0.4s), so
        the last wave would miss a 0.35s deadline counted from fan-out.
        """
        fetcher = ScriptedFetcher(build_pages(20, delay=0.1))
        aggregator = make_aggregator(
            fetcher, limit=5, item_timeout=0.35, request_timeout=3.0
        )

        result = aggregator.aggregate(LISTING_URL)

        statuses = [item.status for item in result.items]
        assert statuses.count(ItemStatus.COMPLETE) == 20
        assert fetcher.peak_active <= 5
        assert AggregatorMetrics.get_instance().to_dict()["item_timeouts_total"] == 0

    def test_unparseable_item_link_is_partial(self) -> None:
        """Test a card with an unparseable link degrades instead of failing."""
        cards = [
            Card(title="Linked", href="/store/item-0"),
            Card(title="Broken", href="http://[bad/item"),
        ]
        pages = {
            LISTING_URL: Page(text=listing_html(cards)),
            item_url(0): Page(text=product_html(Product(title="Detail 0"))),
        }
        fetcher = ScriptedFetcher(pages)
        aggregator = make_aggregator(fetcher)

        result = aggregator.aggregate(LISTING_URL)

        assert result.items[0].status == ItemStatus.COMPLETE
        assert result.items[1].status == ItemStatus.PARTIAL
        assert result.items[1].error == NO_REFERENCE_REASON
        assert result.items[1].fields["product_title"] == "Broken"
        assert fetcher.call_count() == 2

    def test_failed_item_keeps_summary(self) -> None:
        """Test a failing detail fetch keeps the listing summary."""
        pages = build_pages(3)
        pages[item_url(1)] = Page(fail=True)
        fetcher = ScriptedFetcher(pages)
        aggregator = make_aggregator(fetcher)

        result = aggregator.aggregate(LISTING_URL)

        failed = result.items[1]
        assert failed.status == ItemStatus.PARTIAL
        assert failed.detail_fields == {}
        assert failed.fields["product_title"] == "Summary 1"
        assert failed.fields["product_price"] == "Rp1000"
        assert "Failed to fetch" in (failed.error or "")
        assert result.items[0].status == ItemStatus.COMPLETE
        assert result.items[2].status == ItemStatus.COMPLETE

    def test_malformed_detail_is_partial(self) -> None:
        """Test a detail page without a title degrades the item only."""
        pages = build_pages(2)
        pages[item_url(0)] = Page(text=product_html(Product(title=None)))
        fetcher = ScriptedFetcher(pages)
        aggregator = make_aggregator(fetcher)

        result = aggregator.aggregate(LISTING_URL)

        assert result.items[0].status == ItemStatus.PARTIAL
        assert "title" in (result.items[0].error or "")
        assert result.items[1].status == ItemStatus.COMPLETE

    def test_item_without_reference_is_partial(self) -> None:
        """Test an item with no detail link is PARTIAL and never fetched."""
        cards = [
            Card(title="Linked", href="/store/item-0"),
            Card(title="Unlinked"),
        ]
        pages = {
            LISTING_URL: Page(text=listing_html(cards)),
            item_url(0): Page(text=product_html(Product(title="Detail 0"))),
        }
        fetcher = ScriptedFetcher(pages)
        aggregator = make_aggregator(fetcher)

        result = aggregator.aggregate(LISTING_URL)

        assert result.items[0].status == ItemStatus.COMPLETE
        assert result.items[1].status == ItemStatus.PARTIAL
        assert result.items[1].error == NO_REFERENCE_REASON
        assert result.items[1].fields["product_title"] == "Unlinked"
        assert fetcher.call_count() == 2

    def test_all_items_without_reference(self) -> None:
        """Test a listing with only unlinked items skips fan-out."""
        fetcher = ScriptedFetcher(
            {LISTING_URL: Page(text=listing_html([Card(title="A"), Card(title="B")]))}
        )
        aggregator = make_aggregator(fetcher)

        result = aggregator.aggregate(LISTING_URL)

        assert [item.status for item in result.items] == [ItemStatus.PARTIAL] * 2
        assert fetcher.call_count() == 1


class TestAggregateFailures:
    """Tests for request-level failures."""

    def test_listing_fetch_failure(self) -> None:
        """Test an unreachable listing fails the whole request."""
        fetcher = ScriptedFetcher({})
        aggregator = make_aggregator(fetcher)

        with pytest.raises(AggregationFailedError) as exc_info:
            aggregator.aggregate(LISTING_URL)

        error = exc_info.value
        assert error.kind == ErrorKind.AGGREGATION_FAILED
        assert error.cause.kind == ErrorKind.FETCH_FAILED
        assert error.details["cause_kind"] == "FETCH_FAILED"
        assert len(aggregator.cache) == 0

    def test_malformed_listing(self) -> None:
        """Test an unrecognized listing document fails the request."""
        fetcher = ScriptedFetcher({LISTING_URL: Page(text="<html><p>captcha</p></html>")})
        aggregator = make_aggregator(fetcher)

        with pytest.raises(AggregationFailedError) as exc_info:
            aggregator.aggregate(LISTING_URL)

        assert exc_info.value.cause.kind == ErrorKind.MALFORMED_DOCUMENT

    def test_failure_is_not_cached(self) -> None:
        """Test a failed request is retried from scratch next time."""
        fetcher = ScriptedFetcher({})
        aggregator = make_aggregator(fetcher)

        for _ in range(2):
            with pytest.raises(AggregationFailedError):
                aggregator.aggregate(LISTING_URL)

        assert fetcher.call_count(LISTING_URL) == 2

    @pytest.mark.parametrize("url", ["", "   ", "not-a-url", "http://[::1"])
    def test_invalid_input(self, url: str) -> None:
        """Test bad URLs are rejected before any fetch."""
        fetcher = ScriptedFetcher(build_pages(1))
        aggregator = make_aggregator(fetcher)

        with pytest.raises(InvalidInputError):
            aggregator.aggregate(url)

        assert fetcher.call_count() == 0
        metrics = AggregatorMetrics.get_instance().to_dict()
        assert metrics["requests_failed_total"] == {"INVALID_INPUT": 1}

    def test_request_deadline(self) -> None:
        """Test a slow listing exceeds the request deadline and caches nothing."""
        pages = build_pages(2)
        pages[LISTING_URL] = Page(text=pages[LISTING_URL].text, delay=0.6)
        fetcher = ScriptedFetcher(pages)
        aggregator = make_aggregator(
            fetcher, item_timeout=0.1, request_timeout=0.2
        )

        started = time.monotonic()
        with pytest.raises(RequestTimeoutError):
            aggregator.aggregate(LISTING_URL)
        elapsed = time.monotonic() - started

        assert elapsed < 0.5
        assert len(aggregator.cache) == 0

        # The abandoned pipeline stops before fanning out
        time.sleep(0.8)
        assert fetcher.call_count() == 1
        assert len(aggregator.cache) == 0


class TestAggregateCache:
    """Tests for response caching."""

    def test_cache_hit_skips_fetching(self) -> None:
        """Test a repeated request is served from cache unchanged."""
        fetcher = ScriptedFetcher(build_pages(3))
        aggregator = make_aggregator(fetcher)

        first = aggregator.aggregate(LISTING_URL)
        calls = fetcher.call_count()
        second = aggregator.aggregate(LISTING_URL)

        assert fetcher.call_count() == calls
        assert second == first
        assert second.model_dump() == first.model_dump()
        assert AggregatorMetrics.get_instance().cache_hits_total == 1

    def test_equivalent_url_hits_cache(self) -> None:
        """Test tracking params and case do not defeat the cache."""
        fetcher = ScriptedFetcher(build_pages(1))
        aggregator = make_aggregator(fetcher)

        aggregator.aggregate(LISTING_URL)
        calls = fetcher.call_count()
        aggregator.aggregate("https://SHOP.example.com/store/?utm_source=newsletter")

        assert fetcher.call_count() == calls

    def test_fetches_original_url_keys_normalized(self) -> None:
        """Test the caller's URL is fetched as given while the key is normalized."""
        original = f"{LISTING_URL}?src=topads"
        pages = build_pages(1)
        pages[original] = pages.pop(LISTING_URL)
        fetcher = ScriptedFetcher(pages)
        aggregator = make_aggregator(fetcher)

        result = aggregator.aggregate(original)

        assert fetcher.calls[0] == original
        assert result.source_url == LISTING_URL
        assert result.items[0].status == ItemStatus.COMPLETE
        assert aggregator.cache.get(f"{LISTING_KEY_PREFIX}{LISTING_URL}") == result

    def test_cache_key_prefix(self) -> None:
        """Test listing results are keyed under the listing prefix."""
        fetcher = ScriptedFetcher(build_pages(1))
        aggregator = make_aggregator(fetcher)

        aggregator.aggregate(LISTING_URL)

        cached = aggregator.cache.get(f"{LISTING_KEY_PREFIX}{LISTING_URL}")
        assert isinstance(cached, AggregateResult)
        assert aggregator.cache.get(f"{PRODUCT_KEY_PREFIX}{LISTING_URL}") is None

    def test_partial_result_is_cached(self) -> None:
        """Test a result with degraded items is still cached."""
        pages = build_pages(2)
        pages[item_url(1)] = Page(fail=True)
        fetcher = ScriptedFetcher(pages)
        aggregator = make_aggregator(fetcher)

        first = aggregator.aggregate(LISTING_URL)
        second = aggregator.aggregate(LISTING_URL)

        assert second == first
        assert fetcher.call_count(item_url(1)) == 1


class TestProduct:
    """Tests for the single-product path."""

    def test_product_fields(self) -> None:
        """Test a product page is fetched and extracted."""
        fetcher = ScriptedFetcher(build_pages(1))
        aggregator = make_aggregator(fetcher)

        result = aggregator.product(item_url(0))

        assert isinstance(result, ProductResult)
        assert result.source_url == item_url(0)
        assert result.fields["product_title"] == "Detail 0"
        assert result.fields["product_description"] == "About 0"

    def test_product_fetches_original_url(self) -> None:
        """Test query parameters stripped from the key still reach the fetch."""
        original = f"{item_url(0)}?extParam=ivf%3Dfalse"
        pages = build_pages(1)
        pages[original] = pages.pop(item_url(0))
        fetcher = ScriptedFetcher(pages)
        aggregator = make_aggregator(fetcher)

        result = aggregator.product(original)

        assert fetcher.calls == [original]
        assert result.source_url == item_url(0)
        assert result.fields["product_title"] == "Detail 0"

    def test_product_cached_separately(self) -> None:
        """Test product results use their own cache key space."""
        fetcher = ScriptedFetcher(build_pages(1))
        aggregator = make_aggregator(fetcher)

        aggregator.product(item_url(0))
        aggregator.product(item_url(0))

        assert fetcher.call_count(item_url(0)) == 1
        cached = aggregator.cache.get(f"{PRODUCT_KEY_PREFIX}{item_url(0)}")
        assert isinstance(cached, ProductResult)

    def test_product_failure(self) -> None:
        """Test an unreachable product fails the request."""
        fetcher = ScriptedFetcher({})
        aggregator = make_aggregator(fetcher)

        with pytest.raises(AggregationFailedError, match="Product stage failed"):
            aggregator.product(item_url(9))

    def test_product_invalid_input(self) -> None:
        """Test an empty product URL is rejected."""
        aggregator = make_aggregator(ScriptedFetcher({}))

        with pytest.raises(InvalidInputError):
            aggregator.product("")
