"""Listing aggregation with bounded fan-out and per-item failure isolation."""

import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

import structlog

from shopfetch.aggregator.config import AggregatorConfig
from shopfetch.aggregator.metrics import AggregatorMetrics
from shopfetch.aggregator.models import (
    AggregateResult,
    DetailResult,
    ItemStatus,
    ProductResult,
)
from shopfetch.aggregator.state_machine import RequestState, RequestStateMachine
from shopfetch.cache import TtlCache
from shopfetch.errors import (
    AggregationFailedError,
    InvalidInputError,
    RequestTimeoutError,
    ShopFetchError,
)
from shopfetch.extract.base import Extractor
from shopfetch.extract.models import ListingItem
from shopfetch.fetch.models import FetchedDocument
from shopfetch.fetch.url import normalize_url, validate_url
from shopfetch.scheduler import ConcurrencyGate


logger = structlog.get_logger()

R = TypeVar("R", AggregateResult, ProductResult)

LISTING_KEY_PREFIX = "listing:"
PRODUCT_KEY_PREFIX = "product:"

NO_REFERENCE_REASON = "Item has no detail reference"


class DocumentFetcher(Protocol):
    """Anything that can fetch a URL into a document."""

    def fetch(self, url: str) -> FetchedDocument:
        """Fetch a URL, raising FetchFailedError or InvalidInputError."""
        ...


class ListingAggregator:
    """Turns one listing fetch into N gated detail fetches and merges them.

    Per request:
    - Cache lookup keyed by the normalized URL
    - Listing fetch and extraction (fatal on failure)
    - One detail task per item, admitted through the shared gate and raced
      against the per-item deadline (degrades to PARTIAL, never fatal)
    - Merge in listing order, cache write, return

    The listing-to-merge pipeline is raced against the request deadline.
    A timed-out item or request only abandons the wait: the worker thread
    finishes in the background, its result is discarded, and it keeps its
    gate slot until its body returns.
    """

    def __init__(  # noqa: PLR0913
        self,
        fetcher: DocumentFetcher,
        extractor: Extractor,
        cache: TtlCache[AggregateResult | ProductResult],
        gate: ConcurrencyGate,
        config: AggregatorConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the aggregator.

        Args:
            fetcher: Document fetcher (retrying HTTP client).
            extractor: Field extractor for listing and detail documents.
            cache: Process-wide response cache.
            gate: Process-wide concurrency gate for detail fetches.
            config: Deadlines.
            clock: Monotonic clock used for the per-item deadline.
        """
        self._fetcher = fetcher
        self._extractor = extractor
        self._cache = cache
        self._gate = gate
        self._config = config or AggregatorConfig()
        self._clock = clock
        self._metrics = AggregatorMetrics.get_instance()
        self._log = logger.bind(component="aggregator")

    @property
    def cache(self) -> TtlCache[AggregateResult | ProductResult]:
        """Get the response cache."""
        return self._cache

    @property
    def gate(self) -> ConcurrencyGate:
        """Get the concurrency gate."""
        return self._gate

    def aggregate(self, url: str) -> AggregateResult:
        """Aggregate a listing page and its item detail pages.

        Args:
            url: Listing URL.

        Returns:
            AggregateResult with items in listing order.

        Raises:
            InvalidInputError: If the URL is empty or malformed.
            AggregationFailedError: If the listing could not be fetched or parsed.
            RequestTimeoutError: If the request deadline elapsed.
        """
        return self._serve(
            kind="listing",
            url=url,
            prefix=LISTING_KEY_PREFIX,
            result_type=AggregateResult,
            build=self._build_aggregate,
        )

    def product(self, url: str) -> ProductResult:
        """Fetch and extract a single product page.

        Args:
            url: Product URL.

        Returns:
            ProductResult with the extracted fields.

        Raises:
            InvalidInputError: If the URL is empty or malformed.
            AggregationFailedError: If the product could not be fetched or parsed.
            RequestTimeoutError: If the request deadline elapsed.
        """
        return self._serve(
            kind="product",
            url=url,
            prefix=PRODUCT_KEY_PREFIX,
            result_type=ProductResult,
            build=self._build_product,
        )

    def _serve(  # noqa: PLR0913
        self,
        kind: str,
        url: str,
        prefix: str,
        result_type: type[R],
        build: Callable[
            [str, str, RequestStateMachine, structlog.stdlib.BoundLogger], R
        ],
    ) -> R:
        """Run the shared cache / deadline / cache-write envelope.

        The caller's URL is fetched as given; only the cache key and the
        reported ``source_url`` use the normalized form.
        """
        self._metrics.record_request(kind)
        try:
            fetch_url = validate_url(url)
            normalized = normalize_url(fetch_url)
        except InvalidInputError as exc:
            self._metrics.record_failure(exc.kind.value)
            self._log.warning("request_rejected", kind=kind, error=exc.message)
            raise

        key = f"{prefix}{normalized}"
        request_id = uuid.uuid4().hex[:12]
        state_machine = RequestStateMachine(request_id=request_id, key=key)
        log = self._log.bind(request_id=request_id, kind=kind, url=normalized)

        cached = self._cache.get(key)
        if isinstance(cached, result_type):
            state_machine.transition_to(RequestState.CACHE_HIT)
            state_machine.transition_to(RequestState.DONE)
            self._metrics.record_cache_hit()
            log.info("cache_hit")
            return cached

        start_time_ns = time.perf_counter_ns()
        try:
            result = self._run_with_deadline(
                lambda: build(fetch_url, normalized, state_machine, log),
                state_machine,
                log,
            )
        except ShopFetchError as exc:
            state_machine.fail()
            self._metrics.record_failure(exc.kind.value)
            log.warning("request_failed", error_kind=exc.kind.value, error=exc.message)
            raise

        self._cache.set(key, result)
        state_machine.transition_to(RequestState.DONE)
        log.info(
            "request_complete",
            duration_ms=round((time.perf_counter_ns() - start_time_ns) / 1_000_000, 2),
        )
        return result

    def _run_with_deadline(
        self,
        work: Callable[[], R],
        state_machine: RequestStateMachine,
        log: structlog.stdlib.BoundLogger,
    ) -> R:
        """Race the pipeline against the request deadline.

        No partial result survives a timeout; the abandoned pipeline stops
        at its next state transition.
        """
        timeout = self._config.request_timeout_seconds
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="shopfetch-request")
        try:
            future = executor.submit(work)
            try:
                return future.result(timeout=timeout)
            except FuturesTimeoutError as exc:
                state_machine.fail()
                log.warning("request_timeout", timeout_seconds=timeout)
                raise RequestTimeoutError(
                    f"Request exceeded its {timeout}s deadline",
                    details={"timeout_seconds": timeout},
                ) from exc
        finally:
            executor.shutdown(wait=False)

    def _build_aggregate(
        self,
        url: str,
        normalized: str,
        state_machine: RequestStateMachine,
        log: structlog.stdlib.BoundLogger,
    ) -> AggregateResult:
        """LISTING_FETCH -> ITEM_FAN_OUT -> MERGE."""
        _advance(state_machine, RequestState.LISTING_FETCH)
        try:
            document = self._fetcher.fetch(url)
            page = self._extractor.extract_listing(document.text, document.final_url)
        except ShopFetchError as exc:
            raise AggregationFailedError("Listing stage failed", cause=exc) from exc

        log.info(
            "listing_extracted",
            items=len(page.items),
            with_reference=sum(1 for item in page.items if item.reference),
        )

        _advance(state_machine, RequestState.ITEM_FAN_OUT)
        items = self._fan_out(page.items, log)

        _advance(state_machine, RequestState.MERGE)
        result = AggregateResult(
            source_url=normalized,
            header_fields=page.header_fields,
            items=items,
        )
        log.info("aggregate_complete", **result.count_by_status())
        return result

    def _build_product(
        self,
        url: str,
        normalized: str,
        state_machine: RequestStateMachine,
        log: structlog.stdlib.BoundLogger,
    ) -> ProductResult:
        """DETAIL_FETCH for the single-product path."""
        _advance(state_machine, RequestState.DETAIL_FETCH)
        try:
            fields = self._fetch_detail(url)
        except ShopFetchError as exc:
            raise AggregationFailedError("Product stage failed", cause=exc) from exc
        log.info("product_extracted", fields=len(fields))
        return ProductResult(source_url=normalized, fields=fields)

    def _fan_out(
        self,
        items: list[ListingItem],
        log: structlog.stdlib.BoundLogger,
    ) -> list[DetailResult]:
        """Submit one gated detail task per referenced item; merge by index."""
        referenced = [(i, item.reference) for i, item in enumerate(items) if item.reference]
        if not referenced:
            return [self._collect(i, item, None, log) for i, item in enumerate(items)]

        # One thread per item; the gate, not the pool, bounds concurrency
        executor = ThreadPoolExecutor(
            max_workers=len(referenced), thread_name_prefix="shopfetch-item"
        )
        try:
            tasks: dict[int, _DetailTask] = {}
            for index, reference in referenced:
                task = _DetailTask()
                task.future = executor.submit(self._fetch_detail, reference, task)
                # Unblocks the waiter if the task dies before taking a slot
                task.future.add_done_callback(lambda _, t=task: t.started.set())
                tasks[index] = task
            return [
                self._collect(index, item, tasks.get(index), log)
                for index, item in enumerate(items)
            ]
        finally:
            executor.shutdown(wait=False)

    def _fetch_detail(
        self, url: str, task: "_DetailTask | None" = None
    ) -> dict[str, Any]:
        """Fetch and extract one detail document while holding a gate slot."""

        def work() -> dict[str, Any]:
            if task is not None:
                task.started_at = self._clock()
                task.started.set()
            document = self._fetcher.fetch(url)
            return self._extractor.extract_detail(document.text)

        return self._gate.run(work)

    def _collect(
        self,
        index: int,
        item: ListingItem,
        task: "_DetailTask | None",
        log: structlog.stdlib.BoundLogger,
    ) -> DetailResult:
        """Wait for one item's detail task and classify the outcome.

        The item deadline starts when the task acquires its gate slot, so
        time spent queued behind other items does not count against it.
        The request deadline still bounds the whole wait.
        """
        item_log = log.bind(item_index=index, reference=item.reference)

        if task is None or task.future is None:
            item_log.info("item_degraded", reason=NO_REFERENCE_REASON)
            self._metrics.record_item(ItemStatus.PARTIAL)
            return DetailResult.partial(item, NO_REFERENCE_REASON)

        item_timeout = self._config.item_timeout_seconds
        try:
            if not task.started.wait(timeout=self._config.request_timeout_seconds):
                raise FuturesTimeoutError
            now = self._clock()
            started_at = now if task.started_at is None else task.started_at
            remaining = started_at + item_timeout - now
            detail_fields = task.future.result(timeout=max(0.0, remaining))
        except FuturesTimeoutError:
            reason = f"Detail fetch exceeded its {item_timeout}s deadline"
            item_log.warning("item_degraded", reason=reason, timed_out=True)
            self._metrics.record_item(ItemStatus.PARTIAL, timed_out=True)
            return DetailResult.partial(item, reason)
        except ShopFetchError as exc:
            item_log.warning(
                "item_degraded",
                reason=exc.message,
                error_kind=exc.kind.value,
            )
            self._metrics.record_item(ItemStatus.PARTIAL)
            return DetailResult.partial(item, exc.message)
        except Exception as exc:  # noqa: BLE001
            item_log.error(
                "item_task_error",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self._metrics.record_item(ItemStatus.PARTIAL)
            return DetailResult.partial(item, f"Unexpected error: {exc}")

        self._metrics.record_item(ItemStatus.COMPLETE)
        return DetailResult.complete(item, detail_fields)


@dataclass
class _DetailTask:
    """One in-flight detail fetch and the moment it took its gate slot."""

    started: threading.Event = field(default_factory=threading.Event)
    started_at: float | None = None
    future: "Future[dict[str, Any]] | None" = None


def _advance(state_machine: RequestStateMachine, target: RequestState) -> None:
    """Advance the pipeline, stopping it if the caller already gave up."""
    if not state_machine.advance(target):
        raise RequestTimeoutError(
            "Request abandoned after its deadline",
            details={"state": target.value},
        )
