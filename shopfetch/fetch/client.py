"""HTTP client with retries, backoff, and header rotation."""

import time
from collections.abc import Callable
from io import BytesIO
from types import TracebackType
from urllib.parse import urlparse

import httpx
import structlog

from shopfetch.errors import FetchFailedError
from shopfetch.fetch.config import FetchConfig
from shopfetch.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)
from shopfetch.fetch.metrics import FetchMetrics
from shopfetch.fetch.models import (
    FetchedDocument,
    FetchError,
    FetchErrorClass,
    FetchRequest,
    ResponseSizeExceededError,
    RetryPolicy,
)
from shopfetch.fetch.url import validate_url
from shopfetch.fetch.user_agents import UserAgentPool


logger = structlog.get_logger()


class HttpFetcher:
    """HTTP GET with retries and failure classification.

    Provides:
    - Input validation before any network call
    - Exponential backoff between attempts, sleeping the calling thread only
    - Rotating browser User-Agent per attempt
    - Per-attempt timeout and maximum response size enforcement
    - Metrics collection

    One ``httpx.Client`` is shared by all calls; it is safe to use from
    many threads at once.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the HTTP fetcher.

        Args:
            config: Fetch configuration.
            client: Pre-built httpx client (tests inject a MockTransport).
            sleep: Sleep function used for backoff.
        """
        self._config = config or FetchConfig()
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True)
        self._sleep = sleep
        self._user_agents = UserAgentPool(self._config.user_agents)
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="fetch")

    @property
    def config(self) -> FetchConfig:
        """Get the fetch configuration."""
        return self._config

    def close(self) -> None:
        """Close the underlying client if this fetcher created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def fetch(
        self,
        url: str,
        max_attempts: int | None = None,
        base_delay_ms: int | None = None,
    ) -> FetchedDocument:
        """Fetch a URL with retry support.

        Args:
            url: Absolute http(s) URL to fetch.
            max_attempts: Override for the policy's attempt count.
            base_delay_ms: Override for the policy's backoff base.

        Returns:
            The fetched document.

        Raises:
            InvalidInputError: If the URL is empty or malformed.
            FetchFailedError: If every attempt failed.
        """
        url = validate_url(url)
        policy = self._resolve_policy(max_attempts, base_delay_ms)
        log = self._log.bind(url=url, domain=urlparse(url).netloc)

        start_time_ns = time.perf_counter_ns()
        last_error: FetchError | None = None

        for attempt in range(policy.max_attempts):
            request = FetchRequest(
                url=url,
                attempt=attempt,
                headers=self._build_headers(),
            )
            outcome = self._execute_single(request, log)

            if isinstance(outcome, FetchedDocument):
                duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
                self._metrics.record_duration(duration_ms)
                log.info(
                    "fetch_complete",
                    status_code=outcome.status_code,
                    attempts=outcome.attempts,
                    chars=outcome.body_size,
                    duration_ms=round(duration_ms, 2),
                )
                return outcome

            last_error = outcome
            log.warning(
                "fetch_attempt_failed",
                attempt=attempt,
                error_class=outcome.error_class.value,
                status_code=outcome.status_code,
                error=outcome.message,
            )

            if policy.should_retry(attempt):
                delay_ms = policy.get_delay_ms(attempt)
                self._metrics.record_retry()
                log.debug(
                    "retry_attempt",
                    attempt=attempt + 1,
                    delay_ms=delay_ms,
                    max_attempts=policy.max_attempts,
                )
                self._sleep(delay_ms / 1000.0)

        # All attempts exhausted
        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_duration(duration_ms)
        if last_error is not None:
            self._metrics.record_failure(last_error.error_class)
        log.warning(
            "fetch_failed",
            attempts=policy.max_attempts,
            error_class=last_error.error_class.value if last_error else None,
            duration_ms=round(duration_ms, 2),
        )
        raise FetchFailedError(url, policy.max_attempts, last_error)

    def _resolve_policy(
        self,
        max_attempts: int | None,
        base_delay_ms: int | None,
    ) -> RetryPolicy:
        """Apply per-call overrides to the configured retry policy."""
        policy = self._config.retry_policy
        overrides: dict[str, int] = {}
        if max_attempts is not None:
            overrides["max_attempts"] = max_attempts
        if base_delay_ms is not None:
            overrides["base_delay_ms"] = base_delay_ms
        if not overrides:
            return policy
        return RetryPolicy.model_validate({**policy.model_dump(), **overrides})

    def _build_headers(self) -> dict[str, str]:
        """Build request headers with the next rotated identity."""
        return {
            "User-Agent": self._user_agents.next(),
            "Accept": self._config.accept,
            "Accept-Language": self._config.accept_language,
            "Accept-Encoding": "gzip, deflate",
        }

    def _execute_single(
        self,
        request: FetchRequest,
        log: structlog.stdlib.BoundLogger,
    ) -> FetchedDocument | FetchError:
        """Execute a single HTTP attempt.

        Args:
            request: The attempt to execute.
            log: Bound logger.

        Returns:
            The document on success, otherwise the classified error.
        """
        timeout = self._config.attempt_timeout_seconds
        started = time.monotonic()
        log.debug("fetch_attempt", attempt=request.attempt)

        try:
            with self._client.stream(
                "GET",
                request.url,
                headers=request.headers,
                timeout=timeout,
            ) as response:
                http_error = self._classify_http_error(response.status_code)
                if http_error is not None:
                    self._metrics.record_request(response.status_code, 0)
                    return http_error

                body = self._read_body_with_limit(response, started)
                self._metrics.record_request(response.status_code, len(body))
                encoding = response.encoding or "utf-8"
                return FetchedDocument(
                    url=request.url,
                    final_url=str(response.url),
                    status_code=response.status_code,
                    text=body.decode(encoding, errors="replace"),
                    attempts=request.attempt + 1,
                )

        except (httpx.TimeoutException, TimeoutError) as e:
            return FetchError(
                error_class=FetchErrorClass.NETWORK_TIMEOUT,
                message=f"Request timed out after {timeout}s: {e}",
            )

        except httpx.ConnectError as e:
            return FetchError(
                error_class=FetchErrorClass.CONNECTION_ERROR,
                message=f"Connection failed: {e}",
            )

        except ResponseSizeExceededError as e:
            return FetchError(
                error_class=FetchErrorClass.RESPONSE_SIZE_EXCEEDED,
                message=str(e),
            )

        except httpx.HTTPError as e:
            return FetchError(
                error_class=FetchErrorClass.TRANSPORT_ERROR,
                message=f"Transport error: {e}",
            )

    def _read_body_with_limit(self, response: httpx.Response, started: float) -> bytes:
        """Read response body with size and total-time limits.

        Args:
            response: Streaming HTTP response.
            started: Monotonic time the attempt began.

        Returns:
            Response body bytes.

        Raises:
            ResponseSizeExceededError: If size limit exceeded.
            TimeoutError: If the attempt outlives its timeout while reading.
        """
        buffer = BytesIO()
        total_read = 0
        max_size = self._config.max_response_size_bytes
        timeout = self._config.attempt_timeout_seconds

        for chunk in response.iter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            total_read += len(chunk)
            if total_read > max_size:
                msg = (
                    f"Response size exceeded limit of {max_size} bytes "
                    f"(read {total_read} bytes)"
                )
                raise ResponseSizeExceededError(msg)
            if time.monotonic() - started > timeout:
                msg = f"body read exceeded {timeout}s"
                raise TimeoutError(msg)
            buffer.write(chunk)

        return buffer.getvalue()

    def _classify_http_error(self, status_code: int) -> FetchError | None:
        """Classify HTTP status code as error.

        Args:
            status_code: HTTP status code.

        Returns:
            FetchError if status is outside 2xx/3xx, None otherwise.
        """
        if HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX:
            return None

        if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
            return FetchError(
                error_class=FetchErrorClass.RATE_LIMITED,
                message="Rate limited (429 Too Many Requests)",
                status_code=status_code,
            )

        if HTTP_STATUS_BAD_REQUEST <= status_code < HTTP_STATUS_SERVER_ERROR_MIN:
            return FetchError(
                error_class=FetchErrorClass.HTTP_4XX,
                message=f"Client error ({status_code})",
                status_code=status_code,
            )

        return FetchError(
            error_class=FetchErrorClass.HTTP_5XX,
            message=f"Server error ({status_code})",
            status_code=status_code,
        )
