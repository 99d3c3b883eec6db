"""Error taxonomy for the fetch-and-aggregate engine.

Every failure that reaches a caller is one of these kinds. Transport
exceptions from httpx never escape the fetch layer.
"""

from enum import Enum
from typing import TYPE_CHECKING, ClassVar


if TYPE_CHECKING:
    from shopfetch.fetch.models import FetchError


class ErrorKind(str, Enum):
    """Classification of request-level failures.

    - INVALID_INPUT: Caller supplied an empty or malformed URL (not retried)
    - FETCH_FAILED: Upstream unreachable or erroring after all attempts
    - MALFORMED_DOCUMENT: Extraction found an unexpected document shape
    - REQUEST_TIMEOUT: Overall request deadline elapsed
    - AGGREGATION_FAILED: Listing stage failed; wraps the inner cause
    """

    INVALID_INPUT = "INVALID_INPUT"
    FETCH_FAILED = "FETCH_FAILED"
    MALFORMED_DOCUMENT = "MALFORMED_DOCUMENT"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    AGGREGATION_FAILED = "AGGREGATION_FAILED"


ErrorDetails = dict[str, str | int | float | bool | None]


class ShopFetchError(Exception):
    """Base exception carrying a kind and an HTTP status class."""

    kind: ClassVar[ErrorKind]
    http_status: ClassVar[int] = 502

    def __init__(self, message: str, details: ErrorDetails | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            details: Additional structured error details.
        """
        super().__init__(message)
        self.message = message
        self.details: ErrorDetails = details or {}

    def to_dict(self) -> dict[str, str | ErrorDetails]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(ShopFetchError):
    """Raised when a URL is empty or not an absolute http(s) URL."""

    kind = ErrorKind.INVALID_INPUT
    http_status = 400


class FetchFailedError(ShopFetchError):
    """Raised when every fetch attempt for a URL failed."""

    kind = ErrorKind.FETCH_FAILED
    http_status = 502

    def __init__(
        self,
        url: str,
        attempts: int,
        last_error: "FetchError | None" = None,
    ) -> None:
        """Initialize the fetch failure.

        Args:
            url: URL that could not be fetched.
            attempts: Number of attempts made.
            last_error: Error from the final attempt.
        """
        reason = last_error.message if last_error else "unknown error"
        super().__init__(
            f"Failed to fetch {url} after {attempts} attempt(s): {reason}",
            details={
                "url": url,
                "attempts": attempts,
                "error_class": last_error.error_class.value if last_error else None,
                "status_code": last_error.status_code if last_error else None,
            },
        )
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class MalformedDocumentError(ShopFetchError):
    """Raised by extractors when expected document structure is absent."""

    kind = ErrorKind.MALFORMED_DOCUMENT
    http_status = 502


class RequestTimeoutError(ShopFetchError):
    """Raised when the overall request deadline elapses."""

    kind = ErrorKind.REQUEST_TIMEOUT
    http_status = 504


class AggregationFailedError(ShopFetchError):
    """Raised when the listing stage fails. No partial aggregate exists."""

    kind = ErrorKind.AGGREGATION_FAILED
    http_status = 502

    def __init__(self, message: str, cause: ShopFetchError) -> None:
        """Initialize the aggregation failure.

        Args:
            message: Human-readable error message.
            cause: The listing-stage error that aborted the request.
        """
        super().__init__(
            f"{message}: {cause.message}",
            details={"cause_kind": cause.kind.value, **cause.details},
        )
        self.cause = cause
