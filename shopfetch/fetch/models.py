"""Data models for the HTTP fetch layer."""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class FetchErrorClass(str, Enum):
    """Classification of a failed fetch attempt for metrics and logging.

    - NETWORK_TIMEOUT: Attempt exceeded the per-attempt timeout
    - CONNECTION_ERROR: Could not establish connection
    - RESPONSE_SIZE_EXCEEDED: Response exceeded max size limit
    - HTTP_4XX: 4xx client error (except 429)
    - HTTP_5XX: 5xx server error
    - RATE_LIMITED: 429 Too Many Requests
    - TRANSPORT_ERROR: Any other transport-level failure
    """

    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    RESPONSE_SIZE_EXCEEDED = "RESPONSE_SIZE_EXCEEDED"
    HTTP_4XX = "HTTP_4XX"
    HTTP_5XX = "HTTP_5XX"
    RATE_LIMITED = "RATE_LIMITED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


class FetchError(BaseModel):
    """Typed error from one fetch attempt."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: FetchErrorClass = Field(description="Classification of the error")
    message: Annotated[str, Field(min_length=1, description="Human-readable message")]
    status_code: int | None = Field(
        default=None, description="HTTP status code if available"
    )


class FetchRequest(BaseModel):
    """One outbound attempt. Built per attempt and not retained."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Annotated[str, Field(min_length=1)]
    attempt: Annotated[int, Field(ge=0)]
    headers: dict[str, str] = Field(default_factory=dict)


class FetchedDocument(BaseModel):
    """A successfully fetched document."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Annotated[str, Field(min_length=1, description="Requested URL")]
    final_url: Annotated[
        str, Field(min_length=1, description="Final URL after redirects")
    ]
    status_code: int = Field(ge=100, le=599, description="HTTP status code")
    text: str = Field(default="", description="Decoded response body")
    attempts: Annotated[int, Field(ge=1)] = 1

    @property
    def body_size(self) -> int:
        """Get the size of the decoded body in characters."""
        return len(self.text)


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    ``max_attempts`` counts every attempt, including the first one.
    Delay between attempt i and i+1 (0-indexed) is
    ``base_delay_ms * exponential_base ** i``, capped at ``max_delay_ms``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: Annotated[int, Field(ge=1, le=10)] = 2
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 300
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 30000
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = 2.0

    def should_retry(self, attempt: int) -> bool:
        """Determine if another attempt follows a failed one.

        Args:
            attempt: Attempt number that just failed (0-indexed).

        Returns:
            True if another attempt is allowed.
        """
        return attempt + 1 < self.max_attempts

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the attempt following ``attempt``.

        Args:
            attempt: Attempt number that just failed (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        return int(min(delay, self.max_delay_ms))


class ResponseSizeExceededError(Exception):
    """Raised when response size exceeds the configured limit."""
