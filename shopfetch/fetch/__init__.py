"""HTTP fetch layer with retries and failure classification.

This module provides robust HTTP fetch operations with:
- URL validation before any network call
- Configurable retry policy with exponential backoff
- Rotating browser User-Agent headers
- Per-attempt timeout and maximum response size enforcement
- Metrics collection for observability
"""

from shopfetch.fetch.client import HttpFetcher
from shopfetch.fetch.config import FetchConfig
from shopfetch.fetch.metrics import FetchMetrics
from shopfetch.fetch.models import (
    FetchedDocument,
    FetchError,
    FetchErrorClass,
    FetchRequest,
    ResponseSizeExceededError,
    RetryPolicy,
)
from shopfetch.fetch.url import normalize_url, validate_url
from shopfetch.fetch.user_agents import UserAgentPool


__all__ = [
    # Client
    "HttpFetcher",
    # Config
    "FetchConfig",
    # Models
    "FetchedDocument",
    "FetchError",
    "FetchErrorClass",
    "FetchRequest",
    "ResponseSizeExceededError",
    "RetryPolicy",
    # Metrics
    "FetchMetrics",
    # URLs
    "normalize_url",
    "validate_url",
    # Headers
    "UserAgentPool",
]
