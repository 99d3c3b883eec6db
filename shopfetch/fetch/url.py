"""URL validation and cache-key normalization."""

from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from shopfetch.errors import InvalidInputError
from shopfetch.fetch.constants import ALLOWED_SCHEMES


# Tracking parameters that never change the page content
DEFAULT_STRIP_PARAMS: frozenset[str] = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "utm_id",
        "fbclid",
        "gclid",
        "msclkid",
        "_ga",
        "_gl",
        "extparam",
        "src",
        "trkid",
    }
)


def validate_url(url: str | None) -> str:
    """Check that a URL is a non-empty absolute http(s) URL.

    Args:
        url: Candidate URL.

    Returns:
        The URL with surrounding whitespace removed.

    Raises:
        InvalidInputError: If the URL is empty or malformed.
    """
    if url is None or not url.strip():
        raise InvalidInputError("URL is required")

    candidate = url.strip()
    message = f"Invalid URL: {candidate!r} is not an absolute http(s) URL"
    try:
        parsed = urlparse(candidate)
        # Accessing port validates it (range and digits)
        parsed.port  # noqa: B018
    except ValueError as e:
        raise InvalidInputError(message, details={"url": candidate}) from e
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.hostname:
        raise InvalidInputError(message, details={"url": candidate})
    return candidate


def normalize_url(url: str | None) -> str:
    """Normalize a URL so equivalent requests share a cache key.

    Normalization includes:
    - Lowercasing the scheme and host
    - Removing trailing slashes (except for root path)
    - Stripping tracking query parameters
    - Removing fragments

    Args:
        url: The URL to normalize.

    Returns:
        Normalized URL string.

    Raises:
        InvalidInputError: If the URL is empty or malformed.
    """
    parsed = urlparse(validate_url(url))

    path = parsed.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/")

    query = _filter_query_params(parsed.query)

    return urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, query, "")
    )


def _filter_query_params(query: str) -> str:
    """Drop tracking parameters, keeping the order of the rest."""
    if not query:
        return ""
    kept = [
        (key, value)
        for key, value in parse_qsl(query, keep_blank_values=True)
        if key.lower() not in DEFAULT_STRIP_PARAMS
    ]
    return urlencode(kept, safe="")
