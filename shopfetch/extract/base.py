"""Extractor interface."""

from typing import Any, Protocol, runtime_checkable

from shopfetch.extract.models import ListingPage


@runtime_checkable
class Extractor(Protocol):
    """Protocol for document extractors.

    Extractors are pure: no I/O, no shared state. Both methods raise
    MalformedDocumentError when the expected structure is absent.
    """

    def extract_listing(self, document: str, base_url: str) -> ListingPage:
        """Extract header fields and ordered item stubs from a listing page.

        Args:
            document: Raw listing document.
            base_url: URL the document was fetched from, for resolving links.

        Returns:
            The parsed listing page.
        """
        ...

    def extract_detail(self, document: str) -> dict[str, Any]:
        """Extract detail fields from a product page.

        Args:
            document: Raw detail document.

        Returns:
            Mapping of detail field name to value.
        """
        ...
