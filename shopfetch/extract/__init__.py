"""Document field extraction."""

from shopfetch.extract.base import Extractor
from shopfetch.extract.models import ListingItem, ListingPage
from shopfetch.extract.tokopedia import TokopediaExtractor


__all__ = [
    "Extractor",
    "ListingItem",
    "ListingPage",
    "TokopediaExtractor",
]
