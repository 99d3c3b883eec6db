"""Field extraction for Tokopedia shop and product pages."""

from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from shopfetch.errors import MalformedDocumentError
from shopfetch.extract.constants import (
    CARD_CAMPAIGN,
    CARD_IMAGE,
    CARD_LINK,
    CARD_PRICE,
    CARD_RATING,
    CARD_SOLD,
    CARD_STATUS,
    CARD_TITLE,
    DEFAULT_MAX_LISTING_ITEMS,
    DETAIL_DESCRIPTION,
    DETAIL_MAIN_IMAGE,
    DETAIL_PRICE,
    DETAIL_THUMBNAILS,
    DETAIL_TITLE,
    DETAIL_VARIANT_BUTTONS,
    FULL_SIZE_TOKEN,
    MAX_PRODUCT_IMAGES,
    PRODUCT_CARD,
    SHOP_LOCATION,
    SHOP_NAME,
    THUMBNAIL_SIZE_TOKEN,
)
from shopfetch.extract.models import ListingItem, ListingPage
from shopfetch.fetch.constants import ALLOWED_SCHEMES


class TokopediaExtractor:
    """Maps Tokopedia shop and product markup to named fields.

    Listing pages yield the shop header and up to ``max_items`` product
    cards in page order. Product pages yield title, price, up to five
    images, description and variant sizes.
    """

    def __init__(self, max_items: int = DEFAULT_MAX_LISTING_ITEMS) -> None:
        """Initialize the extractor.

        Args:
            max_items: Maximum number of product cards taken from a listing.
        """
        self._max_items = max_items

    def extract_listing(self, document: str, base_url: str) -> ListingPage:
        """Extract the shop header and product cards from a listing page.

        Args:
            document: Raw listing HTML.
            base_url: Listing URL, used to resolve relative product links.

        Returns:
            ListingPage with items in page order.

        Raises:
            MalformedDocumentError: If the page has neither cards nor a header.
        """
        soup = _parse(document)
        cards = soup.select(PRODUCT_CARD)
        shop_name = _text(soup.select_one(SHOP_NAME))

        if not cards and not shop_name:
            raise MalformedDocumentError(
                "Listing document has neither product cards nor a shop header",
                details={"url": base_url},
            )

        return ListingPage(
            header_fields={
                "shop_name": shop_name,
                "shop_location": _text(soup.select_one(SHOP_LOCATION)),
            },
            items=[self._parse_card(card, base_url) for card in cards[: self._max_items]],
        )

    def extract_detail(self, document: str) -> dict[str, Any]:
        """Extract product fields from a detail page.

        Args:
            document: Raw product HTML.

        Returns:
            Mapping of detail field name to value.

        Raises:
            MalformedDocumentError: If the page has no product title.
        """
        soup = _parse(document)
        title = _text(soup.select_one(DETAIL_TITLE))
        if not title:
            raise MalformedDocumentError("Product document has no product title")

        variant_buttons = soup.select(DETAIL_VARIANT_BUTTONS)

        return {
            "product_title": title,
            "product_price": _text(soup.select_one(DETAIL_PRICE)),
            "product_images": self._collect_images(soup),
            "product_description": _text(soup.select_one(DETAIL_DESCRIPTION)),
            "size_info": {
                "count": str(len(variant_buttons)),
                "sizes": [_text(button) for button in variant_buttons],
            },
        }

    def _parse_card(self, card: Tag, base_url: str) -> ListingItem:
        """Build a listing item from one product card."""
        link = _resolve_link(_attr(card.select_one(CARD_LINK), "href"), base_url)
        return ListingItem(
            reference=link,
            summary_fields={
                "product_title": _text(card.select_one(CARD_TITLE)),
                "product_price": _text(card.select_one(CARD_PRICE)),
                "product_image": _attr(card.select_one(CARD_IMAGE), "src"),
                "product_link": link or "",
                "product_status": _text(card.select_one(CARD_STATUS)),
                "product_rating": _text(card.select_one(CARD_RATING)),
                "product_sold": _text(card.select_one(CARD_SOLD)),
                "product_campaign": _text(card.select_one(CARD_CAMPAIGN)),
            },
        )

    def _collect_images(self, soup: BeautifulSoup) -> list[str]:
        """Main image first, then upscaled thumbnails; SVG icons skipped."""
        images: list[str] = []
        for img in soup.select(DETAIL_THUMBNAILS)[:MAX_PRODUCT_IMAGES]:
            src = _attr(img, "src")
            if src and "svg" not in src:
                images.append(src.replace(THUMBNAIL_SIZE_TOKEN, FULL_SIZE_TOKEN))

        main_image = _attr(soup.select_one(DETAIL_MAIN_IMAGE), "src")
        if main_image and main_image not in images:
            images.insert(0, main_image)

        return images[:MAX_PRODUCT_IMAGES]


def _parse(document: str) -> BeautifulSoup:
    if not document or not document.strip():
        raise MalformedDocumentError("Document is empty")
    return BeautifulSoup(document, "lxml")


def _text(node: Tag | None) -> str:
    if node is None:
        return ""
    return node.get_text().strip()


def _attr(node: Tag | None, name: str) -> str:
    if node is None:
        return ""
    value = node.get(name)
    if isinstance(value, list):
        return " ".join(value).strip()
    return (value or "").strip()


def _resolve_link(href: str, base_url: str) -> str | None:
    """Resolve a card link against the listing URL; None if unusable."""
    if not href or href.startswith("#"):
        return None
    try:
        absolute = urljoin(base_url, href)
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme not in ALLOWED_SCHEMES or not parsed.netloc:
        return None
    return absolute
