"""HTTP endpoints for shop and product scraping."""

from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from shopfetch import __version__
from shopfetch.aggregator import (
    AggregateResult,
    AggregatorMetrics,
    ListingAggregator,
    ProductResult,
)
from shopfetch.errors import InvalidInputError
from shopfetch.fetch import FetchMetrics


router = APIRouter(tags=["scraping"])

SHOP_EXAMPLE = (
    "/api/shop?url=https://www.tokopedia.com/officialjkt48/etalase/"
    "pre-order-jkt48-birthday-t-shirt"
)
PRODUCT_EXAMPLE = (
    "/api/product?url=https://www.tokopedia.com/officialjkt48/"
    "pre-order-jkt48-birthday-t-shirt-azizi-asadel-2024"
)


def get_aggregator(request: Request) -> ListingAggregator:
    """Return the process-wide aggregator stored on the application."""
    aggregator: ListingAggregator = request.app.state.aggregator
    return aggregator


@router.get("/")
def index() -> dict[str, Any]:
    """Describe the service and its endpoints."""
    return {
        "name": "Shopfetch API",
        "version": __version__,
        "endpoints": [
            {
                "name": "Scrape Shop",
                "method": "GET",
                "path": "/api/shop",
                "params": {"url": "Shop URL (required)"},
                "example": SHOP_EXAMPLE,
            },
            {
                "name": "Scrape Individual Product",
                "method": "GET",
                "path": "/api/product",
                "params": {"url": "Product URL (required)"},
                "example": PRODUCT_EXAMPLE,
            },
        ],
    }


@router.get("/health")
def health(
    aggregator: ListingAggregator = Depends(get_aggregator),
) -> dict[str, Any]:
    """Report liveness with gate, cache and counter gauges."""
    gate = aggregator.gate
    return {
        "status": "ok",
        "gate": {
            "limit": gate.limit,
            "running": gate.running,
            "waiting": gate.waiting,
            "peak_running": gate.peak_running,
        },
        "cache": aggregator.cache.stats(),
        "fetch": FetchMetrics.get_instance().to_dict(),
        "aggregator": AggregatorMetrics.get_instance().to_dict(),
    }


@router.get("/api/shop", response_model=AggregateResult)
def scrape_shop(
    url: str | None = Query(default=None, description="Shop URL (required)"),
    aggregator: ListingAggregator = Depends(get_aggregator),
) -> AggregateResult:
    """Aggregate a shop listing and its product pages."""
    if not url:
        raise InvalidInputError("Shop URL is required")
    return aggregator.aggregate(url)


@router.get("/api/product", response_model=ProductResult)
def scrape_product(
    url: str | None = Query(default=None, description="Product URL (required)"),
    aggregator: ListingAggregator = Depends(get_aggregator),
) -> ProductResult:
    """Scrape a single product page."""
    if not url:
        raise InvalidInputError("Product URL is required")
    return aggregator.product(url)
