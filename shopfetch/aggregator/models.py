"""Result models for the aggregator."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from shopfetch.extract.models import ListingItem


class ItemStatus(str, Enum):
    """Outcome of one item in an aggregate.

    - COMPLETE: Summary and detail fields present
    - PARTIAL: Detail fetch failed or timed out; summary fields survive
    - FAILED: Reserved for total request failure
    """

    COMPLETE = "COMPLETE"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class DetailResult(BaseModel):
    """Merged listing and detail data for one item."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    summary_fields: dict[str, str] = Field(default_factory=dict)
    detail_fields: dict[str, Any] = Field(default_factory=dict)
    status: ItemStatus
    error: str | None = Field(
        default=None, description="Why the item degraded, if it did"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def fields(self) -> dict[str, Any]:
        """Summary fields overlaid with detail fields."""
        return {**self.summary_fields, **self.detail_fields}

    @classmethod
    def complete(cls, item: ListingItem, detail_fields: dict[str, Any]) -> "DetailResult":
        """Build a complete result from a listing item and its detail fields."""
        return cls(
            summary_fields=dict(item.summary_fields),
            detail_fields=detail_fields,
            status=ItemStatus.COMPLETE,
        )

    @classmethod
    def partial(cls, item: ListingItem, reason: str) -> "DetailResult":
        """Build a summary-only result."""
        return cls(
            summary_fields=dict(item.summary_fields),
            status=ItemStatus.PARTIAL,
            error=reason,
        )


class AggregateResult(BaseModel):
    """Listing header and items, in listing order."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_url: str
    header_fields: dict[str, str] = Field(default_factory=dict)
    items: list[DetailResult] = Field(default_factory=list)

    def count_by_status(self) -> dict[str, int]:
        """Count items per status."""
        counts = {status.value: 0 for status in ItemStatus}
        for item in self.items:
            counts[item.status.value] += 1
        return counts


class ProductResult(BaseModel):
    """Fields of a single product page."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_url: str
    fields: dict[str, Any] = Field(default_factory=dict)
