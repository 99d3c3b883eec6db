"""Data models produced by extractors."""

from pydantic import BaseModel, ConfigDict, Field


class ListingItem(BaseModel):
    """One product stub discovered on a listing page.

    ``reference`` is the absolute detail-page URL, or None when the card
    carries no usable link.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    reference: str | None = Field(default=None, description="Detail page URL")
    summary_fields: dict[str, str] = Field(default_factory=dict)


class ListingPage(BaseModel):
    """Header fields and ordered item stubs of a listing page."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    header_fields: dict[str, str] = Field(default_factory=dict)
    items: list[ListingItem] = Field(default_factory=list)
