"""Configuration for the listing aggregator."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator


# Default deadlines
DEFAULT_ITEM_TIMEOUT_SECONDS = 4.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 5.0


class AggregatorConfig(BaseModel):
    """Deadlines applied by the aggregator.

    ``item_timeout_seconds`` races each detail task, measured from the
    moment it acquires its gate slot. ``request_timeout_seconds`` races
    the whole listing-fetch-to-merge pipeline.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    item_timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = (
        DEFAULT_ITEM_TIMEOUT_SECONDS
    )
    request_timeout_seconds: Annotated[float, Field(gt=0.0, le=600.0)] = (
        DEFAULT_REQUEST_TIMEOUT_SECONDS
    )

    @model_validator(mode="after")
    def validate_deadlines(self) -> "AggregatorConfig":
        """An item deadline beyond the request deadline could never fire."""
        if self.item_timeout_seconds > self.request_timeout_seconds:
            msg = (
                f"item_timeout_seconds ({self.item_timeout_seconds}) must not exceed "
                f"request_timeout_seconds ({self.request_timeout_seconds})"
            )
            raise ValueError(msg)
        return self
