"""Application settings powered by Pydantic BaseSettings."""

import logging
from typing import Annotated

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shopfetch.aggregator.config import AggregatorConfig
from shopfetch.fetch.config import FetchConfig
from shopfetch.fetch.models import RetryPolicy


class AppSettings(BaseSettings):
    """Centralized environment configuration.

    Every knob is read from a ``SHOPFETCH_``-prefixed environment variable
    or the ``.env`` file, e.g. ``SHOPFETCH_CONCURRENCY_LIMIT=8``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHOPFETCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    concurrency_limit: Annotated[int, Field(ge=1, le=100)] = 5
    cache_ttl_seconds: Annotated[float, Field(gt=0.0)] = 300.0
    item_timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = 4.0
    request_timeout_seconds: Annotated[float, Field(gt=0.0, le=600.0)] = 5.0
    max_attempts: Annotated[int, Field(ge=1, le=10)] = 2
    backoff_base_ms: Annotated[int, Field(ge=0, le=60000)] = 300
    attempt_timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = 3.0
    max_listing_items: Annotated[int, Field(ge=1, le=200)] = 20

    host: str = "127.0.0.1"
    port: Annotated[int, Field(ge=1, le=65535)] = 3002
    log_level: str = "INFO"
    json_logs: bool = True

    @property
    def log_level_value(self) -> int:
        """Numeric logging level, defaulting to INFO for unknown names."""
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO

    def to_fetch_config(self) -> FetchConfig:
        """Derive the fetch layer configuration."""
        return FetchConfig(
            attempt_timeout_seconds=self.attempt_timeout_seconds,
            retry_policy=RetryPolicy(
                max_attempts=self.max_attempts,
                base_delay_ms=self.backoff_base_ms,
            ),
        )

    def to_aggregator_config(self) -> AggregatorConfig:
        """Derive the aggregator deadlines."""
        return AggregatorConfig(
            item_timeout_seconds=self.item_timeout_seconds,
            request_timeout_seconds=self.request_timeout_seconds,
        )


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
