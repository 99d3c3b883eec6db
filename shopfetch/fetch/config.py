"""Configuration models for the HTTP fetch layer."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shopfetch.fetch.constants import (
    DEFAULT_ACCEPT,
    DEFAULT_ACCEPT_LANGUAGE,
    DEFAULT_ATTEMPT_TIMEOUT_SECONDS,
    DEFAULT_MAX_RESPONSE_SIZE_BYTES,
    DEFAULT_USER_AGENTS,
)
from shopfetch.fetch.models import RetryPolicy


class FetchConfig(BaseModel):
    """Configuration for the HTTP fetch layer.

    Central configuration for all HTTP fetch operations including
    the per-attempt timeout, retry policy, and header identity pool.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_agents: tuple[str, ...] = Field(
        default=DEFAULT_USER_AGENTS,
        min_length=1,
        description="Browser User-Agent strings rotated across attempts",
    )
    accept: str = DEFAULT_ACCEPT
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE
    attempt_timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = (
        DEFAULT_ATTEMPT_TIMEOUT_SECONDS
    )
    max_response_size_bytes: Annotated[int, Field(ge=1024, le=100 * 1024 * 1024)] = (
        DEFAULT_MAX_RESPONSE_SIZE_BYTES
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("user_agents")
    @classmethod
    def validate_user_agents(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Reject blank identities."""
        if any(not agent.strip() for agent in v):
            msg = "user_agents must not contain blank entries"
            raise ValueError(msg)
        return v
