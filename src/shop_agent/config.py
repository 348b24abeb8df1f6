"""Configuration models for the shopping assistant."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RetryPolicy(BaseModel):
    """Exponential backoff applied to rate-limited model calls."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=30000, ge=0)

    def delay_ms(self, attempt: int) -> int:
        """Delay after the failed 0-indexed `attempt`."""
        return min(self.base_delay_ms * (2**attempt), self.max_delay_ms)


class LookupConfig(BaseModel):
    """Configures the catalog lookup tool."""

    default_n: int = Field(default=10, ge=1)
    max_n: int = Field(default=50, ge=1)


class AgentConfig(BaseModel):
    """Configures the decide/execute loop and the model binding."""

    recursion_limit: int = Field(default=15, ge=1)
    model_name: str = "gpt-4o-mini"
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
