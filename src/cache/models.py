"""Data models for the derived result cache."""

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """A persisted step result.

    Attributes:
        fingerprint: Hash identifying the unit of work.
        value: JSON-compatible step output.
        computed_at: When the value was computed.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    fingerprint: Annotated[str, Field(min_length=1)]
    value: Any = None
    computed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class CacheStats(BaseModel):
    """Hit and miss counters for one orchestrator run."""

    model_config = ConfigDict(extra="forbid")

    hits: int = 0
    misses: int = 0
    writes: int = 0
    corrupt: int = 0
