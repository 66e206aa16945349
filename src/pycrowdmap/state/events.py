"""Normalized occupancy updates.

Every write path (snapshot, push, submission response, local simulation)
converts its input into these updates. Only the store applies them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UpdateSource(StrEnum):
    SNAPSHOT = "snapshot"
    PUSH = "push"
    SUBMISSION = "submission"
    LOCAL = "local"


class OccupancyUpdate(BaseModel):
    """A single-location write to apply to the store."""

    model_config = ConfigDict(frozen=True)

    location_id: str
    count: int
    source: UpdateSource
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("location_id")
    @classmethod
    def _normalize_location_id(cls, value: str) -> str:
        location_id = value.strip()
        if not location_id:
            raise ValueError("location_id must be non-empty")
        return location_id
