"""Counter request/response and push payload models."""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pycrowdmap.models._base import CrowdBaseModel


def new_idempotency_key() -> str:
    """Return a fresh opaque idempotency key."""
    return uuid.uuid4().hex


class DeltaRequest(BaseModel):
    """A pending counter submission.

    Each attempt carries its own idempotency key so a retried request
    cannot be applied twice by the server.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    event_id: str
    delta: int
    idempotency_key: str = Field(default_factory=new_idempotency_key)

    @field_validator("event_id")
    @classmethod
    def _event_id_non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("event_id must be non-empty")
        return value

    @field_validator("delta")
    @classmethod
    def _delta_non_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("delta must be non-zero")
        return value

    def single_payload(self) -> dict[str, Any]:
        """Body for the incr/decr endpoints (magnitude only; direction is in the path)."""
        return {
            "event_id": self.event_id,
            "delta": abs(self.delta),
            "idempotency_key": self.idempotency_key,
        }

    def batch_item(self) -> dict[str, Any]:
        """Item for the batch endpoint (signed delta)."""
        return {
            "event_id": self.event_id,
            "delta": self.delta,
            "idempotency_key": self.idempotency_key,
        }


class LiveCount(CrowdBaseModel):
    """A server-resolved count for one location.

    Used for both batch result items and ``live_count_update`` pushes.
    """

    event_id: str
    livecount: int


class DeltaResult(CrowdBaseModel):
    """Response of a single incr/decr request."""

    livecount: int


class BatchResult(CrowdBaseModel):
    """Response of a batch request."""

    results: list[LiveCount] = Field(default_factory=list)

    @field_validator("results", mode="before")
    @classmethod
    def _drop_items_without_id(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [item for item in value if not isinstance(item, dict) or item.get("event_id")]


class Snapshot(CrowdBaseModel):
    """Full authoritative replacement of the occupancy cache."""

    counts: dict[str, int]
