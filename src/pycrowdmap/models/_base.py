"""Base model for pycrowdmap data.

Every wire model inherits from :class:`CrowdBaseModel` which provides:

* ``frozen=True`` so parsed payloads can be shared freely between
  the push thread, the event loop and consumers.
* ``extra="ignore"`` so servers may add fields without breaking
  older clients.
* A ``raw`` dict that captures the original payload.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CrowdBaseModel(BaseModel):
    """Base for server response and push payload models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original payload dict."""

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        if "raw" in values:
            return values
        stashed = dict(values)
        stashed["raw"] = dict(values)
        return stashed
