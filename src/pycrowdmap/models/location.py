"""Location catalog and position models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Coordinates(BaseModel):
    """A latitude/longitude pair in decimal degrees."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class Location(BaseModel):
    """An event location. Loaded once and never mutated.

    Parameters
    ----------
    id : str
        Unique location id (slug).
    name : str
        Display name.
    capacity : int
        Maximum occupancy, strictly positive.
    popularity : float
        Popularity score in ``[0, 1]``; drives the simulation target band.
    coordinates : Coordinates
        Marker position.
    category : str
        Free-form category used for filtering.
    days : tuple of str
        Scheduled days (e.g. ``("13 Nov", "14 Nov")``).
    venue : str
        Venue description.
    details : str
        Long description.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    id: str
    name: str
    capacity: int = Field(..., gt=0)
    popularity: float = Field(default=0.5, ge=0.0, le=1.0)
    coordinates: Coordinates
    category: str = ""
    days: tuple[str, ...] = ()
    venue: str = ""
    details: str = ""

    @field_validator("id")
    @classmethod
    def _id_non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("id must be non-empty")
        return value

    @property
    def latitude(self) -> float:
        return self.coordinates.latitude

    @property
    def longitude(self) -> float:
        return self.coordinates.longitude


class Position(BaseModel):
    """A raw position sample from the device.

    ``accuracy`` and ``timestamp`` are carried for callers but ignored by
    the geofence logic.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    accuracy: float | None = None
    timestamp: float | None = None
