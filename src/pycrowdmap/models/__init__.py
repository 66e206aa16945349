"""Data models for pycrowdmap."""

from pycrowdmap.models._base import CrowdBaseModel
from pycrowdmap.models.counters import (
    BatchResult,
    DeltaRequest,
    DeltaResult,
    LiveCount,
    Snapshot,
    new_idempotency_key,
)
from pycrowdmap.models.location import Coordinates, Location, Position
from pycrowdmap.models.map_entity import MapEntity

__all__ = [
    "BatchResult",
    "Coordinates",
    "CrowdBaseModel",
    "DeltaRequest",
    "DeltaResult",
    "LiveCount",
    "Location",
    "MapEntity",
    "Position",
    "Snapshot",
    "new_idempotency_key",
]
