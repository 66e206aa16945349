"""Map marker entities produced by the spatial clusterer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, computed_field

from pycrowdmap.models.location import Coordinates, Location


class MapEntity(BaseModel):
    """A single location or a group of locations drawn as one marker.

    The id of a group is the sorted member ids joined with ``-``, so the
    same membership always yields the same id.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    locations: tuple[Location, ...]
    coordinates: Coordinates

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_group(self) -> bool:
        return len(self.locations) > 1

    @property
    def member_ids(self) -> frozenset[str]:
        return frozenset(loc.id for loc in self.locations)

    def total_capacity(self) -> int:
        return sum(loc.capacity for loc in self.locations)

    def total_count(self, counts: dict[str, int]) -> int:
        """Sum the current occupancy of all members (missing ids count as 0)."""
        return sum(counts.get(loc.id, 0) for loc in self.locations)
