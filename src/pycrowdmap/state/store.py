"""In-memory occupancy store.

This is the only component allowed to write occupancy counts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict

from pycrowdmap.state.events import OccupancyUpdate, UpdateSource
from pycrowdmap.state.policy import clamp_count, is_server_source

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EntryMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: UpdateSource
    observed_at: datetime


class OccupancyStore:
    """Location id -> count mapping with ``0 <= count <= capacity`` enforced on every write.

    Ids absent from *capacities* are still stored (servers may know about
    locations the catalog does not) but are only clamped at zero.
    """

    def __init__(
        self,
        capacities: Mapping[str, int],
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._capacities = dict(capacities)
        self._clock = clock
        self._counts: dict[str, int] = dict.fromkeys(self._capacities, 0)
        self._meta: dict[str, EntryMeta] = {}

    def _clamped(self, location_id: str, count: int) -> int:
        capacity = self._capacities.get(location_id)
        clamped = clamp_count(count, capacity)
        if clamped != count:
            _logger.debug("Clamped %s count %d to %d (capacity=%s)", location_id, count, clamped, capacity)
        return clamped

    def apply(self, update: OccupancyUpdate) -> int:
        """Apply one update and return the stored value."""
        value = self._clamped(update.location_id, update.count)
        self._counts[update.location_id] = value
        self._meta[update.location_id] = EntryMeta(source=update.source, observed_at=update.observed_at)
        return value

    def replace(self, counts: Mapping[str, int], *, source: UpdateSource = UpdateSource.SNAPSHOT) -> None:
        """Replace the whole mapping.

        Catalog locations missing from *counts* reset to zero.
        """
        now = self._clock()
        fresh: dict[str, int] = dict.fromkeys(self._capacities, 0)
        for location_id, count in counts.items():
            fresh[location_id] = self._clamped(location_id, count)
        self._counts = fresh
        self._meta = {location_id: EntryMeta(source=source, observed_at=now) for location_id in fresh}

    def get(self, location_id: str) -> int:
        return self._counts.get(location_id, 0)

    def counts(self) -> dict[str, int]:
        """Copy of the current mapping."""
        return dict(self._counts)

    def source_of(self, location_id: str) -> UpdateSource | None:
        meta = self._meta.get(location_id)
        return meta.source if meta is not None else None

    def is_authoritative(self, location_id: str) -> bool:
        """Whether the stored value came from the server rather than local arithmetic."""
        source = self.source_of(location_id)
        return source is not None and is_server_source(source)

    def capacity_of(self, location_id: str) -> int | None:
        return self._capacities.get(location_id)
