"""Geofence check-in/check-out tracking.

Turns a stream of raw position samples into check-in and check-out
deltas. One observer has at most one reconciliation outstanding: while
the deltas from a transition are being submitted, further samples are
dropped.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable

from pycrowdmap._constants import CHECK_IN_RADIUS_M
from pycrowdmap.geo import nearest_location
from pycrowdmap.models.location import Location, Position

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class CheckInTransition:
    """Deltas produced by one observation.

    ``checkout`` is the location being left (-1), ``checkin`` the one
    being entered (+1). At least one of them is set.
    """

    checkout: str | None = None
    checkin: str | None = None

    def deltas(self) -> list[tuple[str, int]]:
        """Ordered ``(location_id, delta)`` pairs: check-out first."""
        result: list[tuple[str, int]] = []
        if self.checkout is not None:
            result.append((self.checkout, -1))
        if self.checkin is not None:
            result.append((self.checkin, 1))
        return result


@dataclasses.dataclass(frozen=True)
class CheckInState:
    """Last confirmed location (``None`` when unassigned) and the in-flight guard."""

    location_id: str | None = None
    in_flight: bool = False


class GeoFenceTracker:
    """Check-in state machine for a single observer.

    States are *Unassigned* (``location_id is None``) and
    *CheckedIn(id)*. The confirmed id is updated optimistically when a
    transition is emitted; a failed submission does not revert it.
    """

    def __init__(
        self,
        locations: Iterable[Location],
        *,
        radius_m: float = CHECK_IN_RADIUS_M,
    ) -> None:
        self._locations: tuple[Location, ...] = tuple(locations)
        self._radius_m = radius_m
        self._location_id: str | None = None
        self._in_flight = False

    @property
    def state(self) -> CheckInState:
        return CheckInState(location_id=self._location_id, in_flight=self._in_flight)

    @property
    def radius_m(self) -> float:
        return self._radius_m

    def candidate_for(self, position: Position) -> str | None:
        """Id of the nearest location if it lies inside the geofence radius."""
        nearest = nearest_location(position.latitude, position.longitude, self._locations)
        if nearest is None:
            return None
        location, distance = nearest
        return location.id if distance < self._radius_m else None

    def observe(self, position: Position) -> CheckInTransition | None:
        """Feed one position sample.

        Returns the transition to submit, or ``None`` when the sample was
        dropped (a reconciliation is still outstanding) or the observer
        did not change location. After a transition is returned the
        tracker is in flight until :meth:`resolve` is called.
        """
        if self._in_flight:
            _logger.debug("Dropping position sample; previous transition still in flight")
            return None

        candidate = self.candidate_for(position)
        if candidate == self._location_id:
            return None

        transition = CheckInTransition(checkout=self._location_id, checkin=candidate)
        _logger.info("Location change detected. Old: %s, New: %s", self._location_id, candidate)
        self._location_id = candidate
        self._in_flight = True
        return transition

    def resolve(self) -> None:
        """Clear the in-flight guard once the transition's submissions settle."""
        self._in_flight = False

    def reset(self) -> None:
        self._location_id = None
        self._in_flight = False
