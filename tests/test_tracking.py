from __future__ import annotations

from pycrowdmap.models.location import Position
from pycrowdmap.tracking import CheckInTransition, GeoFenceTracker
from tests.helpers import BASE_LAT, BASE_LON


def _at(lat_offset: float) -> Position:
    return Position(latitude=BASE_LAT + lat_offset, longitude=BASE_LON)


def test_first_entry_checks_in_without_checkout(locations) -> None:
    tracker = GeoFenceTracker(locations)

    transition = tracker.observe(_at(0.002))

    assert transition == CheckInTransition(checkout=None, checkin="library")
    assert transition.deltas() == [("library", 1)]
    assert tracker.state.location_id == "library"
    assert tracker.state.in_flight


def test_samples_dropped_while_in_flight(locations) -> None:
    tracker = GeoFenceTracker(locations)
    tracker.observe(_at(0.002))

    assert tracker.observe(_at(0.004)) is None
    assert tracker.state.location_id == "library"

    tracker.resolve()
    transition = tracker.observe(_at(0.004))
    assert transition == CheckInTransition(checkout="library", checkin="lt-hall")
    assert transition.deltas() == [("library", -1), ("lt-hall", 1)]


def test_same_location_produces_nothing(locations) -> None:
    tracker = GeoFenceTracker(locations)
    tracker.observe(_at(0.002))
    tracker.resolve()

    assert tracker.observe(_at(0.0021)) is None
    assert not tracker.state.in_flight


def test_leaving_radius_checks_out(locations) -> None:
    tracker = GeoFenceTracker(locations)
    tracker.observe(_at(0.002))
    tracker.resolve()

    # ~111 m from library, far from everything else.
    transition = tracker.observe(_at(0.003))

    assert transition == CheckInTransition(checkout="library", checkin=None)
    assert transition.deltas() == [("library", -1)]
    assert tracker.state.location_id is None


def test_outside_every_geofence_while_unassigned(locations) -> None:
    tracker = GeoFenceTracker(locations)
    assert tracker.observe(_at(0.003)) is None
    assert tracker.state.location_id is None


def test_radius_boundary_is_exclusive(locations) -> None:
    tracker = GeoFenceTracker(locations, radius_m=11.0)
    # ~11.1 m from library
    assert tracker.candidate_for(_at(0.0019)) is None

    wider = GeoFenceTracker(locations, radius_m=12.0)
    assert wider.candidate_for(_at(0.0019)) == "library"


def test_alternating_locations_net_to_one_checkin(locations) -> None:
    tracker = GeoFenceTracker(locations)
    net: dict[str, int] = {}

    for offset in (0.002, 0.004, 0.002, 0.004, 0.002):
        transition = tracker.observe(_at(offset))
        assert transition is not None
        for location_id, delta in transition.deltas():
            net[location_id] = net.get(location_id, 0) + delta
        tracker.resolve()

    assert net == {"library": 1, "lt-hall": 0}
    assert sum(net.values()) == 1


def test_nearest_wins_inside_overlapping_fences(locations) -> None:
    tracker = GeoFenceTracker(locations)
    # ~1 m from food-court, ~6.7 m from main-stage
    transition = tracker.observe(_at(0.00006))
    assert transition is not None
    assert transition.checkin == "food-court"


def test_reset_clears_state(locations) -> None:
    tracker = GeoFenceTracker(locations)
    tracker.observe(_at(0.002))
    tracker.reset()
    assert tracker.state.location_id is None
    assert not tracker.state.in_flight
