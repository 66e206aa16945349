from __future__ import annotations

from datetime import UTC, datetime

from pycrowdmap.state.events import OccupancyUpdate, UpdateSource
from pycrowdmap.state.policy import clamp_count, is_server_source
from pycrowdmap.state.store import OccupancyStore


def _dt() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _store() -> OccupancyStore:
    return OccupancyStore({"a": 100, "b": 50}, clock=_dt)


def test_catalog_ids_start_at_zero() -> None:
    assert _store().counts() == {"a": 0, "b": 0}


def test_apply_clamps_into_capacity() -> None:
    store = _store()

    assert store.apply(OccupancyUpdate(location_id="a", count=150, source=UpdateSource.PUSH)) == 100
    assert store.apply(OccupancyUpdate(location_id="b", count=-3, source=UpdateSource.PUSH)) == 0
    assert store.counts() == {"a": 100, "b": 0}


def test_unknown_id_only_clamped_at_zero() -> None:
    store = _store()
    assert store.apply(OccupancyUpdate(location_id="zzz", count=9999, source=UpdateSource.PUSH)) == 9999
    assert store.capacity_of("zzz") is None


def test_server_value_overwrites_local_arithmetic() -> None:
    store = _store()
    store.apply(OccupancyUpdate(location_id="a", count=40, source=UpdateSource.LOCAL))
    assert not store.is_authoritative("a")

    store.apply(OccupancyUpdate(location_id="a", count=12, source=UpdateSource.PUSH))

    assert store.get("a") == 12
    assert store.is_authoritative("a")


def test_replace_resets_missing_catalog_ids() -> None:
    store = _store()
    store.apply(OccupancyUpdate(location_id="b", count=20, source=UpdateSource.SUBMISSION))

    store.replace({"a": 30})

    assert store.counts() == {"a": 30, "b": 0}
    assert store.source_of("b") == UpdateSource.SNAPSHOT


def test_counts_returns_a_copy() -> None:
    store = _store()
    snapshot = store.counts()
    snapshot["a"] = 77
    assert store.get("a") == 0


def test_policy_helpers() -> None:
    assert is_server_source(UpdateSource.SUBMISSION)
    assert not is_server_source(UpdateSource.LOCAL)
    assert clamp_count(5, None) == 5
    assert clamp_count(-1, None) == 0
    assert clamp_count(11, 10) == 10
