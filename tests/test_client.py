from __future__ import annotations

import pytest

from pycrowdmap._constants import BATCH_ENDPOINT, DECREMENT_ENDPOINT, INCREMENT_ENDPOINT
from pycrowdmap.catalog import LocationCatalog
from pycrowdmap.client import CrowdMapClient
from pycrowdmap.config import CrowdMapConfig, SimulationMode
from pycrowdmap.exceptions import CrowdMapTransportError
from pycrowdmap.models.location import Position
from pycrowdmap.reconciler import ConnectionStatus
from pycrowdmap.state.events import UpdateSource
from pycrowdmap.tracking import CheckInTransition
from tests.helpers import BASE_LAT, BASE_LON, make_location


def _config(**overrides: object) -> CrowdMapConfig:
    values: dict[str, object] = {"push_enabled": False, "simulation_interval": 60.0}
    values.update(overrides)
    return CrowdMapConfig(**values)  # type: ignore[arg-type]


def _at(lat_offset: float) -> Position:
    return Position(latitude=BASE_LAT + lat_offset, longitude=BASE_LON)


@pytest.mark.asyncio
async def test_qr_scan_success(catalog, backend) -> None:
    backend.counts["library"] = 4
    async with CrowdMapClient(_config(), catalog, transport=backend) as client:
        result = await client.report_qr_scan('{"eventId": "library", "action": "entry"}')

        assert result.success
        assert result.message == "Successfully checked into Library!"
        assert result.count == 5
        assert client.current_counts()["library"] == 5


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ("not a valid id!", "Could not parse QR code data."),
        ('{"action": "entry"}', "Invalid QR Code: Event ID missing."),
        ("nowhere", "Event 'nowhere' not found."),
    ],
)
async def test_qr_scan_rejected_without_submission(catalog, backend, raw: str, message: str) -> None:
    async with CrowdMapClient(_config(), catalog, transport=backend) as client:
        result = await client.report_qr_scan(raw)

    assert not result.success
    assert result.message == message
    assert backend.calls == []


@pytest.mark.asyncio
async def test_qr_scan_transport_failure(catalog, backend) -> None:
    backend.fail_with = CrowdMapTransportError("Event not found", status_code=404, endpoint=INCREMENT_ENDPOINT)
    async with CrowdMapClient(_config(), catalog, transport=backend) as client:
        result = await client.report_qr_scan("library")

        assert not result.success
        assert result.message == "Event not found"
        assert client.current_counts()["library"] == 0


@pytest.mark.asyncio
async def test_position_flow_submits_checkin_and_checkout(catalog, backend) -> None:
    transitions: list[CheckInTransition] = []
    async with CrowdMapClient(_config(), catalog, transport=backend, on_check_in=transitions.append) as client:
        assert client.report_position(_at(0.002)) is not None
        # Dropped: the first transition is still being submitted.
        assert client.report_position(_at(0.004)) is None
        await client.drain()

        assert client.check_in_state.location_id == "library"
        assert not client.check_in_state.in_flight
        assert client.current_counts()["library"] == 1

        client.report_position(_at(0.004))
        await client.drain()

        assert client.current_counts()["library"] == 0
        assert client.current_counts()["lt-hall"] == 1

    assert [t.checkin for t in transitions] == ["library", "lt-hall"]
    assert len(backend.calls_to(INCREMENT_ENDPOINT)) == 2
    assert len(backend.calls_to(DECREMENT_ENDPOINT)) == 1


@pytest.mark.asyncio
async def test_position_submission_failure_keeps_optimistic_state(catalog, backend) -> None:
    backend.fail_with = CrowdMapTransportError("Server error: HTTP 503", status_code=503)
    async with CrowdMapClient(_config(), catalog, transport=backend) as client:
        client.report_position(_at(0.002))
        await client.drain()

        assert client.check_in_state.location_id == "library"
        assert not client.check_in_state.in_flight
        assert client.current_counts()["library"] == 0


@pytest.mark.asyncio
async def test_server_simulation_tick_dispatches_one_batch(catalog, backend) -> None:
    config = _config(simulation_mode=SimulationMode.SERVER, simulation_batch_size=2)
    async with CrowdMapClient(config, catalog, transport=backend) as client:
        steps = client.simulation_tick()
        await client.drain()

        batches = backend.calls_to(BATCH_ENDPOINT)
        if steps:
            assert len(batches) == 1
            assert len(batches[0]) == len(steps) <= 2
            for step in steps:
                assert client.reconciler.store.source_of(step.location_id) == UpdateSource.SUBMISSION
        else:
            assert batches == []


@pytest.mark.asyncio
async def test_local_simulation_writes_store_without_network(catalog, backend) -> None:
    config = _config(simulation_mode=SimulationMode.LOCAL)
    async with CrowdMapClient(config, catalog, transport=backend) as client:
        client.start_simulation()
        assert client.simulation_running
        seeded = client.current_counts()
        assert seeded["main-stage"] > 0

        steps = client.simulation_tick()

        for step in steps:
            assert client.current_counts()[step.location_id] == step.new_count
            assert client.reconciler.store.source_of(step.location_id) == UpdateSource.LOCAL
        client.stop_simulation()
        assert not client.simulation_running

    assert backend.calls == []


@pytest.mark.asyncio
async def test_auto_mode_runs_locally_while_degraded(catalog, backend) -> None:
    config = _config(simulation_mode=SimulationMode.AUTO)
    async with CrowdMapClient(config, catalog, transport=backend) as client:
        # Push disabled: nothing will deliver snapshots.
        assert client.reconciler.degraded
        assert client.connection_status == ConnectionStatus.DISCONNECTED
        client.simulation_tick()
        await client.drain()

    assert backend.calls_to(BATCH_ENDPOINT) == []


@pytest.mark.asyncio
async def test_counts_listener_sees_pushed_snapshot(catalog, backend) -> None:
    seen: list[dict[str, int]] = []
    async with CrowdMapClient(_config(), catalog, transport=backend, on_counts=seen.append) as client:
        client.reconciler.apply_snapshot({"library": 12})
        assert not client.reconciler.degraded

    assert seen[-1]["library"] == 12


def test_map_entities_uses_configured_threshold(catalog) -> None:
    client = CrowdMapClient(_config(), catalog)

    assert len(client.map_entities()) == 3
    assert len(client.map_entities(threshold_m=0.0)) == 4
    visible = [loc for loc in catalog if loc.id != "food-court"]
    assert {e.id for e in client.map_entities(visible)} == {"main-stage", "library", "lt-hall"}


@pytest.mark.asyncio
async def test_server_tick_moves_each_location_at_most_once(backend) -> None:
    small = LocationCatalog(
        [
            make_location("a", BASE_LAT, capacity=1000, popularity=1.0),
            make_location("b", BASE_LAT + 0.01, capacity=1000, popularity=1.0),
        ]
    )
    config = _config(simulation_mode=SimulationMode.SERVER)
    async with CrowdMapClient(config, small, transport=backend) as client:
        client.simulation_tick()
        await client.drain()

    batch = backend.calls_to(BATCH_ENDPOINT)[0]
    assert sorted(item["event_id"] for item in batch) == ["a", "b"]
    for count in backend.counts.values():
        assert count <= 1000 * 0.025


@pytest.mark.asyncio
async def test_exit_clears_check_in_state(catalog, backend) -> None:
    client = CrowdMapClient(_config(), catalog, transport=backend)
    async with client:
        client.report_position(_at(0.002))
        assert client.check_in_state.location_id == "library"

    assert client.check_in_state.location_id is None
    assert not client.check_in_state.in_flight
