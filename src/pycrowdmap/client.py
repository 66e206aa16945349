"""High-level async client composing the occupancy state engine."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Coroutine, Sequence
from typing import Any

import aiohttp

from pycrowdmap._push import CrowdPushRuntime
from pycrowdmap._transport import HttpTransport, Transport
from pycrowdmap.catalog import LocationCatalog
from pycrowdmap.clustering import cluster_locations
from pycrowdmap.config import CrowdMapConfig, SimulationMode
from pycrowdmap.exceptions import CrowdMapError, MalformedInputError, UnknownLocationError
from pycrowdmap.models.location import Location, Position
from pycrowdmap.models.map_entity import MapEntity
from pycrowdmap.qr import QrScanResult, resolve_qr_location
from pycrowdmap.reconciler import ConnectionStatus, StateReconciler
from pycrowdmap.simulation import (
    CrowdSimulationEngine,
    LocalCrowdSimulator,
    SimulationQueue,
    SimulationStep,
)
from pycrowdmap.tracking import CheckInState, CheckInTransition, GeoFenceTracker

_logger = logging.getLogger(__name__)


class CrowdMapClient:
    """Async client for live event occupancy.

    Usage::

        async with CrowdMapClient(config, catalog) as client:
            client.report_position(Position(latitude=..., longitude=...))
            counts = client.current_counts()
            markers = client.map_entities()
    """

    def __init__(
        self,
        config: CrowdMapConfig,
        catalog: LocationCatalog,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        rng: random.Random | None = None,
        on_counts: Callable[[dict[str, int]], None] | None = None,
        on_connection_status: Callable[[ConnectionStatus], None] | None = None,
        on_check_in: Callable[[CheckInTransition], None] | None = None,
    ) -> None:
        self._config = config
        self._catalog = catalog
        self._external_session = session is not None
        self._http_session = session
        self._injected_transport = transport
        self._rng = rng or random.Random()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._push_runtime: CrowdPushRuntime | None = None

        self._reconciler = StateReconciler(
            catalog,
            transport,
            reconnect=self._reconnect_push if config.push_enabled else None,
            fallback_poll_interval=config.fallback_poll_interval,
        )
        self._tracker = GeoFenceTracker(catalog, radius_m=config.check_in_radius_m)
        self._engine = CrowdSimulationEngine(self._rng)
        self._local_simulator = LocalCrowdSimulator(catalog, self._engine)
        self._queue: SimulationQueue | None = None
        self._simulation_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._on_check_in = on_check_in

        if on_counts is not None:
            self._reconciler.add_counts_listener(on_counts)
        if on_connection_status is not None:
            self._reconciler.add_status_listener(on_connection_status)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> CrowdMapClient:
        self._loop = asyncio.get_running_loop()
        if self._injected_transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._reconciler.attach_transport(HttpTransport(self._config, self._http_session))
        await self._ensure_push_started()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.stop_simulation()
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._pending.clear()
        self._tracker.reset()
        await self._reconciler.close()
        self._stop_push()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if self._injected_transport is None:
            self._reconciler.attach_transport(None)
        self._loop = None

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    async def _ensure_push_started(self) -> None:
        """Best-effort push startup (failures must not break submissions)."""
        if not self._config.push_enabled:
            # Nothing will ever push counts; treat as degraded from the start.
            self._reconciler.on_connection_change(False)
            return
        if self._push_runtime is not None and self._push_runtime.is_running:
            return
        loop = self._loop or asyncio.get_running_loop()
        runtime = CrowdPushRuntime(
            loop=loop,
            topic_prefix=self._config.push_topic_prefix,
            on_event=self._reconciler.handle_push_event,
            on_connection_change=self._reconciler.on_connection_change,
            keepalive=self._config.push_keepalive,
            reconnect_interval=self._config.fallback_poll_interval,
            logger=_logger,
        )
        try:
            await loop.run_in_executor(
                None,
                lambda: runtime.start(self._config.push_host, self._config.push_port, tls=self._config.push_tls),
            )
            self._push_runtime = runtime
        except Exception:
            _logger.warning("Push runtime start failed", exc_info=True)
            self._reconciler.on_connection_change(False)

    async def _reconnect_push(self) -> None:
        # paho retries established sessions by itself; only restart a dead runtime.
        runtime = self._push_runtime
        if runtime is not None and runtime.is_running:
            return
        await self._ensure_push_started()

    def _stop_push(self) -> None:
        runtime = self._push_runtime
        self._push_runtime = None
        if runtime is not None:
            runtime.stop()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def config(self) -> CrowdMapConfig:
        return self._config

    @property
    def catalog(self) -> LocationCatalog:
        return self._catalog

    @property
    def reconciler(self) -> StateReconciler:
        return self._reconciler

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._reconciler.status

    @property
    def check_in_state(self) -> CheckInState:
        return self._tracker.state

    @property
    def simulation_running(self) -> bool:
        return self._simulation_task is not None and not self._simulation_task.done()

    def current_counts(self) -> dict[str, int]:
        return self._reconciler.current_counts()

    def map_entities(
        self,
        locations: Sequence[Location] | None = None,
        *,
        threshold_m: float | None = None,
    ) -> list[MapEntity]:
        """Cluster the visible locations (default: the whole catalog) into markers."""
        visible = self._catalog.locations if locations is None else locations
        threshold = self._config.cluster_threshold_m if threshold_m is None else threshold_m
        return cluster_locations(visible, threshold)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched background submission to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def report_position(self, position: Position) -> CheckInTransition | None:
        """Feed a position sample to the geofence tracker.

        Submissions for a transition run in the background; the tracker
        drops further samples until they settle. Failures are logged and
        the optimistic check-in state is kept.
        """
        transition = self._tracker.observe(position)
        if transition is None:
            return None
        if self._on_check_in is not None:
            try:
                self._on_check_in(transition)
            except Exception:
                _logger.debug("on_check_in callback failed", exc_info=True)
        self._spawn(self._reconcile_transition(transition))
        return transition

    async def _reconcile_transition(self, transition: CheckInTransition) -> None:
        try:
            deltas = transition.deltas()
            results = await asyncio.gather(
                *(self._reconciler.submit(location_id, delta) for location_id, delta in deltas),
                return_exceptions=True,
            )
            for (location_id, delta), result in zip(deltas, results, strict=True):
                if isinstance(result, CrowdMapError):
                    _logger.warning("Failed to push delta (%+d) for %s: %s", delta, location_id, result)
                elif isinstance(result, BaseException):
                    raise result
        finally:
            self._tracker.resolve()

    async def report_qr_scan(self, data: str | bytes) -> QrScanResult:
        """Check in via a scanned QR payload.

        Malformed payloads and unknown ids fail without submitting.
        """
        try:
            payload, location = resolve_qr_location(data, self._catalog)
        except (MalformedInputError, UnknownLocationError) as exc:
            _logger.info("QR scan rejected: %s", exc)
            return QrScanResult(success=False, message=str(exc))

        try:
            count = await self._reconciler.submit(location.id, 1)
        except CrowdMapError as exc:
            _logger.error("QR scan reporting failed: %s", exc)
            return QrScanResult(success=False, message=str(exc) or "QR scan failed.", location_id=location.id)

        _logger.debug("QR %s check-in for %s", payload.kind, location.id)
        return QrScanResult(
            success=True,
            message=f"Successfully checked into {location.name}!",
            location_id=location.id,
            count=count,
        )

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def _use_local_simulation(self) -> bool:
        mode = self._config.simulation_mode
        if mode == SimulationMode.LOCAL:
            return True
        if mode == SimulationMode.SERVER:
            return False
        return self._reconciler.degraded

    def start_simulation(self) -> None:
        if self.simulation_running:
            return
        _logger.info(
            "Starting client-side simulation (batch size: %d, mode: %s)...",
            self._config.simulation_batch_size,
            self._config.simulation_mode,
        )
        self._queue = SimulationQueue(self._catalog.ids(), self._config.simulation_batch_size, rng=self._rng)
        if self._config.simulation_mode == SimulationMode.LOCAL:
            self.seed_local_counts()
        loop = self._loop or asyncio.get_running_loop()
        self._simulation_task = loop.create_task(self._simulation_loop())

    def seed_local_counts(self) -> None:
        """Seed every location near its target occupancy (offline use)."""
        self._reconciler.seed_local(self._local_simulator.seed())

    def stop_simulation(self) -> None:
        task = self._simulation_task
        self._simulation_task = None
        self._queue = None
        if task is not None and not task.done():
            _logger.info("Stopping client-side simulation...")
            task.cancel()

    async def _simulation_loop(self) -> None:
        interval = self._config.simulation_interval
        while True:
            await asyncio.sleep(interval)
            try:
                self.simulation_tick()
            except Exception:
                _logger.exception("Simulation tick failed")

    def simulation_tick(self) -> list[SimulationStep]:
        """Run one tick.

        Local mode advances every location in the store directly. Server
        mode takes the next queue slice, computes deltas from the cached
        counts and dispatches one batch request without waiting for it.
        """
        if self._use_local_simulation():
            counts = self._reconciler.current_counts()
            steps = self._local_simulator.advance(counts)
            self._reconciler.apply_local(steps)
            return steps

        if self._queue is None:
            self._queue = SimulationQueue(self._catalog.ids(), self._config.simulation_batch_size, rng=self._rng)
        locations = [self._catalog.require(location_id) for location_id in self._queue.next_batch()]
        steps = self._engine.plan(locations, self._reconciler.count)
        if steps:
            self._spawn(self._push_simulation_batch(steps))
        return steps

    async def _push_simulation_batch(self, steps: list[SimulationStep]) -> None:
        try:
            await self._reconciler.submit_batch([(step.location_id, step.delta) for step in steps])
        except CrowdMapError as exc:
            _logger.warning("Failed to push batch deltas: %s", exc)
