"""Occupancy reconciliation between local writers and the server.

The reconciler owns the single local occupancy mirror. It merges three
channels:

* full snapshots, which replace the whole mapping,
* live count pushes, which overwrite one entry,
* responses to locally initiated submissions (tracker, QR scans,
  simulator), which set the entry to the server-resolved count.

Local arithmetic never produces a stored value for a submitted delta;
only the server's answer does. When the push channel drops, the
reconciler goes degraded: cached values stay readable, reconnects are
attempted on a fixed interval, and the next snapshot ends degraded mode.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from pycrowdmap._constants import (
    BATCH_ENDPOINT,
    DECREMENT_ENDPOINT,
    FALLBACK_POLL_INTERVAL_S,
    INCREMENT_ENDPOINT,
)
from pycrowdmap._push import PushEvent, PushKind
from pycrowdmap._transport import Transport
from pycrowdmap.catalog import LocationCatalog
from pycrowdmap.exceptions import CrowdMapApiError, CrowdMapNotConnectedError
from pycrowdmap.models.counters import BatchResult, DeltaRequest, DeltaResult, LiveCount, Snapshot
from pycrowdmap.simulation import SimulationStep
from pycrowdmap.state.events import OccupancyUpdate, UpdateSource
from pycrowdmap.state.store import OccupancyStore

_logger = logging.getLogger(__name__)

CountsListener = Callable[[dict[str, int]], None]
StatusListener = Callable[["ConnectionStatus"], None]


class ConnectionStatus(StrEnum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class StateReconciler:
    """Authoritative local occupancy cache.

    Parameters
    ----------
    catalog : LocationCatalog
        Known locations; capacities bound every stored count.
    transport : Transport or None
        Used for submissions. May be attached later with
        :meth:`attach_transport`.
    reconnect : callable or None
        Coroutine factory invoked on every fallback poll while degraded.
    fallback_poll_interval : float
        Seconds between reconnect attempts while degraded.
    """

    def __init__(
        self,
        catalog: LocationCatalog,
        transport: Transport | None = None,
        *,
        reconnect: Callable[[], Awaitable[None]] | None = None,
        fallback_poll_interval: float = FALLBACK_POLL_INTERVAL_S,
        store: OccupancyStore | None = None,
    ) -> None:
        self._catalog = catalog
        self._transport = transport
        self._reconnect = reconnect
        self._fallback_poll_interval = fallback_poll_interval
        self._store = store or OccupancyStore({loc.id: loc.capacity for loc in catalog})
        self._status = ConnectionStatus.CONNECTING
        self._degraded = False
        self._poll_task: asyncio.Task[None] | None = None
        self._counts_listeners: list[CountsListener] = []
        self._status_listeners: list[StatusListener] = []

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def attach_transport(self, transport: Transport | None) -> None:
        self._transport = transport

    def add_counts_listener(self, listener: CountsListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._counts_listeners.append(listener)
        return lambda: self._remove(self._counts_listeners, listener)

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        self._status_listeners.append(listener)
        return lambda: self._remove(self._status_listeners, listener)

    @staticmethod
    def _remove(listeners: list[Any], listener: Any) -> None:
        with contextlib.suppress(ValueError):
            listeners.remove(listener)

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise CrowdMapNotConnectedError("No transport attached. Use 'async with CrowdMapClient(...) as client:'")
        return self._transport

    def _notify_counts(self) -> None:
        if not self._counts_listeners:
            return
        counts = self._store.counts()
        for listener in list(self._counts_listeners):
            try:
                listener(dict(counts))
            except Exception:
                _logger.debug("Counts listener failed", exc_info=True)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception:
                _logger.debug("Status listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def store(self) -> OccupancyStore:
        return self._store

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def degraded(self) -> bool:
        return self._degraded

    def current_counts(self) -> dict[str, int]:
        """Copy of the current occupancy mapping. Never blocks, even while degraded."""
        return self._store.counts()

    def count(self, location_id: str) -> int:
        return self._store.get(location_id)

    # ------------------------------------------------------------------
    # Server-originated writes
    # ------------------------------------------------------------------

    def apply_snapshot(self, counts: Mapping[str, int]) -> None:
        """Replace the entire cache; also ends degraded mode."""
        self._store.replace(counts, source=UpdateSource.SNAPSHOT)
        _logger.debug("Applied snapshot with %d entries", len(counts))
        if self._degraded:
            _logger.info("Fresh snapshot received; leaving degraded mode")
            self._degraded = False
            self._cancel_poll()
        self._notify_counts()

    def apply_live_count(self, update: LiveCount) -> None:
        """Overwrite one entry with a pushed value."""
        self._store.apply(
            OccupancyUpdate(location_id=update.event_id, count=update.livecount, source=UpdateSource.PUSH)
        )
        self._notify_counts()

    def handle_push_event(self, event: PushEvent) -> None:
        """Route a decoded push message. Malformed payloads are logged and ignored."""
        try:
            if event.kind == PushKind.SNAPSHOT:
                snapshot = Snapshot.model_validate(event.payload)
                self.apply_snapshot(snapshot.counts)
            elif event.kind == PushKind.LIVE_COUNT:
                self.apply_live_count(LiveCount.model_validate(event.payload))
        except ValidationError:
            _logger.debug("Ignoring malformed %s push on %s", event.kind, event.topic, exc_info=True)

    # ------------------------------------------------------------------
    # Local writes
    # ------------------------------------------------------------------

    def apply_local(self, steps: Iterable[SimulationStep]) -> None:
        """Write offline simulation results. A later server write overwrites them."""
        changed = False
        for step in steps:
            self._store.apply(
                OccupancyUpdate(location_id=step.location_id, count=step.new_count, source=UpdateSource.LOCAL)
            )
            changed = True
        if changed:
            self._notify_counts()

    def seed_local(self, counts: Mapping[str, int]) -> None:
        self._store.replace(counts, source=UpdateSource.LOCAL)
        self._notify_counts()

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    async def submit(self, location_id: str, delta: int) -> int:
        """Send one delta and store the server-resolved count.

        A fresh idempotency key is generated for every call.

        Returns
        -------
        int
            The stored (resolved, clamped) count.

        Raises
        ------
        UnknownLocationError
            *location_id* is not in the catalog.
        ValueError
            *delta* is zero.
        CrowdMapTransportError
            Network or HTTP failure; the cache is left untouched.
        CrowdMapApiError
            The response did not carry a ``livecount``.
        """
        self._catalog.require(location_id)
        if delta == 0:
            raise ValueError("delta must be non-zero")
        transport = self._require_transport()

        request = DeltaRequest(event_id=location_id, delta=delta)
        endpoint = INCREMENT_ENDPOINT if delta > 0 else DECREMENT_ENDPOINT
        _logger.debug("Submitting delta %+d for %s key=%s", delta, location_id, request.idempotency_key)
        response = await transport.post_json(endpoint, request.single_payload())

        try:
            result = DeltaResult.model_validate(response)
        except ValidationError as exc:
            raise CrowdMapApiError(f"Missing livecount in response from {endpoint}", endpoint=endpoint) from exc

        stored = self._store.apply(
            OccupancyUpdate(location_id=location_id, count=result.livecount, source=UpdateSource.SUBMISSION)
        )
        self._notify_counts()
        return stored

    async def submit_batch(self, deltas: Sequence[tuple[str, int]]) -> dict[str, int]:
        """Send several deltas in one request.

        Zero deltas are dropped; an empty batch sends nothing. Every item
        carries its own idempotency key. Returns the stored counts for the
        ids the server reported back.
        """
        requests = [DeltaRequest(event_id=location_id, delta=delta) for location_id, delta in deltas if delta != 0]
        if not requests:
            return {}
        transport = self._require_transport()

        _logger.debug("Submitting batch of %d deltas", len(requests))
        response = await transport.post_json(BATCH_ENDPOINT, [req.batch_item() for req in requests])

        try:
            result = BatchResult.model_validate(response)
        except ValidationError as exc:
            raise CrowdMapApiError(
                f"Malformed batch response from {BATCH_ENDPOINT}", endpoint=BATCH_ENDPOINT
            ) from exc

        stored: dict[str, int] = {}
        for item in result.results:
            stored[item.event_id] = self._store.apply(
                OccupancyUpdate(location_id=item.event_id, count=item.livecount, source=UpdateSource.SUBMISSION)
            )
        if stored:
            self._notify_counts()
        return stored

    # ------------------------------------------------------------------
    # Connection / degraded mode
    # ------------------------------------------------------------------

    def on_connection_change(self, connected: bool) -> None:
        """React to push channel connect/disconnect.

        Connecting alone does not end degraded mode; the snapshot that
        follows it does.
        """
        if connected:
            self._set_status(ConnectionStatus.CONNECTED)
            return
        self._set_status(ConnectionStatus.DISCONNECTED)
        self.enter_degraded()

    def enter_degraded(self) -> None:
        if self._degraded:
            return
        if self._reconnect is None:
            _logger.warning("No real-time channel; serving cached counts")
        else:
            _logger.warning("Disconnected from real-time server. Starting fallback polling.")
        self._degraded = True
        self._start_poll()

    def _start_poll(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            return
        if self._reconnect is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _logger.debug("No running loop; fallback polling not started")
            return
        self._poll_task = loop.create_task(self._poll_loop())

    def _cancel_poll(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _poll_loop(self) -> None:
        while self._degraded:
            await asyncio.sleep(self._fallback_poll_interval)
            if not self._degraded or self._reconnect is None:
                break
            _logger.info("Attempting to reconnect to fetch data...")
            try:
                await self._reconnect()
            except Exception:
                _logger.debug("Reconnect attempt failed", exc_info=True)

    async def close(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
