"""Synthetic crowd simulation.

Each location drifts toward a popularity-derived target occupancy with
bounded noise. The per-tick change is capped at 2.5% of capacity so the
series stays smooth no matter how far the count is from the target.

Continuous values become integers in exactly one place,
:func:`step_count`, using ``round``.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import random
from collections.abc import Callable, Iterable, Sequence

from pycrowdmap._constants import (
    HIGH_POP_MAX,
    HIGH_POP_MIN,
    LOW_POP_MAX,
    LOW_POP_MIN,
    MAX_CHANGE_FRACTION,
    NOISE_FRACTION,
    POPULARITY_THRESHOLD,
    PULL_FACTOR,
    SEED_JITTER_FRACTION,
)
from pycrowdmap.models.location import Location

_logger = logging.getLogger(__name__)


def target_fraction(popularity: float) -> float:
    """Target fraction of capacity for a popularity in ``[0, 1]``.

    Piecewise linear with a single breakpoint at 0.6: ``[0, 0.6)`` maps to
    ``[10%, 40%)``, ``[0.6, 1]`` maps to ``[75%, 85%]``.
    """
    if popularity < POPULARITY_THRESHOLD:
        normalized = popularity / POPULARITY_THRESHOLD
        return LOW_POP_MIN + normalized * (LOW_POP_MAX - LOW_POP_MIN)
    normalized = (popularity - POPULARITY_THRESHOLD) / (1 - POPULARITY_THRESHOLD)
    return HIGH_POP_MIN + normalized * (HIGH_POP_MAX - HIGH_POP_MIN)


def target_count(location: Location) -> float:
    return location.capacity * target_fraction(location.popularity)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def step_count(location: Location, current_count: int, noise_draw: float) -> int:
    """Next count for one location given a uniform draw in ``[-1, 1]``."""
    capacity = location.capacity
    error = target_count(location) - current_count
    pull = error * PULL_FACTOR
    noise = noise_draw * capacity * NOISE_FRACTION
    max_change = capacity * MAX_CHANGE_FRACTION
    raw_delta = _clamp(pull + noise, -max_change, max_change)
    new_count = round(_clamp(current_count + raw_delta, 0, capacity))
    # Rounding can overshoot a fractional cap (e.g. 7.5 -> 8); hold the
    # committed integer change inside it.
    max_step = math.floor(max_change)
    committed = current_count + int(_clamp(new_count - current_count, -max_step, max_step))
    return int(_clamp(committed, 0, capacity))


@dataclasses.dataclass(frozen=True)
class SimulationStep:
    location_id: str
    previous_count: int
    new_count: int

    @property
    def delta(self) -> int:
        return self.new_count - self.previous_count


class CrowdSimulationEngine:
    """Stateless tick rule with an injectable random source."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    @property
    def rng(self) -> random.Random:
        return self._rng

    def tick(self, location: Location, current_count: int) -> SimulationStep:
        draw = self._rng.uniform(-1.0, 1.0)
        return SimulationStep(
            location_id=location.id,
            previous_count=current_count,
            new_count=step_count(location, current_count, draw),
        )

    def seed_count(self, location: Location) -> int:
        """Initial count: target jittered by +/-2.5% of capacity, floored."""
        fraction = target_fraction(location.popularity) + self._rng.uniform(
            -SEED_JITTER_FRACTION, SEED_JITTER_FRACTION
        )
        return min(location.capacity, math.floor(location.capacity * max(0.0, fraction)))

    def plan(
        self,
        locations: Iterable[Location],
        counts: Callable[[str], int],
    ) -> list[SimulationStep]:
        """Tick every location and keep only non-zero changes."""
        steps: list[SimulationStep] = []
        for location in locations:
            step = self.tick(location, counts(location.id))
            if step.delta != 0:
                steps.append(step)
        return steps


class SimulationQueue:
    """Shuffled round-robin over location ids.

    Each tick consumes ``batch_size`` ids (at most the whole queue); on
    exhaustion the queue is reshuffled and restarts from the beginning, so
    every id comes up again within ``ceil(len(queue) / batch_size)`` ticks.
    A single batch never holds the same id twice.
    """

    def __init__(
        self,
        location_ids: Sequence[str],
        batch_size: int,
        *,
        rng: random.Random | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self._rng = rng or random.Random()
        self._queue: list[str] = list(dict.fromkeys(location_ids))
        self._rng.shuffle(self._queue)
        self._index = 0
        self._batch_size = batch_size

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def next_batch(self) -> list[str]:
        if not self._queue:
            return []
        batch: list[str] = []
        for _ in range(min(self._batch_size, len(self._queue))):
            if self._index >= len(self._queue):
                self._reshuffle(batch)
            batch.append(self._queue[self._index])
            self._index += 1
        return batch

    def _reshuffle(self, taken: Sequence[str]) -> None:
        self._rng.shuffle(self._queue)
        # Ids already in the current batch go last in the new pass.
        taken_ids = set(taken)
        self._queue = [i for i in self._queue if i not in taken_ids] + [i for i in self._queue if i in taken_ids]
        self._index = 0


class LocalCrowdSimulator:
    """Offline simulator writing directly into a counts mapping.

    Used when no backend is driving counts, or while the push channel is
    down and the client is configured to keep the map moving locally.
    """

    def __init__(
        self,
        locations: Iterable[Location],
        engine: CrowdSimulationEngine | None = None,
    ) -> None:
        self._locations = tuple(locations)
        self._engine = engine or CrowdSimulationEngine()

    def seed(self) -> dict[str, int]:
        return {loc.id: self._engine.seed_count(loc) for loc in self._locations}

    def advance(self, counts: dict[str, int]) -> list[SimulationStep]:
        """Tick every location and write new counts into *counts* in place."""
        steps = self._engine.plan(self._locations, lambda location_id: counts.get(location_id, 0))
        for step in steps:
            counts[step.location_id] = step.new_count
        _logger.debug("Local simulation tick changed %d locations", len(steps))
        return steps
