"""Deterministic merge policy.

Writes are applied in arrival order and the last applied write for a
location wins. Server-originated values always overwrite whatever the
store holds, including counts produced by local arithmetic. The only
transformation applied to an incoming value is clamping into
``[0, capacity]``.
"""

from __future__ import annotations

from pycrowdmap.state.events import UpdateSource

_SERVER_SOURCES = frozenset({UpdateSource.SNAPSHOT, UpdateSource.PUSH, UpdateSource.SUBMISSION})


def is_server_source(source: UpdateSource) -> bool:
    return source in _SERVER_SOURCES


def clamp_count(count: int, capacity: int | None) -> int:
    """Clamp *count* to ``[0, capacity]`` (only the lower bound when capacity is unknown)."""
    if count < 0:
        return 0
    if capacity is not None and count > capacity:
        return capacity
    return count
