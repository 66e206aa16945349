"""Shared test doubles and location builders."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pycrowdmap._constants import BATCH_ENDPOINT, DECREMENT_ENDPOINT, INCREMENT_ENDPOINT
from pycrowdmap.exceptions import CrowdMapTransportError
from pycrowdmap.models.location import Coordinates, Location

# Roughly 11.1 m per 0.0001 degree of latitude.
BASE_LAT = 30.3540
BASE_LON = 76.3650


def make_location(
    location_id: str,
    lat: float,
    lon: float = BASE_LON,
    *,
    capacity: int = 400,
    popularity: float = 0.5,
    category: str = "Music",
    days: tuple[str, ...] = ("13 Nov",),
) -> Location:
    return Location(
        id=location_id,
        name=location_id.replace("-", " ").title(),
        capacity=capacity,
        popularity=popularity,
        coordinates=Coordinates(latitude=lat, longitude=lon),
        category=category,
        days=days,
    )


@dataclass
class FakeCounterBackend:
    """In-memory stand-in for the counter API, implementing ``Transport``."""

    counts: dict[str, int] = field(default_factory=dict)
    calls: list[tuple[str, Any]] = field(default_factory=list)
    seen_keys: set[str] = field(default_factory=set)
    fail_with: CrowdMapTransportError | None = None
    response_override: dict[str, Any] | None = None

    def calls_to(self, endpoint: str) -> list[Any]:
        return [payload for called, payload in self.calls if called == endpoint]

    def _apply(self, event_id: str, delta: int, key: str) -> int:
        # Replayed keys are not re-applied.
        if key not in self.seen_keys:
            self.seen_keys.add(key)
            self.counts[event_id] = max(0, self.counts.get(event_id, 0) + delta)
        return self.counts.get(event_id, 0)

    async def post_json(self, endpoint: str, payload: Any) -> dict[str, Any]:
        self.calls.append((endpoint, payload))
        if self.fail_with is not None:
            raise self.fail_with
        if self.response_override is not None:
            return self.response_override
        if endpoint == INCREMENT_ENDPOINT:
            return {"livecount": self._apply(payload["event_id"], payload["delta"], payload["idempotency_key"])}
        if endpoint == DECREMENT_ENDPOINT:
            return {"livecount": self._apply(payload["event_id"], -payload["delta"], payload["idempotency_key"])}
        if endpoint == BATCH_ENDPOINT:
            return {
                "results": [
                    {
                        "event_id": item["event_id"],
                        "livecount": self._apply(item["event_id"], item["delta"], item["idempotency_key"]),
                    }
                    for item in payload
                ]
            }
        raise CrowdMapTransportError("Not found", status_code=404, endpoint=endpoint)
