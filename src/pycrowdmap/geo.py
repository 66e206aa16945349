"""Geospatial helpers."""

from __future__ import annotations

import math
from collections.abc import Iterable

from pycrowdmap._constants import EARTH_RADIUS_M
from pycrowdmap.models.location import Location


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres between two points given in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def location_distance_m(a: Location, b: Location) -> float:
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def nearest_location(
    latitude: float,
    longitude: float,
    locations: Iterable[Location],
) -> tuple[Location, float] | None:
    """Return the closest location and its distance, or ``None`` for an empty catalog.

    Ties keep the first location in iteration order.
    """
    best: Location | None = None
    best_distance = math.inf
    for location in locations:
        distance = haversine_m(latitude, longitude, location.latitude, location.longitude)
        if distance < best_distance:
            best = location
            best_distance = distance
    if best is None:
        return None
    return best, best_distance
