"""Spatial clustering of nearby locations into map markers.

Locations closer than a threshold are grouped transitively: two
locations end up in the same group whenever a chain of pairwise
"closer than threshold" links connects them. The partition therefore
depends only on the location set, never on the input order.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pycrowdmap.geo import location_distance_m
from pycrowdmap.models.location import Coordinates, Location
from pycrowdmap.models.map_entity import MapEntity

_logger = logging.getLogger(__name__)


def group_id(locations: Sequence[Location]) -> str:
    """Stable id for a set of locations: sorted member ids joined by ``-``."""
    return "-".join(sorted(loc.id for loc in locations))


def _centroid(locations: Sequence[Location]) -> Coordinates:
    # Plain coordinate averaging; fine at sub-100m scale.
    count = len(locations)
    return Coordinates(
        latitude=sum(loc.latitude for loc in locations) / count,
        longitude=sum(loc.longitude for loc in locations) / count,
    )


def _components(locations: Sequence[Location], threshold_m: float) -> list[list[Location]]:
    visited: set[str] = set()
    components: list[list[Location]] = []

    for seed in locations:
        if seed.id in visited:
            continue
        component = [seed]
        visited.add(seed.id)

        # Rescan until a full pass adds nothing.
        added = True
        while added:
            added = False
            for candidate in locations:
                if candidate.id in visited:
                    continue
                if any(location_distance_m(member, candidate) < threshold_m for member in component):
                    component.append(candidate)
                    visited.add(candidate.id)
                    added = True

        components.append(component)
    return components


def cluster_locations(locations: Sequence[Location], threshold_m: float) -> list[MapEntity]:
    """Partition *locations* into map entities.

    Parameters
    ----------
    locations : sequence of Location
        The visible location set.
    threshold_m : float
        Locations strictly closer than this (haversine metres) are linked.

    Returns
    -------
    list of MapEntity
        One entity per connected component. Single-member entities keep
        the location's own id and coordinates; groups use the sorted,
        joined member ids and the arithmetic mean of member coordinates.
    """
    if threshold_m < 0:
        raise ValueError(f"threshold_m must be non-negative, got {threshold_m}")

    entities: list[MapEntity] = []
    for component in _components(locations, threshold_m):
        if len(component) == 1:
            only = component[0]
            entities.append(MapEntity(id=only.id, locations=(only,), coordinates=only.coordinates))
            continue
        entities.append(
            MapEntity(
                id=group_id(component),
                locations=tuple(component),
                coordinates=_centroid(component),
            )
        )

    _logger.debug(
        "Clustered %d locations into %d entities (threshold=%.1fm)",
        len(locations),
        len(entities),
        threshold_m,
    )
    return entities
