"""Location catalog: loading, lookup and filtering.

The catalog is static for the lifetime of a client and is only ever read
by the state engine.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pycrowdmap.exceptions import CrowdMapConfigError, UnknownLocationError
from pycrowdmap.models.location import Coordinates, Location

_logger = logging.getLogger(__name__)

_DMS_RE = re.compile(r"(\d+)°(\d+)'([\d.]+)\"([NSEW])")

# Venue keyword -> capacity. First matching rule wins.
_CAPACITY_RULES: tuple[tuple[tuple[str, ...], int], ...] = (
    (("csed and c hall",), 1500),
    (("auditorium", "fete", "oat", "lawns", "ground", "stage", "stairs"), 1500),
    (("lt", "hall", "block", "csed", "tan 203"), 300),
    (("road", "library", "track"), 500),
)
DEFAULT_CAPACITY = 400
DEFAULT_POPULARITY_SCORE = 5.0


class LocationCatalog:
    """Ordered, read-only collection of locations keyed by id."""

    def __init__(self, locations: Iterable[Location]) -> None:
        self._locations: tuple[Location, ...] = tuple(locations)
        self._by_id: dict[str, Location] = {}
        for location in self._locations:
            if location.id in self._by_id:
                raise CrowdMapConfigError(f"Duplicate location id in catalog: {location.id}")
            self._by_id[location.id] = location

    def __iter__(self) -> Iterator[Location]:
        return iter(self._locations)

    def __len__(self) -> int:
        return len(self._locations)

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._by_id

    @property
    def locations(self) -> tuple[Location, ...]:
        return self._locations

    def ids(self) -> list[str]:
        return [loc.id for loc in self._locations]

    def get(self, location_id: str) -> Location | None:
        return self._by_id.get(location_id)

    def require(self, location_id: str) -> Location:
        """Return the location or raise :class:`UnknownLocationError`."""
        location = self._by_id.get(location_id)
        if location is None:
            raise UnknownLocationError(location_id)
        return location

    def categories(self) -> list[str]:
        """Distinct categories in catalog order."""
        return list(dict.fromkeys(loc.category for loc in self._locations))

    def days(self) -> list[str]:
        """Distinct scheduled days, sorted by day-of-month."""
        seen = dict.fromkeys(day for loc in self._locations for day in loc.days)
        return sorted(seen, key=_day_sort_key)


def _day_sort_key(day: str) -> tuple[int, str]:
    head = day.split(" ", 1)[0]
    return (int(head) if head.isdigit() else 0, day)


# ------------------------------------------------------------------
# Raw event record -> Location
# ------------------------------------------------------------------


def slugify(title: str) -> str:
    """Lower-case, whitespace runs to ``-``, drop anything outside ``[a-z0-9-]``."""
    slug = re.sub(r"\s+", "-", title.lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


def dms_to_decimal(dms: str) -> float:
    """Convert ``30°21'13.9"N`` style coordinates to decimal degrees.

    Raises :class:`ValueError` when the string is not in DMS form.
    """
    match = _DMS_RE.search(dms)
    if match is None:
        raise ValueError(f"Not a DMS coordinate: {dms!r}")
    degrees, minutes, seconds, direction = match.groups()
    decimal = float(degrees) + float(minutes) / 60 + float(seconds) / 3600
    if direction in ("S", "W"):
        decimal = -decimal
    return decimal


def capacity_for_venue(venue: str) -> int:
    lowered = venue.lower()
    for keywords, capacity in _CAPACITY_RULES:
        if any(keyword in lowered for keyword in keywords):
            return capacity
    return DEFAULT_CAPACITY


def parse_days(date: str) -> tuple[str, ...]:
    """Parse ``"13-16 November"`` or ``"13/11/2025"`` into ``("13 Nov", ...)``."""
    text = date.strip()
    if "-" in text:
        start_text, end_text = text.replace(" November", "").split("-", 1)
        start, end = int(start_text), int(end_text)
        return tuple(f"{day} Nov" for day in range(start, end + 1))
    day = text.split("/", 1)[0]
    return (f"{int(day)} Nov",)


def build_location(
    *,
    title: str,
    venue: str,
    lat: str,
    lon: str,
    date: str = "",
    category: str = "",
    details: str = "",
    popularity_score: float | None = None,
) -> Location:
    """Build a :class:`Location` from a raw event record.

    *popularity_score* is on a 0-10 scale (default 5).
    """
    score = DEFAULT_POPULARITY_SCORE if popularity_score is None else popularity_score
    return Location(
        id=slugify(title),
        name=title,
        capacity=capacity_for_venue(venue),
        popularity=score / 10,
        coordinates=Coordinates(latitude=dms_to_decimal(lat), longitude=dms_to_decimal(lon)),
        category=category,
        days=parse_days(date) if date else (),
        venue=venue,
        details=details,
    )


def load_catalog(path: str | Path) -> LocationCatalog:
    """Load a catalog from a JSON file.

    The file holds a list of objects, either already-normalised
    :class:`Location` records (with ``id`` and ``coordinates``) or raw
    event records (``title``, ``venue``, ``lat``, ``lon`` in DMS, ...).
    """
    file_path = Path(path)
    try:
        data: Any = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CrowdMapConfigError(f"Cannot read catalog {file_path}: {exc}") from exc
    if not isinstance(data, list):
        raise CrowdMapConfigError(f"Catalog {file_path} must contain a JSON list")

    locations: list[Location] = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise CrowdMapConfigError(f"Catalog entry #{index} is not an object")
        try:
            if "coordinates" in item:
                locations.append(Location.model_validate(item))
            else:
                locations.append(
                    build_location(
                        title=item["title"],
                        venue=item.get("venue", ""),
                        lat=item["lat"],
                        lon=item["lon"],
                        date=item.get("date", ""),
                        category=item.get("cat", item.get("category", "")),
                        details=item.get("desc", item.get("details", "")),
                        popularity_score=item.get("popularity_score"),
                    )
                )
        except (KeyError, ValueError, ValidationError) as exc:
            raise CrowdMapConfigError(f"Invalid catalog entry #{index}: {exc}") from exc

    _logger.debug("Loaded %d locations from %s", len(locations), file_path)
    return LocationCatalog(locations)


def filter_locations(
    locations: Sequence[Location],
    *,
    search: str = "",
    categories: Iterable[str] = (),
    days: Iterable[str] = (),
) -> list[Location]:
    """Filter the visible location set.

    Empty filters match everything. Search is a case-insensitive
    substring match on the name; days match when any scheduled day is
    selected.
    """
    needle = search.strip().lower()
    category_set = set(categories)
    day_set = set(days)
    return [
        loc
        for loc in locations
        if (not needle or needle in loc.name.lower())
        and (not category_set or loc.category in category_set)
        and (not day_set or any(day in day_set for day in loc.days))
    ]
