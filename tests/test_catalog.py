from __future__ import annotations

import json
from pathlib import Path

import pytest

from pycrowdmap.catalog import (
    LocationCatalog,
    build_location,
    capacity_for_venue,
    dms_to_decimal,
    filter_locations,
    load_catalog,
    parse_days,
    slugify,
)
from pycrowdmap.exceptions import CrowdMapConfigError, UnknownLocationError
from tests.helpers import BASE_LAT, make_location


def test_slugify() -> None:
    assert slugify("Battle of Bands: Finals!") == "battle-of-bands-finals"
    assert slugify("Open  Mic") == "open-mic"


def test_dms_to_decimal() -> None:
    assert dms_to_decimal("30°21'13.9\"N") == pytest.approx(30.353861, abs=1e-6)
    assert dms_to_decimal("76°22'12.0\"W") == pytest.approx(-76.37, abs=1e-6)
    with pytest.raises(ValueError):
        dms_to_decimal("30.35")


@pytest.mark.parametrize(
    ("venue", "capacity"),
    [
        ("CSED and C Hall", 1500),
        ("Main Auditorium", 1500),
        ("OAT", 1500),
        ("LT-101", 300),
        ("E Block", 300),
        ("Central Library", 500),
        ("Jogging Track", 500),
        ("Somewhere else", 400),
    ],
)
def test_capacity_for_venue(venue: str, capacity: int) -> None:
    assert capacity_for_venue(venue) == capacity


def test_parse_days() -> None:
    assert parse_days("13-15 November") == ("13 Nov", "14 Nov", "15 Nov")
    assert parse_days("14/11/2025") == ("14 Nov",)


def test_build_location_from_raw_record() -> None:
    location = build_location(
        title="Robo Wars",
        venue="Main Ground",
        lat="30°21'13.9\"N",
        lon="76°22'12.0\"E",
        date="13-14 November",
        category="Tech",
        popularity_score=8,
    )

    assert location.id == "robo-wars"
    assert location.capacity == 1500
    assert location.popularity == pytest.approx(0.8)
    assert location.days == ("13 Nov", "14 Nov")
    assert location.longitude == pytest.approx(76.37)


def test_build_location_default_popularity() -> None:
    location = build_location(title="Quiz", venue="LT 1", lat="30°0'0\"N", lon="76°0'0\"E")
    assert location.popularity == pytest.approx(0.5)
    assert location.days == ()


def test_catalog_lookup(catalog) -> None:
    assert len(catalog) == 4
    assert "library" in catalog
    assert catalog.get("nowhere") is None
    assert catalog.require("library").capacity == 500
    with pytest.raises(UnknownLocationError):
        catalog.require("nowhere")


def test_catalog_rejects_duplicate_ids() -> None:
    with pytest.raises(CrowdMapConfigError):
        LocationCatalog([make_location("a", BASE_LAT), make_location("a", BASE_LAT)])


def test_catalog_categories_and_days(catalog) -> None:
    assert catalog.categories() == ["Music", "Food"]
    assert catalog.days() == ["13 Nov", "14 Nov"]


def test_load_catalog_mixed_records(tmp_path: Path) -> None:
    path = tmp_path / "events.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "stage",
                    "name": "Stage",
                    "capacity": 100,
                    "coordinates": {"latitude": 30.0, "longitude": 76.0},
                },
                {
                    "title": "Open Mic",
                    "venue": "LT 2",
                    "lat": "30°21'13.9\"N",
                    "lon": "76°22'12.0\"E",
                    "date": "13/11/2025",
                    "cat": "Music",
                    "popularity_score": 3,
                },
            ]
        ),
        encoding="utf-8",
    )

    catalog = load_catalog(path)

    assert catalog.ids() == ["stage", "open-mic"]
    assert catalog.require("open-mic").capacity == 300


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        '{"id": "x"}',
        '[{"title": "Missing coords"}]',
        '[{"id": "x", "name": "X", "capacity": 0, "coordinates": {"latitude": 0, "longitude": 0}}]',
    ],
)
def test_load_catalog_rejects_bad_files(tmp_path: Path, content: str) -> None:
    path = tmp_path / "bad.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(CrowdMapConfigError):
        load_catalog(path)


def test_load_catalog_missing_file(tmp_path: Path) -> None:
    with pytest.raises(CrowdMapConfigError):
        load_catalog(tmp_path / "absent.json")


def test_filter_locations(locations) -> None:
    assert [loc.id for loc in filter_locations(locations, search="LIB")] == ["library"]
    assert [loc.id for loc in filter_locations(locations, categories=["Food"])] == ["food-court"]
    assert [loc.id for loc in filter_locations(locations, days=["14 Nov"])] == ["library", "lt-hall"]
    assert filter_locations(locations) == locations
