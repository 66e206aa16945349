from __future__ import annotations

import pytest

from pycrowdmap.catalog import LocationCatalog
from pycrowdmap.models.location import Location
from tests.helpers import BASE_LAT, FakeCounterBackend, make_location


@pytest.fixture
def locations() -> list[Location]:
    return [
        make_location("main-stage", BASE_LAT, capacity=1500, popularity=0.9),
        # ~5.6 m north of main-stage
        make_location("food-court", BASE_LAT + 0.00005, capacity=400, popularity=0.5, category="Food"),
        # ~222 m north
        make_location("library", BASE_LAT + 0.002, capacity=500, popularity=0.2, days=("14 Nov",)),
        # ~445 m north
        make_location("lt-hall", BASE_LAT + 0.004, capacity=300, popularity=0.7, days=("13 Nov", "14 Nov")),
    ]


@pytest.fixture
def catalog(locations: list[Location]) -> LocationCatalog:
    return LocationCatalog(locations)


@pytest.fixture
def backend() -> FakeCounterBackend:
    return FakeCounterBackend()
