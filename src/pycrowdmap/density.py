"""Occupancy density classification for display consumers."""

from __future__ import annotations

from enum import StrEnum


class DensityLevel(StrEnum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"


def occupancy_percentage(count: int, capacity: int) -> int:
    """Whole-number percentage of capacity in use (0 for a non-positive capacity)."""
    if capacity <= 0:
        return 0
    return round(count / capacity * 100)


def density_level(count: int, capacity: int) -> DensityLevel:
    percentage = occupancy_percentage(count, capacity)
    if percentage > 85:
        return DensityLevel.VERY_HIGH
    if percentage > 60:
        return DensityLevel.HIGH
    if percentage > 30:
        return DensityLevel.MODERATE
    return DensityLevel.LOW
