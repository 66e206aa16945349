"""State/store layer.

This package is the single source of truth for how occupancy arriving
from server snapshots, live push updates, submission responses and the
offline simulator is merged into one per-location count mapping.
"""
