#!/usr/bin/env python3
"""Run the crowd simulation against a catalog and print occupancy.

By default this runs fully offline (local simulation, push disabled) so
it needs nothing but a catalog file. With ``--server`` the ticks are
submitted as batch deltas to ``CROWDMAP_BASE_URL`` and live counts are
read back over MQTT.

Usage
-----
::

    python scripts/run_simulation.py events.json --ticks 10
    python scripts/run_simulation.py events.json --server --ticks 30 -v

Options::

    --ticks N            Number of ticks to run (default: 10)
    --server             Submit ticks to the backend instead of simulating locally
    --threshold M        Marker grouping distance in metres
    --json               Output the final counts as JSON
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pycrowdmap import CrowdMapClient, CrowdMapConfig, SimulationMode, density_level, load_catalog  # noqa: E402
from pycrowdmap.density import occupancy_percentage  # noqa: E402

# ── helpers ──────────────────────────────────────────────────


def _section(title: str) -> str:
    return f"\n{'=' * 60}\n  {title}\n{'=' * 60}"


def _render(client: CrowdMapClient, threshold: float | None) -> list[str]:
    counts = client.current_counts()
    out: list[str] = []
    for entity in client.map_entities(threshold_m=threshold):
        count = entity.total_count(counts)
        capacity = entity.total_capacity()
        label = " + ".join(loc.name for loc in entity.locations)
        out.append(
            f"  {label[:40]:<40} {count:>5}/{capacity:<5} "
            f"{occupancy_percentage(count, capacity):>3}% {density_level(count, capacity)}"
        )
    return out


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Drive the crowd simulation and print the resulting occupancy map.",
    )
    parser.add_argument("catalog", help="Catalog JSON file")
    parser.add_argument("--ticks", type=int, default=10, help="Number of ticks to run")
    parser.add_argument("--server", action="store_true", help="Submit ticks to the backend")
    parser.add_argument("--threshold", type=float, default=None, help="Marker grouping distance in metres")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output final counts as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    catalog = load_catalog(args.catalog)
    if args.server:
        config = CrowdMapConfig.from_env(simulation_mode=SimulationMode.SERVER)
    else:
        config = CrowdMapConfig.from_env(simulation_mode=SimulationMode.LOCAL, push_enabled=False)

    async with CrowdMapClient(config, catalog) as client:
        if not args.server:
            client.seed_local_counts()
        for tick in range(args.ticks):
            client.simulation_tick()
            await client.drain()
            if not args.json_mode:
                print(_section(f"tick {tick + 1}/{args.ticks} ({client.connection_status})"))
                print("\n".join(_render(client, args.threshold)))
            await asyncio.sleep(config.simulation_interval if args.server else 0)

        counts = client.current_counts()

    if args.json_mode:
        print(json.dumps(counts, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    asyncio.run(main())
