#!/usr/bin/env python3
"""Run a synthetic scan end to end.

Builds a random roster, drains every slice with fake probe samples and
publishes the resulting bandwidth file.

Usage:
    python scripts/simulate_scan.py [output_path]

This script:
1. Creates a roster of entries, exits and authorities
2. Loads it into a ScanCoordinator (seeds the aggregator, plans slices)
3. Requests pairs until each slice is exhausted, recording a sample per probe
4. Completes each slice, which publishes a new version
"""

from __future__ import annotations

import logging
import random
import sys
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from relayscan.config import ScanSettings  # noqa: E402
from relayscan.models.domain import Relay  # noqa: E402
from relayscan.worker.coordinator import ScanCoordinator  # noqa: E402

# Constants
DEFAULT_OUTPUT_PATH = PROJECT_ROOT / "demo_output" / "v3bw"
NUM_ENTRIES = 30
NUM_EXITS = 20
NUM_AUTHORITIES = 3
SEED = 42


def create_roster(rng: random.Random) -> list[Relay]:
    """Create a synthetic roster with random descriptor bandwidths."""
    relays: list[Relay] = []

    def make(prefix: str, count: int, **flags) -> None:
        for i in range(count):
            bandwidth = rng.randint(100, 10_000) * 1024
            relays.append(
                Relay(
                    identity=f"{prefix}{i:038X}",
                    nickname=f"{prefix.lower()}relay{i}",
                    descriptor_bandwidth=bandwidth,
                    advertised_bandwidth=bandwidth,
                    **flags,
                )
            )

    make("AA", NUM_AUTHORITIES, is_authority=True)
    make("EE", NUM_ENTRIES)
    make("XX", NUM_EXITS, is_exit=True)
    return relays


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    output_path = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_OUTPUT_PATH
    settings = ScanSettings(output_path=output_path, slice_size=10, seed=SEED)
    rng = random.Random(SEED)

    roster = create_roster(rng)
    relays_by_id = {relay.identity: relay for relay in roster}

    coordinator = ScanCoordinator.from_settings(settings)
    plan = coordinator.load_roster(roster)

    for scan_slice in plan.slices:
        probes = 0
        while (pair := coordinator.next_pair(scan_slice.slice_id)) is not None:
            target = relays_by_id[pair.target]
            # fake throughput around the descriptor value
            sample = int(target.descriptor_bandwidth * rng.uniform(0.5, 1.2))
            coordinator.record_measurement(pair.target, sample)
            probes += 1

        result = coordinator.complete_slice(scan_slice.slice_id)
        print(
            f"slice {scan_slice.slice_id}: {probes} probes, "
            f"published version {result.version} to {result.path}"
        )

    print(f"OK: bandwidth file at {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
