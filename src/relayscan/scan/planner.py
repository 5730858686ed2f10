"""Split a relay roster into scan slices.

Measurable relays are ordered fastest first by descriptor bandwidth and
cut into fixed-size windows. Every authority joins every slice as a
pairing partner. The ordered list is returned with the slices so the
aggregator can be handed the same window once a slice completes.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from relayscan.models.domain import Relay
from relayscan.scan.slice import Slice


@dataclass
class SlicePlan:
    """Slices for one scan generation."""

    ordered_relays: list[Relay]
    authorities: list[Relay]
    slices: list[Slice]
    slice_size: int


def order_relays(relays: list[Relay]) -> list[Relay]:
    """Order non-authority relays by descriptor bandwidth, fastest first.

    Identity breaks ties so the order is stable across runs.
    """
    measurable = [r for r in relays if not r.is_authority]
    return sorted(measurable, key=lambda r: (-r.descriptor_bandwidth, r.identity))


def plan_slices(
    relays: list[Relay],
    slice_size: int,
    probes_per_relay: int,
    only_measure_exits: bool = False,
    rng: random.Random | None = None,
) -> SlicePlan:
    """Build the slices for a roster.

    Args:
        relays: Full roster, authorities included.
        slice_size: Number of measurable relays per slice.
        probes_per_relay: Target probe count per entry/exit.
        only_measure_exits: Leave entry relays out of every slice.
        rng: Shared random source; each slice gets its own child generator.

    Returns:
        SlicePlan with slices numbered from 0.
    """
    if relays is None:
        raise ValueError("relays is required")
    if slice_size <= 0:
        raise ValueError(f"slice_size must be positive, got {slice_size}")

    rng = rng or random.Random()
    ordered = order_relays(relays)
    authorities = [r for r in relays if r.is_authority]

    slices: list[Slice] = []
    for slice_id, start in enumerate(range(0, len(ordered), slice_size)):
        percentile = start / len(ordered)
        scan_slice = Slice(
            slice_id=slice_id,
            percentile=percentile,
            probes_per_relay=probes_per_relay,
            rng=random.Random(rng.getrandbits(64)),
        )
        for relay in ordered[start : start + slice_size]:
            scan_slice.add_relay(relay, only_measure_exits)
        for authority in authorities:
            scan_slice.add_relay(authority, only_measure_exits)
        slices.append(scan_slice)

    return SlicePlan(
        ordered_relays=ordered,
        authorities=authorities,
        slices=slices,
        slice_size=slice_size,
    )
