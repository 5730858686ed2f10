"""Probe candidate selection for one scan slice.

A slice holds three disjoint partitions of relays (entries, exits,
authorities), each mapping identity to the number of probes issued.
Pairs are chosen least-measured first:
- the target is drawn uniformly among entries and exits with the
  lowest probe count
- the authority is drawn uniformly among authorities with the lowest
  probe count
- only the target's counter is incremented

Authority counters never move, so authorities act as an unlimited
pairing pool. Slices are not thread-safe; callers serialize access.
"""

from __future__ import annotations

import logging
import math
import random

from relayscan.core.identity import same_identity
from relayscan.models.domain import Relay, RelayPair
from relayscan.models.types import SliceStatus

logger = logging.getLogger(__name__)

KiB = 1024
MiB = 1024 * KiB
GiB = 1024 * MiB

# (upper percentile bound, transfer size); first bound above the slice's
# percentile wins. Fast relays sit at low percentiles and get big files.
TRANSFER_SIZES: tuple[tuple[float, int], ...] = (
    (0.01, 1 * GiB),
    (0.07, 2 * MiB),
    (0.23, 1 * MiB),
    (0.53, 512 * KiB),
    (0.82, 256 * KiB),
    (0.95, 128 * KiB),
    (0.99, 64 * KiB),
)
DEFAULT_TRANSFER_SIZE = 32 * KiB


def transfer_size_for(percentile: float) -> int:
    """Look up the probe payload size for a slice percentile.

    Args:
        percentile: Position of the slice in the bandwidth-ordered roster [0,1].

    Returns:
        Payload size in bytes.
    """
    for upper_bound, size in TRANSFER_SIZES:
        if percentile < upper_bound:
            return size
    return DEFAULT_TRANSFER_SIZE


def _least_probed(table: dict[str, int]) -> list[str]:
    """Return every identity whose probe count equals the table minimum."""
    if not table:
        return []
    min_probes = min(table.values())
    return [identity for identity, probes in table.items() if probes == min_probes]


class Slice:
    """One independently scheduled scan segment."""

    def __init__(
        self,
        slice_id: int,
        percentile: float,
        probes_per_relay: int,
        rng: random.Random | None = None,
    ):
        """Initialize an empty slice.

        Args:
            slice_id: Numeric id of the segment.
            percentile: Position in the bandwidth-ordered roster, sizes probes.
            probes_per_relay: Target probe count for every entry and exit.
            rng: Random source for tie-breaking (seed it for reproducible runs).
        """
        if probes_per_relay <= 0:
            raise ValueError(f"probes_per_relay must be positive, got {probes_per_relay}")

        self.slice_id = slice_id
        self.percentile = percentile
        self.probes_per_relay = probes_per_relay
        self._rng = rng or random.Random()

        self.entries: dict[str, int] = {}
        self.exits: dict[str, int] = {}
        self.authorities: dict[str, int] = {}

        # last contains() query and its answer
        self._search_cache: tuple[str, bool] | None = None

    def add_relay(self, relay: Relay, only_measure_exits: bool = False) -> None:
        """Place a relay in its role partition with a zero probe count.

        Re-adding an identity resets its counter; add each relay once per
        scan generation.

        Args:
            relay: Relay to add.
            only_measure_exits: Drop entry relays instead of adding them.
        """
        if relay is None:
            raise ValueError("relay is required")

        if relay.is_authority:
            self.authorities[relay.identity] = 0
        elif relay.is_exit:
            self.exits[relay.identity] = 0
        elif not only_measure_exits:
            self.entries[relay.identity] = 0
        else:
            return

        # membership changed, cached answer may be stale
        self._search_cache = None

    def get_length(self) -> int:
        """Number of measurable relays (entries and exits)."""
        return len(self.entries) + len(self.exits)

    def get_num_probes_remaining(self) -> int:
        """Sum of unmet probe targets over entries and exits."""
        remaining = 0
        for table in (self.entries, self.exits):
            for probes in table.values():
                remaining += max(0, self.probes_per_relay - probes)
        return remaining

    def get_transfer_size(self) -> int:
        """Probe payload size for this slice's percentile."""
        return transfer_size_for(self.percentile)

    def probe_count(self, identity: str) -> int | None:
        """Current probe count of a relay in any partition, None if absent."""
        for table in (self.entries, self.exits, self.authorities):
            if identity in table:
                return table[identity]
        return None

    def _random_index(self, num_elements: int) -> int:
        """Uniform index in [0, num_elements)."""
        if num_elements <= 0:
            return 0
        index = int(math.floor(self._rng.random() * num_elements))
        return min(index, num_elements - 1)

    def choose_relay_pair(self) -> RelayPair | None:
        """Pick the next pair to probe and count the probe against the target.

        Returns:
            RelayPair, or None when the slice is exhausted or no candidate
            could be found.
        """
        remaining = self.get_num_probes_remaining()
        if remaining <= 0:
            return None

        targets = {**self.entries, **self.exits}
        candidate_targets = _least_probed(targets)
        candidate_auths = _least_probed(self.authorities)

        if not candidate_targets or not candidate_auths:
            logger.error(
                f"slice {self.slice_id}: {remaining} probes remaining but found "
                f"{len(candidate_targets)} target candidates and "
                f"{len(candidate_auths)} authority candidates"
            )
            return None

        target_position = self._random_index(len(candidate_targets))
        auth_position = self._random_index(len(candidate_auths))
        target_id = candidate_targets[target_position]
        auth_id = candidate_auths[auth_position]

        measure_entry = target_id in self.entries
        table = self.entries if measure_entry else self.exits
        table[target_id] += 1
        new_count = table[target_id]

        logger.info(
            f"slice {self.slice_id}: choosing relay pair: found "
            f"{len(candidate_targets)} candidates of {len(targets)} targets and "
            f"{len(candidate_auths)} candidates of {len(self.authorities)} auths, "
            f"choosing {'entry' if measure_entry else 'exit'} {target_id} at position "
            f"{target_position} and auth {auth_id} at position {auth_position}, "
            f"new target probe count is {new_count}"
        )

        if measure_entry:
            return RelayPair(
                entry=target_id,
                exit=auth_id,
                target=target_id,
                target_role="entry",
                target_probes=new_count,
            )
        return RelayPair(
            entry=auth_id,
            exit=target_id,
            target=target_id,
            target_role="exit",
            target_probes=new_count,
        )

    def contains(self, identity: str | None) -> bool:
        """Check whether an entry or exit with this identity is in the slice.

        Authorities are not searched. Comparison ignores case. The last
        query and its answer are cached so bursts of the same lookup do
        not rescan the partitions.
        """
        if identity is None:
            return False

        if self._search_cache is not None:
            cached_identity, cached_found = self._search_cache
            if same_identity(identity, cached_identity):
                return cached_found

        found = any(same_identity(identity, key) for key in self.entries)
        if not found:
            found = any(same_identity(identity, key) for key in self.exits)

        self._search_cache = (identity, found)
        return found

    def status(self) -> SliceStatus:
        """Snapshot of slice progress."""
        return SliceStatus(
            slice_id=self.slice_id,
            percentile=self.percentile,
            transfer_size=self.get_transfer_size(),
            probes_per_relay=self.probes_per_relay,
            entries=len(self.entries),
            exits=len(self.exits),
            authorities=len(self.authorities),
            probes_remaining=self.get_num_probes_remaining(),
        )

    def log_status(self) -> None:
        """Log partition sizes and probes remaining."""
        logger.info(
            f"slice {self.slice_id}: we have {len(self.entries)} entries and "
            f"{len(self.exits)} exits, and {self.get_num_probes_remaining()} "
            "probes remaining"
        )
