"""Domain models for relayscan.

Pure Python dataclasses for the entities the scheduling and aggregation
core works with. Relays are borrowed from the ingestion side; stats and
pairs are owned by the core.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

# ============================================================================
# Relay Domain
# ============================================================================

RelayRole = Literal["authority", "exit", "entry"]


@dataclass
class Relay:
    """A relay as seen by the scanner.

    Attributes:
        identity: Stable unique fingerprint.
        nickname: Display name.
        is_authority: Relay is a directory authority.
        is_exit: Relay allows exiting.
        descriptor_bandwidth: Capacity reported in the descriptor.
        advertised_bandwidth: Capacity claimed for load balancing.
        measurement_count: Number of completed probes.
        bandwidth_samples: Bytes/second observed per completed probe.
    """

    identity: str
    nickname: str
    is_authority: bool = False
    is_exit: bool = False
    descriptor_bandwidth: int = 0
    advertised_bandwidth: int = 0
    measurement_count: int = 0
    bandwidth_samples: list[int] = field(default_factory=list)

    @property
    def role(self) -> RelayRole:
        """Role used for slice partitioning (authority > exit > entry)."""
        if self.is_authority:
            return "authority"
        if self.is_exit:
            return "exit"
        return "entry"

    def record_measurement(self, bytes_per_second: int) -> None:
        """Append a probe sample and bump the measurement count."""
        self.bandwidth_samples.append(int(bytes_per_second))
        self.measurement_count += 1


# ============================================================================
# Scheduling Domain
# ============================================================================


@dataclass(frozen=True)
class RelayPair:
    """A pair of relays to probe together.

    One side is always an authority. When the measured target is an
    entry it sits in ``entry``; when it is an exit it sits in ``exit``.
    """

    entry: str
    exit: str
    target: str
    target_role: RelayRole
    target_probes: int


# ============================================================================
# Aggregation Domain
# ============================================================================


@dataclass
class RelayStats:
    """Aggregator entry for one relay, keyed by identity."""

    identity: str
    nickname: str
    descriptor_bandwidth: int
    advertised_bandwidth: int
    mean_bandwidth: int
    filtered_bandwidth: int
    new_bandwidth: int = 0
