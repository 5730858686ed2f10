"""Bandwidth aggregation and publication.

Folds completed measurements into a per-relay stats table and publishes
a capped, redistributed bandwidth for every known relay:

    new_bw = advertised_bw * max(mean_bw / avg_mean, filtered_bw / avg_filtered)

Averages are taken over the whole table, not just the relays updated by
the latest report. Any relay above ``node_cap * total`` is clamped to it.
Not thread-safe; serialize calls (see worker.coordinator).
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

import numpy as np

from relayscan.aggregation import report
from relayscan.core.stats import filtered_bandwidth, mean_bandwidth
from relayscan.models.domain import Relay, RelayStats
from relayscan.models.types import BandwidthEntry, BandwidthSnapshot, PublishResult

logger = logging.getLogger(__name__)

# Largest share of the total any single relay keeps after redistribution
NODE_CAP = 0.05

# Samples a relay needs before its measurements are used
MEASUREMENTS_PER_SLICE = 5


def _ratios(values: np.ndarray, average: float) -> np.ndarray:
    """Element-wise values / average, all zero when the average is zero."""
    if average <= 0:
        return np.zeros_like(values)
    return values / average


class BandwidthAggregator:
    """Owns the relay stats table and the publish pipeline."""

    def __init__(
        self,
        output_path: Path | str,
        node_cap: float = NODE_CAP,
        measurements_required: int = MEASUREMENTS_PER_SLICE,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize aggregator.

        Args:
            output_path: Well-known published filename (a symlink once published).
            node_cap: Maximum fraction of total bandwidth per relay, in (0, 1].
            measurements_required: Samples needed before a relay is folded in.
            clock: Source of the report timestamp.
        """
        if not 0 < node_cap <= 1:
            raise ValueError(f"node_cap must be in (0, 1], got {node_cap}")

        self.output_path = Path(output_path)
        self.node_cap = node_cap
        self.measurements_required = measurements_required
        self._clock = clock

        self.relay_stats: dict[str, RelayStats] = {}
        self.version = 0
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        """Whether report_initial has run."""
        return self._initialized

    def report_initial(self, relays: list[Relay]) -> None:
        """Seed the table from descriptors. Only the first call has effect.

        Descriptor bandwidth stands in for both mean and filtered
        bandwidth until real measurements arrive.

        Args:
            relays: Full roster.
        """
        if relays is None:
            raise ValueError("relays is required")

        if self._initialized:
            return
        self._initialized = True

        for relay in relays:
            self._upsert(
                relay,
                mean=relay.descriptor_bandwidth,
                filtered=relay.descriptor_bandwidth,
            )

        logger.info(f"Seeded bandwidth table with {len(self.relay_stats)} relays")

    def report_measurements(
        self,
        measured_relays: list[Relay],
        slice_size: int,
        current_slice: int,
    ) -> PublishResult:
        """Fold one slice window of measured relays in and publish.

        Only relays in ``measured_relays[slice_size * current_slice:][:slice_size]``
        with at least ``measurements_required`` samples are updated.

        Args:
            measured_relays: Ordered relay list the slices were cut from.
            slice_size: Window length.
            current_slice: Window index.

        Returns:
            PublishResult of the publish that follows.
        """
        if measured_relays is None:
            raise ValueError("measured_relays is required")
        if slice_size < 0 or current_slice < 0:
            raise ValueError(
                f"slice_size and current_slice must be non-negative, "
                f"got {slice_size} and {current_slice}"
            )

        start = slice_size * current_slice
        updated = 0
        for relay in measured_relays[start : start + slice_size]:
            if relay.measurement_count < self.measurements_required:
                continue
            mean = mean_bandwidth(relay)
            self._upsert(relay, mean=mean, filtered=filtered_bandwidth(relay, mean))
            updated += 1

        logger.info(f"Slice {current_slice}: folded in {updated} measured relays")

        return self.publish()

    def _upsert(self, relay: Relay, mean: int, filtered: int) -> None:
        """Create or update the stats entry for a relay in place."""
        stats = self.relay_stats.get(relay.identity)
        if stats is None:
            self.relay_stats[relay.identity] = RelayStats(
                identity=relay.identity,
                nickname=relay.nickname,
                descriptor_bandwidth=relay.descriptor_bandwidth,
                advertised_bandwidth=relay.advertised_bandwidth,
                mean_bandwidth=mean,
                filtered_bandwidth=filtered,
            )
            return

        stats.nickname = relay.nickname
        stats.descriptor_bandwidth = relay.descriptor_bandwidth
        stats.advertised_bandwidth = relay.advertised_bandwidth
        stats.mean_bandwidth = mean
        stats.filtered_bandwidth = filtered

    def compute_bandwidths(self) -> list[str]:
        """Recompute new_bandwidth for every entry and apply the node cap.

        Returns:
            Identities of the relays that were capped.
        """
        stats = list(self.relay_stats.values())
        if not stats:
            return []

        means = np.array([s.mean_bandwidth for s in stats], dtype=np.float64)
        filtered = np.array([s.filtered_bandwidth for s in stats], dtype=np.float64)
        advertised = np.array([s.advertised_bandwidth for s in stats], dtype=np.float64)

        # the better of the two ratios, as torflow does
        ratio = np.maximum(_ratios(means, means.mean()), _ratios(filtered, filtered.mean()))
        new_bandwidths = (advertised * ratio).astype(np.int64)

        for s, bw in zip(stats, new_bandwidths):
            s.new_bandwidth = int(bw)

        total_bandwidth = int(new_bandwidths.sum())
        cap = int(total_bandwidth * self.node_cap)

        capped: list[str] = []
        for s in stats:
            if s.new_bandwidth > cap:
                logger.warning(
                    f"Capping bandwidth for extremely fast relay {s.nickname} "
                    f"({s.identity}): {s.new_bandwidth} -> {cap}"
                )
                s.new_bandwidth = cap
                capped.append(s.identity)

        return capped

    def publish(self) -> PublishResult:
        """Recompute bandwidths and publish a new version.

        Writes ``<output_path>.<version>`` and relinks ``output_path`` to it.
        The version advances even when writing or relinking fails.

        Returns:
            PublishResult describing what was written.
        """
        capped = self.compute_bandwidths()
        version = self.version
        path = None
        linked = False

        try:
            content = report.render_report(self.entries(), int(self._clock()))
            try:
                path = report.write_versioned(self.output_path, version, content)
            except OSError as e:
                logger.error(f"Unable to write bandwidth file version {version}: {e}")
            else:
                linked = report.relink(self.output_path, path)
        finally:
            self.version += 1

        logger.info(
            f"Published bandwidth file version {version} with "
            f"{len(self.relay_stats)} relays to {path} (linked={linked})"
        )

        return PublishResult(
            version=version,
            path=str(path) if path is not None else None,
            linked=linked,
            relay_count=len(self.relay_stats),
            capped=capped,
        )

    def entries(self) -> list[BandwidthEntry]:
        """Current table as published entries, in table order."""
        return [
            BandwidthEntry(identity=s.identity, nickname=s.nickname, bandwidth=s.new_bandwidth)
            for s in self.relay_stats.values()
        ]

    def snapshot(self) -> BandwidthSnapshot:
        """Latest published view, tagged with the version of the last publish.

        Raises:
            RuntimeError: If nothing has been published yet.
        """
        if self.version == 0:
            raise RuntimeError("No bandwidth file published yet")
        return BandwidthSnapshot(version=self.version - 1, relays=self.entries())
