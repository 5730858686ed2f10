"""Scan coordinator: the serialization boundary between probe workers and the core.

Architecture:
- Each Slice is guarded by its own lock, so slices run fully in parallel
- The aggregator is a single shared sink behind one lock
- The roster lock guards relay sample updates reported by workers

Probing itself, worker lifecycle and retry policy live outside; workers
only ask for pairs, report samples and signal slice completion.
"""

from __future__ import annotations

import logging
import random
import threading

from relayscan.aggregation.aggregator import BandwidthAggregator
from relayscan.config import ScanSettings
from relayscan.core.identity import normalize_identity
from relayscan.models.domain import Relay, RelayPair
from relayscan.models.types import BandwidthSnapshot, PublishResult, SliceStatus
from relayscan.scan.planner import SlicePlan, plan_slices
from relayscan.scan.slice import Slice

logger = logging.getLogger(__name__)


class ScanCoordinator:
    """Hands out relay pairs and funnels results into the aggregator."""

    def __init__(self, aggregator: BandwidthAggregator, settings: ScanSettings | None = None):
        """Initialize coordinator.

        Args:
            aggregator: Shared aggregator that receives completed slices.
            settings: Scan settings. Defaults to ScanSettings().
        """
        self.aggregator = aggregator
        self.settings = settings or ScanSettings()
        self._rng = random.Random(self.settings.seed)

        self._plan: SlicePlan | None = None
        self._relays: dict[str, Relay] = {}
        self._slice_locks: dict[int, threading.Lock] = {}
        self._roster_lock = threading.Lock()
        self._aggregator_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: ScanSettings) -> ScanCoordinator:
        """Build a coordinator and its aggregator from settings."""
        aggregator = BandwidthAggregator(
            output_path=settings.output_path,
            node_cap=settings.node_cap,
            measurements_required=settings.measurements_required,
        )
        return cls(aggregator, settings)

    def load_roster(self, relays: list[Relay]) -> SlicePlan:
        """Start a scan generation over a roster.

        Seeds the aggregator (first generation only) and replaces all slices.

        Args:
            relays: Full roster, authorities included.

        Returns:
            The new SlicePlan.
        """
        plan = plan_slices(
            relays,
            slice_size=self.settings.slice_size,
            probes_per_relay=self.settings.probes_per_relay,
            only_measure_exits=self.settings.only_measure_exits,
            rng=self._rng,
        )

        with self._aggregator_lock:
            self.aggregator.report_initial(relays)

        with self._roster_lock:
            self._relays = {normalize_identity(relay.identity): relay for relay in relays}
            self._plan = plan
            self._slice_locks = {s.slice_id: threading.Lock() for s in plan.slices}

        logger.info(
            f"Loaded roster of {len(relays)} relays into {len(plan.slices)} slices "
            f"({len(plan.authorities)} authorities)"
        )
        return plan

    @property
    def slices(self) -> list[Slice]:
        """Slices of the current generation."""
        return list(self._plan.slices) if self._plan else []

    def _get_slice(self, slice_id: int) -> tuple[SlicePlan, Slice, threading.Lock]:
        """Look up a slice, its lock and the plan they both belong to.

        Raises:
            KeyError: If no slice has this id.
        """
        with self._roster_lock:
            plan, locks = self._plan, self._slice_locks
        if plan is None or slice_id not in locks:
            raise KeyError(f"Unknown slice {slice_id}")
        return plan, plan.slices[slice_id], locks[slice_id]

    def next_pair(self, slice_id: int) -> RelayPair | None:
        """Choose the next pair to probe in a slice.

        Returns:
            RelayPair, or None once the slice has no probes remaining.
        """
        _, scan_slice, lock = self._get_slice(slice_id)
        with lock:
            return scan_slice.choose_relay_pair()

    def slice_status(self, slice_id: int) -> SliceStatus:
        """Progress of one slice."""
        _, scan_slice, lock = self._get_slice(slice_id)
        with lock:
            return scan_slice.status()

    def all_slice_status(self) -> list[SliceStatus]:
        """Progress of every slice in id order."""
        return [self.slice_status(s.slice_id) for s in self.slices]

    def record_measurement(self, identity: str, bytes_per_second: int) -> None:
        """Attach a completed probe sample to a relay.

        Raises:
            KeyError: If the relay is not in the roster.
        """
        with self._roster_lock:
            relay = self._relays.get(normalize_identity(identity))
            if relay is None:
                raise KeyError(f"Unknown relay {identity}")
            relay.record_measurement(bytes_per_second)

    def complete_slice(self, slice_id: int) -> PublishResult:
        """Fold a finished slice's relays into the aggregator and publish."""
        plan, scan_slice, lock = self._get_slice(slice_id)
        with lock:
            scan_slice.log_status()

        with self._roster_lock, self._aggregator_lock:
            return self.aggregator.report_measurements(
                plan.ordered_relays, plan.slice_size, slice_id
            )

    def publish(self) -> PublishResult:
        """Publish the aggregator's current picture."""
        with self._aggregator_lock:
            return self.aggregator.publish()

    def snapshot(self) -> BandwidthSnapshot:
        """Latest aggregated bandwidths.

        Raises:
            RuntimeError: If no roster has been loaded or nothing has been
                published yet.
        """
        with self._aggregator_lock:
            if not self.aggregator.is_initialized:
                raise RuntimeError("Aggregator not initialized yet")
            return self.aggregator.snapshot()
