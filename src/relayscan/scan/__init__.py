"""Scan scheduling: slices and the relay pairs probed within them."""

from relayscan.scan.planner import SlicePlan, plan_slices
from relayscan.scan.slice import Slice, transfer_size_for

__all__ = [
    "Slice",
    "SlicePlan",
    "plan_slices",
    "transfer_size_for",
]
