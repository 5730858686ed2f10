"""Pydantic models for the relayscan API and published report."""

from typing import Literal

from pydantic import BaseModel


class SliceStatus(BaseModel):
    """Progress of one scan slice."""

    slice_id: int
    percentile: float
    transfer_size: int
    probes_per_relay: int
    entries: int
    exits: int
    authorities: int
    probes_remaining: int


class RelayPairResponse(BaseModel):
    """Pair assignment handed to a probe worker."""

    slice_id: int
    entry: str
    exit: str
    target: str
    target_role: Literal["entry", "exit"]
    transfer_size: int


class BandwidthEntry(BaseModel):
    """One line of the published bandwidth file."""

    identity: str
    nickname: str
    bandwidth: int

    def to_line(self) -> str:
        """Render as ``node_id=$<id> bw=<int> nick=<nick>``."""
        return f"node_id=${self.identity} bw={self.bandwidth} nick={self.nickname}"


class BandwidthSnapshot(BaseModel):
    """Current aggregated view of relay bandwidths."""

    version: int
    relays: list[BandwidthEntry]


class PublishResult(BaseModel):
    """Outcome of one publish."""

    version: int
    path: str | None
    linked: bool
    relay_count: int
    capped: list[str]
