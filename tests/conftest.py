"""Shared pytest fixtures for relayscan tests."""

import random

import pytest

from relayscan.models.domain import Relay


@pytest.fixture
def make_relay():
    """Factory for relays with sensible defaults."""

    def _make_relay(
        identity: str,
        role: str = "entry",
        bandwidth: int = 1000,
        advertised: int | None = None,
        samples: list[int] | None = None,
    ) -> Relay:
        relay = Relay(
            identity=identity,
            nickname=f"nick{identity}",
            is_authority=role == "authority",
            is_exit=role == "exit",
            descriptor_bandwidth=bandwidth,
            advertised_bandwidth=bandwidth if advertised is None else advertised,
        )
        for sample in samples or []:
            relay.record_measurement(sample)
        return relay

    return _make_relay


@pytest.fixture
def rng():
    """Seeded random source for reproducible selection."""
    return random.Random(1234)
