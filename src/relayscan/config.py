"""Scan settings.

Defaults can be overridden through ``RELAYSCAN_*`` environment variables:
- RELAYSCAN_OUTPUT_PATH: published bandwidth filename
- RELAYSCAN_NODE_CAP: max share of total bandwidth per relay
- RELAYSCAN_SLICE_SIZE: measurable relays per slice
- RELAYSCAN_PROBES_PER_RELAY: probe target per entry/exit
- RELAYSCAN_MEASUREMENTS_REQUIRED: samples before a relay is aggregated
- RELAYSCAN_ONLY_MEASURE_EXITS: skip entry relays
- RELAYSCAN_SEED: seed for pair selection
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

from relayscan.aggregation.aggregator import MEASUREMENTS_PER_SLICE, NODE_CAP

ENV_PREFIX = "RELAYSCAN_"

DEFAULT_OUTPUT_PATH = Path("data/v3bw")
DEFAULT_SLICE_SIZE = 50


class ScanSettings(BaseModel):
    """Settings shared by the slice planner and the aggregator."""

    output_path: Path = DEFAULT_OUTPUT_PATH
    node_cap: float = Field(default=NODE_CAP, gt=0, le=1)
    slice_size: int = Field(default=DEFAULT_SLICE_SIZE, gt=0)
    probes_per_relay: int = Field(default=MEASUREMENTS_PER_SLICE, gt=0)
    measurements_required: int = Field(default=MEASUREMENTS_PER_SLICE, ge=0)
    only_measure_exits: bool = False
    seed: int | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ScanSettings:
        """Build settings from environment variables.

        Unset or empty variables keep their defaults; values are validated
        by pydantic.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            Validated ScanSettings.
        """
        if environ is None:
            environ = os.environ

        values = {}
        for name in cls.model_fields:
            key = f"{ENV_PREFIX}{name.upper()}"
            if environ.get(key, "").strip():
                values[name] = environ[key]

        return cls.model_validate(values)
