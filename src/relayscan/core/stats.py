"""Bandwidth statistics over a relay's probe samples.

- mean_bandwidth: integer mean of all samples
- filtered_bandwidth: integer mean of the samples at or above the mean

Both return 0 for a relay with no samples, so a relay that was never
probed contributes nothing to the population averages.
"""

from __future__ import annotations

import numpy as np

from relayscan.models.domain import Relay


def mean_bandwidth(relay: Relay) -> int:
    """Compute the mean of a relay's bandwidth samples.

    Args:
        relay: Relay with accumulated samples (bytes/second).

    Returns:
        Mean bandwidth truncated to an integer.
    """
    if not relay.bandwidth_samples:
        return 0

    samples = np.asarray(relay.bandwidth_samples, dtype=np.float64)
    return int(samples.mean())


def filtered_bandwidth(relay: Relay, mean: int | None = None) -> int:
    """Compute the filtered bandwidth of a relay.

    Only samples greater than or equal to the mean are kept, which
    discards probes that were slowed down by the other hop.

    Args:
        relay: Relay with accumulated samples (bytes/second).
        mean: Precomputed mean; computed from the samples when omitted.

    Returns:
        Mean of the kept samples truncated to an integer.
    """
    if not relay.bandwidth_samples:
        return 0

    if mean is None:
        mean = mean_bandwidth(relay)

    samples = np.asarray(relay.bandwidth_samples, dtype=np.float64)
    kept = samples[samples >= mean]
    if kept.size == 0:
        return 0
    return int(kept.mean())
