"""
Combines the component loads into a single 0-100 score.
"""

import math

from config.config import Weights
from core.types import clamp_percent

# Calibration constant: the bandwidth sampler's 1 Gbps capacity assumption
# overstates typical load, so its contribution is halved.
BANDWIDTH_DAMPENING = 0.5


def round_half_up(value: float) -> int:
    """Round .5 away from zero."""
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def connection_load_from_count(active_connections: int, max_connections: int) -> float:
    """Percentage of the connection capacity in use, clamped to [0, 100]."""
    if max_connections <= 0:
        return 100.0 if active_connections > 0 else 0.0
    return clamp_percent(active_connections / max_connections * 100)


def aggregate(
    connection_load: float,
    bandwidth_load: float,
    system_load: float,
    weights: Weights,
) -> int:
    """Weighted load score, always within [0, 100]."""
    weighted = (
        clamp_percent(connection_load) * weights.connection
        + clamp_percent(bandwidth_load) * BANDWIDTH_DAMPENING * weights.bandwidth
        + clamp_percent(system_load) * weights.system
    )
    return int(min(max(round_half_up(weighted), 0), 100))
