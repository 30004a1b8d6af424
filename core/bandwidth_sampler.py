"""
Interface throughput sampling.

SAMPLE_INTERVAL_SECONDS and ASSUMED_CAPACITY_BPS are tunable assumptions,
not measured facts: the result is an inexpensive approximation of link
utilisation, not an exact one.
"""

import time
from typing import Callable, Dict, Iterable, List, Tuple

import psutil

from core.logging_config import LoggerMixin, log_performance
from core.types import InterfaceName, clamp_percent

SAMPLE_INTERVAL_SECONDS = 0.5
ASSUMED_CAPACITY_BPS = 1000 * 1000 * 1000  # 1 Gbps
FALLBACK_LOAD_PER_INTERFACE = 10.0
FALLBACK_INTERFACE_CAP = 90.0
DEFAULT_BANDWIDTH_LOAD = 30.0

# (bytes_recv, bytes_sent) per interface
Counters = Dict[InterfaceName, Tuple[int, int]]


def read_interface_counters() -> Counters:
    """Cumulative byte counters for every interface the OS exposes."""
    stats = psutil.net_io_counters(pernic=True)
    return {name: (c.bytes_recv, c.bytes_sent) for name, c in stats.items()}


def list_interfaces() -> List[InterfaceName]:
    return list(psutil.net_if_stats().keys())


class BandwidthSampler(LoggerMixin):
    """Derives a bandwidth load percentage from two counter snapshots."""

    def __init__(
        self,
        counters_reader: Callable[[], Counters] = read_interface_counters,
        interface_lister: Callable[[], List[InterfaceName]] = list_interfaces,
        sleep: Callable[[float], None] = time.sleep,
        interval: float = SAMPLE_INTERVAL_SECONDS,
        capacity_bps: float = ASSUMED_CAPACITY_BPS,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if capacity_bps <= 0:
            raise ValueError("capacity_bps must be positive")
        self.counters_reader = counters_reader
        self.interface_lister = interface_lister
        self.sleep = sleep
        self.interval = interval
        self.capacity_bps = capacity_bps

    def interface_load(self, before: Tuple[int, int], after: Tuple[int, int]) -> float:
        """Load percentage of one interface, the larger of rx and tx."""
        rx_bits = max(after[0] - before[0], 0) * 8 / self.interval
        tx_bits = max(after[1] - before[1], 0) * 8 / self.interval
        return max(rx_bits, tx_bits) / self.capacity_bps * 100

    @log_performance
    def sample_bandwidth_load(self, interfaces: Iterable[InterfaceName]) -> float:
        """Sample the summed load of `interfaces`, clamped to [0, 100]."""
        interfaces = list(interfaces)
        try:
            first = self.counters_reader()
        except (OSError, RuntimeError, AttributeError) as e:
            self.logger.warning("Interface counters unavailable", error=str(e))
            return self._fallback()

        available = [name for name in interfaces if name in first]
        for name in interfaces:
            if name not in first:
                self.logger.warning("No byte counters for interface", interface=name)
        if not available:
            return self._fallback()

        self.sleep(self.interval)

        try:
            second = self.counters_reader()
        except (OSError, RuntimeError, AttributeError) as e:
            self.logger.warning("Interface counters unavailable on second sample", error=str(e))
            return self._fallback()

        total = 0.0
        sampled = 0
        for name in available:
            if name not in second:
                self.logger.warning("Interface disappeared during sampling", interface=name)
                continue
            load = self.interface_load(first[name], second[name])
            self.logger.debug("Interface load", interface=name, load_percent=round(load, 4))
            total += load
            sampled += 1

        if not sampled:
            return self._fallback()

        result = clamp_percent(total)
        if result < total:
            self.logger.info("Bandwidth load clamped", raw_load=round(total, 2), load=result)
        return result

    def _fallback(self) -> float:
        try:
            count = len(self.interface_lister())
        except (OSError, RuntimeError, AttributeError) as e:
            self.logger.warning(
                "Cannot list interfaces, using default bandwidth load",
                error=str(e),
                fallback=DEFAULT_BANDWIDTH_LOAD,
            )
            return DEFAULT_BANDWIDTH_LOAD
        if count == 0:
            self.logger.warning("No interfaces visible, using default bandwidth load", fallback=DEFAULT_BANDWIDTH_LOAD)
            return DEFAULT_BANDWIDTH_LOAD
        estimate = min(count * FALLBACK_LOAD_PER_INTERFACE, FALLBACK_INTERFACE_CAP)
        self.logger.warning(
            "Using interface-count bandwidth estimate",
            interface_count=count,
            fallback=estimate,
        )
        return estimate
