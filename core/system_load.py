from typing import Callable, Optional, Tuple

import psutil

from core.logging_config import LoggerMixin
from core.types import clamp_percent

# Assumed 1-minute load average at which the host counts as saturated.
LOAD_SATURATION = 4.0
DEFAULT_SYSTEM_LOAD = 50.0


class SystemLoadReader(LoggerMixin):
    def __init__(
        self,
        loadavg: Optional[Callable[[], Tuple[float, float, float]]] = None,
        saturation: float = LOAD_SATURATION,
    ):
        self.loadavg = loadavg or psutil.getloadavg
        self.saturation = saturation

    def read_system_load(self) -> float:
        try:
            load1 = float(self.loadavg()[0])
        except (OSError, AttributeError, RuntimeError, IndexError, TypeError, ValueError) as e:
            self.logger.warning("Load average unavailable", error=str(e), fallback=DEFAULT_SYSTEM_LOAD)
            return DEFAULT_SYSTEM_LOAD
        normalized = clamp_percent(load1 / self.saturation * 100)
        self.logger.debug("System load", load_average=load1, load_percent=round(normalized, 2))
        return normalized
