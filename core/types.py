"""
Type definitions for the load reporting agent.
Provides type safety and better IDE support.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

ServerId = str
InterfaceName = str
PublicKey = str
DatabaseRow = Dict[str, Any]
DatabaseResult = List[DatabaseRow]


def clamp_percent(value: float) -> float:
    """Clamp a percentage to the closed range [0, 100]."""
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(100.0, float(value)))


class VPNType(Enum):
    """VPN backends the agent knows how to observe."""
    OPENVPN = "openvpn"
    WIREGUARD = "wireguard"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["VPNType"]:
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class FallbackPolicy(Enum):
    """What to do when the connection count had to be estimated."""
    ESTIMATE = "estimate"
    SKIP = "skip"


class PublishStatus(Enum):
    """Outcome of a publish call that reached the database."""
    UPDATED = "updated"
    NOT_FOUND = "not_found"
    NO_CHANGE = "no_change"


@dataclass(frozen=True)
class CommandResult:
    """Result of a host command invocation."""
    args: Tuple[str, ...]
    return_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.return_code == 0


@dataclass(frozen=True)
class ConnectionCount:
    """Active connection count and where it came from."""
    count: int
    source: str
    estimated: bool = False


@dataclass(frozen=True)
class LoadSample:
    """Raw component scores, each clamped to [0, 100]."""
    connection_load: float
    bandwidth_load: float
    system_load: float
    active_connections: int = 0
    connections_estimated: bool = False

    def __post_init__(self):
        object.__setattr__(self, "connection_load", clamp_percent(self.connection_load))
        object.__setattr__(self, "bandwidth_load", clamp_percent(self.bandwidth_load))
        object.__setattr__(self, "system_load", clamp_percent(self.system_load))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "connection_load": round(self.connection_load, 2),
            "bandwidth_load": round(self.bandwidth_load, 2),
            "system_load": round(self.system_load, 2),
            "active_connections": self.active_connections,
            "connections_estimated": self.connections_estimated,
        }


@dataclass(frozen=True)
class LoadReport:
    """Aggregate load score for one measurement cycle."""
    server_id: ServerId
    load: int
    timestamp: datetime
    sample: Optional[LoadSample] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "server_id": self.server_id,
            "load": self.load,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.sample is not None:
            data["components"] = self.sample.as_dict()
        return data


@dataclass(frozen=True)
class PublishResult:
    """Result of writing a load score to the servers table."""
    status: PublishStatus
    server_id: ServerId
    load: int
    rows_affected: int = 0

    @property
    def ok(self) -> bool:
        return self.status is PublishStatus.UPDATED


@dataclass
class StrategyResult:
    """Result of one peer persistence strategy attempt."""
    strategy: str
    success: bool
    message: str = ""


@dataclass
class PeerSyncResult:
    """Result of a peer synchronization request."""
    success: bool
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data:
            result["data"] = self.data
        return result
