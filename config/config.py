"""
Server configuration for the load reporting agent.
Resolves the config file from well-known locations and validates it.
"""

import json
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from config.paths import AgentPaths
from core.exceptions import ConfigIncomplete, ConfigNotFound, ConfigurationError
from core.logging_config import get_logger
from core.types import FallbackPolicy, InterfaceName, ServerId, VPNType

logger = get_logger(__name__)

REQUIRED_KEYS = ('server_id', 'db_host', 'db_name', 'db_user', 'db_password', 'db_port')

DEFAULT_INTERFACES = ('eth0',)
DEFAULT_MAX_CONNECTIONS = 100
DEFAULT_MANAGEMENT_HOST = '127.0.0.1'
DEFAULT_MANAGEMENT_PORT = 7505
DEFAULT_WIREGUARD_INTERFACE = 'wg0'
DEFAULT_WIREGUARD_PORT = 51820
DB_CONNECT_TIMEOUT = 5


@dataclass(frozen=True)
class Weights:
    """Weight triple applied to the connection, bandwidth and system loads."""
    connection: float = 0.5
    bandwidth: float = 0.3
    system: float = 0.2

    def __post_init__(self):
        for name in ('connection', 'bandwidth', 'system'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ConfigurationError(f"Weight '{name}' must be a number, got {value!r}")
            if not 0.0 <= float(value) <= 1.0:
                raise ConfigurationError(f"Weight '{name}' must be within [0, 1], got {value}")
            object.__setattr__(self, name, float(value))

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'Weights':
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigurationError("'weights' must be a mapping of connection/bandwidth/system")
        defaults = cls()
        return cls(
            connection=data.get('connection', defaults.connection),
            bandwidth=data.get('bandwidth', defaults.bandwidth),
            system=data.get('system', defaults.system),
        )


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection parameters for the relational store."""
    host: str
    name: str
    user: str
    password: str = field(repr=False)
    port: int = 3306
    connect_timeout: int = DB_CONNECT_TIMEOUT


@dataclass(frozen=True)
class ServerConfig:
    """Immutable per-run server identity and measurement settings."""
    server_id: ServerId
    vpn_type: Optional[VPNType]
    database: DatabaseSettings
    vpn_type_raw: str = VPNType.OPENVPN.value
    interfaces: Tuple[InterfaceName, ...] = DEFAULT_INTERFACES
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    weights: Weights = field(default_factory=Weights)
    openvpn_management_host: str = DEFAULT_MANAGEMENT_HOST
    openvpn_management_port: int = DEFAULT_MANAGEMENT_PORT
    wireguard_interface: InterfaceName = DEFAULT_WIREGUARD_INTERFACE
    wireguard_port: int = DEFAULT_WIREGUARD_PORT
    fallback_policy: FallbackPolicy = FallbackPolicy.ESTIMATE
    user_store_dir: str = field(default_factory=AgentPaths.get_user_store_dir)
    wireguard_config_dir: str = field(default_factory=AgentPaths.get_wireguard_config_dir)
    source_path: Optional[str] = None

    def with_server_id(self, server_id: ServerId) -> 'ServerConfig':
        """Return a copy with the server identifier overridden."""
        server_id = str(server_id).strip()
        if not server_id:
            raise ConfigurationError("Server ID override must not be empty")
        return replace(self, server_id=server_id)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], source_path: Optional[str] = None) -> 'ServerConfig':
        """Build a config from a parsed mapping, validating required keys."""
        missing = [key for key in REQUIRED_KEYS if _is_empty(data.get(key))]
        if missing:
            raise ConfigIncomplete(missing, source_path)

        vpn_type_raw = str(data.get('vpn_type') or VPNType.OPENVPN.value).strip().lower()

        database = DatabaseSettings(
            host=str(data['db_host']),
            name=str(data['db_name']),
            user=str(data['db_user']),
            password=str(data['db_password']),
            port=cls.validate_port('db_port', data['db_port']),
        )

        kwargs: Dict[str, Any] = {}
        if data.get('interfaces') is not None:
            kwargs['interfaces'] = cls.validate_interfaces(data['interfaces'])
        if data.get('max_connections') is not None:
            kwargs['max_connections'] = cls.validate_max_connections(data['max_connections'])
        if data.get('openvpn_management_host'):
            kwargs['openvpn_management_host'] = str(data['openvpn_management_host'])
        if data.get('openvpn_management_port') is not None:
            kwargs['openvpn_management_port'] = cls.validate_port(
                'openvpn_management_port', data['openvpn_management_port']
            )
        if data.get('wireguard_interface'):
            kwargs['wireguard_interface'] = str(data['wireguard_interface'])
        if data.get('wireguard_port') is not None:
            kwargs['wireguard_port'] = cls.validate_port('wireguard_port', data['wireguard_port'])
        if data.get('fallback_policy') is not None:
            kwargs['fallback_policy'] = cls.validate_fallback_policy(data['fallback_policy'])
        if data.get('user_config_dir'):
            kwargs['user_store_dir'] = str(data['user_config_dir'])
        if data.get('wireguard_config_dir'):
            kwargs['wireguard_config_dir'] = str(data['wireguard_config_dir'])

        return cls(
            server_id=str(data['server_id']).strip(),
            vpn_type=VPNType.parse(vpn_type_raw),
            vpn_type_raw=vpn_type_raw,
            database=database,
            weights=Weights.from_mapping(data.get('weights')),
            source_path=source_path,
            **kwargs,
        )

    @staticmethod
    def validate_port(key: str, value: Any) -> int:
        try:
            port = int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"'{key}' must be an integer port, got {value!r}")
        if not 1 <= port <= 65535:
            raise ConfigurationError(f"'{key}' must be between 1 and 65535, got {port}")
        return port

    @staticmethod
    def validate_interfaces(value: Any) -> Tuple[InterfaceName, ...]:
        if isinstance(value, str):
            value = [part.strip() for part in value.split(',')]
        if not isinstance(value, (list, tuple)):
            raise ConfigurationError("'interfaces' must be a list of interface names")
        return tuple(str(item) for item in value if str(item).strip())

    @staticmethod
    def validate_max_connections(value: Any) -> int:
        try:
            max_connections = int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"'max_connections' must be an integer, got {value!r}")
        if max_connections <= 0:
            raise ConfigurationError("'max_connections' must be greater than zero")
        return max_connections

    @staticmethod
    def validate_fallback_policy(value: Any) -> FallbackPolicy:
        try:
            return FallbackPolicy(str(value).strip().lower())
        except ValueError:
            choices = ', '.join(p.value for p in FallbackPolicy)
            raise ConfigurationError(f"'fallback_policy' must be one of {choices}, got {value!r}")


def _is_empty(value: Any) -> bool:
    """Blank strings, "0", numeric zero and false count as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() in ('', '0')
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (list, dict, tuple)):
        return not value
    return False


def default_config_candidates() -> List[str]:
    """Config file locations in priority order."""
    return AgentPaths.get_config_candidates()


def _read_candidate(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Skipping unreadable config candidate", path=path, error=str(e))
        return None
    if not isinstance(data, dict):
        logger.warning("Skipping config candidate without a top-level mapping", path=path)
        return None
    return data


def resolve_server_config(candidates: Optional[Sequence[str]] = None) -> ServerConfig:
    """
    Load the first parseable config found among the candidate locations.

    Raises:
        ConfigNotFound: no candidate exists or parses.
        ConfigIncomplete: required keys are missing or empty.
        ConfigurationError: a present value is invalid.
    """
    if candidates is None:
        candidates = default_config_candidates()

    for path in candidates:
        if not path or not os.path.isfile(path):
            continue
        data = _read_candidate(path)
        if data is None:
            continue
        logger.info("Found config", path=path)
        return ServerConfig.from_mapping(data, source_path=path)

    logger.error("Configuration file not found", candidates=list(candidates))
    raise ConfigNotFound(candidates)
