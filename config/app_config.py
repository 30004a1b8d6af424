"""
Centralized agent settings management.
Provides type-safe settings with environment variable support.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from config.env_loader import get_bool_config, load_env_file
from config.paths import AgentPaths


@dataclass
class LoggingSettings:
    """Logging settings."""
    level: str = "INFO"
    json: bool = True
    log_file: Optional[str] = None


@dataclass
class LockSettings:
    """Single-flight lock settings."""
    enabled: bool = True
    path: str = "/run/vpn-load-agent.lock"


@dataclass
class AgentSettings:
    """Process-level settings that live outside the server config file."""
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    lock: LockSettings = field(default_factory=LockSettings)
    config_path: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'AgentSettings':
        """Load settings from environment variables."""
        load_env_file(env_file)

        return cls(
            logging=LoggingSettings(
                level=os.getenv("LOAD_AGENT_LOG_LEVEL", "INFO"),
                json=get_bool_config("LOAD_AGENT_LOG_JSON", True),
                log_file=AgentPaths.get_log_file() or None,
            ),
            lock=LockSettings(
                enabled=get_bool_config("LOAD_AGENT_LOCK", True),
                path=AgentPaths.get_lock_file(),
            ),
            config_path=os.getenv("LOAD_AGENT_CONFIG") or None,
        )


# Global settings instance
_settings: Optional[AgentSettings] = None


def get_settings() -> AgentSettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = AgentSettings.from_env()
    return _settings


def set_settings(settings: Optional[AgentSettings]) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings
