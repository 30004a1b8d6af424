# Configuration module exports
from .config import (
    DatabaseSettings,
    ServerConfig,
    Weights,
    default_config_candidates,
    resolve_server_config,
)
from .paths import AgentPaths

__all__ = [
    'DatabaseSettings',
    'ServerConfig',
    'Weights',
    'default_config_candidates',
    'resolve_server_config',
    'AgentPaths'
]
