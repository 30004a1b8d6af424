#!/usr/bin/env python3
"""
Path management module for the load reporting agent.
All paths are loaded from environment variables with sensible defaults.
"""
import os
from typing import List

from .env_loader import get_config_value


class AgentPaths:
    """Centralized path management using environment variables."""

    @staticmethod
    def get_config_dir():
        """Get system configuration directory."""
        return get_config_value('LOAD_AGENT_CONFIG_DIR', '/etc/vpn-load-agent')

    @staticmethod
    def get_config_candidates() -> List[str]:
        """Get server config locations in priority order."""
        candidates = []
        explicit = get_config_value('LOAD_AGENT_CONFIG')
        if explicit:
            candidates.append(explicit)
        config_dir = AgentPaths.get_config_dir()
        candidates.extend([
            os.path.join(os.getcwd(), 'config.json'),
            os.path.join(config_dir, 'config.json'),
            os.path.join(config_dir, 'server.json'),
            '/var/www/shrakvpn/api/config.json',
        ])
        return candidates

    @staticmethod
    def get_user_store_dir():
        """Get directory holding synchronized user records."""
        return get_config_value('USER_STORE_DIR', '/var/lib/vpn-load-agent/users')

    @staticmethod
    def get_wireguard_config_dir():
        """Get WireGuard configuration directory."""
        return get_config_value('WIREGUARD_CONFIG_DIR', '/etc/wireguard')

    @staticmethod
    def get_lock_file():
        """Get single-flight lock file path."""
        return get_config_value('LOAD_AGENT_LOCK_FILE', '/run/vpn-load-agent.lock')

    @staticmethod
    def get_log_file():
        """Get log file path (empty means stderr only)."""
        return get_config_value('LOAD_AGENT_LOG_FILE', '')
