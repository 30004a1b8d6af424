#!/usr/bin/env python3
"""
Environment configuration loader for the load reporting agent
Loads configuration from .env file if it exists
"""
import os

from dotenv import load_dotenv


def load_env_file(env_file_path=None):
    """
    Load environment variables from a .env file

    Args:
        env_file_path (str): Path to the environment file.
                           If None, uses LOAD_AGENT_ENV_FILE or '.env' in project root.

    Returns:
        bool: True if a file was loaded
    """
    if env_file_path is None:
        env_file_path = os.environ.get('LOAD_AGENT_ENV_FILE')
    if env_file_path is None:
        # Get project root directory
        project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
        env_file_path = os.path.join(project_root, '.env')

    if not os.path.exists(env_file_path):
        return False  # No env file, use system environment variables

    # Values already in the environment win over the file
    return load_dotenv(env_file_path, override=False)


def get_config_value(key, default=None):
    """Environment value for `key`, or `default` when unset."""
    return os.environ.get(key, default)


def get_bool_config(key, default=False):
    """Get a boolean configuration value ('1', 'true', 'yes', 'on' are true)."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')
