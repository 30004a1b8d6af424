"""
Custom exception classes for the load reporting agent.
Provides specific error handling and better debugging.
"""

from typing import Iterable, List, Optional, Sequence


class LoadAgentError(Exception):
    """Base exception for load agent operations."""
    pass


class ConfigurationError(LoadAgentError):
    """Raised when configuration is invalid."""
    pass


class ConfigNotFound(ConfigurationError):
    """Raised when no candidate location holds a parseable config."""

    def __init__(self, candidates: Sequence[str]):
        self.candidates = list(candidates)
        super().__init__(
            "Configuration file not found in any of: " + ", ".join(self.candidates)
        )


class ConfigIncomplete(ConfigurationError):
    """Raised when required configuration keys are missing or empty."""

    def __init__(self, missing_keys: Iterable[str], source: Optional[str] = None):
        self.missing_keys: List[str] = list(missing_keys)
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(
            f"Missing required configuration values{where}: {', '.join(self.missing_keys)}"
        )


class MeasurementUnavailable(LoadAgentError):
    """Raised by a probe when a load signal cannot be measured."""

    def __init__(self, signal: str, reason: str):
        self.signal = signal
        self.reason = reason
        super().__init__(f"{signal} measurement unavailable: {reason}")


class CommandError(LoadAgentError):
    """Raised when a host command cannot be executed at all."""

    def __init__(self, args: Sequence[str], reason: str):
        self.args_list = list(args)
        self.reason = reason
        super().__init__(f"Command '{' '.join(self.args_list)}' failed: {reason}")


class DatabaseError(LoadAgentError):
    """Raised when database operations fail."""
    pass


class PublishConnectionError(LoadAgentError):
    """Raised when the load score cannot be written to the store."""

    def __init__(self, server_id: str, reason: str):
        self.server_id = server_id
        self.reason = reason
        super().__init__(f"Failed to publish load for server '{server_id}': {reason}")


class LockError(LoadAgentError):
    """Raised when another agent run already holds the run lock."""
    pass


class PeerSyncError(LoadAgentError):
    """Raised when a peer synchronization request is invalid."""
    pass
