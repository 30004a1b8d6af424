# Core module exports
from .types import *
from .exceptions import *

__all__ = [
    'LoadAgentError',
    'ConfigurationError',
    'ConfigNotFound',
    'ConfigIncomplete',
    'MeasurementUnavailable',
    'CommandError',
    'DatabaseError',
    'PublishConnectionError',
    'LockError',
    'PeerSyncError',
    'VPNType',
    'FallbackPolicy',
    'PublishStatus',
    'LoadSample',
    'LoadReport',
    'PublishResult'
]
