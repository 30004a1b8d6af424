# Service module exports
from .load_agent import LoadAgent
from .load_publisher import LoadPublisher
from .peer_sync import PeerSyncService

__all__ = [
    'LoadAgent',
    'LoadPublisher',
    'PeerSyncService'
]
