# Data module exports
from .db import Database
from .server_repository import ServerRepository
from .user_store import UserStore

__all__ = [
    'Database',
    'ServerRepository',
    'UserStore'
]
