from typing import Any, Dict, Optional

from .db import Database
from core.types import ServerId


class ServerRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def get_server(self, server_id: ServerId) -> Optional[Dict[str, Any]]:
        result = self.db.execute_query("SELECT id FROM servers WHERE id = %s", (server_id,))
        return result[0] if result else None

    def server_exists(self, server_id: ServerId) -> bool:
        return self.get_server(server_id) is not None

    def update_load(self, server_id: ServerId, load: int) -> int:
        """Set the load column and bump updated_at; returns affected rows."""
        # `load` is a reserved word in MySQL
        query = "UPDATE servers SET `load` = %s, updated_at = NOW() WHERE id = %s"
        return self.db.execute_update(query, (int(load), server_id))
