"""
Local JSON records of users synchronized from the admin panel.
One file per user: <directory>/user_<id>.json
"""

import json
import os
import tempfile
from datetime import datetime
from typing import Any, Dict, Optional

from core.exceptions import PeerSyncError


class UserStore:
    def __init__(self, directory: str) -> None:
        self.directory = directory

    def path_for(self, user_id: Any) -> str:
        user_id = str(user_id)
        if not user_id or os.sep in user_id or user_id in ('.', '..'):
            raise PeerSyncError(f"Invalid user id '{user_id}'")
        return os.path.join(self.directory, f"user_{user_id}.json")

    def load(self, user_id: Any) -> Optional[Dict[str, Any]]:
        path = self.path_for(user_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r') as f:
                record = json.load(f)
        except (OSError, ValueError) as e:
            raise PeerSyncError(f"Cannot read user record {path}: {e}")
        if not isinstance(record, dict):
            raise PeerSyncError(f"User record {path} is not a JSON object")
        return record

    def save(self, user_id: Any, record: Dict[str, Any]) -> Dict[str, Any]:
        """Write the record atomically, stamping updated_at."""
        record = dict(record)
        record['updated_at'] = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        path = self.path_for(user_id)
        try:
            self._write_atomic(path, record)
        except OSError as e:
            raise PeerSyncError(f"Cannot write user record {path}: {e}")
        return record

    def _write_atomic(self, path: str, record: Dict[str, Any]) -> None:
        os.makedirs(self.directory, mode=0o755, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix='.user_', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(record, f, indent=4)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def delete(self, user_id: Any) -> bool:
        path = self.path_for(user_id)
        if not os.path.exists(path):
            return False
        try:
            os.remove(path)
        except OSError as e:
            raise PeerSyncError(f"Cannot delete user record {path}: {e}")
        return True
