import json
import logging
import os
import sys
from datetime import datetime

import pymysql
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config.app_config import AgentSettings, LockSettings, LoggingSettings, set_settings
from config.config import ServerConfig
from core.exceptions import CommandError
from core.types import CommandResult

BASE_CONFIG = {
    "server_id": "de-01",
    "vpn_type": "openvpn",
    "db_host": "db.example.net",
    "db_name": "panel",
    "db_user": "agent",
    "db_password": "secret",
    "db_port": 3306,
}


def ok(args, stdout="", stderr=""):
    return CommandResult(args=tuple(args), return_code=0, stdout=stdout, stderr=stderr)


def failed(args, return_code=1, stderr="error"):
    return CommandResult(args=tuple(args), return_code=return_code, stdout="", stderr=stderr)


class FakeRunner:
    """Command runner returning canned results keyed by the argument tuple."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def run(self, args, timeout=None):
        args = tuple(args)
        self.calls.append(args)
        response = self.responses.get(args)
        if response is None:
            return failed(args, stderr="unexpected command")
        if isinstance(response, Exception):
            raise response
        return response


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def execute(self, query, params=()):
        self.conn.queries.append((query, params))
        if self.conn.fail_on_execute:
            raise pymysql.err.OperationalError(2013, "Lost connection to MySQL server during query")
        servers = self.conn.server.servers
        if query.startswith("SELECT id FROM servers"):
            server_id = params[0]
            self._rows = [{"id": server_id}] if server_id in servers else []
            return len(self._rows)
        if query.startswith("UPDATE servers"):
            load, server_id = params
            if server_id not in servers:
                return 0
            self.conn.pending[server_id] = {"load": load, "updated_at": datetime.now()}
            return 1
        raise AssertionError(f"unexpected query: {query}")

    def fetchall(self):
        return self._rows


class FakeConnection:
    def __init__(self, server, fail_on_execute=False):
        self.server = server
        self.fail_on_execute = fail_on_execute
        self.queries = []
        self.pending = {}
        self.closed = False
        self.rolled_back = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        for server_id, values in self.pending.items():
            self.server.servers[server_id].update(values)
        self.pending = {}

    def rollback(self):
        self.rolled_back = True
        self.pending = {}

    def close(self):
        self.closed = True


class FakeMySQLServer:
    """In-memory stand-in for pymysql.connect backed by a servers table."""

    def __init__(self, servers=None, refuse=False, fail_on_execute=False):
        self.servers = {sid: dict(row) for sid, row in (servers or {}).items()}
        self.refuse = refuse
        self.fail_on_execute = fail_on_execute
        self.connect_kwargs = []
        self.connections = []

    def connect(self, **kwargs):
        self.connect_kwargs.append(kwargs)
        if self.refuse:
            raise pymysql.err.OperationalError(2003, "Can't connect to MySQL server")
        conn = FakeConnection(self, self.fail_on_execute)
        self.connections.append(conn)
        return conn


@pytest.fixture
def make_config():
    def factory(**overrides):
        data = dict(BASE_CONFIG)
        data.update(overrides)
        return ServerConfig.from_mapping(data)
    return factory


@pytest.fixture
def write_config(tmp_path):
    def factory(data, name="config.json"):
        path = tmp_path / name
        path.write_text(json.dumps(data) if not isinstance(data, str) else data)
        return str(path)
    return factory


@pytest.fixture
def agent_settings():
    settings = AgentSettings(
        logging=LoggingSettings(level="WARNING", json=True, log_file=None),
        lock=LockSettings(enabled=False),
        config_path=None,
    )
    set_settings(settings)
    yield settings
    set_settings(None)
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)


@pytest.fixture
def command_error():
    def factory(args, reason="executable not found"):
        return CommandError(list(args), reason)
    return factory
