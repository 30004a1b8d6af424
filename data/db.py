from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Tuple

import pymysql
import pymysql.cursors
from pymysql.constants import CLIENT

from config.config import DatabaseSettings
from core.exceptions import DatabaseError
from core.logging_config import get_logger
from core.types import DatabaseResult

logger = get_logger(__name__)


class Database:
    """Handles all low-level interactions with the MySQL database."""

    def __init__(
        self,
        settings: DatabaseSettings,
        connect: Callable[..., Any] = pymysql.connect,
    ) -> None:
        """Store connection settings; connections are opened per operation."""
        self.settings = settings
        self._connect = connect
        self.conn: Optional[Any] = None

    def connect(self) -> None:
        """Open a connection with a bounded connect timeout."""
        if self.conn:
            return
        logger.debug(
            "Connecting to database",
            host=self.settings.host,
            port=self.settings.port,
            database=self.settings.name,
        )
        try:
            self.conn = self._connect(
                host=self.settings.host,
                port=self.settings.port,
                user=self.settings.user,
                password=self.settings.password,
                database=self.settings.name,
                connect_timeout=self.settings.connect_timeout,
                cursorclass=pymysql.cursors.DictCursor,
                autocommit=False,
                # rowcount reports matched rows, not only changed ones
                client_flag=CLIENT.FOUND_ROWS,
            )
        # RuntimeError: an auth plugin needs a crypto backend PyMySQL could not load
        except (pymysql.MySQLError, RuntimeError) as e:
            raise DatabaseError(
                f"Failed to connect to {self.settings.host}:{self.settings.port}/{self.settings.name}: {e}"
            )

    def disconnect(self) -> None:
        """Close the connection."""
        if self.conn:
            try:
                self.conn.close()
            except pymysql.MySQLError as e:
                logger.warning("Error closing database connection", error=str(e))
            finally:
                self.conn = None

    @contextmanager
    def session(self) -> Iterator['Database']:
        """Keep one connection open across several queries."""
        self.connect()
        try:
            yield self
        finally:
            self.disconnect()

    def execute_query(self, query: str, params: Tuple = ()) -> DatabaseResult:
        """
        Executes a SELECT query.

        Args:
            query (str): The SQL query to execute.
            params (tuple): The parameters to substitute into the query.

        Returns:
            list: A list of rows as dictionaries.
        """
        owns_connection = self.conn is None
        try:
            self.connect()
            with self.conn.cursor() as cursor:
                cursor.execute(query, params)
                return list(cursor.fetchall())
        except pymysql.MySQLError as e:
            raise DatabaseError(f"Database query failed: {e}")
        finally:
            if owns_connection:
                self.disconnect()

    def execute_update(self, query: str, params: Tuple = ()) -> int:
        """
        Executes a statement that modifies data and commits it.

        Returns:
            int: The number of affected rows.
        """
        owns_connection = self.conn is None
        try:
            self.connect()
            with self.conn.cursor() as cursor:
                rows = cursor.execute(query, params)
            self.conn.commit()
            return int(rows or 0)
        except pymysql.MySQLError as e:
            if self.conn:
                try:
                    self.conn.rollback()
                except pymysql.MySQLError:
                    logger.warning("Rollback failed", query=query)
            raise DatabaseError(f"Database update failed: {e}")
        finally:
            if owns_connection:
                self.disconnect()
