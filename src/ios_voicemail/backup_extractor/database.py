"""Read-only SQLite access to databases found inside a backup."""

import sqlite3
import logging
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


class ReadOnlyDatabase:
    """
    Manages a read-only SQLite connection.

    Features:
    - Opened through a ``mode=ro`` URI so the backup is never modified
    - ``immutable=1`` by default: backup files and extracted copies do not
      change underneath us, and no journal or lock files are created
    - ``sqlite3.Row`` rows for column access by name
    - Context manager that always closes the connection
    """

    def __init__(self, db_path: Path, immutable: bool = True):
        """
        Initialize database connection manager.

        Args:
            db_path: Path to SQLite database file
            immutable: Open with ``immutable=1``
        """
        self.db_path = Path(db_path)
        self.immutable = immutable
        self._connection: Optional[sqlite3.Connection] = None

    @property
    def uri(self) -> str:
        uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
        if self.immutable:
            uri += "&immutable=1"
        return uri

    def connect(self) -> sqlite3.Connection:
        """
        Open the connection.

        Returns:
            SQLite connection object

        Raises:
            sqlite3.Error: If the file is missing or cannot be opened
        """
        if self._connection is not None:
            return self._connection

        if not self.db_path.is_file():
            raise sqlite3.OperationalError(f"unable to open database file: {self.db_path}")

        logger.debug(f"Opening database read-only: {{'path': {str(self.db_path)!r}}}")
        self._connection = sqlite3.connect(self.uri, uri=True, timeout=5.0)
        self._connection.row_factory = sqlite3.Row
        return self._connection

    def execute(self, sql: str, parameters=None) -> sqlite3.Cursor:
        """
        Execute a single SQL statement.

        Args:
            sql: SQL statement
            parameters: Optional parameters for parameterized query

        Returns:
            Cursor object
        """
        if self._connection is None:
            self.connect()

        cursor = self._connection.cursor()
        if parameters:
            cursor.execute(sql, parameters)
        else:
            cursor.execute(sql)
        return cursor

    def fetch_all(self, sql: str, parameters=None) -> List[sqlite3.Row]:
        """Execute a query and return every row."""
        cursor = self.execute(sql, parameters)
        try:
            return cursor.fetchall()
        finally:
            cursor.close()

    def fetch_one(self, sql: str, parameters=None) -> Optional[sqlite3.Row]:
        """Execute a query and return the first row, if any."""
        cursor = self.execute(sql, parameters)
        try:
            return cursor.fetchone()
        finally:
            cursor.close()

    def table_exists(self, table: str) -> bool:
        row = self.fetch_one(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,)
        )
        return row is not None

    def table_columns(self, table: str) -> List[str]:
        """Column names of ``table`` (empty when the table does not exist)."""
        rows = self.fetch_all(f"PRAGMA table_info({table})")
        return [row['name'] for row in rows]

    def close(self):
        """Close database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.debug(f"Closed database: {{'path': {str(self.db_path)!r}}}")

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False
