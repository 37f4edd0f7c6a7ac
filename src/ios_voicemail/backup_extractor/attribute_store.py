"""Reads voicemail attributes from an extracted ``voicemail.db``.

Timestamps in the database are Unix epoch seconds; 0 means "not set".
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .database import ReadOnlyDatabase
from .errors import MalformedAttributeStoreError
from .models import AttributeRecord

logger = logging.getLogger(__name__)

VOICEMAIL_TABLE = "voicemail"

# Columns read from the voicemail table, mapped to the SQL used when absent
REQUIRED_COLUMNS = ("ROWID", "date")
OPTIONAL_COLUMNS = (
    "remote_uid",
    "sender",
    "callback_num",
    "duration",
    "expiration",
    "trashed_date",
    "flags",
)


def epoch_to_datetime(value) -> Optional[datetime]:
    """Convert epoch seconds to an aware UTC datetime.

    0, negative, NULL, non-numeric and out-of-range values all give None.
    """
    seconds = as_int(value)
    if seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        logger.debug(f"Epoch out of range: {{'value': {value!r}}}")
        return None


def as_int(value, default: int = 0) -> int:
    """Coerce a SQLite cell to int; NULL and non-numeric TEXT give ``default``."""
    if value is None or isinstance(value, bytes):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def as_text(value) -> Optional[str]:
    """Coerce a SQLite cell to str; NULL and empty strings give None."""
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return str(value) or None


def is_well_formed(db_path: Path) -> bool:
    """Check that a file is a readable SQLite database with a voicemail table."""
    try:
        with ReadOnlyDatabase(db_path) as db:
            return db.table_exists(VOICEMAIL_TABLE)
    except (sqlite3.Error, OSError) as e:
        logger.warning(f"Invalid voicemail database: {{'path': {str(db_path)!r}, 'error': {str(e)!r}}}")
        return False


class AttributeStore:
    """
    Read-only access to the voicemail attribute database.

    Usage:
        with AttributeStore(path) as store:
            records = store.read_all()
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db = ReadOnlyDatabase(self.db_path)

    def open(self) -> 'AttributeStore':
        """
        Open the database after probing it.

        Raises:
            MalformedAttributeStoreError: If the file is not a voicemail database
        """
        if not is_well_formed(self.db_path):
            raise MalformedAttributeStoreError(
                f"Not a voicemail database: {self.db_path}",
                path=str(self.db_path),
            )
        self.db.connect()
        return self

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> 'AttributeStore':
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _select_list(self, columns: List[str]) -> str:
        present = {column.lower() for column in columns}
        parts = ["ROWID AS ROWID", "date"]
        for column in OPTIONAL_COLUMNS:
            parts.append(column if column in present else f"NULL AS {column}")
        return ", ".join(parts)

    def read_all(self, include_deleted: bool = False) -> List[AttributeRecord]:
        """Read every voicemail record, newest first.

        Args:
            include_deleted: Also return records the user moved to the trash

        Returns:
            Records ordered by received time descending
        """
        columns = self.db.table_columns(VOICEMAIL_TABLE)
        present = {column.lower() for column in columns}
        if "date" not in present:
            raise MalformedAttributeStoreError(
                f"Voicemail table has no date column: {self.db_path}",
                path=str(self.db_path),
                columns=columns,
            )

        missing = [column for column in OPTIONAL_COLUMNS if column not in present]
        if missing:
            logger.info(f"Voicemail table lacks optional columns: {{'columns': {missing!r}}}")

        sql = f"SELECT {self._select_list(columns)} FROM {VOICEMAIL_TABLE}"
        if not include_deleted and "trashed_date" in present:
            sql += " WHERE trashed_date IS NULL OR trashed_date <= 0"
        sql += " ORDER BY date DESC"

        logger.info(f"Reading voicemail records: {{'include_deleted': {include_deleted}}}")
        records = []
        skipped = 0
        for row in self.db.fetch_all(sql):
            try:
                records.append(self._row_to_record(row))
            except (TypeError, ValueError) as e:
                skipped += 1
                logger.warning(f"Skipping undecodable voicemail record: {{'rowid': {row['ROWID']!r}, 'error': {str(e)!r}}}")

        logger.info(f"Read voicemail records: {{'count': {len(records)}, 'skipped': {skipped}}}")
        return records

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> AttributeRecord:
        record = AttributeRecord(
            row_id=int(row['ROWID']),
            remote_uid=as_int(row['remote_uid']),
            received_at=epoch_to_datetime(row['date']),
            caller_number=as_text(row['sender']),
            callback_number=as_text(row['callback_num']),
            duration_seconds=max(0, as_int(row['duration'])),
            expires_at=epoch_to_datetime(row['expiration']),
            deleted_at=epoch_to_datetime(row['trashed_date']),
            flags=max(0, as_int(row['flags'])),
        )
        logger.debug(f"Parsed voicemail record: {record}")
        return record
