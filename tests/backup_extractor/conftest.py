"""Fixtures that build fake device backups on disk."""

import plistlib
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional

import pytest

from ios_voicemail.backup_extractor.content_address import resolve

SINGLE_BACKUP_ID = "A" * 36 + "1234"
OTHER_BACKUP_ID = "B" * 36 + "5678"

VOICEMAIL_SCHEMA = """
CREATE TABLE voicemail (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    remote_uid INTEGER,
    date INTEGER,
    token TEXT,
    sender TEXT,
    callback_num TEXT,
    duration INTEGER,
    expiration INTEGER,
    trashed_date INTEGER,
    flags INTEGER
)
"""


def create_voicemail_db(path: Path, rows: Iterable[Dict], schema: str = VOICEMAIL_SCHEMA) -> Path:
    """Write a voicemail.db with the given rows (dicts of column -> value)."""
    conn = sqlite3.connect(path)
    try:
        conn.execute(schema)
        for row in rows:
            columns = ", ".join(row)
            placeholders = ", ".join("?" for _ in row)
            conn.execute(f"INSERT INTO voicemail ({columns}) VALUES ({placeholders})", tuple(row.values()))
        conn.commit()
    finally:
        conn.close()
    return path


class FakeBackup:
    """A MobileSync backup directory with Info.plist, Manifest.plist and Manifest.db."""

    def __init__(
        self,
        root: Path,
        identifier: str = SINGLE_BACKUP_ID,
        device_name: str = "Test iPhone",
        product_type: str = "iPhone15,2",
        product_version: str = "17.5.1",
        last_backup_at: Optional[datetime] = datetime(2024, 3, 12, 15, 0, 0),
        encrypted: bool = False,
    ):
        self.identifier = identifier
        self.path = Path(root) / identifier
        self.path.mkdir(parents=True)

        info = {
            "Device Name": device_name,
            "Display Name": device_name,
            "Product Type": product_type,
            "Product Version": product_version,
            "Serial Number": "F2LXXXXXXXXX",
            "Phone Number": "+1 (555) 010-0000",
            "Unique Identifier": identifier,
        }
        if last_backup_at is not None:
            info["Last Backup Date"] = last_backup_at
        self.write_plist("Info.plist", info)

        manifest = {"IsEncrypted": encrypted, "Version": "10.0"}
        if last_backup_at is not None:
            manifest["Date"] = last_backup_at
        self.write_plist("Manifest.plist", manifest)

        conn = sqlite3.connect(self.manifest_db)
        try:
            conn.execute(
                "CREATE TABLE Files (fileID TEXT PRIMARY KEY, domain TEXT, relativePath TEXT, flags INTEGER, file BLOB)"
            )
            conn.commit()
        finally:
            conn.close()

    @property
    def manifest_db(self) -> Path:
        return self.path / "Manifest.db"

    def write_plist(self, name: str, data: Dict, fmt=plistlib.FMT_XML) -> Path:
        path = self.path / name
        with open(path, "wb") as f:
            plistlib.dump(data, f, fmt=fmt)
        return path

    def add_catalog_row(self, file_id: str, domain: str, relative_path: str) -> None:
        conn = sqlite3.connect(self.manifest_db)
        try:
            conn.execute(
                "INSERT INTO Files (fileID, domain, relativePath, flags) VALUES (?, ?, ?, 1)",
                (file_id, domain, relative_path),
            )
            conn.commit()
        finally:
            conn.close()

    def store_content(self, content_hash: str, content: bytes) -> Path:
        path = self.path / content_hash[:2] / content_hash
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    def add_file(self, domain: str, relative_path: str, content: Optional[bytes] = b"data") -> str:
        """Register a file in the catalog; store its bytes unless content is None."""
        content_hash = resolve(domain, relative_path)
        self.add_catalog_row(content_hash, domain, relative_path)
        if content is not None:
            self.store_content(content_hash, content)
        return content_hash

    def add_voicemail(self, filename: str, content: bytes = b"#!AMR\n audio", domain: str = "HomeDomain") -> str:
        return self.add_file(domain, f"Library/Voicemail/{filename}", content)

    def add_voicemail_db(self, rows: Iterable[Dict], domain: str = "HomeDomain",
                         relative_path: str = "Library/Voicemail/voicemail.db") -> str:
        scratch = self.path.parent / f"{self.identifier}-voicemail.db"
        create_voicemail_db(scratch, rows)
        content = scratch.read_bytes()
        scratch.unlink()
        return self.add_file(domain, relative_path, content)


@pytest.fixture
def backup_root(tmp_path) -> Path:
    root = tmp_path / "Backup"
    root.mkdir()
    return root


@pytest.fixture
def fake_backup(backup_root) -> FakeBackup:
    """Single valid backup with an empty catalog."""
    return FakeBackup(backup_root)


@pytest.fixture
def make_backup(backup_root):
    """Factory for additional backups under the same root."""
    def _make(**kwargs) -> FakeBackup:
        return FakeBackup(backup_root, **kwargs)
    return _make


@pytest.fixture
def work_dir(tmp_path) -> Path:
    return tmp_path / "work"


@pytest.fixture
def voicemail_db_writer():
    """The create_voicemail_db helper, for tests that build databases directly."""
    return create_voicemail_db
