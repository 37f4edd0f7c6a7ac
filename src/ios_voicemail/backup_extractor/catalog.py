"""Queries against a backup's file catalog (Manifest.db).

The catalog maps content hashes to ``(domain, relativePath)`` pairs. Where
voicemail lives inside it has changed between iOS releases, so lookups run an
ordered cascade of patterns, from a known namespace and exact path down to a
suffix match anywhere in the catalog, and stop at the first pattern that
returns rows.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .content_address import is_content_hash, resolve
from .database import ReadOnlyDatabase
from .models import CatalogEntry

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "Manifest.db"

ATTRIBUTE_DB_FILENAME = "voicemail.db"


@dataclass(frozen=True)
class CatalogPattern:
    """A named ``WHERE`` predicate over the ``Files`` table."""
    name: str
    where: str
    params: Tuple[str, ...] = ()


def _audio_suffix_clause(extensions: Sequence[str]) -> str:
    return "(" + " OR ".join("relativePath LIKE ?" for _ in extensions) + ")"


AUDIO_EXTENSIONS = ('.amr', '.awb', '.m4a')

# .m4a is also used by Voice Memos and music, so the catch-all step only
# trusts the AMR codecs, which are voicemail specific.
VOICEMAIL_ONLY_EXTENSIONS = ('.amr', '.awb')

ATTRIBUTE_DB_PATTERNS: List[CatalogPattern] = [
    CatalogPattern(
        name="home-domain",
        where="domain = ? AND relativePath = ?",
        params=("HomeDomain", "Library/Voicemail/voicemail.db"),
    ),
    CatalogPattern(
        name="legacy-voicemail-domain",
        where="domain = ? AND relativePath = ?",
        params=("Library-Voicemail", ATTRIBUTE_DB_FILENAME),
    ),
    CatalogPattern(
        name="voicemail-directory",
        where="relativePath LIKE ?",
        params=("%Voicemail/voicemail.db",),
    ),
    CatalogPattern(
        name="filename-anywhere",
        where="relativePath LIKE ?",
        params=("%voicemail.db",),
    ),
]

AUDIO_PATTERNS: List[CatalogPattern] = [
    CatalogPattern(
        name="home-domain",
        where=f"domain = ? AND relativePath LIKE ? AND {_audio_suffix_clause(AUDIO_EXTENSIONS)}",
        params=("HomeDomain", "Library/Voicemail/%") + tuple(f"%{ext}" for ext in AUDIO_EXTENSIONS),
    ),
    CatalogPattern(
        name="legacy-voicemail-domain",
        where=f"domain = ? AND relativePath LIKE ? AND {_audio_suffix_clause(AUDIO_EXTENSIONS)}",
        params=("Library-Voicemail", "voicemail/%") + tuple(f"%{ext}" for ext in AUDIO_EXTENSIONS),
    ),
    CatalogPattern(
        name="voicemail-directory",
        where=f"relativePath LIKE ? AND {_audio_suffix_clause(AUDIO_EXTENSIONS)}",
        params=("%Voicemail/%",) + tuple(f"%{ext}" for ext in AUDIO_EXTENSIONS),
    ),
    CatalogPattern(
        name="suffix-anywhere",
        where=_audio_suffix_clause(VOICEMAIL_ONLY_EXTENSIONS),
        params=tuple(f"%{ext}" for ext in VOICEMAIL_ONLY_EXTENSIONS),
    ),
]


class BackupCatalog:
    """
    Read-only view of a backup's ``Manifest.db``.

    Usage:
        with BackupCatalog(backup_path) as catalog:
            entries = catalog.locate_audio_payloads()
    """

    def __init__(self, backup_path: Path):
        self.backup_path = Path(backup_path)
        self.db_path = self.backup_path / CATALOG_FILENAME
        self.db = ReadOnlyDatabase(self.db_path)

    def open(self) -> 'BackupCatalog':
        self.db.connect()
        return self

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> 'BackupCatalog':
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def count_entries(self) -> int:
        """Number of rows in the ``Files`` table."""
        row = self.db.fetch_one("SELECT COUNT(*) AS count FROM Files")
        return row['count'] if row else 0

    def find_by_identity(self, namespace: str, logical_path: str) -> Optional[str]:
        """Return the content hash of a file if the catalog lists it."""
        content_hash = resolve(namespace, logical_path)
        row = self.db.fetch_one(
            "SELECT fileID FROM Files WHERE fileID = ?",
            (content_hash,)
        )
        if row is None:
            logger.debug(f"File not in catalog: {{'namespace': {namespace!r}, 'path': {logical_path!r}, 'hash': {content_hash!r}}}")
            return None
        return row['fileID']

    def locate_attribute_database(self) -> Optional[CatalogEntry]:
        """Find the voicemail attribute database, or None if the backup has none."""
        entries = self._cascade(ATTRIBUTE_DB_PATTERNS, purpose="attribute-database")
        if not entries:
            return None
        if len(entries) > 1:
            logger.warning(
                f"Multiple attribute database candidates, using first: {{'count': {len(entries)}, 'path': {entries[0].logical_path!r}}}"
            )
        return entries[0]

    def locate_audio_payloads(self) -> List[CatalogEntry]:
        """Find voicemail audio files; an empty list means none were found."""
        return self._cascade(AUDIO_PATTERNS, purpose="audio")

    def search(self, pattern: CatalogPattern) -> List[CatalogEntry]:
        """Run one pattern against the catalog."""
        rows = self.db.fetch_all(
            f"SELECT fileID, domain, relativePath FROM Files WHERE {pattern.where} ORDER BY relativePath",
            pattern.params
        )
        entries = []
        for row in rows:
            if not is_content_hash(row['fileID']):
                logger.warning(f"Skipping catalog row with malformed hash: {{'hash': {row['fileID']!r}, 'path': {row['relativePath']!r}}}")
                continue
            entries.append(CatalogEntry(
                content_hash=row['fileID'].lower(),
                namespace=row['domain'] or "",
                logical_path=row['relativePath'] or "",
            ))
        return entries

    def _cascade(self, patterns: Sequence[CatalogPattern], purpose: str) -> List[CatalogEntry]:
        for pattern in patterns:
            try:
                entries = self.search(pattern)
            except sqlite3.Error as e:
                logger.warning(f"Catalog pattern failed: {{'purpose': {purpose!r}, 'pattern': {pattern.name!r}, 'error': {str(e)!r}}}")
                continue

            if entries:
                logger.info(f"Catalog match: {{'purpose': {purpose!r}, 'pattern': {pattern.name!r}, 'count': {len(entries)}}}")
                return entries

            logger.debug(f"Catalog pattern empty: {{'purpose': {purpose!r}, 'pattern': {pattern.name!r}}}")

        logger.info(f"No catalog match after all patterns: {{'purpose': {purpose!r}, 'patterns': {len(patterns)}}}")
        return []
