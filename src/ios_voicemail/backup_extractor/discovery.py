"""Discovery and selection of device backups under a MobileSync root."""

import logging
import os
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from ios_voicemail.common import ParseError
from .errors import BackupNotFoundError
from .models import BackupDescriptor
from .plist_reader import parse_info_plist, parse_manifest_plist
from .validator import check_backup_age, validate_backup

logger = logging.getLogger(__name__)

# Modern UDID (40 hex), UUID (8-4-4-4-12) and newer Apple (8-16) shapes
_IDENTIFIER_PATTERNS = (
    re.compile(r'^[0-9A-Fa-f]{40}$'),
    re.compile(r'^[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}$'),
    re.compile(r'^[0-9A-Fa-f]{8}-[0-9A-Fa-f]{16}$'),
)

CREATE_BACKUP_INSTRUCTIONS = (
    "Create an iOS backup via Finder or iTunes first:\n"
    "  1. Connect the iPhone to this computer\n"
    "  2. Open Finder (macOS) or iTunes (Windows)\n"
    "  3. Select the device and click 'Back Up Now'\n"
    "  4. Wait for the backup to complete\n"
    "  5. Run this tool again"
)


def default_backup_root() -> Path:
    """Platform location where Finder/iTunes writes device backups."""
    home = Path.home()
    if sys.platform == 'darwin':
        return home / "Library" / "Application Support" / "MobileSync" / "Backup"
    if sys.platform.startswith('win'):
        app_data = os.environ.get('APPDATA') or str(home / "AppData" / "Roaming")
        return Path(app_data) / "Apple Computer" / "MobileSync" / "Backup"
    return home / ".local" / "share" / "MobileSync" / "Backup"


def is_backup_identifier(name: str) -> bool:
    """True if ``name`` has the shape of a device backup identifier."""
    return any(pattern.match(name) for pattern in _IDENTIFIER_PATTERNS)


def parse_backup(backup_path: Path) -> BackupDescriptor:
    """Build a descriptor from a backup directory's Info.plist and Manifest.plist.

    Raises:
        ParseError: If Info.plist is missing or either plist is malformed
    """
    backup_path = Path(backup_path).absolute()
    fields = parse_info_plist(backup_path)
    fields.update(parse_manifest_plist(backup_path))
    return BackupDescriptor(path=backup_path, **fields)


def enumerate_backups(root: Path) -> List[BackupDescriptor]:
    """List every parseable backup directly under ``root``.

    Directories whose name is not an identifier are ignored. A candidate that
    fails to parse is logged and skipped.

    Raises:
        BackupNotFoundError: If ``root`` is missing or cannot be listed
    """
    root = Path(root)
    logger.info(f"Discovering backups: {{'root': {str(root)!r}}}")

    if not root.is_dir():
        raise BackupNotFoundError(
            f"Backup directory does not exist: {root}",
            backup_path=str(root),
            available=[],
            suggestion=CREATE_BACKUP_INSTRUCTIONS,
        )

    try:
        candidates = sorted(entry for entry in root.iterdir() if entry.is_dir())
    except OSError as e:
        raise BackupNotFoundError(
            f"Failed to list backups in {root}: {e}",
            backup_path=str(root),
            available=[],
            suggestion="Check directory permissions",
        ) from e

    backups = []
    for entry in candidates:
        if not is_backup_identifier(entry.name):
            logger.debug(f"Skipping non-backup directory: {{'name': {entry.name!r}}}")
            continue
        try:
            backup = parse_backup(entry)
        except (ParseError, ValueError, OSError) as e:
            logger.warning(f"Failed to parse backup: {{'path': {str(entry)!r}, 'error': {str(e)!r}}}")
            continue
        logger.debug(f"Found backup: {backup}")
        backups.append(backup)

    logger.info(f"Found backups: {{'count': {len(backups)}}}")
    return backups


def sort_by_recency(backups: Sequence[BackupDescriptor]) -> List[BackupDescriptor]:
    """Most recent first; backups without a date go last."""
    dated = [b for b in backups if b.last_backup_at is not None]
    undated = [b for b in backups if b.last_backup_at is None]
    dated.sort(key=lambda b: b.last_backup_at, reverse=True)
    return dated + undated


def _listing(backups: Sequence[BackupDescriptor]) -> str:
    return "\n".join(f"  {index}. {backup}" for index, backup in enumerate(backups, start=1))


def select_backup(backups: Sequence[BackupDescriptor], device_id: Optional[str] = None) -> BackupDescriptor:
    """Choose one backup.

    With ``device_id`` the backup whose identifier or directory name matches
    (case-insensitive) is returned. Without it, a sole candidate is returned.

    Raises:
        BackupNotFoundError: If nothing matches ``device_id``, there are no
            candidates, or several candidates remain. ``available`` in the
            context lists identifiers most recent first.
    """
    ordered = sort_by_recency(backups)
    available = [backup.identifier for backup in ordered]

    if device_id:
        wanted = device_id.strip().lower()
        for backup in ordered:
            if wanted in (backup.identifier.lower(), backup.path.name.lower()):
                logger.info(f"Found backup for device: {{'device_id': {device_id!r}}}")
                return backup
        raise BackupNotFoundError(
            f"No backup found for device ID: {device_id}\n\nAvailable backups:\n{_listing(ordered)}",
            device_id=device_id,
            available=available,
            suggestion="Use one of the identifiers shown above with --device-id",
        )

    if not ordered:
        raise BackupNotFoundError(
            "No iOS backups found",
            available=[],
            suggestion=CREATE_BACKUP_INSTRUCTIONS,
        )

    if len(ordered) == 1:
        logger.info("Single backup found, using it")
        return ordered[0]

    raise BackupNotFoundError(
        f"Multiple backups found. Please specify a device:\n\n{_listing(ordered)}",
        available=available,
        suggestion="Re-run with --device-id <identifier>",
    )


def discover_backup(
    root: Optional[Path] = None,
    device_id: Optional[str] = None,
    min_product_version: int = 7,
    stale_after_days: int = 30,
    now: Optional[datetime] = None,
) -> BackupDescriptor:
    """Enumerate, select and validate the backup to extract from.

    Args:
        root: Backup root; defaults to the platform MobileSync location
        device_id: Identifier of the wanted backup
        min_product_version: Oldest supported iOS major version
        stale_after_days: Age after which a warning is logged
        now: Reference time for the age check

    Raises:
        BackupNotFoundError: No usable candidate
        InvalidBackupError: Selected backup failed validation
        EncryptedBackupError: Selected backup is encrypted
    """
    root = Path(root) if root is not None else default_backup_root()
    backups = enumerate_backups(root)

    if not backups:
        raise BackupNotFoundError(
            f"No iOS backups found in {root}",
            backup_path=str(root),
            available=[],
            suggestion=CREATE_BACKUP_INSTRUCTIONS,
        )

    selected = select_backup(backups, device_id)
    validate_backup(selected, min_product_version=min_product_version)
    check_backup_age(selected, now=now, stale_after_days=stale_after_days)

    logger.info(f"Selected backup: {selected}")
    return selected
