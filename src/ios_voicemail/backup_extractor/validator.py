"""Structural and compatibility checks run on a selected backup before extraction."""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from ios_voicemail.common import ParseError
from .catalog import CATALOG_FILENAME, BackupCatalog
from .errors import EncryptedBackupError, InvalidBackupError
from .models import BackupDescriptor
from .plist_reader import INFO_PLIST, MANIFEST_PLIST, STATUS_PLIST, load_plist

logger = logging.getLogger(__name__)

REQUIRED_FILES = (INFO_PLIST, MANIFEST_PLIST, CATALOG_FILENAME)

RECREATE_BACKUP = "Backup may be corrupted or incomplete. Create a new backup."


def validate_backup(descriptor: BackupDescriptor, min_product_version: int = 7) -> None:
    """
    Validate a backup before any content is copied out of it.

    Checks, in order: required files, encryption, catalog readable and
    non-empty, iOS major version, Status.plist parseable when present.

    Args:
        descriptor: Backup to validate
        min_product_version: Oldest supported iOS major version

    Raises:
        InvalidBackupError: If a structural or version check fails
        EncryptedBackupError: If the backup is encrypted
    """
    logger.debug(f"Validating backup: {{'path': {str(descriptor.path)!r}}}")

    _check_required_files(descriptor)
    _check_not_encrypted(descriptor)
    _check_catalog(descriptor)
    _check_product_version(descriptor, min_product_version)
    _check_status(descriptor)

    logger.info(f"Backup validation successful: {{'device': {descriptor.device_name!r}, 'identifier': {descriptor.identifier!r}}}")


def _check_required_files(descriptor: BackupDescriptor) -> None:
    for filename in REQUIRED_FILES:
        if not (descriptor.path / filename).is_file():
            raise InvalidBackupError(
                f"Required file missing: {filename}",
                backup_path=str(descriptor.path),
                missing_file=filename,
                suggestion=RECREATE_BACKUP,
            )


def _check_not_encrypted(descriptor: BackupDescriptor) -> None:
    if descriptor.encrypted:
        raise EncryptedBackupError(
            f"Backup is encrypted: {descriptor.identifier}",
            backup_path=str(descriptor.path),
            suggestion=(
                "Encrypted backups are not supported. Turn off 'Encrypt local backup' "
                "in Finder or iTunes (this requires the backup password) and create a new backup."
            ),
        )


def _check_catalog(descriptor: BackupDescriptor) -> None:
    try:
        with BackupCatalog(descriptor.path) as catalog:
            count = catalog.count_entries()
    except sqlite3.Error as e:
        raise InvalidBackupError(
            f"{CATALOG_FILENAME} is corrupted or invalid: {e}",
            backup_path=str(descriptor.path),
            suggestion=RECREATE_BACKUP,
        ) from e

    logger.debug(f"Catalog entries: {{'count': {count}}}")
    if count == 0:
        raise InvalidBackupError(
            f"{CATALOG_FILENAME} is empty",
            backup_path=str(descriptor.path),
            suggestion=RECREATE_BACKUP,
        )


def parse_major_version(version: Optional[str]) -> Optional[int]:
    """Major component of a version string (``"17.5.1"`` -> 17), or None."""
    if not version:
        return None
    try:
        return int(version.split('.')[0])
    except ValueError:
        return None


def _check_product_version(descriptor: BackupDescriptor, min_product_version: int) -> None:
    major = parse_major_version(descriptor.product_version)
    if major is None:
        logger.warning(f"iOS version unknown, skipping version check: {{'version': {descriptor.product_version!r}}}")
        return

    if major < min_product_version:
        raise InvalidBackupError(
            f"iOS version {descriptor.product_version} is too old",
            backup_path=str(descriptor.path),
            product_version=descriptor.product_version,
            suggestion=f"Voicemail extraction requires iOS {min_product_version}.0 or later",
        )
    logger.debug(f"iOS version compatible: {{'version': {descriptor.product_version!r}}}")


def _check_status(descriptor: BackupDescriptor) -> None:
    status_path = descriptor.path / STATUS_PLIST
    if not status_path.is_file():
        # Older backups have no Status.plist
        logger.debug("Status.plist not found, assuming backup is complete")
        return

    try:
        status = load_plist(status_path)
    except ParseError as e:
        raise InvalidBackupError(
            f"{STATUS_PLIST} is corrupted",
            backup_path=str(descriptor.path),
            suggestion=RECREATE_BACKUP,
        ) from e

    state = status.get('SnapshotState')
    if state is not None and state != 'finished':
        logger.warning(f"Backup snapshot not finished: {{'state': {state!r}}}")


def check_backup_age(
    descriptor: BackupDescriptor,
    now: Optional[datetime] = None,
    stale_after_days: int = 30,
) -> Optional[int]:
    """
    Log how old a backup is. Never fails.

    Returns:
        Age in whole days, or None when the backup date is unknown
    """
    if descriptor.last_backup_at is None:
        logger.warning("Backup date unknown")
        return None

    now = now or datetime.now(timezone.utc)
    days = (now - descriptor.last_backup_at).days
    backup_date = descriptor.last_backup_at.date().isoformat()

    if days > stale_after_days:
        logger.warning(f"Backup is {days} days old, voicemails received after {backup_date} are not included")
    elif days > 7:
        logger.info(f"Backup age: {{'days': {days}, 'date': {backup_date!r}}}")
    return days
