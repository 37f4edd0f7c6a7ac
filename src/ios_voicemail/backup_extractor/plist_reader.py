"""Parsing of the property lists at the root of a backup directory."""

import logging
import plistlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from xml.parsers.expat import ExpatError

from ios_voicemail.common import ParseError

logger = logging.getLogger(__name__)

INFO_PLIST = "Info.plist"
MANIFEST_PLIST = "Manifest.plist"
STATUS_PLIST = "Status.plist"

_PLIST_ERRORS = (plistlib.InvalidFileException, ExpatError, ValueError, OSError)


def load_plist(path: Path) -> Dict[str, Any]:
    """Load an XML or binary property list whose root is a dictionary.

    Raises:
        ParseError: If the file cannot be read or is not a dictionary plist
    """
    try:
        with open(path, 'rb') as f:
            data = plistlib.load(f)
    except _PLIST_ERRORS as e:
        raise ParseError(f"Failed to parse {path.name}: {e}", path=str(path)) from e

    if not isinstance(data, dict):
        raise ParseError(
            f"Expected a dictionary at the root of {path.name}",
            path=str(path),
            root_type=type(data).__name__,
        )
    return data


def is_valid_plist(path: Path) -> bool:
    """True if ``path`` parses as a dictionary property list."""
    try:
        load_plist(path)
        return True
    except ParseError as e:
        logger.debug(f"Unparseable plist: {{'path': {str(path)!r}, 'error': {str(e)!r}}}")
        return False


def _as_utc(value: Any) -> Optional[datetime]:
    # plistlib returns naive datetimes that are already UTC
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_info_plist(backup_path: Path) -> Dict[str, Any]:
    """Read device metadata from ``Info.plist``.

    The identifier falls back from ``Unique Identifier`` to ``UDID`` to the
    backup directory name.

    Returns:
        Dict with identifier, device_name, display_name, product_type,
        product_version, serial_number, phone_number and last_backup_at

    Raises:
        ParseError: If Info.plist is missing or malformed
    """
    path = Path(backup_path) / INFO_PLIST
    if not path.is_file():
        raise ParseError(f"{INFO_PLIST} not found in {backup_path}", path=str(path))

    data = load_plist(path)
    identifier = (
        _as_str(data.get('Unique Identifier'))
        or _as_str(data.get('UDID'))
        or Path(backup_path).name
    )
    return {
        'identifier': identifier,
        'device_name': _as_str(data.get('Device Name')),
        'display_name': _as_str(data.get('Display Name')),
        'product_type': _as_str(data.get('Product Type')),
        'product_version': _as_str(data.get('Product Version')),
        'serial_number': _as_str(data.get('Serial Number')),
        'phone_number': _as_str(data.get('Phone Number')),
        'last_backup_at': _as_utc(data.get('Last Backup Date')),
    }


def parse_manifest_plist(backup_path: Path) -> Dict[str, Any]:
    """Read ``IsEncrypted`` and ``Date`` from ``Manifest.plist``.

    A missing Manifest.plist yields an empty dict; the validator reports it.

    Raises:
        ParseError: If Manifest.plist exists but is malformed
    """
    path = Path(backup_path) / MANIFEST_PLIST
    if not path.is_file():
        logger.debug(f"No {MANIFEST_PLIST}: {{'backup': {str(backup_path)!r}}}")
        return {}

    data = load_plist(path)
    result: Dict[str, Any] = {'encrypted': bool(data.get('IsEncrypted', False))}
    date = _as_utc(data.get('Date'))
    if date is not None:
        result['last_backup_at'] = date
    return result
