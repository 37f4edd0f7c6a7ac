"""Content addressing for MobileSync backups.

A backup stores every file flat under ``<hash[0:2]>/<hash>``, where the hash
is the SHA-1 of ``"<namespace>-<logical path>"``.
"""

import hashlib
import re

CONTENT_HASH_PATTERN = re.compile(r'^[0-9a-fA-F]{40}$')


def resolve(namespace: str, logical_path: str) -> str:
    """Compute the content hash for a (namespace, logical path) pair.

    Args:
        namespace: Backup domain, e.g. ``HomeDomain``
        logical_path: Path as known to the device, e.g. ``Library/Voicemail/voicemail.db``

    Returns:
        Lower-case hex SHA-1 digest
    """
    combined = f"{namespace}-{logical_path}"
    return hashlib.sha1(combined.encode('utf-8')).hexdigest()


def storage_relative_path(content_hash: str) -> str:
    """Return the bucketed storage path ``hash[0:2]/hash``.

    Raises:
        ValueError: If the hash is shorter than two characters
    """
    if len(content_hash) < 2:
        raise ValueError(f"Content hash too short: {content_hash!r}")
    return f"{content_hash[:2]}/{content_hash}"


def is_content_hash(value: object) -> bool:
    """Check whether a value looks like a SHA-1 content hash."""
    return isinstance(value, str) and CONTENT_HASH_PATTERN.match(value) is not None
