"""Error classes for backup discovery and voicemail extraction."""

from ios_voicemail.common import CorruptedFileError, ParseError, VoicemailSyncError


class BackupError(VoicemailSyncError):
    """Base error for a backup that cannot be selected or used.

    Raisers pass ``backup_path`` in the context when a specific backup is
    involved.
    """

    exit_code = 3

    @property
    def backup_path(self):
        return self.context.get('backup_path')


class BackupNotFoundError(BackupError):
    """No candidate backup, or no backup matching the requested identifier.

    ``available`` in the context lists the identifiers that were discovered.
    """
    pass


class InvalidBackupError(BackupError):
    """Backup is structurally incomplete, corrupted or too old."""
    pass


class EncryptedBackupError(BackupError):
    """Backup is encrypted and cannot be read without a credential."""

    exit_code = 4


class ExtractionError(VoicemailSyncError):
    """Base error for failures while copying content out of a backup."""
    pass


class PartialExtractionError(ExtractionError):
    """A single payload could not be extracted; siblings are unaffected."""
    pass


class MalformedAttributeStoreError(ExtractionError):
    """Extracted voicemail database failed its well-formedness probe."""
    pass


class NoContentError(ExtractionError):
    """Backup is usable but holds no voicemail audio."""

    exit_code = 5


class InsufficientStorageError(ExtractionError):
    """Working directory does not have room for the extracted payloads."""

    exit_code = 6


def classify_error(exception: Exception) -> str:
    """
    Classify an exception into an error category.

    Args:
        exception: The exception to classify

    Returns:
        Error category string: 'missing', 'corrupted', 'permission', 'io',
        'parse', 'storage' or 'unknown'
    """
    if isinstance(exception, PartialExtractionError):
        return exception.context.get('category', 'missing')
    elif isinstance(exception, (CorruptedFileError, MalformedAttributeStoreError)):
        return 'corrupted'
    elif isinstance(exception, InsufficientStorageError):
        return 'storage'
    elif isinstance(exception, ParseError):
        return 'parse'
    elif isinstance(exception, PermissionError):
        return 'permission'
    elif isinstance(exception, FileNotFoundError):
        return 'missing'
    elif isinstance(exception, OSError):
        return 'io'
    elif isinstance(exception, (ValueError, KeyError)):
        return 'parse'
    else:
        return 'unknown'
