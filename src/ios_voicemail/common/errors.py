"""Base error definitions for ios_voicemail packages."""

from typing import Any, Dict, Optional


class VoicemailSyncError(Exception):
    """Base exception for all ios_voicemail errors.

    Keyword context is kept on the instance for logging and reporting.
    A ``suggestion`` keyword, when given, carries remediation text for the
    user-facing layer.
    """

    exit_code: int = 1

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    @property
    def suggestion(self) -> Optional[str]:
        """Remediation text, if the raiser provided one."""
        return self.context.get('suggestion')


class FileProcessingError(VoicemailSyncError):
    """Base exception for file processing errors."""
    pass


class CorruptedFileError(FileProcessingError):
    """File is corrupted or malformed."""
    pass


class ParseError(FileProcessingError):
    """Error parsing file metadata."""
    pass
