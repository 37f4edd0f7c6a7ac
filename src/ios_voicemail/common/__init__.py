"""Common utilities for ios_voicemail packages."""

from .config import ConfigLoader
from .config_utils import expand_path_variables, auto_detect_io_workers
from .logging import setup_logging, LogContext
from .logging_config import LoggingConfig
from .errors import (
    VoicemailSyncError, FileProcessingError, CorruptedFileError, ParseError
)
from .checksums import compute_crc32, files_match

__all__ = [
    'ConfigLoader',
    'LoggingConfig',
    'setup_logging',
    'LogContext',
    'expand_path_variables',
    'auto_detect_io_workers',
    'VoicemailSyncError',
    'FileProcessingError',
    'CorruptedFileError',
    'ParseError',
    'compute_crc32',
    'files_match',
]
