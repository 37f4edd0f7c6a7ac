"""Voicemail extraction from iOS device backups."""

from .config import BackupExtractorConfig
from .content_address import resolve, storage_relative_path
from .discovery import discover_backup, enumerate_backups, select_backup
from .errors import (
    BackupError,
    BackupNotFoundError,
    EncryptedBackupError,
    ExtractionError,
    InsufficientStorageError,
    InvalidBackupError,
    MalformedAttributeStoreError,
    NoContentError,
    PartialExtractionError,
)
from .extractor import VoicemailExtractor, extract_payloads
from .models import (
    AttributeRecord,
    AudioFormat,
    BackupDescriptor,
    CatalogEntry,
    ExtractedPayload,
    ExtractionFailure,
    ExtractionResult,
    ReconciliationResult,
)
from .reconciler import reconcile
from .validator import validate_backup
from .workdir import WorkingDirectory

__all__ = [
    'BackupExtractorConfig',
    'resolve',
    'storage_relative_path',
    'discover_backup',
    'enumerate_backups',
    'select_backup',
    'validate_backup',
    'VoicemailExtractor',
    'extract_payloads',
    'reconcile',
    'WorkingDirectory',
    'BackupError',
    'BackupNotFoundError',
    'EncryptedBackupError',
    'ExtractionError',
    'InsufficientStorageError',
    'InvalidBackupError',
    'MalformedAttributeStoreError',
    'NoContentError',
    'PartialExtractionError',
    'AttributeRecord',
    'AudioFormat',
    'BackupDescriptor',
    'CatalogEntry',
    'ExtractedPayload',
    'ExtractionFailure',
    'ExtractionResult',
    'ReconciliationResult',
]
