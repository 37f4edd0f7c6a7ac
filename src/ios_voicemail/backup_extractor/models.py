"""Value objects shared by the extraction pipeline."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntFlag
from pathlib import Path, PurePosixPath
from typing import List, Optional

# Product Type codes reported in Info.plist
PRODUCT_TYPE_NAMES = {
    'iPhone14,2': 'iPhone 13 Pro',
    'iPhone14,3': 'iPhone 13 Pro Max',
    'iPhone14,4': 'iPhone 13 mini',
    'iPhone14,5': 'iPhone 13',
    'iPhone15,2': 'iPhone 14 Pro',
    'iPhone15,3': 'iPhone 14 Pro Max',
    'iPhone15,4': 'iPhone 14',
    'iPhone15,5': 'iPhone 14 Plus',
    'iPhone16,1': 'iPhone 15 Pro',
    'iPhone16,2': 'iPhone 15 Pro Max',
}


@dataclass(frozen=True)
class BackupDescriptor:
    """Identity and declared metadata of one device backup.

    Attributes:
        identifier: Device UDID (40 hex chars or UUID shaped)
        path: Absolute path to the backup directory
        device_name: User-visible device name from Info.plist
        display_name: Display name from Info.plist
        product_type: Hardware code, e.g. ``iPhone15,2``
        product_version: iOS version string, e.g. ``17.5.1``
        serial_number: Device serial number
        phone_number: Phone number of the device
        last_backup_at: When the backup was last written (UTC)
        encrypted: True when Manifest.plist declares the backup encrypted
    """
    identifier: str
    path: Path
    device_name: Optional[str] = None
    display_name: Optional[str] = None
    product_type: Optional[str] = None
    product_version: Optional[str] = None
    serial_number: Optional[str] = None
    phone_number: Optional[str] = None
    last_backup_at: Optional[datetime] = None
    encrypted: bool = False

    def __post_init__(self) -> None:
        if not self.identifier:
            raise ValueError("Backup identifier is required")
        if self.path is None:
            raise ValueError("Backup path is required")

    @property
    def device_description(self) -> str:
        """Friendly device description, e.g. ``iPhone 13 Pro``."""
        if self.product_type:
            return PRODUCT_TYPE_NAMES.get(self.product_type, self.product_type)
        return self.device_name or "Unknown Device"

    def __str__(self) -> str:
        return "{} (iOS {}) - Last backup: {} [{}]".format(
            self.device_name or "Unknown",
            self.product_version or "Unknown",
            self.last_backup_at.isoformat() if self.last_backup_at else "Unknown",
            self.identifier,
        )


@dataclass(frozen=True)
class CatalogEntry:
    """One row of the backup's file catalog."""
    content_hash: str
    namespace: str
    logical_path: str

    def __post_init__(self) -> None:
        if not self.content_hash:
            raise ValueError("Catalog entry requires a content hash")

    @property
    def filename(self) -> str:
        return PurePosixPath(self.logical_path).name


class AudioFormat(Enum):
    """Voicemail audio formats, keyed by file extension."""
    AMR_NB = ".amr"
    AMR_WB = ".awb"
    AAC = ".m4a"
    UNKNOWN = ".bin"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def description(self) -> str:
        return _FORMAT_DESCRIPTIONS[self]

    @classmethod
    def from_path(cls, path: str) -> 'AudioFormat':
        """Infer the format from a path's extension (case-insensitive)."""
        suffix = PurePosixPath(path).suffix.lower()
        for audio_format in cls:
            if audio_format.value == suffix:
                return audio_format
        return cls.UNKNOWN


_FORMAT_DESCRIPTIONS = {
    AudioFormat.AMR_NB: "AMR Narrowband",
    AudioFormat.AMR_WB: "AMR Wideband",
    AudioFormat.AAC: "AAC",
    AudioFormat.UNKNOWN: "Unknown",
}


class VoicemailFlag(IntFlag):
    """Bits of the voicemail ``flags`` column."""
    READ = 0x01
    SPAM = 0x04


@dataclass(frozen=True)
class AttributeRecord:
    """One row of the voicemail attribute database."""
    row_id: int
    remote_uid: int
    received_at: Optional[datetime]
    caller_number: Optional[str]
    callback_number: Optional[str]
    duration_seconds: int
    expires_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    flags: int = 0

    @property
    def is_read(self) -> bool:
        return bool(self.flags & VoicemailFlag.READ)

    @property
    def is_spam(self) -> bool:
        return bool(self.flags & VoicemailFlag.SPAM)

    @property
    def was_deleted(self) -> bool:
        return self.deleted_at is not None

    def __str__(self) -> str:
        return "Voicemail[caller={}, date={}, duration={}s]".format(
            self.caller_number or "Unknown",
            self.received_at.isoformat() if self.received_at else "Unknown",
            self.duration_seconds,
        )


@dataclass(frozen=True)
class ExtractedPayload:
    """An audio file copied out of the backup, optionally paired with its record."""
    content_hash: str
    namespace: str
    logical_path: str
    source_path: Path
    extracted_path: Path
    format: AudioFormat
    size_bytes: int
    record: Optional[AttributeRecord] = None

    def __post_init__(self) -> None:
        if not self.content_hash:
            raise ValueError("Extracted payload requires a content hash")
        if not self.logical_path:
            raise ValueError("Extracted payload requires a logical path")

    @property
    def original_filename(self) -> str:
        return PurePosixPath(self.logical_path).name

    @property
    def has_record(self) -> bool:
        return self.record is not None

    def with_record(self, record: Optional[AttributeRecord]) -> 'ExtractedPayload':
        """Return a copy associated with ``record``."""
        return replace(self, record=record)


@dataclass(frozen=True)
class ExtractionFailure:
    """A catalog entry whose content could not be extracted."""
    entry: CatalogEntry
    error: Exception
    category: str

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of pairing payloads with attribute records.

    ``payloads`` keeps every input payload in its original order.
    """
    payloads: List[ExtractedPayload] = field(default_factory=list)
    surplus_records: List[AttributeRecord] = field(default_factory=list)

    @property
    def matched_payloads(self) -> List[ExtractedPayload]:
        return [payload for payload in self.payloads if payload.has_record]

    @property
    def unmatched_payloads(self) -> List[ExtractedPayload]:
        return [payload for payload in self.payloads if not payload.has_record]


@dataclass(frozen=True)
class ExtractionResult:
    """Everything one extraction pass produced for downstream collaborators."""
    descriptor: BackupDescriptor
    working_directory: Path
    payloads: List[ExtractedPayload] = field(default_factory=list)
    surplus_records: List[AttributeRecord] = field(default_factory=list)
    failures: List[ExtractionFailure] = field(default_factory=list)
    attribute_store_available: bool = False

    @property
    def matched_payloads(self) -> List[ExtractedPayload]:
        return [payload for payload in self.payloads if payload.has_record]

    @property
    def unmatched_payloads(self) -> List[ExtractedPayload]:
        return [payload for payload in self.payloads if not payload.has_record]
