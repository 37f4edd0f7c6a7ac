"""Configuration schema for the backup extractor."""

from typing import Optional

from pydantic import BaseModel, Field, ConfigDict
from ios_voicemail.common import LoggingConfig, auto_detect_io_workers


class BackupConfig(BaseModel):
    """Where to find backups and which ones are acceptable."""

    model_config = ConfigDict(extra='forbid')

    backup_dir: Optional[str] = Field(
        default=None,
        description="Backup root directory (default: platform MobileSync location)"
    )
    device_id: Optional[str] = Field(
        default=None,
        description="Identifier of the backup to use when several exist"
    )
    min_product_version: int = Field(
        default=7,
        ge=1,
        description="Oldest supported iOS major version"
    )
    stale_after_days: int = Field(
        default=30,
        ge=0,
        description="Warn when the backup is older than this many days"
    )


class ExtractionConfig(BaseModel):
    """Configuration for copying voicemail out of a backup."""

    model_config = ConfigDict(extra='forbid')

    work_dir: Optional[str] = Field(
        default=None,
        description="Working directory (default: timestamped directory under ${TEMP})"
    )
    worker_threads: int = Field(
        default_factory=auto_detect_io_workers,
        ge=1,
        description="Number of threads copying files out of the backup"
    )
    verify_checksums: bool = Field(
        default=False,
        description="Verify CRC32 of each copy against its source"
    )
    include_deleted: bool = Field(
        default=False,
        description="Include voicemails the user deleted"
    )
    match_tolerance_seconds: int = Field(
        default=5,
        ge=0,
        description="Maximum seconds between filename time and record time"
    )
    keep_work_dir: bool = Field(
        default=False,
        description="Keep the working directory after the run"
    )


class BackupExtractorConfig(BaseModel):
    """Root configuration for the backup extractor."""

    model_config = ConfigDict(extra='forbid')

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
