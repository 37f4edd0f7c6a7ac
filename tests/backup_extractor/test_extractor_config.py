"""Tests for the backup extractor configuration schema."""

import pytest
from pydantic import ValidationError

from ios_voicemail.backup_extractor.config import BackupConfig, BackupExtractorConfig, ExtractionConfig


class TestBackupExtractorConfig:
    """Tests for BackupExtractorConfig."""

    def test_defaults(self):
        config = BackupExtractorConfig()

        assert config.backup.backup_dir is None
        assert config.backup.min_product_version == 7
        assert config.backup.stale_after_days == 30
        assert config.extraction.match_tolerance_seconds == 5
        assert config.extraction.include_deleted is False
        assert config.extraction.keep_work_dir is False
        assert 2 <= config.extraction.worker_threads <= 8
        assert config.logging.level == "INFO"

    def test_from_nested_dict(self):
        config = BackupExtractorConfig(**{
            "backup": {"device_id": "a" * 40},
            "extraction": {"worker_threads": 3, "verify_checksums": True},
            "logging": {"level": "debug"},
        })

        assert config.backup.device_id == "a" * 40
        assert config.extraction.worker_threads == 3
        assert config.extraction.verify_checksums is True
        assert config.logging.level == "DEBUG"

    def test_rejects_unknown_section_fields(self):
        with pytest.raises(ValidationError):
            ExtractionConfig(target_dir="/tmp")

    def test_rejects_zero_workers(self):
        with pytest.raises(ValidationError):
            ExtractionConfig(worker_threads=0)

    def test_rejects_negative_tolerance(self):
        with pytest.raises(ValidationError):
            ExtractionConfig(match_tolerance_seconds=-1)

    def test_rejects_zero_version_floor(self):
        with pytest.raises(ValidationError):
            BackupConfig(min_product_version=0)
