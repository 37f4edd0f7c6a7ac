"""Tests for the extract command line entry point."""

import logging
import sys

import pytest

from ios_voicemail.backup_extractor import cli
from ios_voicemail.backup_extractor.cli import APP_NAME, IO_LOGGERS, extract_command, main
from ios_voicemail.backup_extractor.config import BackupExtractorConfig


@pytest.fixture
def config():
    return BackupExtractorConfig(extraction={"worker_threads": 2})


class TestExtractCommand:
    """Tests for extract_command."""

    def test_app_name(self):
        assert APP_NAME == "ios-voicemail-backup-extractor"

    def test_success(self, config, backup_root, fake_backup, work_dir, caplog):
        fake_backup.add_voicemail("1710255022.amr")

        with caplog.at_level(logging.INFO):
            code = extract_command(config, backup_dir_override=backup_root, work_dir_override=work_dir)

        assert code == 0
        assert (work_dir / "audio" / "1710255022.amr").is_file()
        assert "Extraction summary" in caplog.text

    def test_no_backups_returns_not_found_code(self, config, backup_root, work_dir, caplog):
        with caplog.at_level(logging.ERROR):
            code = extract_command(config, backup_dir_override=backup_root, work_dir_override=work_dir)

        assert code == 3
        assert "Back Up Now" in caplog.text

    def test_ambiguous_backups(self, config, backup_root, make_backup, work_dir):
        make_backup(identifier="A" * 40).add_voicemail("1710255022.amr")
        make_backup(identifier="B" * 40).add_voicemail("1710255022.amr")

        assert extract_command(config, backup_dir_override=backup_root, work_dir_override=work_dir) == 3

    def test_device_id_override(self, config, backup_root, make_backup, work_dir):
        make_backup(identifier="A" * 40).add_voicemail("1710255022.amr")
        make_backup(identifier="B" * 40).add_voicemail("1710255099.amr")

        code = extract_command(
            config,
            backup_dir_override=backup_root,
            device_id_override="b" * 40,
            work_dir_override=work_dir,
        )

        assert code == 0
        assert (work_dir / "audio" / "1710255099.amr").is_file()

    def test_no_content_code(self, config, backup_root, fake_backup, work_dir):
        fake_backup.add_file("HomeDomain", "Library/Preferences/com.apple.x.plist")

        assert extract_command(config, backup_dir_override=backup_root, work_dir_override=work_dir) == 5

    def test_partial_failures_return_one(self, config, backup_root, fake_backup, work_dir):
        fake_backup.add_voicemail("1710255022.amr")
        fake_backup.add_file("HomeDomain", "Library/Voicemail/1710255099.amr", content=None)

        assert extract_command(config, backup_dir_override=backup_root, work_dir_override=work_dir) == 1

    def test_temporary_working_directory_removed(self, config, backup_root, fake_backup, tmp_path, monkeypatch):
        fake_backup.add_voicemail("1710255022.amr")
        monkeypatch.setattr("tempfile.tempdir", str(tmp_path))

        assert extract_command(config, backup_dir_override=backup_root) == 0
        assert not list(tmp_path.glob("ios-voicemail-*"))

    def test_keep_temporary_working_directory(self, config, backup_root, fake_backup, tmp_path, monkeypatch):
        fake_backup.add_voicemail("1710255022.amr")
        monkeypatch.setattr("tempfile.tempdir", str(tmp_path))

        assert extract_command(config, backup_dir_override=backup_root, keep_work_dir_override=True) == 0
        kept = list(tmp_path.glob("ios-voicemail-*"))
        assert len(kept) == 1
        assert (kept[0] / "audio" / "1710255022.amr").is_file()


class TestMain:
    """Tests for argument parsing in main."""

    def test_main_passes_overrides(self, backup_root, fake_backup, work_dir, monkeypatch, tmp_path):
        fake_backup.add_voicemail("1710255022.amr")
        defaults = tmp_path / "defaults.toml"
        defaults.write_text("[extraction]\nworker_threads = 2\n")
        monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
        monkeypatch.setattr(sys, "argv", [
            "ios-voicemail-extract",
            "--backup-dir", str(backup_root),
            "--work-dir", str(work_dir),
            "--include-deleted",
            "--workers", "1",
            "--config", str(defaults),
        ])

        assert main() == 0
        assert (work_dir / "audio" / "1710255022.amr").is_file()

    @pytest.mark.parametrize("trace_io, expected", [("false", IO_LOGGERS), ("true", ())])
    def test_main_quiets_io_loggers(self, backup_root, fake_backup, work_dir, monkeypatch, tmp_path,
                                    trace_io, expected):
        fake_backup.add_voicemail("1710255022.amr")
        defaults = tmp_path / "defaults.toml"
        defaults.write_text(f"[logging]\nlevel = \"debug\"\ntrace_io = {trace_io}\n")
        calls = []
        monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: calls.append(kwargs))
        monkeypatch.setattr(sys, "argv", [
            "ios-voicemail-extract",
            "--backup-dir", str(backup_root),
            "--work-dir", str(work_dir),
            "--config", str(defaults),
        ])

        assert main() == 0
        assert calls[0]["level"] == "DEBUG"
        assert tuple(calls[0]["quiet_loggers"]) == tuple(expected)
        assert "ios_voicemail.backup_extractor.content_store" in IO_LOGGERS
