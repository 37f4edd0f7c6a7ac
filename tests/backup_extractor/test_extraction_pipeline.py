"""End-to-end tests for the voicemail extraction pipeline."""

from datetime import datetime, timezone

import pytest

from ios_voicemail.backup_extractor.attribute_store import AttributeStore
from ios_voicemail.backup_extractor.catalog import BackupCatalog
from ios_voicemail.backup_extractor.content_store import ContentStore
from ios_voicemail.backup_extractor.discovery import discover_backup, parse_backup
from ios_voicemail.backup_extractor.errors import InsufficientStorageError, NoContentError
from ios_voicemail.backup_extractor.extractor import VoicemailExtractor, assign_destination_names, extract_payloads
from ios_voicemail.backup_extractor.models import AudioFormat, CatalogEntry

SINGLE_BACKUP_ID = "A" * 36 + "1234"


def voicemail_row(epoch, caller="+12345678900", **extra):
    row = {"remote_uid": epoch % 1000, "date": epoch, "sender": caller, "callback_num": caller,
           "duration": 30, "expiration": 0, "trashed_date": 0, "flags": 1}
    row.update(extra)
    return row


class TestDestinationNames:
    """Tests for assign_destination_names."""

    def test_unique_names_kept(self):
        entries = [
            CatalogEntry("a" * 40, "HomeDomain", "Library/Voicemail/1.amr"),
            CatalogEntry("b" * 40, "HomeDomain", "Library/Voicemail/2.amr"),
        ]
        assert assign_destination_names(entries) == ["1.amr", "2.amr"]

    def test_collisions_get_hash_prefix(self):
        entries = [
            CatalogEntry("a" * 40, "HomeDomain", "Library/Voicemail/1710255022.amr"),
            CatalogEntry("b" * 40, "MediaDomain", "Media/Voicemail/1710255022.AMR"),
        ]
        assert assign_destination_names(entries) == [
            "aaaaaaaa_1710255022.amr",
            "bbbbbbbb_1710255022.AMR",
        ]


class TestExtractPayloads:
    """Tests for the parallel copy step."""

    def test_partial_failure_isolation(self, fake_backup, work_dir):
        """Test 10 entries with 3 missing on disk yield 7 payloads and 3 failures."""
        missing = {2, 5, 9}
        for i in range(10):
            content = None if i in missing else f"audio {i}".encode()
            fake_backup.add_file("HomeDomain", f"Library/Voicemail/17102550{i:02d}.amr", content)

        with BackupCatalog(fake_backup.path) as catalog:
            entries = catalog.locate_audio_payloads()
        store = ContentStore(fake_backup.path, work_dir)

        payloads, failures = extract_payloads(store, entries, worker_threads=4)

        assert len(payloads) == 7
        assert len(failures) == 3
        assert sorted(f.entry.filename for f in failures) == ["1710255002.amr", "1710255005.amr", "1710255009.amr"]
        assert all(f.category == "missing" for f in failures)
        assert [p.original_filename for p in payloads] == sorted(p.original_filename for p in payloads)

    def test_payload_fields(self, fake_backup, work_dir):
        content_hash = fake_backup.add_voicemail("1710255022.awb", content=b"#!AMR-WB\n1234")
        with BackupCatalog(fake_backup.path) as catalog:
            entries = catalog.locate_audio_payloads()

        payloads, failures = extract_payloads(ContentStore(fake_backup.path, work_dir), entries, worker_threads=1)

        payload = payloads[0]
        assert failures == []
        assert payload.content_hash == content_hash
        assert payload.namespace == "HomeDomain"
        assert payload.format is AudioFormat.AMR_WB
        assert payload.size_bytes == len(b"#!AMR-WB\n1234")
        assert payload.extracted_path == work_dir / "1710255022.awb"
        assert payload.source_path == fake_backup.path / content_hash[:2] / content_hash
        assert payload.record is None

    def test_empty_entries(self, fake_backup, work_dir):
        assert extract_payloads(ContentStore(fake_backup.path, work_dir), []) == ([], [])

    def test_unexpected_error_recorded_as_failure(self, fake_backup, work_dir, monkeypatch):
        """Test that an unforeseen exception in one copy still yields a failure entry."""
        for i in range(4):
            fake_backup.add_voicemail(f"17102550{i:02d}.amr")
        with BackupCatalog(fake_backup.path) as catalog:
            entries = catalog.locate_audio_payloads()
        broken_hash = entries[1].content_hash
        original_extract = ContentStore.extract

        def flaky_extract(self, content_hash, destination_name):
            if content_hash == broken_hash:
                raise RuntimeError("device node vanished")
            return original_extract(self, content_hash, destination_name)

        monkeypatch.setattr(ContentStore, "extract", flaky_extract)

        payloads, failures = extract_payloads(ContentStore(fake_backup.path, work_dir), entries, worker_threads=2)

        assert len(payloads) == 3
        assert [f.entry.content_hash for f in failures] == [broken_hash]
        assert failures[0].category == "unknown"
        assert failures[0].message == "device node vanished"


class TestVoicemailExtractor:
    """Tests for VoicemailExtractor."""

    def test_single_backup_direct_match(self, backup_root, fake_backup, work_dir):
        """Test the single-backup scenario end to end."""
        fake_backup.add_voicemail("1710255022.amr")
        fake_backup.add_voicemail_db([voicemail_row(1710255022, caller="+12345678900")])

        descriptor = discover_backup(backup_root, now=datetime(2024, 3, 13, tzinfo=timezone.utc))
        result = VoicemailExtractor(descriptor, work_dir).extract()

        assert descriptor.identifier == SINGLE_BACKUP_ID
        assert len(result.payloads) == 1
        payload = result.payloads[0]
        assert payload.record is not None
        assert payload.record.caller_number == "+12345678900"
        assert payload.extracted_path == work_dir / "audio" / "1710255022.amr"
        assert (work_dir / "voicemail.db").is_file()
        assert result.attribute_store_available
        assert result.surplus_records == []
        assert result.failures == []

    def test_unmatched_and_surplus_reported(self, fake_backup, work_dir):
        fake_backup.add_voicemail("1710255022.amr")
        fake_backup.add_voicemail("1710259999.amr")
        fake_backup.add_voicemail_db([voicemail_row(1710255025), voicemail_row(1710300000)])

        result = VoicemailExtractor(parse_backup(fake_backup.path), work_dir).extract()

        assert len(result.matched_payloads) == 1
        assert [p.original_filename for p in result.unmatched_payloads] == ["1710259999.amr"]
        assert [r.received_at for r in result.surplus_records] == [
            datetime.fromtimestamp(1710300000, tz=timezone.utc)
        ]

    def test_deleted_records_excluded_by_default(self, fake_backup, work_dir):
        fake_backup.add_voicemail("1710255022.amr")
        fake_backup.add_voicemail_db([voicemail_row(1710255022, trashed_date=1710256000)])
        descriptor = parse_backup(fake_backup.path)

        default = VoicemailExtractor(descriptor, work_dir / "a").extract()
        with_deleted = VoicemailExtractor(descriptor, work_dir / "b", include_deleted=True).extract()

        assert not default.payloads[0].has_record
        assert with_deleted.payloads[0].record.was_deleted

    def test_file_only_mode_without_database(self, fake_backup, work_dir):
        fake_backup.add_voicemail("1710255022.amr")

        result = VoicemailExtractor(parse_backup(fake_backup.path), work_dir).extract()

        assert not result.attribute_store_available
        assert len(result.unmatched_payloads) == 1

    def test_file_only_mode_with_malformed_database(self, fake_backup, work_dir):
        fake_backup.add_voicemail("1710255022.amr")
        fake_backup.add_file("HomeDomain", "Library/Voicemail/voicemail.db", content=b"truncated garbage")

        result = VoicemailExtractor(parse_backup(fake_backup.path), work_dir).extract()

        assert not result.attribute_store_available
        assert len(result.payloads) == 1

    def test_legacy_layout(self, fake_backup, work_dir):
        """Test that a legacy backup layout is still extracted and matched."""
        fake_backup.add_file("Library-Voicemail", "voicemail/1710255022.amr", b"#!AMR\nlegacy")
        fake_backup.add_voicemail_db(
            [voicemail_row(1710255020)],
            domain="Library-Voicemail",
            relative_path="voicemail.db",
        )

        result = VoicemailExtractor(parse_backup(fake_backup.path), work_dir).extract()

        assert [p.logical_path for p in result.payloads] == ["voicemail/1710255022.amr"]
        assert result.payloads[0].has_record

    def test_no_audio_raises(self, fake_backup, work_dir):
        fake_backup.add_voicemail_db([voicemail_row(1710255022)])

        with pytest.raises(NoContentError) as exc_info:
            VoicemailExtractor(parse_backup(fake_backup.path), work_dir).extract()

        assert exc_info.value.exit_code == 5

    def test_all_audio_missing_raises(self, fake_backup, work_dir):
        fake_backup.add_file("HomeDomain", "Library/Voicemail/1710255022.amr", content=None)

        with pytest.raises(NoContentError):
            VoicemailExtractor(parse_backup(fake_backup.path), work_dir).extract()

    def test_insufficient_storage(self, fake_backup, work_dir, monkeypatch):
        fake_backup.add_voicemail("1710255022.amr")

        class Usage:
            free = 1

        monkeypatch.setattr("ios_voicemail.backup_extractor.workdir.shutil.disk_usage", lambda path: Usage())

        with pytest.raises(InsufficientStorageError):
            VoicemailExtractor(parse_backup(fake_backup.path), work_dir).extract()

        assert not (work_dir / "audio").exists()

    def test_repeated_extraction_is_byte_identical(self, fake_backup, tmp_path):
        fake_backup.add_voicemail("1710255022.amr", content=bytes(range(256)) * 50)
        descriptor = parse_backup(fake_backup.path)

        first = VoicemailExtractor(descriptor, tmp_path / "run1").extract()
        second = VoicemailExtractor(descriptor, tmp_path / "run2").extract()

        assert first.payloads[0].extracted_path.read_bytes() == second.payloads[0].extracted_path.read_bytes()


class TestMalformedAttributeValues:
    """Tests for voicemail databases holding values of the wrong type or range."""

    def test_out_of_range_date_does_not_abort(self, fake_backup, work_dir):
        fake_backup.add_voicemail("1710255022.amr")
        fake_backup.add_voicemail_db([
            voicemail_row(1710255022, caller="+12345678900"),
            voicemail_row(1710250000, caller="+15550100", date=99999999999999),
        ])

        result = VoicemailExtractor(parse_backup(fake_backup.path), work_dir).extract()

        assert result.attribute_store_available
        assert result.payloads[0].record.caller_number == "+12345678900"
        assert [r.caller_number for r in result.surplus_records] == ["+15550100"]
        assert result.surplus_records[0].received_at is None

    def test_text_in_integer_columns(self, fake_backup, work_dir):
        fake_backup.add_voicemail("1710255022.amr")
        fake_backup.add_voicemail_db([voicemail_row(1710255022, duration="n/a", flags="read")])

        result = VoicemailExtractor(parse_backup(fake_backup.path), work_dir).extract()

        record = result.payloads[0].record
        assert record is not None
        assert record.duration_seconds == 0
        assert record.flags == 0

    def test_undecodable_database_degrades_to_file_only(self, fake_backup, work_dir, monkeypatch):
        fake_backup.add_voicemail("1710255022.amr")
        fake_backup.add_voicemail_db([voicemail_row(1710255022)])

        def broken_read_all(self, include_deleted=False):
            raise ValueError("unexpected cell value")

        monkeypatch.setattr(AttributeStore, "read_all", broken_read_all)

        result = VoicemailExtractor(parse_backup(fake_backup.path), work_dir).extract()

        assert not result.attribute_store_available
        assert len(result.unmatched_payloads) == 1
        assert result.failures == []
