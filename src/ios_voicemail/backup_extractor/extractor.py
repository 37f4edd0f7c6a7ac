"""Voicemail extraction pipeline.

Catalog queries run once, up front, on the calling thread. Copying audio out
of the backup is spread over a small pool of worker threads; each copy is
independent and writes to its own destination name, and a failed copy is
recorded without stopping the others. Reconciliation runs single-threaded
after every copy has finished.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from queue import Queue
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ios_voicemail.common import LogContext
from .attribute_store import AttributeStore
from .catalog import ATTRIBUTE_DB_FILENAME, BackupCatalog
from .content_store import ContentStore
from .errors import MalformedAttributeStoreError, NoContentError, PartialExtractionError, classify_error
from .models import (
    AttributeRecord,
    AudioFormat,
    BackupDescriptor,
    CatalogEntry,
    ExtractedPayload,
    ExtractionFailure,
    ExtractionResult,
)
from .reconciler import DEFAULT_TOLERANCE_SECONDS, reconcile
from .workdir import check_free_space

logger = logging.getLogger(__name__)

AUDIO_SUBDIRECTORY = "audio"

_Outcome = Union[ExtractedPayload, ExtractionFailure]


def assign_destination_names(entries: Sequence[CatalogEntry]) -> List[str]:
    """Pick a unique file name for each entry inside one directory.

    The original filename is kept where possible. Names that collide
    (case-insensitively, for case-insensitive filesystems) get the first
    eight characters of the content hash as a prefix.
    """
    counts: Dict[str, int] = {}
    for entry in entries:
        key = entry.filename.lower()
        counts[key] = counts.get(key, 0) + 1

    names = []
    for entry in entries:
        filename = entry.filename
        if not filename:
            names.append(f"{entry.content_hash}{AudioFormat.UNKNOWN.extension}")
        elif counts[filename.lower()] > 1:
            names.append(f"{entry.content_hash[:8]}_{filename}")
        else:
            names.append(filename)
    return names


def _extract_one(store: ContentStore, entry: CatalogEntry, destination_name: str) -> ExtractedPayload:
    destination = store.extract(entry.content_hash, destination_name)
    if destination is None:
        raise PartialExtractionError(
            f"File listed in catalog but missing from backup storage: {entry.logical_path}",
            content_hash=entry.content_hash,
            logical_path=entry.logical_path,
            category='missing',
        )

    return ExtractedPayload(
        content_hash=entry.content_hash,
        namespace=entry.namespace,
        logical_path=entry.logical_path,
        source_path=store.source_path(entry.content_hash),
        extracted_path=destination,
        format=AudioFormat.from_path(entry.logical_path),
        size_bytes=destination.stat().st_size,
    )


def _extraction_worker(
    thread_id: int,
    work_queue: Queue,
    results_queue: Queue,
    store: ContentStore,
) -> None:
    """Pull ``(index, entry, name)`` items until the ``None`` sentinel."""
    logger.debug(f"Extraction worker {thread_id} started")
    processed = 0

    while True:
        work_item = work_queue.get()
        if work_item is None:
            work_queue.task_done()
            break

        index, entry, destination_name = work_item
        try:
            outcome: _Outcome = _extract_one(store, entry, destination_name)
        except Exception as e:
            category = classify_error(e)
            logger.warning(
                f"Extraction failed: {{'path': {entry.logical_path!r}, 'hash': {entry.content_hash!r}, 'category': {category!r}, 'error': {str(e)!r}}}",
                exc_info=category == 'unknown',
            )
            outcome = ExtractionFailure(entry=entry, error=e, category=category)
        finally:
            work_queue.task_done()

        results_queue.put((index, outcome))
        processed += 1

    logger.debug(f"Extraction worker {thread_id} finished: {{'processed': {processed}}}")


def extract_payloads(
    store: ContentStore,
    entries: Sequence[CatalogEntry],
    worker_threads: int = 4,
) -> Tuple[List[ExtractedPayload], List[ExtractionFailure]]:
    """Copy every entry out of the backup.

    Per-entry failures are collected and never raised.

    Args:
        store: Content store writing into the audio directory
        entries: Catalog entries to extract
        worker_threads: Number of copy threads (at least one)

    Returns:
        ``(payloads, failures)``, each in catalog order
    """
    if not entries:
        return [], []

    names = assign_destination_names(entries)
    work_queue: Queue = Queue()
    results_queue: Queue = Queue()

    for index, (entry, name) in enumerate(zip(entries, names)):
        work_queue.put((index, entry, name))

    thread_count = max(1, min(worker_threads, len(entries)))
    for _ in range(thread_count):
        work_queue.put(None)

    logger.info(f"Extracting payloads: {{'count': {len(entries)}, 'threads': {thread_count}}}")
    threads = [
        threading.Thread(
            target=_extraction_worker,
            args=(thread_id, work_queue, results_queue, store),
            name=f"extract-{thread_id}",
            daemon=True,
        )
        for thread_id in range(thread_count)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    outcomes: Dict[int, _Outcome] = {}
    while not results_queue.empty():
        index, outcome = results_queue.get()
        outcomes[index] = outcome

    payloads: List[ExtractedPayload] = []
    failures: List[ExtractionFailure] = []
    for index in sorted(outcomes):
        outcome = outcomes[index]
        if isinstance(outcome, ExtractionFailure):
            failures.append(outcome)
        else:
            payloads.append(outcome)

    logger.info(f"Extraction finished: {{'extracted': {len(payloads)}, 'failed': {len(failures)}}}")
    return payloads, failures


class VoicemailExtractor:
    """
    Extracts voicemail audio and metadata from one validated backup.

    Args:
        descriptor: Backup to read from
        working_directory: Directory that receives the extracted files
        worker_threads: Number of copy threads
        include_deleted: Also read records the user deleted
        match_tolerance_seconds: Reconciliation tolerance window
        verify_checksums: Verify each copy against its source
    """

    def __init__(
        self,
        descriptor: BackupDescriptor,
        working_directory: Path,
        worker_threads: int = 4,
        include_deleted: bool = False,
        match_tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        verify_checksums: bool = False,
    ):
        self.descriptor = descriptor
        self.working_directory = Path(working_directory)
        self.worker_threads = worker_threads
        self.include_deleted = include_deleted
        self.match_tolerance_seconds = match_tolerance_seconds
        self.verify_checksums = verify_checksums

    def extract(self) -> ExtractionResult:
        """
        Run the full extraction pass.

        Raises:
            NoContentError: If the backup holds no voicemail audio, or none
                of it could be copied
            InsufficientStorageError: If the working directory lacks space
            InvalidBackupError: If the catalog cannot be read
        """
        with LogContext(logger, backup_id=self.descriptor.identifier):
            logger.info(f"Starting voicemail extraction: {{'backup': {str(self.descriptor.path)!r}, 'working_directory': {str(self.working_directory)!r}}}")

            attribute_entry, audio_entries = self._locate()
            if not audio_entries:
                raise NoContentError(
                    "No voicemail audio found in backup",
                    backup_path=str(self.descriptor.path),
                    suggestion="Check that Visual Voicemail is enabled on the device and back it up again",
                )

            db_store = ContentStore(self.descriptor.path, self.working_directory, self.verify_checksums)
            audio_store = ContentStore(
                self.descriptor.path,
                self.working_directory / AUDIO_SUBDIRECTORY,
                self.verify_checksums,
            )

            self._check_space(audio_store, audio_entries, attribute_entry)
            records = self._load_records(db_store, attribute_entry)

            payloads, failures = extract_payloads(audio_store, audio_entries, self.worker_threads)
            if not payloads:
                raise NoContentError(
                    f"None of the {len(audio_entries)} voicemail files could be extracted",
                    backup_path=str(self.descriptor.path),
                    failures=len(failures),
                    suggestion="The backup may be incomplete. Create a new backup.",
                )

            if records is None:
                reconciled = payloads
                surplus: List[AttributeRecord] = []
            else:
                reconciliation = reconcile(payloads, records, self.match_tolerance_seconds)
                reconciled = reconciliation.payloads
                surplus = reconciliation.surplus_records

            result = ExtractionResult(
                descriptor=self.descriptor,
                working_directory=self.working_directory,
                payloads=reconciled,
                surplus_records=surplus,
                failures=failures,
                attribute_store_available=records is not None,
            )
            logger.info(
                f"Voicemail extraction complete: {{'payloads': {len(result.payloads)}, 'matched': {len(result.matched_payloads)}, 'failures': {len(failures)}}}"
            )
            return result

    def _locate(self) -> Tuple[Optional[CatalogEntry], List[CatalogEntry]]:
        with BackupCatalog(self.descriptor.path) as catalog:
            attribute_entry = catalog.locate_attribute_database()
            audio_entries = catalog.locate_audio_payloads()

        logger.info(
            f"Located voicemail content: {{'attribute_database': {attribute_entry is not None}, 'audio_files': {len(audio_entries)}}}"
        )
        return attribute_entry, audio_entries

    def _check_space(
        self,
        store: ContentStore,
        entries: Sequence[CatalogEntry],
        attribute_entry: Optional[CatalogEntry],
    ) -> None:
        hashes = [entry.content_hash for entry in entries]
        if attribute_entry is not None:
            hashes.append(attribute_entry.content_hash)

        required = 0
        for content_hash in hashes:
            source = store.source_path(content_hash)
            if source.is_file():
                required += source.stat().st_size

        check_free_space(self.working_directory, required)

    def _load_records(
        self,
        store: ContentStore,
        attribute_entry: Optional[CatalogEntry],
    ) -> Optional[List[AttributeRecord]]:
        """Read attribute records, or None to run in file-only mode."""
        if attribute_entry is None:
            logger.warning("No voicemail database in backup, continuing with audio files only")
            return None

        try:
            db_path = store.extract(attribute_entry.content_hash, ATTRIBUTE_DB_FILENAME)
            if db_path is None:
                logger.warning(
                    f"Voicemail database listed but missing from backup storage, continuing with audio files only: {{'hash': {attribute_entry.content_hash!r}}}"
                )
                return None

            with AttributeStore(db_path) as attribute_store:
                return attribute_store.read_all(include_deleted=self.include_deleted)
        except (MalformedAttributeStoreError, PartialExtractionError, sqlite3.Error, OSError, ValueError) as e:
            logger.warning(f"Voicemail database unusable, continuing with audio files only: {{'error': {str(e)!r}}}")
            return None
