"""Pair extracted voicemail audio with attribute records by timestamp.

The backup stores no link between an audio file and its row in
``voicemail.db``. Audio files are named after the Unix time they were
received (``1710255022.amr``), so pairing compares that time with each
record's ``date`` column.

Matching is greedy in payload order: each payload takes the closest record
still unclaimed within the tolerance window. Equal distances go to the record
seen first, and records arrive newest first. The result is valid (every
record used at most once) but not guaranteed to be the globally optimal
assignment.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from .models import AttributeRecord, ExtractedPayload, ReconciliationResult

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 5

_TIMESTAMP_PREFIX = re.compile(r'^(\d{10})')


def extract_filename_timestamp(filename: str) -> Optional[datetime]:
    """Parse the 10-digit Unix timestamp a voicemail filename starts with.

    Args:
        filename: Bare filename, e.g. ``1710255022.amr``

    Returns:
        Aware UTC datetime, or None if the name does not start with 10 digits

    Example:
        >>> extract_filename_timestamp("1710255022.amr")
        datetime.datetime(2024, 3, 12, 14, 50, 22, tzinfo=datetime.timezone.utc)
    """
    match = _TIMESTAMP_PREFIX.match(filename)
    if not match:
        return None
    return datetime.fromtimestamp(int(match.group(1)), tz=timezone.utc)


def timestamps_match(ts1: Optional[datetime], ts2: Optional[datetime], tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS) -> bool:
    """Check if two timestamps match within tolerance.

    Args:
        ts1: First timestamp
        ts2: Second timestamp
        tolerance_seconds: Maximum difference in seconds to consider a match

    Returns:
        True if timestamps match within tolerance, False otherwise
    """
    if ts1 is None or ts2 is None:
        return False

    diff = abs((ts1 - ts2).total_seconds())
    return diff <= tolerance_seconds


def find_closest_record(
    timestamp: datetime,
    candidates: Sequence[AttributeRecord],
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
) -> Optional[Tuple[int, AttributeRecord]]:
    """Find the candidate received closest to ``timestamp``.

    Returns:
        ``(index, record)`` of the best candidate, or None if none is within
        tolerance
    """
    best: Optional[Tuple[int, AttributeRecord]] = None
    best_diff = None

    for index, record in enumerate(candidates):
        if not timestamps_match(timestamp, record.received_at, tolerance_seconds):
            continue
        diff = abs((timestamp - record.received_at).total_seconds())
        if best_diff is None or diff < best_diff:
            best = (index, record)
            best_diff = diff

    return best


def reconcile(
    payloads: Sequence[ExtractedPayload],
    records: Sequence[AttributeRecord],
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
) -> ReconciliationResult:
    """Attach at most one record to each payload.

    Every payload is returned, in input order, matched or not. Records left
    unclaimed are returned as surplus.

    Args:
        payloads: Extracted audio files
        records: Attribute records, newest first
        tolerance_seconds: Maximum distance between filename time and record time

    Returns:
        ReconciliationResult
    """
    available: List[AttributeRecord] = list(records)
    reconciled: List[ExtractedPayload] = []

    for payload in payloads:
        timestamp = extract_filename_timestamp(payload.original_filename)
        if timestamp is None:
            logger.debug(f"No timestamp in filename: {{'filename': {payload.original_filename!r}}}")
            reconciled.append(payload)
            continue

        found = find_closest_record(timestamp, available, tolerance_seconds)
        if found is None:
            logger.debug(
                f"No record within tolerance: {{'filename': {payload.original_filename!r}, 'timestamp': {timestamp.isoformat()!r}, 'tolerance': {tolerance_seconds}}}"
            )
            reconciled.append(payload)
            continue

        index, record = found
        del available[index]
        logger.debug(
            f"Matched payload: {{'filename': {payload.original_filename!r}, 'row_id': {record.row_id}, 'caller': {record.caller_number!r}}}"
        )
        reconciled.append(payload.with_record(record))

    result = ReconciliationResult(payloads=reconciled, surplus_records=available)
    _log_imbalance(result)
    return result


def _log_imbalance(result: ReconciliationResult) -> None:
    unmatched = result.unmatched_payloads
    matched = len(result.payloads) - len(unmatched)

    logger.info(
        f"Reconciliation complete: {{'payloads': {len(result.payloads)}, 'matched': {matched}, 'audio_without_metadata': {len(unmatched)}, 'metadata_without_audio': {len(result.surplus_records)}}}"
    )
    for payload in unmatched:
        logger.info(f"Audio with no metadata: {{'filename': {payload.original_filename!r}}}")
    for record in result.surplus_records:
        logger.info(f"Metadata with no audio: {{'row_id': {record.row_id}, 'record': {str(record)!r}}}")


def create_synthetic_record(timestamp: Optional[datetime] = None) -> AttributeRecord:
    """Placeholder record for audio that has no metadata.

    Args:
        timestamp: Received time to use, usually parsed from the filename;
            defaults to now

    Returns:
        AttributeRecord with caller "Unknown" and zeroed ids and duration
    """
    return AttributeRecord(
        row_id=0,
        remote_uid=0,
        received_at=timestamp or datetime.now(timezone.utc),
        caller_number="Unknown",
        callback_number=None,
        duration_seconds=0,
    )
