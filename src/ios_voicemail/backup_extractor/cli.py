"""CLI command for extracting voicemail from an iOS backup."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import BackupExtractorConfig
from .discovery import discover_backup
from .errors import classify_error
from .extractor import VoicemailExtractor
from .summary import generate_summary
from .workdir import WorkingDirectory, cleanup_stale_working_directories
from ios_voicemail.common import ConfigLoader, VoicemailSyncError, expand_path_variables, setup_logging

# Application name derived from package name
_package = __package__ or "ios_voicemail.backup_extractor"
APP_NAME = _package.replace('_', '-').replace('.', '-')

# Loggers that emit one DEBUG line per database open or file copy
IO_LOGGERS = (
    f"{_package}.database",
    f"{_package}.content_store",
    f"{_package}.catalog",
)


def _optional_path(value: Optional[str]) -> Optional[Path]:
    if not value:
        return None
    return Path(expand_path_variables(value))


def extract_command(
    config: BackupExtractorConfig,
    backup_dir_override: Optional[Path] = None,
    device_id_override: Optional[str] = None,
    work_dir_override: Optional[Path] = None,
    include_deleted_override: Optional[bool] = None,
    workers_override: Optional[int] = None,
    keep_work_dir_override: Optional[bool] = None,
) -> int:
    """Discover a backup and extract its voicemail.

    Args:
        config: Configuration object
        backup_dir_override: Optional override for the backup root
        device_id_override: Optional override for the device identifier
        work_dir_override: Optional override for the working directory
        include_deleted_override: Optional override for including deleted voicemail
        workers_override: Optional override for the number of copy threads
        keep_work_dir_override: Optional override for keeping the working directory

    Returns:
        Exit code (0 for success)
    """
    # Use __package__ to avoid __main__ when run as module
    logger_name = __package__ or __name__
    logger = logging.getLogger(logger_name)

    backup_dir = backup_dir_override or _optional_path(config.backup.backup_dir)
    device_id = device_id_override or config.backup.device_id
    work_dir = work_dir_override or _optional_path(config.extraction.work_dir)
    include_deleted = include_deleted_override if include_deleted_override is not None else config.extraction.include_deleted
    workers = workers_override or config.extraction.worker_threads
    keep_work_dir = keep_work_dir_override if keep_work_dir_override is not None else config.extraction.keep_work_dir

    cleanup_stale_working_directories()
    working_directory = WorkingDirectory(work_dir)

    try:
        descriptor = discover_backup(
            root=backup_dir,
            device_id=device_id,
            min_product_version=config.backup.min_product_version,
            stale_after_days=config.backup.stale_after_days,
        )

        extractor = VoicemailExtractor(
            descriptor=descriptor,
            working_directory=working_directory.create(),
            worker_threads=workers,
            include_deleted=include_deleted,
            match_tolerance_seconds=config.extraction.match_tolerance_seconds,
            verify_checksums=config.extraction.verify_checksums,
        )
        result = extractor.extract()

        for payload in result.payloads:
            record = str(payload.record) if payload.record else None
            logger.info(
                f"Extracted payload: {{'path': {str(payload.extracted_path)!r}, 'format': {payload.format.description!r}, 'size': {payload.size_bytes}, 'record': {record!r}}}"
            )
        for failure in result.failures:
            logger.error(f"Failed to extract: {{'path': {failure.entry.logical_path!r}, 'category': {failure.category!r}, 'error': {failure.message!r}}}")

        logger.info(f"Extraction summary: {json.dumps(generate_summary(result), default=str)}")
        return 1 if result.failures else 0

    except VoicemailSyncError as e:
        logger.error(f"{e.message} {{'category': {classify_error(e)!r}}}")
        if e.suggestion:
            logger.error(e.suggestion)
        return e.exit_code

    except Exception as e:
        logger.exception(f"Extraction failed: {e}")
        return 1

    finally:
        if keep_work_dir:
            if working_directory.owned:
                logger.info(f"Keeping working directory: {{'path': {str(working_directory.path)!r}}}")
        elif working_directory.owned:
            working_directory.cleanup()


def main() -> int:
    """Main entry point for extract command."""
    parser = argparse.ArgumentParser(
        description="Extract voicemail audio and metadata from an iOS backup"
    )
    parser.add_argument(
        "--backup-dir",
        type=Path,
        required=False,
        help="Backup root directory (overrides config)"
    )
    parser.add_argument(
        "--device-id",
        type=str,
        required=False,
        help="Identifier of the backup to use when several exist"
    )
    parser.add_argument(
        "--work-dir",
        type=Path,
        required=False,
        help="Working directory for extracted files (overrides config)"
    )
    parser.add_argument(
        "--include-deleted",
        action="store_true",
        help="Include voicemails that were deleted on the device"
    )
    parser.add_argument(
        "--workers",
        type=int,
        required=False,
        help="Number of copy threads (overrides config)"
    )
    parser.add_argument(
        "--keep-work-dir",
        action="store_true",
        help="Keep the working directory after the run"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (defaults.toml)"
    )

    args = parser.parse_args()

    loader = ConfigLoader(
        app_name=APP_NAME,
        config_class=BackupExtractorConfig
    )

    config = loader.load(defaults_path=args.config)

    setup_logging(
        level=config.logging.level,
        format=config.logging.format,
        log_file=_optional_path(config.logging.file),
        quiet_loggers=() if config.logging.trace_io else IO_LOGGERS,
    )

    return extract_command(
        config=config,
        backup_dir_override=args.backup_dir,
        device_id_override=args.device_id,
        work_dir_override=args.work_dir,
        include_deleted_override=True if args.include_deleted else None,
        workers_override=args.workers,
        keep_work_dir_override=True if args.keep_work_dir else None,
    )


if __name__ == "__main__":
    sys.exit(main())
