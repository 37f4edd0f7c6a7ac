"""Copies content-addressed files out of a backup into a working directory."""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from ios_voicemail.common import files_match
from .content_address import resolve, storage_relative_path
from .errors import PartialExtractionError

logger = logging.getLogger(__name__)


class ContentStore:
    """Resolves content hashes to backup files and copies them out.

    Args:
        backup_path: Root directory of the backup
        working_directory: Destination directory, created on first extraction
        verify_checksums: Compare CRC32 of each copy against its source
    """

    def __init__(self, backup_path: Path, working_directory: Path, verify_checksums: bool = False):
        self.backup_path = Path(backup_path)
        self.working_directory = Path(working_directory)
        self.verify_checksums = verify_checksums

    def source_path(self, content_hash: str) -> Path:
        """Location of the addressed file inside the backup."""
        return self.backup_path / storage_relative_path(content_hash)

    def exists(self, content_hash: str) -> bool:
        return self.source_path(content_hash).is_file()

    def extract(self, content_hash: str, destination_name: str) -> Optional[Path]:
        """Copy the addressed file to ``working_directory/destination_name``.

        The catalog can list files that were never written to disk; those
        return None.

        Returns:
            Destination path, or None when the backup has no such file

        Raises:
            OSError: If the copy fails
            PartialExtractionError: If checksum verification fails
        """
        source = self.source_path(content_hash)
        if not source.is_file():
            logger.warning(f"Backup file not found: {{'hash': {content_hash!r}, 'path': {str(source)!r}}}")
            return None

        self.working_directory.mkdir(parents=True, exist_ok=True)
        destination = self.working_directory / destination_name
        partial = destination.with_name(f".{destination.name}.partial")

        logger.debug(f"Extracting: {{'source': {storage_relative_path(content_hash)!r}, 'destination': {str(destination)!r}}}")
        try:
            shutil.copyfile(source, partial)
            os.replace(partial, destination)
        finally:
            if partial.exists():
                partial.unlink()

        if self.verify_checksums and not files_match(source, destination):
            raise PartialExtractionError(
                f"Checksum mismatch after copying {content_hash}",
                content_hash=content_hash,
                destination=str(destination),
                category='corrupted',
            )

        return destination

    def extract_by_identity(self, namespace: str, logical_path: str, destination_name: str) -> Optional[Path]:
        """Copy a file addressed by namespace and logical path."""
        return self.extract(resolve(namespace, logical_path), destination_name)
