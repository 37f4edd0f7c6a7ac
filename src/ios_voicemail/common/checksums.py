"""Checksum utilities for verifying extracted copies."""

import zlib
from pathlib import Path

CRC32_CHUNK_SIZE = 65536  # 64 KB chunks


def compute_crc32(file_path: Path) -> int:
    """
    Compute CRC32 checksum of entire file.

    Used to confirm that a file copied out of a backup matches its source.

    Args:
        file_path: Path to the file

    Returns:
        CRC32 checksum as unsigned 32-bit integer

    Raises:
        OSError: If file cannot be read
    """
    crc = 0

    with open(file_path, 'rb') as f:
        while chunk := f.read(CRC32_CHUNK_SIZE):
            crc = zlib.crc32(chunk, crc)

    return crc & 0xFFFFFFFF


def files_match(first: Path, second: Path) -> bool:
    """Return True when both files have the same size and CRC32."""
    if first.stat().st_size != second.stat().st_size:
        return False
    return compute_crc32(first) == compute_crc32(second)
