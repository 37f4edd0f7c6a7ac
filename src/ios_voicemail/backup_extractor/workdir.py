"""Working directory ownership for one extraction run."""

import logging
import shutil
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .errors import InsufficientStorageError

logger = logging.getLogger(__name__)

WORKDIR_PREFIX = "ios-voicemail-"


class WorkingDirectory:
    """
    Scratch directory that extracted files are copied into.

    When no path is given a timestamped directory is created under the system
    temp directory. The caller owns its lifetime: ``cleanup()`` removes it,
    and the context manager does so on exit when this object created it.
    A caller-provided path is never removed by the context manager.

    Usage:
        with WorkingDirectory() as workdir:
            audio_dir = workdir.subdirectory("audio")
    """

    def __init__(self, path: Optional[Path] = None):
        self._requested = Path(path) if path is not None else None
        self._path: Optional[Path] = None
        self._created = False

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("Working directory not created yet")
        return self._path

    @property
    def owned(self) -> bool:
        """True when this object created the directory."""
        return self._created

    def create(self) -> Path:
        if self._path is not None and self._path.exists():
            return self._path

        if self._requested is not None:
            self._requested.mkdir(parents=True, exist_ok=True)
            self._path = self._requested
            logger.info(f"Using working directory: {{'path': {str(self._path)!r}}}")
        else:
            timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            self._path = Path(tempfile.mkdtemp(prefix=f"{WORKDIR_PREFIX}{timestamp}-"))
            self._created = True
            logger.info(f"Created working directory: {{'path': {str(self._path)!r}}}")
        return self._path

    def subdirectory(self, name: str) -> Path:
        subdir = self.path / name
        subdir.mkdir(parents=True, exist_ok=True)
        return subdir

    def cleanup(self) -> None:
        """Remove the directory and everything in it."""
        if self._path is None or not self._path.exists():
            return
        logger.info(f"Cleaning up working directory: {{'path': {str(self._path)!r}}}")
        shutil.rmtree(self._path)
        self._path = None

    def __enter__(self) -> 'WorkingDirectory':
        self.create()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._created:
            self.cleanup()
        return False


def cleanup_stale_working_directories(max_age_hours: float = 24, temp_root: Optional[Path] = None) -> List[Path]:
    """Remove working directories left behind by earlier runs.

    Args:
        max_age_hours: Only directories not modified for this long are removed
        temp_root: Directory to scan; defaults to the system temp directory

    Returns:
        Paths that were removed
    """
    root = Path(temp_root) if temp_root is not None else Path(tempfile.gettempdir())
    cutoff = time.time() - max_age_hours * 3600
    removed = []

    for entry in root.glob(f"{WORKDIR_PREFIX}*"):
        try:
            if not entry.is_dir() or entry.stat().st_mtime > cutoff:
                continue
            shutil.rmtree(entry)
            removed.append(entry)
            logger.debug(f"Removed stale working directory: {{'path': {str(entry)!r}}}")
        except OSError as e:
            logger.warning(f"Failed to remove stale working directory: {{'path': {str(entry)!r}, 'error': {str(e)!r}}}")

    return removed


def check_free_space(path: Path, required_bytes: int) -> int:
    """
    Ensure the filesystem holding ``path`` has room for ``required_bytes``.

    ``path`` need not exist yet; its nearest existing ancestor is measured.

    Returns:
        Free bytes available

    Raises:
        InsufficientStorageError: If less than ``required_bytes`` is free
    """
    probe = Path(path).absolute()
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent

    available = shutil.disk_usage(probe).free
    if available < required_bytes:
        raise InsufficientStorageError(
            f"Insufficient disk space in {path}: need {required_bytes} bytes, {available} available",
            path=str(path),
            required_bytes=required_bytes,
            available_bytes=available,
            suggestion="Free up disk space or choose another --work-dir",
        )
    return available
