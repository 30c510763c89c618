"""
File Management Utilities

This module lays out archive artifacts on disk. Every artifact is
addressed by bookmark id plus the name of the encoder that produced it,
and is written atomically so a failed encode never leaves a partial file
under the final name.
"""

import os
import re
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
import logging


class FileManager:
    """
    Manages the archive directory tree:

        <base>/<bookmark id>/<encoder name>.<ext>
    """

    def __init__(self, base_output_dir: str = "data/archive"):
        """
        Initialize the file manager.

        Args:
            base_output_dir: Base directory for all archive artifacts
        """
        self.base_output_dir = Path(base_output_dir)
        self.logger = logging.getLogger(__name__)
        self.base_output_dir.mkdir(parents=True, exist_ok=True)

    def bookmark_dir(self, bookmark_id: int) -> Path:
        return self.base_output_dir / str(int(bookmark_id))

    def archive_path(self, bookmark_id: int, encoder_name: str, extension: str) -> Path:
        """
        Get the artifact path for a bookmark and encoder.

        Args:
            bookmark_id: Bookmark identifier
            encoder_name: Registered encoder name
            extension: File extension without the dot

        Returns:
            Path of the artifact (which may not exist yet)
        """
        safe_name = re.sub(r'[^\w\-.]', '_', encoder_name)
        return self.bookmark_dir(bookmark_id) / f"{safe_name}.{extension}"

    @contextmanager
    def atomic_write(self, final_path: Path) -> Iterator[Path]:
        """
        Yield a temporary path next to final_path; on clean exit it is
        moved into place, on any exception it is deleted.
        """
        final_path = Path(final_path)
        final_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{final_path.name}.", suffix=".tmp",
                                        dir=str(final_path.parent))
        os.close(fd)
        tmp_path = Path(tmp_name)
        try:
            yield tmp_path
            os.replace(tmp_path, final_path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        file_size = final_path.stat().st_size
        self.logger.info(f"Saved archive ({file_size} bytes): {final_path}")

    @contextmanager
    def rollback_point(self, final_path: Path) -> Iterator[Path]:
        """
        Keep a copy of final_path while the block runs.

        If the block raises, final_path is put back the way it was: the
        copy is restored, or a file that did not exist before is removed.
        """
        final_path = Path(final_path)
        backup = None
        if final_path.exists():
            fd, backup_name = tempfile.mkstemp(prefix=f".{final_path.name}.", suffix=".bak",
                                               dir=str(final_path.parent))
            os.close(fd)
            backup = Path(backup_name)
            shutil.copy2(final_path, backup)

        try:
            yield final_path
        except BaseException:
            if backup is not None:
                os.replace(backup, final_path)
                self.logger.info(f"Restored previous archive: {final_path}")
            else:
                self.remove(final_path)
            raise
        else:
            if backup is not None:
                backup.unlink(missing_ok=True)

    def remove(self, path: Path) -> bool:
        """Remove an artifact; returns True if something was deleted."""
        path = Path(path)
        if not path.exists():
            return False
        path.unlink()
        self.logger.debug(f"Removed archive: {path}")
        self._remove_if_empty(path.parent)
        return True

    def _remove_if_empty(self, directory: Path) -> None:
        try:
            if directory != self.base_output_dir and directory.is_dir() and not any(directory.iterdir()):
                directory.rmdir()
        except OSError as e:
            self.logger.debug(f"Could not remove directory {directory}: {e}")
