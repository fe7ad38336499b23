# temp_file_manager.py
import os
import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class TempFileManager:
    """
    Manages the temporary files of one job and ensures cleanup.

    Each job gets its own namespace directory (process id plus job index) so
    parallel workers never collide on intermediate filenames.
    """

    def __init__(self, root_dir, job_index: int = 0, keep_files: bool = False):
        self.root_dir = Path(root_dir)
        self.namespace = f"{os.getpid()}_{job_index}"
        self.keep_files = keep_files
        self._temp_files = set()
        self._counter = 0

    @property
    def directory(self) -> Path:
        return self.root_dir / self.namespace

    def new_path(self, stem: str, extension: str = '.mp4') -> str:
        """Reserve and register a unique temporary path inside the namespace"""
        self.directory.mkdir(parents=True, exist_ok=True)
        self._counter += 1
        path = self.directory / f"{stem}_temp_{self._counter}{extension}"
        self.register(path)
        return str(path)

    def register(self, file_path):
        """Register a temporary file for cleanup."""
        self._temp_files.add(Path(file_path))

    def unregister(self, file_path):
        """Unregister a temporary file (if it was moved or already cleaned)."""
        self._temp_files.discard(Path(file_path))

    def discard(self, *file_paths):
        """Delete specific temporary files now, unless files are being kept"""
        for file_path in file_paths:
            path = Path(file_path)
            if self.keep_files:
                logger.debug(f"Preserving temporary file: {path}")
                continue
            try:
                if path.exists():
                    path.unlink()
                    logger.debug(f"Cleaned up temporary file: {path}")
            except OSError as e:
                logger.error(f"Failed to clean up temporary file {path}: {e}")
            self.unregister(path)

    def cleanup(self):
        """Clean up all registered temporary files and the namespace directory."""
        if self.keep_files:
            if self._temp_files:
                logger.info(f"Temporary artifacts preserved in {self.directory}")
            return
        self.discard(*list(self._temp_files))
        if self.directory.exists():
            shutil.rmtree(self.directory, ignore_errors=True)

    def get_temp_count(self):
        """Get count of registered temporary files."""
        return len(self._temp_files)

    def list_temp_files(self):
        """List all registered temporary files."""
        return list(self._temp_files)
