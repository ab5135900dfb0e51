"""File operations utilities for MRBM."""

import fcntl
import logging
import os
import stat
import tempfile
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

OWNER_ONLY = stat.S_IRUSR | stat.S_IWUSR  # 600


class FileManager:
    """Manages file operations for MRBM."""

    def __init__(self, verbose: bool = False):
        """Initialize file manager."""
        self.verbose = verbose

    def atomic_write(self, path: str, content: str, mode: int = OWNER_ONLY) -> str:
        """
        Replace ``path`` with ``content`` without exposing a partial file.

        The data is written to a temporary file in the same directory, flushed
        to disk and renamed over the target.

        Args:
            path: Destination file
            content: Text to write
            mode: Permission bits for the resulting file

        Returns:
            str: Path to the written file
        """
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

        # mkstemp creates the file with 0600 already
        fd, tmp_path = tempfile.mkstemp(prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        self.set_file_permissions(path, mode)
        return path

    def ensure_permissions(self, path: str, mode: int = OWNER_ONLY) -> bool:
        """
        Reset the permission bits of ``path`` if they differ from ``mode``.

        Args:
            path: File to check
            mode: Expected permission bits

        Returns:
            bool: True if the permissions had to be corrected
        """
        current = stat.S_IMODE(os.stat(path).st_mode)
        if current == mode:
            return False

        logger.warning(
            f"Changing permissions of {path} from {oct(current)} to {oct(mode)} for security"
        )
        self.set_file_permissions(path, mode)
        return True

    def set_file_permissions(self, file_path: str, mode: int) -> None:
        """
        Set file permissions.

        Args:
            file_path: Path to file
            mode: Permission mode (e.g., 0o600)
        """
        os.chmod(file_path, mode)

        if self.verbose:
            logger.debug(f"Set permissions {oct(mode)} for {file_path}")

    @contextmanager
    def locked(self, path: str) -> Iterator[None]:
        """
        Hold an exclusive advisory lock on ``path`` for the duration of the block.

        The lock file is created with owner-only permissions if missing.
        """
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, OWNER_ONLY)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def ensure_directory(self, path: str) -> str:
        """Create ``path`` (and parents) if needed and return it."""
        os.makedirs(path, exist_ok=True)
        return path
