"""Local archive storage and retention."""

import logging
import os
import time
from datetime import datetime
from typing import List, Optional

from mrbm.utils.files import FileManager

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "complete-backup-"
ARCHIVE_SUFFIX = ".tar.gz"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
DEFAULT_RETENTION_DAYS = 7


def make_timestamp(moment: Optional[datetime] = None) -> str:
    """Return the ``YYYYMMDD_HHMMSS`` tag for ``moment`` (local time, default now)."""
    return (moment or datetime.now()).strftime(TIMESTAMP_FORMAT)


class BackupStorage:
    """Manages the per-server archive directories under the backup root."""

    def __init__(
        self,
        backup_dir: str = "backups",
        retention_days: int = DEFAULT_RETENTION_DAYS,
        verbose: bool = False,
    ):
        """
        Initialize backup storage.

        Args:
            backup_dir: Root directory holding one sub-directory per server
            retention_days: Archives older than this many days are removed
            verbose: Enable verbose output
        """
        self.backup_dir = backup_dir
        self.retention_days = retention_days
        self.verbose = verbose
        self.file_manager = FileManager(verbose=verbose)

    def server_dir(self, server_name: str) -> str:
        return os.path.join(self.backup_dir, server_name)

    def prepare_server_dir(self, server_name: str) -> str:
        """Create the server's archive directory if it does not exist."""
        return self.file_manager.ensure_directory(self.server_dir(server_name))

    def archive_path(self, server_name: str, timestamp: str) -> str:
        return os.path.join(self.server_dir(server_name), f"{ARCHIVE_PREFIX}{timestamp}{ARCHIVE_SUFFIX}")

    def list_archives(self, server_name: str) -> List[str]:
        """Return the server's archives, oldest name first."""
        directory = self.server_dir(server_name)
        if not os.path.isdir(directory):
            return []

        return sorted(
            os.path.join(directory, entry)
            for entry in os.listdir(directory)
            if entry.endswith(ARCHIVE_SUFFIX) and os.path.isfile(os.path.join(directory, entry))
        )

    def cleanup_old_backups(
        self, server_name: str, now: Optional[float] = None, keep: Optional[str] = None
    ) -> List[str]:
        """
        Delete archives whose modification time is older than the retention window.

        Failures are logged per file and do not stop the sweep.

        Args:
            server_name: Server whose directory is swept
            now: Reference time as a UNIX timestamp (default: current time)
            keep: Archive that is never removed, whatever its age

        Returns:
            List[str]: Paths that were removed
        """
        cutoff = (now if now is not None else time.time()) - self.retention_days * 86400
        removed = []
        kept = os.path.abspath(keep) if keep else None

        for path in self.list_archives(server_name):
            if os.path.abspath(path) == kept:
                continue
            try:
                if os.path.getmtime(path) >= cutoff:
                    continue
                os.remove(path)
                removed.append(path)
                logger.debug(f"Removed expired archive {path}")
            except OSError as e:
                logger.warning(f"Could not remove old archive {path}: {e}")

        return removed
