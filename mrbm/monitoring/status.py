"""Backup status summaries."""

from datetime import datetime
from typing import List, Optional

from mrbm.backup.storage import TIMESTAMP_FORMAT, BackupStorage

DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: str) -> str:
    """Render a ``YYYYMMDD_HHMMSS`` tag as a readable date, or return it unchanged."""
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT).strftime(DISPLAY_FORMAT)
    except ValueError:
        return value


class StatusReporter:
    """Renders the last backup time and local archive count of every server."""

    def __init__(self, store, storage: Optional[BackupStorage] = None, log_file: Optional[str] = None):
        self.store = store
        self.storage = storage or BackupStorage()
        self.log_file = log_file

    def render_status(self) -> List[str]:
        state = self.store.load()
        if not state.servers:
            return ["No servers registered."]

        lines = ["--- Server Status ---"]
        for name in state.servers:
            last_backup = state.last_backup.get(name)
            if last_backup:
                summary = f"Last backup on {format_timestamp(last_backup)}"
            else:
                summary = "No backup recorded yet."

            archives = len(self.storage.list_archives(name))
            lines.append(f"  - {name}: {summary} ({archives} local archive{'s' if archives != 1 else ''})")

        lines.append("---")
        lines.append(f"To view all backups, check the '{self.storage.backup_dir}' directory.")
        if self.log_file:
            lines.append(f"To view logs, run: tail {self.log_file}")
        return lines
