"""Backup orchestration for registered servers."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from mrbm.utils.errors import MRBMError, NotifyError, UnknownServerError

from .notify import TelegramNotifier
from .remote import RemoteCapture
from .storage import BackupStorage, make_timestamp

logger = logging.getLogger(__name__)


@dataclass
class BackupResult:
    """Outcome of one server backup."""

    server: str
    success: bool = False
    timestamp: Optional[str] = None
    archive_path: Optional[str] = None
    size: int = 0
    notified: bool = False
    removed: List[str] = field(default_factory=list)
    error: Optional[str] = None


class BackupOrchestrator:
    """Runs the capture, retention, notification and record steps for servers."""

    def __init__(
        self,
        store,
        storage: Optional[BackupStorage] = None,
        remote: Optional[RemoteCapture] = None,
        notifier: Optional[TelegramNotifier] = None,
        verbose: bool = False,
    ):
        """
        Initialize backup orchestrator.

        Args:
            store: ConfigStore with server records and timestamps
            storage: Local archive storage
            remote: Remote pipeline runner
            notifier: Telegram uploader
            verbose: Enable verbose output
        """
        self.store = store
        self.verbose = verbose
        self.storage = storage or BackupStorage(verbose=verbose)
        self.remote = remote or RemoteCapture(verbose=verbose)
        self.notifier = notifier or TelegramNotifier(verbose=verbose)

    def backup_server(self, name: str) -> BackupResult:
        """
        Back up one server.

        Args:
            name: Registered server name

        Returns:
            BackupResult: Successful result (notification may have failed)

        Raises:
            UnknownServerError: If the server is not registered
            ArchiveCaptureError: If the remote pipeline fails
        """
        servers = self.store.load().servers
        if name not in servers:
            raise UnknownServerError(f"Server '{name}' is not registered")
        record = servers[name]

        result = BackupResult(server=name, timestamp=make_timestamp())
        self.storage.prepare_server_dir(name)
        result.archive_path = self.storage.archive_path(name, result.timestamp)

        logger.info(f"Starting backup for '{name}'...")

        logger.info("  - Creating backup archive...")
        try:
            result.size = self.remote.capture(record, result.archive_path)
        except MRBMError as e:
            logger.error(f"Failed to create the archive for '{name}': {e.message}")
            if e.details:
                logger.error(f"  {e.details}")
            raise

        logger.info(f"  - Cleaning up backups older than {self.storage.retention_days} days...")
        result.removed = self.storage.cleanup_old_backups(name, keep=result.archive_path)
        if result.removed:
            logger.info(f"    Removed {len(result.removed)} old archive(s)")

        logger.info("  - Sending backup to Telegram...")
        try:
            self.notifier.send_document(
                record.bot_token,
                record.chat_id,
                result.archive_path,
                caption=f"{name} backup {result.timestamp}",
            )
            result.notified = True
        except NotifyError as e:
            logger.warning(f"Failed to send backup to Telegram: {e.message}. Check your bot token and chat ID.")
            if e.details:
                logger.debug(e.details)

        with self.store.transaction() as state:
            if name in state.servers:
                state.last_backup[name] = result.timestamp
            else:
                logger.warning(f"Server '{name}' was removed during the backup, timestamp not recorded")

        result.success = True
        logger.info(f"Backup for '{name}' completed ({result.size} bytes)")
        return result

    def backup_all(self) -> Dict[str, BackupResult]:
        """
        Back up every registered server, one after another.

        A failing server is logged and recorded in its result; the remaining
        servers are still attempted.

        Returns:
            Dict[str, BackupResult]: Results by server name
        """
        results: Dict[str, BackupResult] = {}

        for name in list(self.store.load().servers):
            try:
                results[name] = self.backup_server(name)
            except MRBMError as e:
                results[name] = BackupResult(server=name, error=e.message)
            except Exception as e:
                logger.exception(f"Unexpected error while backing up '{name}'")
                results[name] = BackupResult(server=name, error=str(e))

        succeeded = sum(1 for result in results.values() if result.success)
        logger.info(f"Batch backup finished: {succeeded}/{len(results)} server(s) succeeded")
        return results
