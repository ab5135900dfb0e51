"""Backup orchestration, storage and scheduling for MRBM."""

from .manager import BackupOrchestrator, BackupResult
from .notify import TelegramNotifier
from .remote import RemoteCapture
from .scheduler import BackupScheduler
from .storage import BackupStorage

__all__ = [
    "BackupOrchestrator",
    "BackupResult",
    "BackupScheduler",
    "BackupStorage",
    "RemoteCapture",
    "TelegramNotifier",
]
