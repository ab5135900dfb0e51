"""Backup scheduling through the user's crontab."""

import logging
import os
import shlex
import subprocess
from collections import OrderedDict
from typing import List, Optional, Tuple, Union

from ..utils.errors import InvalidChoiceError, SchedulerError, create_error_suggestions

logger = logging.getLogger(__name__)

# menu choice -> (label, cron expression)
INTERVALS = OrderedDict(
    [
        ("1", ("Every 30 minutes", "*/30 * * * *")),
        ("2", ("Every 1 hour", "0 * * * *")),
        ("3", ("Every 6 hours", "0 */6 * * *")),
        ("4", ("Every 12 hours", "0 */12 * * *")),
        ("5", ("Every 24 hours", "0 0 * * *")),
    ]
)


def is_backup_job(line: str) -> bool:
    """Whether a crontab line runs an MRBM batch backup, as ``mrbm`` or as ``python -m mrbm``."""
    if line.lstrip().startswith("#"):
        return False
    try:
        tokens = shlex.split(line)
    except ValueError:
        return False

    # @daily style entries have a single schedule field
    command = tokens[1:] if tokens and tokens[0].startswith("@") else tokens[5:]
    if "--all" not in command:
        return False
    if command and os.path.basename(command[0]) == "mrbm":
        return True
    return command[1:3] == ["-m", "mrbm"]


class BackupScheduler:
    """Installs, replaces and removes the cron job that backs up all servers."""

    def __init__(self, command: str, verbose: bool = False):
        """
        Initialize backup scheduler.

        Args:
            command: Full command line that runs a batch backup of all servers
            verbose: Enable verbose output
        """
        self.command = command
        self.verbose = verbose

    def get_interval(self, choice: Union[int, str]) -> Tuple[str, str]:
        """
        Map a menu choice to its label and cron expression.

        Raises:
            InvalidChoiceError: If ``choice`` is not one of the offered intervals
        """
        key = str(choice).strip()
        if key not in INTERVALS:
            raise InvalidChoiceError(
                f"Invalid schedule option: '{choice}'",
                details=f"Choose one of {', '.join(INTERVALS)}",
            )
        return INTERVALS[key]

    def set_schedule(self, choice: Union[int, str]) -> str:
        """
        Install the batch backup job, replacing any previous one.

        Args:
            choice: Interval menu choice

        Returns:
            str: The installed cron line
        """
        label, expression = self.get_interval(choice)
        cron_line = f"{expression} {self.command}"

        lines = [line for line in self.read_crontab() if not is_backup_job(line)]
        lines.append(cron_line)
        self.write_crontab(lines)

        logger.info(f"Cron job scheduled for all servers ({label.lower()}): {cron_line}")
        return cron_line

    def get_schedule(self) -> Optional[str]:
        """Return the installed cron line, if any."""
        for line in self.read_crontab():
            if is_backup_job(line):
                return line
        return None

    def remove_schedule(self) -> bool:
        """
        Remove this tool's cron lines.

        Returns:
            bool: True if something was removed
        """
        current = self.read_crontab()
        remaining = [line for line in current if not is_backup_job(line)]
        if len(remaining) == len(current):
            return False

        self.write_crontab(remaining)
        logger.info("Backup cron job removed")
        return True

    def read_crontab(self) -> List[str]:
        """Return the current crontab lines; a missing crontab reads as empty."""
        try:
            result = subprocess.run(["crontab", "-l"], capture_output=True, text=True)
        except FileNotFoundError:
            raise SchedulerError(
                "The 'crontab' command is not available",
                suggestions=create_error_suggestions("crontab_unavailable"),
            )

        if result.returncode != 0:
            # "no crontab for <user>"
            return []

        return [line for line in result.stdout.splitlines() if line.strip()]

    def write_crontab(self, lines: List[str]) -> None:
        """Replace the crontab with ``lines``."""
        content = "\n".join(lines) + "\n" if lines else ""
        try:
            result = subprocess.run(["crontab", "-"], input=content, capture_output=True, text=True)
        except FileNotFoundError:
            raise SchedulerError(
                "The 'crontab' command is not available",
                suggestions=create_error_suggestions("crontab_unavailable"),
            )

        if result.returncode != 0:
            raise SchedulerError("Failed to install crontab", details=result.stderr.strip() or None)
