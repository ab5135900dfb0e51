"""Error handling utilities for MRBM."""

import logging
import sys
import traceback
from typing import Optional

import click

logger = logging.getLogger(__name__)


class MRBMError(Exception):
    """Base exception for MRBM errors."""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestions: Optional[list] = None,
    ):
        self.message = message
        self.details = details
        self.suggestions = suggestions or []
        super().__init__(message)


class ConfigurationError(MRBMError):
    """Raised when the configuration file is unreadable or invalid."""

    pass


class SecurityError(MRBMError):
    """Raised when secret encryption or decryption fails."""

    pass


class DuplicateServerError(MRBMError):
    """Raised when adding a server whose name is already registered."""

    pass


class InvalidIndexError(MRBMError):
    """Raised when a server selection does not match a listed entry."""

    pass


class InvalidChoiceError(MRBMError):
    """Raised when a menu choice is not one of the offered options."""

    pass


class UnknownServerError(MRBMError):
    """Raised when a backup is requested for a server that is not registered."""

    pass


class ArchiveCaptureError(MRBMError):
    """Raised when the remote archive pipeline fails."""

    pass


class NotifyError(MRBMError):
    """Raised when the archive could not be delivered to Telegram."""

    pass


class SchedulerError(MRBMError):
    """Raised when the crontab cannot be read or written."""

    pass


# generic exception type -> (message prefix, suggestions)
GENERIC_ERRORS = [
    (
        FileNotFoundError,
        "File not found",
        ["Check the --config, --key-file and --backup-dir paths", "Relative paths are resolved from the current directory"],
    ),
    (
        PermissionError,
        "Permission denied",
        ["The configuration and key files must be owned by the user running MRBM"],
    ),
    (
        TimeoutError,
        "Operation timed out",
        ["Check network connectivity to the remote host and to api.telegram.org"],
    ),
    (
        ConnectionError,
        "Connection failed",
        ["Verify that the remote host is reachable"],
    ),
]


class ErrorHandler:
    """Prints errors with context, details and suggestions on stderr."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def handle_error(self, error: Exception, context: Optional[str] = None) -> None:
        """
        Report ``error`` to the user.

        Args:
            error: Exception to report
            context: What was being done when the error occurred
        """
        if isinstance(error, MRBMError):
            self._report(error.message, context, error.details, error.suggestions)
            return

        for error_type, prefix, suggestions in GENERIC_ERRORS:
            if isinstance(error, error_type):
                self._report(f"{prefix}: {error}", context, None, suggestions)
                return

        self._report(f"{type(error).__name__}: {error}", context, None, [])

    def _report(self, message: str, context: Optional[str], details: Optional[str], suggestions: list) -> None:
        logger.error(f"{context}: {message}" if context else message)
        if details:
            logger.debug(f"Details: {details}")

        click.echo(f"✗ {message}", err=True)
        if context:
            click.echo(f"Context: {context}", err=True)
        if details:
            click.echo(f"Details: {details}", err=True)
        if suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def exit_with_error(self, error: Exception, context: Optional[str] = None, exit_code: int = 1) -> None:
        """Report ``error`` and exit the process."""
        self.handle_error(error, context)
        sys.exit(exit_code)


def create_error_suggestions(error_type: str, **kwargs) -> list:
    """
    Create contextual error suggestions based on error type.

    Args:
        error_type: Type of error
        **kwargs: Additional context information

    Returns:
        list: List of suggestion strings
    """
    suggestions = {
        "ssh_auth_failed": [
            "Check the SSH key path or password stored for this server",
            "Verify that the SSH user is allowed to log in",
            f"Try connecting manually: ssh -p {kwargs.get('port', 22)} {kwargs.get('target', 'user@host')}",
        ],
        "ssh_unreachable": [
            "Verify the host name or IP address",
            "Check that the SSH port is open in the firewall",
        ],
        "remote_pipeline_failed": [
            "Check that the application path exists on the remote host",
            "Verify the database container name and root password",
            "Ensure the SSH user can run 'sudo tar' and 'sudo docker' without a password",
        ],
        "telegram_rejected": [
            "Check the bot token and chat ID",
            "Make sure the bot has been added to the chat",
            "Telegram bots cannot upload documents larger than 50 MB",
        ],
        "configuration_invalid": [
            "Check YAML syntax in the configuration file",
            "Verify all required fields are present",
        ],
        "crontab_unavailable": [
            "Check that cron is installed and the 'crontab' command is on PATH",
        ],
    }

    return suggestions.get(error_type, [])


def format_validation_errors(errors: list) -> str:
    """
    Format validation errors for display.

    Args:
        errors: List of validation error messages

    Returns:
        str: Formatted error message
    """
    if not errors:
        return "No validation errors"

    if len(errors) == 1:
        return f"Validation error: {errors[0]}"

    formatted = "Validation errors:\n"
    for i, error in enumerate(errors, 1):
        formatted += f"  {i}. {error}\n"

    return formatted.strip()
