"""Persistent storage of server records and last-backup timestamps."""

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional

import yaml

from mrbm.secrets import SecretManager
from mrbm.servers.models import ServerRecord
from mrbm.utils.errors import ConfigurationError, create_error_suggestions
from mrbm.utils.files import OWNER_ONLY, FileManager

from .legacy import parse_legacy_config
from .validator import ConfigValidationError, ConfigValidator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yml"

CONFIG_HEADER = "# MRBM configuration file\n# Rewritten on every change; comments are not preserved.\n"

SECRET_FIELDS = ("password", "db_password", "bot_token")


@dataclass
class ConfigState:
    """In-memory view of the configuration file."""

    servers: Dict[str, ServerRecord] = field(default_factory=dict)
    last_backup: Dict[str, str] = field(default_factory=dict)
    # entries that failed validation, written back verbatim
    invalid: Dict[Any, Any] = field(default_factory=dict)

    def __iter__(self):
        # allows ``records, timestamps = store.load()``
        yield self.servers
        yield self.last_backup


def _coerce_timestamp(value: Any) -> str:
    """Undo YAML reading an unquoted ``20240101_120000`` as an integer."""
    if isinstance(value, int):
        digits = str(value)
        if len(digits) == 14:
            return f"{digits[:8]}_{digits[8:]}"
        return digits
    return str(value)


class ConfigStore:
    """Loads and saves the MRBM configuration file."""

    def __init__(
        self,
        path: str = CONFIG_FILENAME,
        secret_manager: Optional[SecretManager] = None,
        verbose: bool = False,
    ):
        """
        Initialize configuration store.

        Args:
            path: Path to the YAML configuration file
            secret_manager: Used to encrypt secret fields at rest
            verbose: Enable verbose output
        """
        self.path = path
        self.secret_manager = secret_manager or SecretManager()
        self.verbose = verbose
        self.validator = ConfigValidator()
        self.file_manager = FileManager(verbose=verbose)

    @property
    def lock_path(self) -> str:
        return f"{self.path}.lock"

    def load(self) -> ConfigState:
        """
        Load the configuration file.

        A missing file yields an empty state. File permissions looser than
        owner read/write are reset before reading. Server entries that fail
        validation are skipped with a warning and kept in ``invalid`` so that
        the next save writes them back unchanged.

        Returns:
            ConfigState: Records and timestamps

        Raises:
            ConfigurationError: If the file is not valid YAML or has the wrong shape
        """
        if not os.path.exists(self.path):
            logger.debug(f"Configuration file {self.path} not found, starting empty")
            return ConfigState()

        self.file_manager.ensure_permissions(self.path, OWNER_ONLY)

        try:
            with open(self.path, encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Error parsing configuration file {self.path}",
                details=str(e),
                suggestions=create_error_suggestions("configuration_invalid"),
            )

        if document is None:
            return ConfigState()

        errors = self.validator.validate_config(document)
        if errors:
            raise ConfigValidationError(errors)

        state = ConfigState()

        for name, data in (document.get("servers") or {}).items():
            record_errors = self.validator.validate_server(name, data)
            if record_errors:
                logger.warning(
                    f"Ignoring invalid server entry '{name}' until it is fixed: {'; '.join(record_errors)}"
                )
                state.invalid[name] = data
                continue
            state.servers[name] = self._decrypt_record(ServerRecord.from_dict(name, data))

        for name, value in (document.get("last_backup") or {}).items():
            if name not in state.servers and name not in state.invalid:
                logger.debug(f"Dropping last backup timestamp of unknown server '{name}'")
                continue
            state.last_backup[name] = _coerce_timestamp(value)

        return state

    def save(self, state: ConfigState) -> None:
        """
        Rewrite the configuration file with the full ``state``.

        Raises:
            ConfigValidationError: If a record does not pass validation
        """
        errors: List[str] = []
        for name, record in state.servers.items():
            errors.extend(self.validate_record(record))
            if record.name != name:
                errors.append(f"Record '{record.name}' is stored under the name '{name}'")
        if errors:
            raise ConfigValidationError(errors)

        if not self.secret_manager.available and any(
            getattr(record, attr) for record in state.servers.values() for attr in SECRET_FIELDS
        ):
            logger.warning(
                f"Secrets are stored in plaintext in {self.path}; run 'mrbm init-key' to encrypt them"
            )

        servers = {name: self._encrypt_record(record).to_dict() for name, record in state.servers.items()}
        for name, data in state.invalid.items():
            servers.setdefault(name, data)

        document = {
            "servers": servers,
            "last_backup": {
                name: value for name, value in state.last_backup.items() if name in servers
            },
        }

        content = CONFIG_HEADER + yaml.safe_dump(
            document, default_flow_style=False, sort_keys=False, allow_unicode=True
        )
        self.file_manager.atomic_write(self.path, content, mode=OWNER_ONLY)
        logger.debug(f"Configuration saved to {self.path}")

    @contextmanager
    def transaction(self) -> Iterator[ConfigState]:
        """
        Load, mutate and save the configuration under an exclusive lock.

        The state is only written back if the block exits without an exception.
        """
        with self.file_manager.locked(self.lock_path):
            state = self.load()
            yield state
            self.save(state)

    def validate_record(self, record: ServerRecord) -> List[str]:
        """Validate one record in its serialized form."""
        errors = self.validator.validate_server(record.name, record.to_dict())
        if record.password and record.key_path:
            errors.append(f"{record.name}: set either a password or a key path, not both")
        return errors

    def import_legacy(self, legacy_path: str) -> List[str]:
        """
        Merge servers from a legacy flat ``config.env`` file.

        Names that already exist, and records that do not validate, are skipped.

        Returns:
            List[str]: Names of imported servers
        """
        try:
            with open(legacy_path, encoding="utf-8") as f:
                records, timestamps = parse_legacy_config(f.read())
        except OSError as e:
            raise ConfigurationError(f"Cannot read legacy configuration {legacy_path}", details=str(e))

        imported = []
        with self.transaction() as state:
            for name, record in records.items():
                if name in state.servers or name in state.invalid:
                    logger.warning(f"Server '{name}' already exists, skipping legacy entry")
                    continue
                errors = self.validate_record(record)
                if errors:
                    logger.warning(f"Skipping legacy entry '{name}': {'; '.join(errors)}")
                    continue
                state.servers[name] = record
                if name in timestamps:
                    state.last_backup[name] = timestamps[name]
                imported.append(name)

        logger.info(f"Imported {len(imported)} server(s) from {legacy_path}")
        return imported

    def _encrypt_record(self, record: ServerRecord) -> ServerRecord:
        return replace(
            record,
            **{attr: self.secret_manager.encrypt(getattr(record, attr)) for attr in SECRET_FIELDS},
        )

    def _decrypt_record(self, record: ServerRecord) -> ServerRecord:
        return replace(
            record,
            **{attr: self.secret_manager.decrypt(getattr(record, attr)) for attr in SECRET_FIELDS},
        )
