"""Registry of backup target servers."""

import logging
from typing import Callable, List, Optional, Union

from mrbm.utils.errors import (
    DuplicateServerError,
    InvalidIndexError,
    UnknownServerError,
)

from .models import ServerRecord

logger = logging.getLogger(__name__)

BACK_SENTINELS = ("q", "back")


class ServerRegistry:
    """Adds, lists and deletes servers, persisting every change through a ConfigStore."""

    def __init__(self, store, verbose: bool = False):
        """
        Initialize server registry.

        Args:
            store: ConfigStore holding the server records
            verbose: Enable verbose output
        """
        self.store = store
        self.verbose = verbose

    def list_servers(self) -> List[str]:
        """Return registered server names in file order."""
        return list(self.store.load().servers)

    def get_server(self, name: str) -> ServerRecord:
        """
        Look up a server by name.

        Raises:
            UnknownServerError: If no server with that name is registered
        """
        servers = self.store.load().servers
        if name not in servers:
            raise UnknownServerError(
                f"Server '{name}' is not registered",
                suggestions=["Run 'mrbm list' to see registered servers"],
            )
        return servers[name]

    def add_server(self, record: ServerRecord) -> ServerRecord:
        """
        Register a new server and persist it.

        Raises:
            DuplicateServerError: If the name is already taken (nothing is written)
            ConfigValidationError: If the record is invalid (nothing is written)
        """
        with self.store.transaction() as state:
            if record.name in state.servers:
                raise DuplicateServerError(f"A server named '{record.name}' already exists")
            if record.name in state.invalid:
                raise DuplicateServerError(
                    f"A server named '{record.name}' already exists but is invalid",
                    suggestions=[f"Fix or remove the '{record.name}' entry in {self.store.path}"],
                )
            state.servers[record.name] = record

        logger.info(f"Server '{record.name}' added")
        return record

    def resolve_choice(self, choice: Union[int, str]) -> Optional[str]:
        """
        Map a 1-based menu number to a server name.

        Returns:
            The server name, or None for the back sentinel

        Raises:
            InvalidIndexError: If ``choice`` is not a listed number
        """
        if isinstance(choice, str):
            choice = choice.strip()
            if choice.lower() in BACK_SENTINELS:
                return None
            if not choice.isdigit():
                raise InvalidIndexError(f"Invalid choice: '{choice}'")
            choice = int(choice)

        names = self.list_servers()
        if not 1 <= choice <= len(names):
            raise InvalidIndexError(
                f"Invalid choice: {choice}",
                details=f"Expected a number between 1 and {len(names)}" if names else "No servers registered",
            )
        return names[choice - 1]

    def delete_server(self, choice: Union[int, str], confirm: Callable[[str], bool]) -> Optional[str]:
        """
        Delete the server selected by ``choice`` after confirmation.

        The server's last-backup timestamp is removed with it.

        Args:
            choice: 1-based position in :meth:`list_servers`, or the back sentinel
            confirm: Called with the server name; deletion proceeds only if it returns True

        Returns:
            The deleted server name, or None if nothing was deleted

        Raises:
            InvalidIndexError: If ``choice`` does not select a server
        """
        name = self.resolve_choice(choice)
        if name is None:
            return None

        if not confirm(name):
            logger.info(f"Deletion of '{name}' canceled")
            return None

        with self.store.transaction() as state:
            if name not in state.servers:
                raise UnknownServerError(f"Server '{name}' was removed by another process")
            del state.servers[name]
            state.last_backup.pop(name, None)

        logger.info(f"Server '{name}' deleted")
        return name
