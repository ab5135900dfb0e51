"""Secret encryption for MRBM configuration values."""

import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from ..utils.errors import SecurityError
from ..utils.files import OWNER_ONLY, FileManager

logger = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "enc:"


class SecretManager:
    """Encrypts and decrypts secret configuration values with a Fernet key file."""

    def __init__(
        self,
        key_path: Optional[str] = None,
        encryption_key: Optional[bytes] = None,
        verbose: bool = False,
    ):
        """
        Initialize secret manager.

        Args:
            key_path: File holding the Fernet key
            encryption_key: Key to use directly instead of reading ``key_path``
            verbose: Enable verbose output
        """
        self.key_path = key_path
        self.verbose = verbose
        self.file_manager = FileManager(verbose=verbose)
        self._cipher: Optional[Fernet] = None

        if encryption_key:
            self._cipher = self._make_cipher(encryption_key)

    @property
    def available(self) -> bool:
        """Whether a key is configured and readable."""
        return self._get_cipher() is not None

    def generate_key(self, overwrite: bool = False) -> str:
        """
        Create a new key file.

        Args:
            overwrite: Replace an existing key file

        Returns:
            str: Path to the key file

        Raises:
            SecurityError: If no key path is configured or the file already exists
        """
        if not self.key_path:
            raise SecurityError("No key file path configured")

        if os.path.exists(self.key_path) and not overwrite:
            raise SecurityError(
                f"Key file already exists: {self.key_path}",
                suggestions=[
                    "Existing encrypted values can only be read with the current key",
                    "Remove the file manually if you really want a new key",
                ],
            )

        key = Fernet.generate_key()
        self.file_manager.atomic_write(self.key_path, key.decode("ascii") + "\n", mode=OWNER_ONLY)
        self._cipher = Fernet(key)

        logger.info(f"Created encryption key: {self.key_path}")
        return self.key_path

    @staticmethod
    def is_encrypted(value: Optional[str]) -> bool:
        return isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX)

    def encrypt(self, value: Optional[str]) -> Optional[str]:
        """Encrypt ``value``; empty values and plaintext mode pass through unchanged."""
        if not value or self.is_encrypted(value):
            return value

        cipher = self._get_cipher()
        if cipher is None:
            return value

        token = cipher.encrypt(value.encode("utf-8")).decode("ascii")
        return f"{ENCRYPTED_PREFIX}{token}"

    def decrypt(self, value: Optional[str]) -> Optional[str]:
        """
        Decrypt a value written by :meth:`encrypt`.

        Raises:
            SecurityError: If the value is encrypted but no valid key is available
        """
        if not self.is_encrypted(value):
            return value

        cipher = self._get_cipher()
        if cipher is None:
            raise SecurityError(
                "Configuration contains encrypted secrets but no encryption key was found",
                details=f"Expected key file: {self.key_path}",
                suggestions=["Pass the key file with --key-file or set MRBM_KEY_FILE"],
            )

        try:
            return cipher.decrypt(value[len(ENCRYPTED_PREFIX):].encode("ascii")).decode("utf-8")
        except InvalidToken:
            raise SecurityError(
                "Failed to decrypt a secret: the encryption key does not match",
                details=f"Key file: {self.key_path}",
            )

    def _get_cipher(self) -> Optional[Fernet]:
        if self._cipher is not None:
            return self._cipher

        if not self.key_path or not os.path.exists(self.key_path):
            return None

        self.file_manager.ensure_permissions(self.key_path)
        with open(self.key_path, "rb") as f:
            self._cipher = self._make_cipher(f.read().strip())
        return self._cipher

    def _make_cipher(self, key: bytes) -> Fernet:
        try:
            return Fernet(key)
        except (ValueError, TypeError) as e:
            raise SecurityError(f"Invalid encryption key: {e}")
