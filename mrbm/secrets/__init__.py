"""At-rest protection for secrets stored in the configuration file."""

from .manager import ENCRYPTED_PREFIX, SecretManager

__all__ = ["ENCRYPTED_PREFIX", "SecretManager"]
