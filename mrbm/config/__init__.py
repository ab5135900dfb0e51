"""Configuration management for MRBM."""

from .schemas import CONFIG_SCHEMA, SERVER_SCHEMA
from .store import ConfigState, ConfigStore
from .validator import ConfigValidationError, ConfigValidator

__all__ = [
    "CONFIG_SCHEMA",
    "SERVER_SCHEMA",
    "ConfigState",
    "ConfigStore",
    "ConfigValidationError",
    "ConfigValidator",
]
