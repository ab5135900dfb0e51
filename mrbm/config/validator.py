"""Configuration validation for MRBM."""

import re
from typing import Any, Dict, List

import jsonschema

from mrbm.utils.errors import ConfigurationError, create_error_suggestions, format_validation_errors

from .schemas import CONFIG_SCHEMA, SERVER_NAME_PATTERN, SERVER_SCHEMA


class ConfigValidationError(ConfigurationError):
    """Raised when configuration validation fails."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(
            f"Configuration validation failed: {'; '.join(errors)}",
            details=format_validation_errors(errors),
            suggestions=create_error_suggestions("configuration_invalid"),
        )


class ConfigValidator:
    """Validates MRBM configuration documents and server entries."""

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Validate the top-level shape of a configuration document.

        Server entries are checked separately so that one broken entry does
        not hide the others.

        Args:
            config: Parsed YAML document

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        errors = []

        try:
            jsonschema.validate(config, CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            errors.append(f"Schema validation failed: {e.message}")
        except jsonschema.SchemaError as e:
            errors.append(f"Schema error: {e.message}")

        return errors

    def validate_server(self, name: Any, data: Any) -> List[str]:
        """
        Validate one ``servers`` entry.

        Args:
            name: Server name (mapping key)
            data: Serialized server record

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        errors = self._validate_name(name)

        try:
            jsonschema.validate(data, SERVER_SCHEMA)
        except jsonschema.ValidationError as e:
            path = ".".join(str(part) for part in e.absolute_path)
            location = f"{name}.{path}" if path else str(name)
            errors.append(f"{location}: {e.message}")
        except jsonschema.SchemaError as e:
            errors.append(f"Schema error: {e.message}")

        return errors

    def _validate_name(self, name: Any) -> List[str]:
        """Validate a server name."""
        if not isinstance(name, str) or not name:
            return ["Server name must be a non-empty string"]

        if not re.match(SERVER_NAME_PATTERN, name):
            return [f"Invalid server name '{name}': whitespace and path separators are not allowed"]

        return []
