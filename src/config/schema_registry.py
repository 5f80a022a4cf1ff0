"""
Schema Registry Module.

JSON schemas for the configuration files, read from ``config/schemas`` on
first use. The validator class follows the schema's ``$schema`` declaration
(Draft 7 when it has none).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import jsonschema
from jsonschema.exceptions import SchemaError
from loguru import logger


class SchemaValidationError(Exception):
    """
    Raised when a document does not match its schema.

    Attributes:
        errors: One ``[path] message`` line per violation.
    """

    def __init__(self, message: str, errors: List[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


def _describe(error: jsonschema.ValidationError) -> str:
    location = ".".join(str(part) for part in error.absolute_path) or "<root>"
    return f"[{location}] {error.message}"


class SchemaRegistry:
    """Loads, caches and applies JSON schemas from one directory."""

    def __init__(self, schema_dir: str | Path) -> None:
        self.schema_dir = Path(schema_dir)
        self._validators: Dict[str, Any] = {}

    def get_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Return the schema ``<schema_dir>/<schema_name>.json``.

        Raises:
            FileNotFoundError: If there is no such schema file.
            SchemaValidationError: If the file is not JSON or not a valid schema.
        """
        return self._validator(schema_name).schema

    def check(self, data: Dict[str, Any], schema_name: str) -> List[str]:
        """Return the violations of ``data`` against the schema (empty when valid)."""
        validator = self._validator(schema_name)
        errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
        return [_describe(error) for error in errors]

    def validate(self, data: Dict[str, Any], schema_name: str) -> None:
        """
        Raises:
            SchemaValidationError: Listing every violation, not just the first.
        """
        errors = self.check(data, schema_name)
        if errors:
            details = "\n".join(f"  {line}" for line in errors)
            raise SchemaValidationError(
                f"Schema validation failed for '{schema_name}' "
                f"({len(errors)} error(s)):\n{details}",
                errors=errors,
            )
        logger.debug(f"Validation passed: {schema_name}")

    def list_schemas(self) -> List[str]:
        if not self.schema_dir.is_dir():
            return []
        return sorted(path.stem for path in self.schema_dir.glob("*.json") if path.is_file())

    def _validator(self, schema_name: str) -> Any:
        if schema_name in self._validators:
            return self._validators[schema_name]

        schema_path = self.schema_dir / f"{schema_name}.json"
        if not schema_path.is_file():
            raise FileNotFoundError(f"Schema not found: {schema_name} (expected at {schema_path})")

        try:
            schema = json.loads(schema_path.read_text(encoding="utf-8"))
            validator_class = jsonschema.validators.validator_for(
                schema, default=jsonschema.Draft7Validator
            )
            validator_class.check_schema(schema)
        except (OSError, json.JSONDecodeError, SchemaError) as e:
            raise SchemaValidationError(f"Failed to load schema {schema_name}: {e}") from e

        self._validators[schema_name] = validator_class(schema)
        logger.debug(f"Schema loaded: {schema_name} ({validator_class.__name__})")
        return self._validators[schema_name]
