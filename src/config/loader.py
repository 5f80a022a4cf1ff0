"""
Configuration Loader Module.

Reads the test environment files under ``config/``:
- ``test_environment.yaml`` (or the committed ``.example`` file) as the base.
- ``test_environment.<environment>.yaml`` as an optional overlay, e.g.
  ``test_environment.ci.yaml`` when ``ENVIRONMENT=ci``.

The merged document is validated against its JSON schema. Environment
variables are applied on top by ``src.config.settings``.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

from src.config.schema_registry import SchemaRegistry, SchemaValidationError

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"

ENVIRONMENT_SCHEMA = "test_environment_schema"

PARSERS = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.loads,
}


class ConfigurationError(Exception):
    """Raised when a configuration file is invalid or cannot be loaded."""

    pass


def read_config_file(file_path: Path) -> Dict[str, Any]:
    """
    Parse a YAML or JSON file that must hold a mapping.

    An empty file reads as ``{}``.

    Raises:
        ConfigurationError: Unsupported extension, unreadable or malformed
            file, or a document that is not a mapping.
    """
    parser = PARSERS.get(file_path.suffix.lower())
    if parser is None:
        raise ConfigurationError(
            f"Unsupported file format '{file_path.suffix}' for {file_path.name}. "
            f"Supported: {sorted(PARSERS)}"
        )

    try:
        data = parser(file_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Failed to read file {file_path}: {e}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to parse {file_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{file_path.name} must contain a mapping, got {type(data).__name__}"
        )
    return data


def merge_config(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` updated with ``overlay``; nested sections merge key by key."""
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ConfigLoader:
    """
    Loads and validates configuration files from one directory.

    Parsed files are cached per loader; ``clear_cache()`` forces a re-read.

    Attributes:
        config_dir: Directory holding the configuration files.
        schema_registry: JSON schemas from ``<config_dir>/schemas``.
    """

    def __init__(
        self,
        config_dir: str | Path = DEFAULT_CONFIG_DIR,
        schema_dir: str | Path | None = None,
    ) -> None:
        self.config_dir = Path(config_dir)
        self.schema_registry = SchemaRegistry(
            Path(schema_dir) if schema_dir else self.config_dir / "schemas"
        )
        self._cache: Dict[Path, Dict[str, Any]] = {}
        logger.debug(f"ConfigLoader using {self.config_dir}")

    def find(self, filename: str) -> Optional[Path]:
        """Locate a file in config_dir, then as given; None if absent."""
        for candidate in (self.config_dir / filename, Path(filename)):
            if candidate.is_file():
                return candidate
        return None

    def load(
        self,
        filename: str,
        schema_name: Optional[str] = None,
        *,
        validate: bool = True,
        use_cache: bool = True,
    ) -> Dict[str, Any]:
        """
        Load a configuration file.

        Args:
            filename: File name within config_dir, or a path.
            schema_name: Schema to validate against; inferred from the file
                name when omitted (files without a known schema are not validated).
            validate: Set False to skip schema validation.
            use_cache: Return the cached document if this file was read before.

        Raises:
            FileNotFoundError: If the file exists neither in config_dir nor as given.
            ConfigurationError: If the file can't be parsed or fails validation.
        """
        file_path = self.find(filename)
        if file_path is None:
            raise FileNotFoundError(
                f"Configuration file not found: {filename} "
                f"(searched in {self.config_dir} and current directory)"
            )

        key = file_path.resolve()
        if use_cache and key in self._cache:
            return self._cache[key]

        logger.info(f"Loading configuration: {file_path}")
        data = read_config_file(file_path)

        schema = schema_name or self._infer_schema_name(filename)
        if validate and schema:
            self._validate(data, schema, file_path.name)

        if use_cache:
            self._cache[key] = data
        return data

    def load_environment(
        self,
        filename: str = "test_environment.yaml",
        environment: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Load the test environment file, with its per-environment overlay.

        Args:
            filename: Base environment file.
            environment: Environment name (e.g. "ci"), defaulting to the
                base file's ``environment`` value. When
                ``test_environment.<environment>.yaml`` exists next to the base
                file it is merged over it.

        Returns:
            The merged configuration, validated against the environment schema.
        """
        data = self.load(filename, validate=False)
        environment = environment or data.get("environment")

        overlay_name = self._overlay_name(filename, environment)
        if overlay_name and self.find(overlay_name):
            logger.info(f"Applying {environment} overrides from {overlay_name}")
            data = merge_config(data, self.load(overlay_name, validate=False))

        self._validate(data, ENVIRONMENT_SCHEMA, filename)
        return data

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("Configuration cache cleared")

    def _validate(self, data: Dict[str, Any], schema_name: str, source: str) -> None:
        try:
            self.schema_registry.validate(data, schema_name)
        except SchemaValidationError as e:
            raise ConfigurationError(f"{source}: {e}") from e

    @staticmethod
    def _overlay_name(filename: str, environment: Optional[str]) -> Optional[str]:
        """``test_environment.yaml`` + "ci" -> ``test_environment.ci.yaml``."""
        if not environment:
            return None
        path = Path(filename)
        base = path.stem.removesuffix(".example")
        return str(path.with_name(f"{base}.{environment.lower()}{path.suffix}"))

    @staticmethod
    def _infer_schema_name(filename: str) -> Optional[str]:
        """
        Schema for a file name, ignoring an ``.example`` or environment suffix.

        Examples:
            test_environment.yaml -> test_environment_schema
            test_environment.example.yaml -> test_environment_schema
            test_environment.ci.yaml -> test_environment_schema
        """
        base = Path(filename).name.split(".", 1)[0]
        return ENVIRONMENT_SCHEMA if base == "test_environment" else None
