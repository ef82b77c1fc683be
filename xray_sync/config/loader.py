"""
Configuration Loader Module.

Loads YAML or JSON settings files and validates them against the bundled
JSON schemas before they are merged into SyncSettings.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

from xray_sync.config.schema_registry import SchemaRegistry, SchemaValidationError
from xray_sync.errors import ConfigurationError


class ConfigLoader:
    """
    Settings file loader with schema validation.

    Attributes:
        config_dir: Directory searched for relative file names.
        schema_registry: Registry of JSON schemas for validation.
    """

    SUPPORTED_EXTENSIONS = {".yaml", ".yml", ".json"}
    SYNC_CONFIG_SCHEMA = "sync_config_schema"

    def __init__(
        self,
        config_dir: str | Path = "config",
        schema_dir: str | Path | None = None,
    ) -> None:
        self.config_dir = Path(config_dir)
        self.schema_registry = SchemaRegistry(schema_dir)
        self._cache: Dict[str, Dict[str, Any]] = {}

        logger.debug(f"ConfigLoader initialized: config_dir={self.config_dir}")

    def load(
        self,
        filename: str | Path,
        schema_name: Optional[str] = None,
        *,
        use_cache: bool = True,
    ) -> Dict[str, Any]:
        """
        Load a settings file, validating it when a schema name is given.

        Raises:
            ConfigurationError: If the file cannot be parsed or fails validation.
            FileNotFoundError: If the file does not exist.
        """
        file_path = self._resolve_path(filename)
        cache_key = str(file_path.resolve())

        if use_cache and cache_key in self._cache:
            logger.debug(f"Returning cached config for: {filename}")
            return self._cache[cache_key]

        logger.info(f"Loading configuration: {file_path}")
        data = self._read_file(file_path)

        if schema_name:
            self._validate(data, schema_name)

        if use_cache:
            self._cache[cache_key] = data
        return data

    def load_sync_config(self, filename: str | Path) -> Dict[str, Any]:
        """Load and validate a sync settings file."""
        return self.load(filename, schema_name=self.SYNC_CONFIG_SCHEMA)

    def clear_cache(self) -> None:
        """Clear all cached configurations."""
        self._cache.clear()

    def _resolve_path(self, filename: str | Path) -> Path:
        """Resolve a filename, checking the path as given before config_dir."""
        path = Path(filename)
        if path.exists():
            return path

        config_path = self.config_dir / path
        if not path.is_absolute() and config_path.exists():
            return config_path

        raise FileNotFoundError(
            f"Configuration file not found: {filename} "
            f"(searched current directory and {self.config_dir})"
        )

    def _read_file(self, file_path: Path) -> Dict[str, Any]:
        """Read and parse a YAML or JSON file into a mapping."""
        suffix = file_path.suffix.lower()
        if suffix not in self.SUPPORTED_EXTENSIONS:
            raise ConfigurationError(
                f"Unsupported file format '{suffix}'. "
                f"Supported: {sorted(self.SUPPORTED_EXTENSIONS)}"
            )

        try:
            content = file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Failed to read file {file_path}: {e}") from e

        try:
            if suffix in {".yaml", ".yml"}:
                data = yaml.safe_load(content)
            else:
                data = json.loads(content)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to parse {file_path}: {e}") from e

        # An empty YAML file parses to None
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping, "
                f"got {type(data).__name__}: {file_path}"
            )
        return data

    def _validate(self, data: Dict[str, Any], schema_name: str) -> None:
        try:
            self.schema_registry.validate(data, schema_name)
        except (SchemaValidationError, FileNotFoundError) as e:
            raise ConfigurationError(
                f"Configuration validation failed against schema '{schema_name}': {e}"
            ) from e
