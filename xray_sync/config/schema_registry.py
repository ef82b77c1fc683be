"""
Schema Registry Module.

Holds the JSON schemas bundled with the package (sync settings and the
Postman results report) and validates documents against them with
jsonschema.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
from loguru import logger

BUNDLED_SCHEMA_DIR = Path(__file__).parent / "schemas"


class SchemaValidationError(Exception):
    """Raised when a document fails schema validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class SchemaRegistry:
    """
    Registry for JSON schemas, loaded lazily from disk and cached.

    Attributes:
        schema_dir: Directory containing ``<name>.json`` schema files.
    """

    def __init__(self, schema_dir: str | Path | None = None) -> None:
        self.schema_dir = Path(schema_dir) if schema_dir else BUNDLED_SCHEMA_DIR
        self._schemas: Dict[str, Dict[str, Any]] = {}
        logger.debug(f"SchemaRegistry initialized: schema_dir={self.schema_dir}")

    def get_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Retrieve a JSON schema by name, loading from disk if not cached.

        Raises:
            FileNotFoundError: If the schema file does not exist.
            SchemaValidationError: If the schema file itself is unreadable.
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self.schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(
                f"Schema not found: {schema_name} (expected at {schema_path})"
            )

        try:
            schema = json.loads(schema_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise SchemaValidationError(f"Failed to load schema {schema_name}: {e}") from e

        self._schemas[schema_name] = schema
        logger.debug(f"Schema loaded: {schema_name}")
        return schema

    def validate(self, data: Any, schema_name: str) -> None:
        """
        Validate a document against a named schema.

        Raises:
            SchemaValidationError: If validation fails, listing every error.
        """
        schema = self.get_schema(schema_name)
        validator = jsonschema.Draft7Validator(schema)
        errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])

        if errors:
            error_messages = []
            for error in errors:
                path = " -> ".join(str(p) for p in error.absolute_path) or "(root)"
                error_messages.append(f"  [{path}] {error.message}")

            all_errors = "\n".join(error_messages)
            raise SchemaValidationError(
                f"Schema validation failed for '{schema_name}' "
                f"({len(errors)} error(s)):\n{all_errors}",
                errors=error_messages,
            )

        logger.debug(f"Validation passed: {schema_name}")

    def list_schemas(self) -> list[str]:
        """List all available schema names in the schema directory."""
        if not self.schema_dir.exists():
            return []
        return sorted(f.stem for f in self.schema_dir.glob("*.json") if f.is_file())
