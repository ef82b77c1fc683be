"""
Configuration Management Module.

Handles loading and validation of sync settings files (YAML/JSON) and
hosts the JSON schemas bundled with the package.
"""

from xray_sync.config.loader import ConfigLoader
from xray_sync.config.schema_registry import SchemaRegistry, SchemaValidationError

__all__ = ["ConfigLoader", "SchemaRegistry", "SchemaValidationError"]
