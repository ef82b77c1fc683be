"""
Key Mapping Store.

Keeps the idempotency keys of the synchronizer:

- case key (e.g. "API01-TS01-TE01") -> Jira Test issue key
- Jira Test issue key               -> bug issue key

Jira's text search is eventually consistent, so an issue created a moment
ago may not be found by the next JQL query. The store is consulted before
any search and updated after every create, which keeps a run from creating
the same test or bug twice. When a path is given the map is persisted as
JSON and reused by later runs.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional

from loguru import logger

from xray_sync.errors import ConfigurationError


class KeyMappingStore:
    """
    Case/bug key map, in memory or backed by a JSON file.

    Usage::

        store = KeyMappingStore.load(".xray-sync-keys.json")
        store.set_test_key("API01-TS01-TE01", "IDC-5")
        store.save()
    """

    VERSION = 1

    def __init__(self, path: Optional[str | Path] = None) -> None:
        self.path = Path(path) if path else None
        self._tests: Dict[str, str] = {}
        self._bugs: Dict[str, str] = {}
        self._dirty = False

    @classmethod
    def load(cls, path: Optional[str | Path] = None) -> "KeyMappingStore":
        """
        Create a store, reading existing mappings from ``path`` if it exists.

        Raises:
            ConfigurationError: If the file exists but is not a valid key map.
        """
        store = cls(path)
        if store.path is None or not store.path.exists():
            return store

        try:
            data = json.loads(store.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read key map {store.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Key map {store.path} must contain a JSON object")

        store._tests = dict(data.get("tests") or {})
        store._bugs = dict(data.get("bugs") or {})
        logger.info(
            f"Key map loaded from {store.path}: "
            f"{len(store._tests)} test(s), {len(store._bugs)} bug(s)"
        )
        return store

    def get_test_key(self, case_key: str) -> Optional[str]:
        return self._tests.get(case_key)

    def set_test_key(self, case_key: str, test_key: str) -> None:
        if self._tests.get(case_key) != test_key:
            self._tests[case_key] = test_key
            self._dirty = True

    def forget_test(self, case_key: str) -> None:
        if self._tests.pop(case_key, None) is not None:
            self._dirty = True

    def get_bug_key(self, test_key: str) -> Optional[str]:
        return self._bugs.get(test_key)

    def set_bug_key(self, test_key: str, bug_key: str) -> None:
        if self._bugs.get(test_key) != bug_key:
            self._bugs[test_key] = bug_key
            self._dirty = True

    def forget_bug(self, test_key: str) -> None:
        if self._bugs.pop(test_key, None) is not None:
            self._dirty = True

    def to_dict(self) -> Dict[str, object]:
        return {
            "version": self.VERSION,
            "tests": dict(sorted(self._tests.items())),
            "bugs": dict(sorted(self._bugs.items())),
        }

    def save(self) -> Optional[Path]:
        """Write the map to its file if anything changed."""
        if self.path is None or not self._dirty:
            return None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        self._dirty = False
        logger.info(f"Key map saved to {self.path}")
        return self.path
