"""
Key Extractor.

Pulls Jira keys out of bracketed naming conventions:

    collection  "[TE-01][TS-01] Suite"           -> execution TE-01, set TS-01
    request     "[API01-TS01-TE01] Get list"     -> case API01-TS01-TE01

The execution and set keys may also be placed on the request name itself,
in which case they take precedence over the collection's.
"""

from __future__ import annotations

import re
import warnings
from dataclasses import dataclass
from typing import Optional, Pattern

from loguru import logger

from xray_sync.errors import ConfigurationError, KeyExtractionWarning

DEFAULT_EXECUTION_KEY_PATTERN = r"\[(TE-\d+)\]"
DEFAULT_SET_KEY_PATTERN = r"\[(TS-\d+)\]"
DEFAULT_CASE_KEY_PATTERN = r"\[(API\d+-TS\d+-TE\d+)\]"


@dataclass(frozen=True)
class KeyPatterns:
    """Regular expressions for the three key kinds; group 1 is the key."""

    execution_key: str = DEFAULT_EXECUTION_KEY_PATTERN
    set_key: str = DEFAULT_SET_KEY_PATTERN
    case_key: str = DEFAULT_CASE_KEY_PATTERN


@dataclass(frozen=True)
class ParsedKeys:
    execution_key: str
    set_key: str
    case_key: str


def _compile(name: str, pattern: str) -> Pattern[str]:
    try:
        compiled = re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid {name} pattern {pattern!r}: {e}") from e
    if compiled.groups < 1:
        raise ConfigurationError(f"{name} pattern {pattern!r} needs a capturing group")
    return compiled


class KeyExtractor:
    """
    Applies KeyPatterns to collection and request names.

    Usage::

        extractor = KeyExtractor()
        keys = extractor.extract("[TE-01][TS-01] Suite", "[API01-TS01-TE01] Get list")
        # ParsedKeys(execution_key="TE-01", set_key="TS-01", case_key="API01-TS01-TE01")
    """

    def __init__(self, patterns: Optional[KeyPatterns] = None) -> None:
        self.patterns = patterns or KeyPatterns()
        self._execution = _compile("execution key", self.patterns.execution_key)
        self._set = _compile("set key", self.patterns.set_key)
        self._case = _compile("case key", self.patterns.case_key)

    @staticmethod
    def _first(pattern: Pattern[str], *texts: str) -> Optional[str]:
        for text in texts:
            match = pattern.search(text or "")
            if match:
                return match.group(1)
        return None

    def execution_key(self, *names: str) -> Optional[str]:
        return self._first(self._execution, *names)

    def set_key(self, *names: str) -> Optional[str]:
        return self._first(self._set, *names)

    def case_key(self, request_name: str) -> Optional[str]:
        return self._first(self._case, request_name)

    def extract(self, collection_name: str, request_name: str) -> Optional[ParsedKeys]:
        """
        Extract all three keys for one executed request.

        Returns:
            ParsedKeys, or None when any key is missing. A
            KeyExtractionWarning is issued in that case; it is never raised.
        """
        execution_key = self.execution_key(request_name, collection_name)
        set_key = self.set_key(request_name, collection_name)
        case_key = self.case_key(request_name)

        missing = [
            label
            for label, value in (
                ("execution key", execution_key),
                ("set key", set_key),
                ("case key", case_key),
            )
            if value is None
        ]
        if missing:
            message = f"No {', '.join(missing)} found for request '{request_name}'"
            logger.warning(message)
            warnings.warn(message, KeyExtractionWarning, stacklevel=2)
            return None

        return ParsedKeys(execution_key=execution_key, set_key=set_key, case_key=case_key)
