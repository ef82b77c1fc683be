"""
Error taxonomy for the Postman -> Jira/Xray synchronization run.

Fatal errors (abort the run with a non-zero exit):
- ParseError: the results report is missing, malformed, or unrecognized.
- AuthError: the Xray client-credential exchange failed.
- ConfigurationError: required settings are missing or invalid.

Per-record errors (logged, the record is skipped, the run continues):
- RemoteError: any non-2xx response from Jira or Xray.

KeyExtractionWarning is a warning category, never raised.
"""

from __future__ import annotations

from typing import Any, Optional


class XraySyncError(Exception):
    """Base class for all synchronization errors."""


class ParseError(XraySyncError):
    """Raised when a results report cannot be loaded or understood."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class ConfigurationError(XraySyncError):
    """Raised when settings are missing or fail validation."""


class RemoteError(XraySyncError):
    """
    Raised when a Jira or Xray API call fails.

    Attributes:
        status_code: HTTP status code, or None for transport failures.
        body: Response body (parsed JSON when possible, else text).
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} (status={self.status_code})"
        return base


class WorkflowError(RemoteError):
    """Raised when an issue has no transition matching the requested one."""


class AuthError(XraySyncError):
    """Raised when the Xray token exchange fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class KeyExtractionWarning(UserWarning):
    """Issued when a name does not follow the bracketed-key convention."""
