"""
Outcome wrapper for remote calls.

The reconciler runs every Jira/Xray call through ``attempt`` and branches
on the returned CallResult instead of nesting try/except blocks. Only
RemoteError is captured; AuthError and programming errors propagate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from xray_sync.errors import RemoteError

T = TypeVar("T")


@dataclass(frozen=True)
class CallResult(Generic[T]):
    """Success value or RemoteError of one remote call."""

    step: str
    value: Optional[T] = None
    error: Optional[RemoteError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def attempt(step: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> CallResult[T]:
    """Invoke ``func`` and capture a RemoteError as a failed CallResult."""
    try:
        return CallResult(step=step, value=func(*args, **kwargs))
    except RemoteError as e:
        return CallResult(step=step, error=e)
