"""
Synchronization Module.

The per-record reconciliation of Postman verdicts against Jira/Xray:
- Reconciler: test case, association, result and bug lifecycle decisions.
- KeyMappingStore: idempotency keys for tests and bugs.
- RunSummary: processed/skipped/errored counts and bug actions.
"""

from xray_sync.sync.call_result import CallResult, attempt
from xray_sync.sync.key_store import KeyMappingStore
from xray_sync.sync.reconciler import Reconciler, RemoteBug
from xray_sync.sync.summary import BugAction, RecordOutcome, RecordStatus, RunSummary

__all__ = [
    "CallResult",
    "attempt",
    "KeyMappingStore",
    "Reconciler",
    "RemoteBug",
    "BugAction",
    "RecordOutcome",
    "RecordStatus",
    "RunSummary",
]
