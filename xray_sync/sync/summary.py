"""
Run Summary Module.

Collects the outcome of every record of a synchronization run (test key,
verdict, bug action) and produces the final counts that are logged at the
end of the run and optionally written as JSON for the pipeline.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from xray_sync.postman.report_parser import Verdict


class RecordStatus(str, Enum):
    PROCESSED = "PROCESSED"
    SKIPPED = "SKIPPED"
    ERRORED = "ERRORED"


class BugAction(str, Enum):
    """What the reconciler did to the bug of a test case."""

    NONE = "NONE"
    CREATED = "CREATED"
    REOPENED = "REOPENED"
    CLOSED = "CLOSED"
    UNCHANGED = "UNCHANGED"


@dataclass
class RecordOutcome:
    """
    Result of reconciling one ExecutionRecord.

    Attributes:
        request_name: Postman request name.
        status: PROCESSED, SKIPPED (no keys) or ERRORED (remote failure).
        verdict: Verdict derived from the assertions.
        case_key: Case key parsed from the request name.
        test_key: Jira Test issue key created or reused.
        created_test: Whether the Test issue was created in this run.
        bug_key: Bug issue key, if any.
        bug_action: Action taken on the bug.
        failed_step: Name of the remote step that failed (ERRORED only).
        error: Error message (ERRORED only).
    """

    request_name: str
    status: RecordStatus
    verdict: Optional[Verdict] = None
    case_key: str = ""
    test_key: str = ""
    created_test: bool = False
    bug_key: str = ""
    bug_action: BugAction = BugAction.NONE
    failed_step: str = ""
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_name": self.request_name,
            "status": self.status.value,
            "verdict": self.verdict.value if self.verdict else None,
            "case_key": self.case_key,
            "test_key": self.test_key,
            "created_test": self.created_test,
            "bug_key": self.bug_key,
            "bug_action": self.bug_action.value,
            "failed_step": self.failed_step,
            "error": self.error,
        }


@dataclass
class RunSummary:
    """Aggregated outcomes of one synchronization run."""

    collection_name: str = ""
    outcomes: List[RecordOutcome] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def add(self, outcome: RecordOutcome) -> None:
        self.outcomes.append(outcome)

    def _count(self, status: RecordStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def processed(self) -> int:
        return self._count(RecordStatus.PROCESSED)

    @property
    def skipped(self) -> int:
        return self._count(RecordStatus.SKIPPED)

    @property
    def errored(self) -> int:
        return self._count(RecordStatus.ERRORED)

    @property
    def has_errors(self) -> bool:
        return self.errored > 0

    def verdict_counts(self) -> Dict[str, int]:
        counts = {v.value: 0 for v in Verdict}
        for outcome in self.outcomes:
            if outcome.status == RecordStatus.PROCESSED and outcome.verdict:
                counts[outcome.verdict.value] += 1
        return counts

    @property
    def bugs(self) -> List[Dict[str, str]]:
        """Bugs touched in this run with the test case they are linked to."""
        return [
            {"bug_key": o.bug_key, "action": o.bug_action.value, "linked_test": o.test_key}
            for o in self.outcomes
            if o.bug_key and o.bug_action != BugAction.NONE
        ]

    def finalize(self) -> "RunSummary":
        self.end_time = datetime.now()
        logger.info(
            f"Sync finished for '{self.collection_name}': {self.total} record(s): "
            f"{self.processed} processed, {self.skipped} skipped, {self.errored} errored "
            f"| verdicts {self.verdict_counts()}"
        )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection_name": self.collection_name,
            "total": self.total,
            "processed": self.processed,
            "skipped": self.skipped,
            "errored": self.errored,
            "verdicts": self.verdict_counts(),
            "bugs": self.bugs,
            "records": [o.to_dict() for o in self.outcomes],
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }

    def export_json(self, output_path: str | Path) -> Path:
        path = Path(output_path)
        path.write_text(json.dumps(self.to_dict(), indent=2, default=str), encoding="utf-8")
        logger.info(f"Run summary exported to: {path}")
        return path
