"""
Result Reporter Module.

Builds Xray JSON import payloads for test results synchronized from a
Postman run. Each payload targets an existing Test Execution key taken
from the collection naming convention.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from xray_sync.postman.report_parser import Verdict


# Xray Cloud has no SKIPPED status; unexecuted tests are TODO
VERDICT_TO_XRAY_STATUS = {
    Verdict.PASSED: "PASSED",
    Verdict.FAILED: "FAILED",
    Verdict.SKIPPED: "TODO",
}


@dataclass
class TestResult:
    """
    Result of a single test for Xray import.

    Attributes:
        test_key: Jira Test issue key (e.g., "IDC-101").
        status: Xray status ("PASSED", "FAILED", "TODO", "EXECUTING", "ABORTED").
        comment: Result comment shown in the execution.
        start_time: When the request ran.
        end_time: When the request finished.
    """

    __test__ = False

    test_key: str
    status: str = "TODO"
    comment: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    VALID_STATUSES = {"PASSED", "FAILED", "TODO", "EXECUTING", "ABORTED"}

    def __post_init__(self) -> None:
        self.status = self.status.upper()
        if self.status not in self.VALID_STATUSES:
            logger.warning(
                f"Invalid test result status '{self.status}' for {self.test_key}, "
                f"defaulting to 'TODO'. Valid: {sorted(self.VALID_STATUSES)}"
            )
            self.status = "TODO"

    @classmethod
    def from_verdict(
        cls,
        test_key: str,
        verdict: Verdict,
        comment: str = "",
    ) -> "TestResult":
        return cls(test_key=test_key, status=VERDICT_TO_XRAY_STATUS[verdict], comment=comment)

    def to_xray_dict(self) -> Dict[str, Any]:
        """Convert to the Xray JSON entry for a single test."""
        result: Dict[str, Any] = {
            "testKey": self.test_key,
            "status": self.status,
        }
        if self.comment:
            result["comment"] = self.comment
        if self.start_time:
            result["start"] = self.start_time.isoformat()
        if self.end_time:
            result["finish"] = self.end_time.isoformat()
        return result


@dataclass
class ExecutionReport:
    """
    Xray JSON import document for an existing Test Execution.

    No ``info`` block is written, so the execution's own summary and
    description are left untouched by the import.
    """

    test_exec_key: str
    results: List[TestResult] = field(default_factory=list)

    def to_xray_json(self) -> Dict[str, Any]:
        return {
            "testExecutionKey": self.test_exec_key,
            "tests": [r.to_xray_dict() for r in self.results],
        }


class ResultReporter:
    """
    Produces Xray import payloads for a single synchronization run.

    Results are submitted one at a time, right after their test has been
    associated with the execution, so a failure on one record never holds
    back the others.

    Usage::

        reporter = ResultReporter()
        payload = reporter.single_result_payload(
            "TE-01", TestResult(test_key="IDC-5", status="PASSED"),
        )
    """

    def __init__(self, started_at: Optional[datetime] = None) -> None:
        self.started_at = started_at or datetime.now()

    def single_result_payload(self, test_exec_key: str, result: TestResult) -> Dict[str, Any]:
        """Build the import payload that records one result on an execution."""
        if result.start_time is None:
            result.start_time = self.started_at
        if result.end_time is None:
            result.end_time = datetime.now()
        payload = ExecutionReport(test_exec_key=test_exec_key, results=[result]).to_xray_json()
        logger.debug(f"Result payload for {result.test_key} on {test_exec_key}: {result.status}")
        return payload
