"""
Result Reconciler.

Maps each executed Postman request onto Jira/Xray operations:

| Remote state              | Verdict | Action                                   |
|---------------------------|---------|------------------------------------------|
| test absent               | any     | create test, link to set/execution, submit |
| test exists               | any     | reuse as-is, link to set/execution, submit |
| no bug                    | FAILED  | create bug (OPEN), link it to the test   |
| bug closed                | FAILED  | reopen bug                               |
| bug open / reopened       | FAILED  | leave as-is                              |
| bug not closed            | PASSED  | close bug                                |
| no bug                    | PASSED  | nothing                                  |

SKIPPED verdicts never touch bugs. Records are independent: a record
without keys is skipped, and a RemoteError ends only the current record.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from loguru import logger

from xray_sync.jira_client.jira_client import (
    JiraClient,
    issue_status_name,
    quote_jql,
    text_search_phrase,
)
from xray_sync.jira_client.result_reporter import ResultReporter, TestResult
from xray_sync.jira_client.xray_client import XrayClient
from xray_sync.postman.key_extractor import KeyExtractor, ParsedKeys
from xray_sync.postman.report_parser import (
    NONE_MARKER,
    ExecutionRecord,
    TestRunReport,
    Verdict,
)
from xray_sync.sync.call_result import CallResult, attempt
from xray_sync.sync.key_store import KeyMappingStore
from xray_sync.sync.summary import BugAction, RecordOutcome, RecordStatus, RunSummary

CLOSED_STATUSES = {"done", "closed", "resolved"}
REOPEN_TRANSITIONS = ("reopen",)
CLOSE_TRANSITIONS = ("close", "done", "resolve")


@dataclass(frozen=True)
class RemoteBug:
    key: str
    status: str

    @property
    def closed(self) -> bool:
        return self.status.strip().lower() in CLOSED_STATUSES


def mentions_key(text: str, key: str) -> bool:
    """True if ``key`` appears in ``text`` as a whole key (IDC-5, not IDC-50)."""
    return re.search(rf"(?<![\w-]){re.escape(key)}(?![\w-])", text or "") is not None


class Reconciler:
    """
    Sequentially reconciles the records of a TestRunReport.

    Usage::

        reconciler = Reconciler(jira, xray, KeyExtractor(), KeyMappingStore())
        summary = reconciler.reconcile(load_report("results.json"))
    """

    def __init__(
        self,
        jira: JiraClient,
        xray: XrayClient,
        extractor: Optional[KeyExtractor] = None,
        store: Optional[KeyMappingStore] = None,
        pipeline_url: str = "",
    ) -> None:
        self.jira = jira
        self.xray = xray
        self.extractor = extractor or KeyExtractor()
        self.store = store or KeyMappingStore()
        self.pipeline_url = pipeline_url
        self.reporter = ResultReporter()
        # issue key -> numeric id, valid for this run only
        self._issue_ids: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def reconcile(self, report: TestRunReport) -> RunSummary:
        """Process every record of the report, in order."""
        summary = RunSummary(collection_name=report.collection_name, start_time=datetime.now())
        self.reporter = ResultReporter(started_at=summary.start_time)
        logger.info(
            f"Reconciling {len(report)} execution(s) of '{report.collection_name}'"
        )
        for record in report:
            summary.add(self.process_record(report.collection_name, record))
        return summary.finalize()

    def process_record(self, collection_name: str, record: ExecutionRecord) -> RecordOutcome:
        """Reconcile a single executed request."""
        verdict = record.verdict
        keys = self.extractor.extract(collection_name, record.name)
        if keys is None:
            logger.bind(record=record.name).warning(
                f"Skipping '{record.name}': naming convention not matched"
            )
            return RecordOutcome(record.name, RecordStatus.SKIPPED, verdict=verdict)

        outcome = RecordOutcome(
            record.name, RecordStatus.PROCESSED, verdict=verdict, case_key=keys.case_key
        )

        found = self._find_or_create_test(keys, record)
        if not found.ok:
            return self._errored(outcome, found)
        outcome.test_key, outcome.created_test = found.value

        associated = self._associate(keys, outcome.test_key)
        if not associated.ok:
            return self._errored(outcome, associated)

        submitted = self._submit_result(keys, outcome.test_key, record)
        if not submitted.ok:
            return self._errored(outcome, submitted)

        if verdict == Verdict.SKIPPED:
            logger.bind(record=record.name, case_key=keys.case_key).info(
                f"{outcome.test_key} has no executed assertions; bug left untouched"
            )
            return outcome

        bug = self._reconcile_bug(outcome.test_key, keys, record, verdict)
        if not bug.ok:
            return self._errored(outcome, bug)
        outcome.bug_key, outcome.bug_action = bug.value

        logger.bind(record=record.name, case_key=keys.case_key).info(
            f"{outcome.test_key} processed: {verdict.value}, bug action {outcome.bug_action.value}"
            + (f" ({outcome.bug_key})" if outcome.bug_key else "")
        )
        return outcome

    def _errored(self, outcome: RecordOutcome, result: CallResult) -> RecordOutcome:
        error = result.error
        outcome.status = RecordStatus.ERRORED
        outcome.failed_step = result.step
        outcome.error = str(error)
        logger.bind(
            record=outcome.request_name,
            case_key=outcome.case_key,
            step=result.step,
            status_code=getattr(error, "status_code", None),
        ).error(
            f"Record '{outcome.request_name}' failed at {result.step}: {error}"
            f" | body={getattr(error, 'body', None)!r}"
        )
        return outcome

    # ------------------------------------------------------------------
    # Test case
    # ------------------------------------------------------------------

    def _find_or_create_test(
        self, keys: ParsedKeys, record: ExecutionRecord
    ) -> CallResult[Tuple[str, bool]]:
        """Return (test key, created) for the case key, creating the Test if absent."""
        known = self.store.get_test_key(keys.case_key)
        if known:
            verified = self._issue_id(known)
            if verified.ok:
                logger.debug(f"Case {keys.case_key} mapped to {known}")
                return CallResult(step="find_test", value=(known, False))
            if verified.error.status_code != 404:
                return verified
            logger.warning(f"Mapped test {known} for {keys.case_key} no longer exists")
            self.store.forget_test(keys.case_key)

        config = self.jira.config
        jql = (
            f"project = {quote_jql(config.project_key)} "
            f"AND issuetype = {quote_jql(config.test_issue_type)} "
            f"AND summary ~ {text_search_phrase(keys.case_key)} "
            f"ORDER BY created ASC"
        )
        search = attempt("search_test", self.jira.search_issues, jql, fields=["summary"])
        if not search.ok:
            return search

        for issue in search.value:
            summary = (issue.get("fields") or {}).get("summary", "")
            if mentions_key(summary, keys.case_key):
                logger.info(f"Reusing existing test {issue['key']} for {keys.case_key}")
                self.store.set_test_key(keys.case_key, issue["key"])
                return CallResult(step="search_test", value=(issue["key"], False))

        created = attempt(
            "create_test",
            self.jira.create_issue,
            summary=record.name,
            issue_type=config.test_issue_type,
            description=self._test_description(record),
            labels=config.labels,
        )
        if not created.ok:
            return created
        self.store.set_test_key(keys.case_key, created.value)
        return CallResult(step="create_test", value=(created.value, True))

    def _issue_id(self, issue_key: str) -> CallResult[str]:
        if issue_key in self._issue_ids:
            return CallResult(step="get_issue_id", value=self._issue_ids[issue_key])
        result = attempt(f"get_issue_id:{issue_key}", self.jira.get_issue_id, issue_key)
        if result.ok:
            self._issue_ids[issue_key] = result.value
        return result

    def _associate(self, keys: ParsedKeys, test_key: str) -> CallResult[None]:
        """Add the test to its Test Set and Test Execution."""
        test_id = self._issue_id(test_key)
        if not test_id.ok:
            return test_id

        targets = (
            ("add_to_test_set", keys.set_key, self.xray.add_tests_to_test_set),
            ("add_to_test_execution", keys.execution_key, self.xray.add_tests_to_test_execution),
        )
        for step, target_key, add in targets:
            target_id = self._issue_id(target_key)
            if not target_id.ok:
                return target_id
            added = attempt(step, add, target_id.value, [test_id.value])
            if not added.ok:
                return added
        return CallResult(step="associate")

    def _submit_result(
        self, keys: ParsedKeys, test_key: str, record: ExecutionRecord
    ) -> CallResult[dict]:
        result = TestResult.from_verdict(test_key, record.verdict, _result_comment(record))
        payload = self.reporter.single_result_payload(keys.execution_key, result)
        return attempt("submit_result", self.xray.import_execution_results, payload)

    # ------------------------------------------------------------------
    # Bug lifecycle
    # ------------------------------------------------------------------

    def _find_bug(self, test_key: str) -> CallResult[Optional[RemoteBug]]:
        """Find the bug linked to a test: key map first, then text search."""
        known = self.store.get_bug_key(test_key)
        if known:
            fetched = attempt("get_bug", self.jira.get_issue_status, known)
            if fetched.ok:
                return CallResult(step="get_bug", value=RemoteBug(known, fetched.value))
            if fetched.error.status_code != 404:
                return fetched
            logger.warning(f"Mapped bug {known} for {test_key} no longer exists")
            self.store.forget_bug(test_key)

        config = self.jira.config
        jql = (
            f"project = {quote_jql(config.project_key)} "
            f"AND issuetype = {quote_jql(config.bug_issue_type)} "
            f"AND summary ~ {text_search_phrase(test_key)} "
            f"ORDER BY created DESC"
        )
        search = attempt("search_bug", self.jira.search_issues, jql, fields=["summary", "status"])
        if not search.ok:
            return search

        candidates: List[RemoteBug] = [
            RemoteBug(issue["key"], issue_status_name(issue))
            for issue in search.value
            if mentions_key((issue.get("fields") or {}).get("summary", ""), test_key)
        ]
        if not candidates:
            return CallResult(step="search_bug", value=None)

        # An unresolved bug wins over the most recent closed one
        bug = next((b for b in candidates if not b.closed), candidates[0])
        self.store.set_bug_key(test_key, bug.key)
        return CallResult(step="search_bug", value=bug)

    def _reconcile_bug(
        self,
        test_key: str,
        keys: ParsedKeys,
        record: ExecutionRecord,
        verdict: Verdict,
    ) -> CallResult[Tuple[str, BugAction]]:
        found = self._find_bug(test_key)
        if not found.ok:
            return found
        bug = found.value

        if verdict == Verdict.FAILED:
            if bug is None:
                return self._open_bug(test_key, keys, record)
            if bug.closed:
                reopened = attempt(
                    "reopen_bug", self.jira.transition_issue, bug.key, *REOPEN_TRANSITIONS
                )
                if not reopened.ok:
                    return reopened
                return CallResult(step="reopen_bug", value=(bug.key, BugAction.REOPENED))
            return CallResult(step="find_bug", value=(bug.key, BugAction.UNCHANGED))

        # PASSED
        if bug is None:
            return CallResult(step="find_bug", value=("", BugAction.NONE))
        if bug.closed:
            return CallResult(step="find_bug", value=(bug.key, BugAction.NONE))
        closed = attempt("close_bug", self.jira.transition_issue, bug.key, *CLOSE_TRANSITIONS)
        if not closed.ok:
            return closed
        return CallResult(step="close_bug", value=(bug.key, BugAction.CLOSED))

    def _open_bug(
        self, test_key: str, keys: ParsedKeys, record: ExecutionRecord
    ) -> CallResult[Tuple[str, BugAction]]:
        config = self.jira.config
        created = attempt(
            "create_bug",
            self.jira.create_issue,
            summary=f"Failed test {test_key}: {record.name}",
            issue_type=config.bug_issue_type,
            description=self._bug_description(test_key, keys, record),
            labels=config.labels,
        )
        if not created.ok:
            return created
        bug_key = created.value
        self.store.set_bug_key(test_key, bug_key)

        linked = attempt("link_bug", self.jira.link_issues, bug_key, test_key, config.bug_link_type)
        if not linked.ok:
            return linked
        return CallResult(step="create_bug", value=(bug_key, BugAction.CREATED))

    # ------------------------------------------------------------------
    # Descriptions
    # ------------------------------------------------------------------

    def _request_details(self, record: ExecutionRecord) -> List[str]:
        lines = [
            f"Request: {record.method or 'GET'} {record.url or NONE_MARKER}",
            "Query parameters:",
            record.params,
            "Test script:",
            record.test_script,
        ]
        if self.pipeline_url:
            lines.append(f"Pipeline: {self.pipeline_url}")
        return lines

    def _test_description(self, record: ExecutionRecord) -> str:
        lines = [f"Test case from Postman request: {record.name}"]
        lines.extend(self._request_details(record))
        return "\n".join(lines)

    def _bug_description(
        self, test_key: str, keys: ParsedKeys, record: ExecutionRecord
    ) -> str:
        lines = [
            f"Failure detected for test case {test_key} ({keys.case_key}) "
            f"in test execution {keys.execution_key}.",
            "Failed assertions:",
        ]
        for assertion in record.failed_assertions:
            detail = f": {assertion.error}" if assertion.error else ""
            lines.append(f"- {assertion.name}{detail}")
        lines.extend(self._request_details(record))
        return "\n".join(lines)


def _result_comment(record: ExecutionRecord) -> str:
    verdict = record.verdict
    if verdict == Verdict.SKIPPED:
        return "No assertions executed"
    if verdict == Verdict.PASSED:
        return f"All {len(record.assertions)} assertion(s) passed"
    failed = record.failed_assertions
    details = "; ".join(
        f"{a.name}: {a.error}" if a.error else a.name for a in failed
    )
    return f"{len(failed)} of {len(record.assertions)} assertion(s) failed: {details}"
