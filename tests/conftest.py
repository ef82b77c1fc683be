"""
Root conftest.py: shared Pytest fixtures.

Provides fixtures for:
- Postman report documents and report files.
- An in-memory Jira tracker and Xray service that stand in for the
  remote APIs in reconciler and CLI tests.
- Environment variables for settings resolution.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from xray_sync.errors import AuthError, RemoteError, WorkflowError
from xray_sync.jira_client.jira_client import JiraConfig, find_transition

COLLECTION_NAME = "[TE-01][TS-01] Suite"


# ---------------------------------------------------------------------------
# Report builders
# ---------------------------------------------------------------------------


def make_execution(
    name: str,
    statuses: Optional[List[str]] = None,
    url: Any = "https://api.example.com/items",
    method: str = "GET",
) -> Dict[str, Any]:
    """Build one Postman execution entry with the given assertion statuses."""
    tests = []
    for i, status in enumerate(statuses or []):
        entry: Dict[str, Any] = {"name": f"assertion {i}", "status": status}
        if status == "failed":
            entry["error"] = {"name": "AssertionError", "message": f"expected 200 ({i})"}
        tests.append(entry)
    return {
        "requestExecuted": {"name": name, "url": url, "method": method},
        "tests": tests,
    }


def make_report(
    executions: List[Dict[str, Any]],
    collection_name: str = COLLECTION_NAME,
) -> Dict[str, Any]:
    return {"run": {"meta": {"collectionName": collection_name}, "executions": executions}}


@pytest.fixture
def write_report(tmp_path: Path) -> Callable[[Dict[str, Any]], Path]:
    """Write a report document to a temporary results.json."""

    def _write(data: Dict[str, Any], name: str = "results.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


# ---------------------------------------------------------------------------
# In-memory remote services
# ---------------------------------------------------------------------------


class FakeJira:
    """
    In-memory Jira with the JiraClient surface used by the reconciler.

    Workflow: Open -> (Close) -> Closed -> (Reopen) -> Reopened -> (Close) -> Closed.
    """

    WORKFLOW = {
        "open": [{"id": "21", "name": "Close Issue"}],
        "reopened": [{"id": "21", "name": "Close Issue"}],
        "closed": [{"id": "31", "name": "Reopen Issue"}],
        "done": [{"id": "31", "name": "Reopen Issue"}],
    }
    TARGET_STATUS = {"21": "Closed", "31": "Reopened"}

    def __init__(self, project_key: str = "IDC") -> None:
        self.config = JiraConfig(
            base_url="https://jira.example.com",
            user="ci@example.com",
            api_token="token",
            project_key=project_key,
        )
        self.issues: Dict[str, Dict[str, Any]] = {}
        self.links: List[Dict[str, str]] = []
        self.calls: List[str] = []
        self.failures: Dict[str, RemoteError] = {}
        self._counter = 0
        self.add_issue("TE-01", "Nightly execution", "Test Execution")
        self.add_issue("TS-01", "API regression set", "Test Set")

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    def add_issue(
        self,
        key: str,
        summary: str,
        issue_type: str,
        status: str = "Open",
    ) -> Dict[str, Any]:
        self._counter += 1
        issue = {
            "id": str(10000 + self._counter),
            "key": key,
            "fields": {
                "summary": summary,
                "status": {"name": status},
                "issuetype": {"name": issue_type},
            },
        }
        self.issues[key] = issue
        return issue

    def issues_of_type(self, issue_type: str) -> List[Dict[str, Any]]:
        return [
            i for i in self.issues.values()
            if i["fields"]["issuetype"]["name"] == issue_type
        ]

    def status_of(self, key: str) -> str:
        return self.issues[key]["fields"]["status"]["name"]

    def search_issues(self, jql: str, fields=None, max_results: int = 10) -> List[Dict[str, Any]]:
        self._check("search_issues")
        issue_type = re.search(r'issuetype = "([^"]+)"', jql).group(1)
        phrase = re.search(r'summary ~ "\\"(.*?)\\""', jql).group(1)
        found = [
            i for i in self.issues_of_type(issue_type)
            if phrase in i["fields"]["summary"]
        ]
        if "DESC" in jql:
            found.reverse()
        return found[:max_results]

    def get_issue(self, issue_key: str, fields=None) -> Dict[str, Any]:
        self._check("get_issue")
        if issue_key not in self.issues:
            raise RemoteError(f"Issue {issue_key} not found", status_code=404, body={})
        return self.issues[issue_key]

    def get_issue_id(self, issue_key: str) -> str:
        return self.get_issue(issue_key)["id"]

    def get_issue_status(self, issue_key: str) -> str:
        return self.get_issue(issue_key)["fields"]["status"]["name"]

    def create_issue(self, summary: str, issue_type: str, description: str = "", labels=None) -> str:
        self._check("create_issue")
        key = f"{self.config.project_key}-{self._counter + 1}"
        issue = self.add_issue(key, summary, issue_type)
        issue["fields"]["description"] = description
        issue["fields"]["labels"] = list(labels or [])
        return key

    def link_issues(self, inward_key: str, outward_key: str, link_type: Optional[str] = None) -> bool:
        self._check("link_issues")
        link = {"inward": inward_key, "outward": outward_key, "type": link_type or "Relates"}
        if link in self.links:
            return False
        self.links.append(link)
        return True

    def transition_issue(self, issue_key: str, *name_fragments: str) -> str:
        self._check("transition_issue")
        status = self.status_of(issue_key).lower()
        chosen = find_transition(self.WORKFLOW.get(status, []), name_fragments)
        if chosen is None:
            raise WorkflowError(f"No transition matching {name_fragments} for {issue_key}")
        self.issues[issue_key]["fields"]["status"]["name"] = self.TARGET_STATUS[chosen["id"]]
        return chosen["name"]

    def close(self) -> None:
        pass


class FakeXray:
    """In-memory Xray recording associations and imported results."""

    def __init__(self) -> None:
        self.test_sets: Dict[str, List[str]] = {}
        self.test_executions: Dict[str, List[str]] = {}
        self.imports: List[Dict[str, Any]] = []
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self.authenticated = False

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    def authenticate(self) -> str:
        self._check("authenticate")
        self.authenticated = True
        return "xray-token"

    def add_tests_to_test_set(self, test_set_id: str, test_ids: List[str]) -> Dict[str, Any]:
        self._check("add_tests_to_test_set")
        members = self.test_sets.setdefault(test_set_id, [])
        added = [t for t in test_ids if t not in members]
        members.extend(added)
        return {"addedTests": added, "warning": None}

    def add_tests_to_test_execution(self, test_execution_id: str, test_ids: List[str]) -> Dict[str, Any]:
        self._check("add_tests_to_test_execution")
        members = self.test_executions.setdefault(test_execution_id, [])
        added = [t for t in test_ids if t not in members]
        members.extend(added)
        return {"addedTests": added, "warning": None}

    def import_execution_results(self, results_json: Dict[str, Any]) -> Dict[str, Any]:
        self._check("import_execution_results")
        self.imports.append(results_json)
        return {"key": results_json.get("testExecutionKey", "")}

    def statuses_for(self, test_key: str) -> List[str]:
        return [
            t["status"]
            for payload in self.imports
            for t in payload["tests"]
            if t["testKey"] == test_key
        ]

    def close(self) -> None:
        pass


@pytest.fixture
def fake_jira() -> FakeJira:
    return FakeJira()


@pytest.fixture
def fake_xray() -> FakeXray:
    return FakeXray()


@pytest.fixture
def auth_failure() -> AuthError:
    return AuthError("invalid client credentials", status_code=401)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


REQUIRED_ENV = {
    "JIRA_BASE_URL": "https://yourdomain.atlassian.net",
    "JIRA_USER": "ci@example.com",
    "JIRA_API_TOKEN": "jira-token",
    "JIRA_PROJECT_KEY": "IDC",
    "XRAY_BASE_URL": "https://xray.cloud.getxray.app",
    "XRAY_CLIENT_ID": "client-id",
    "XRAY_CLIENT_SECRET": "client-secret",
}


@pytest.fixture
def sync_env(monkeypatch: pytest.MonkeyPatch) -> Dict[str, str]:
    """Set every required settings variable in the process environment."""
    for name in ("BUG_ISSUE_TYPE", "BUG_LINK_TYPE", "BUILD_URL", "PIPELINE_URL", "XRAY_SYNC_KEY_MAP"):
        monkeypatch.delenv(name, raising=False)
    for name, value in REQUIRED_ENV.items():
        monkeypatch.setenv(name, value)
    return dict(REQUIRED_ENV)
