"""
Jira REST API Client.

Thin wrappers over the Jira Cloud REST API (v3) used by the synchronizer:
- JQL issue search.
- Issue creation and lookup (key -> numeric id, current status).
- Workflow transition lookup-and-apply.
- Issue link creation.

Authentication is HTTP basic auth with a Jira user and API token. Every
non-2xx response is raised as RemoteError carrying the status and body.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from xray_sync.errors import RemoteError, WorkflowError


@dataclass
class JiraConfig:
    """Configuration for the Jira REST client."""

    base_url: str
    user: str = ""
    api_token: str = ""
    project_key: str = "TEST"
    test_issue_type: str = "Test"
    bug_issue_type: str = "Bug"
    bug_link_type: str = "Relates"
    labels: List[str] = field(
        default_factory=lambda: ["jenkins", "postman", "automation", "TNR"]
    )
    timeout_sec: float = 30
    verify_ssl: bool = True


def to_adf(text: str) -> Dict[str, Any]:
    """
    Wrap plain text in an Atlassian Document Format document.

    Jira v3 rejects plain-string descriptions. Each line becomes its own
    paragraph so multi-line failure details stay readable.
    """
    lines = (text or "").splitlines() or [""]
    content = []
    for line in lines:
        paragraph: Dict[str, Any] = {"type": "paragraph", "content": []}
        if line:
            paragraph["content"].append({"type": "text", "text": line})
        content.append(paragraph)
    return {"type": "doc", "version": 1, "content": content}


def quote_jql(value: str) -> str:
    """Quote a value for use as a JQL string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def text_search_phrase(value: str) -> str:
    """
    Build a ``summary ~`` operand that matches ``value`` as a phrase.

    Brackets and quotes are reserved in Jira text search and are dropped.
    """
    cleaned = "".join(ch for ch in value if ch not in '[]"')
    return quote_jql(f'"{cleaned.strip()}"')


class JiraClient:
    """
    Client for the Jira Cloud REST API.

    Usage::

        client = JiraClient(config=JiraConfig(
            base_url="https://yourdomain.atlassian.net",
            user="ci@example.com",
            api_token="...",
            project_key="IDC",
        ))
        issues = client.search_issues('project = "IDC" AND issuetype = Test')
    """

    ENDPOINTS = {
        "search": "/rest/api/3/search/jql",
        "issue": "/rest/api/3/issue",
        "issue_by_key": "/rest/api/3/issue/{issue_key}",
        "transitions": "/rest/api/3/issue/{issue_key}/transitions",
        "issue_link": "/rest/api/3/issueLink",
    }

    def __init__(
        self,
        config: JiraConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        config.base_url = config.base_url.rstrip("/")
        self._config = config
        self._session = session
        logger.debug(
            f"JiraClient initialized: project={config.project_key}, url={config.base_url}"
        )

    @property
    def config(self) -> JiraConfig:
        return self._config

    @property
    def is_configured(self) -> bool:
        """Check if the client has minimum configuration to operate."""
        c = self._config
        return bool(c.base_url and c.user and c.api_token and c.project_key)

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.verify = self._config.verify_ssl
            self._session.auth = (self._config.user, self._config.api_token)
            self._session.headers.update({
                "Content-Type": "application/json",
                "Accept": "application/json",
            })
        return self._session

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """
        Make an authenticated API request.

        Returns:
            Parsed JSON body, or None for empty (204) responses.

        Raises:
            RemoteError: On transport failure or any non-2xx status.
        """
        session = self._get_session()
        url = f"{self._config.base_url}{endpoint}"
        logger.debug(f"Jira API {method} {url}")

        try:
            response = session.request(
                method=method,
                url=url,
                timeout=self._config.timeout_sec,
                **kwargs,
            )
        except requests.exceptions.Timeout as e:
            raise RemoteError(
                f"Jira API {method} {endpoint} timed out after {self._config.timeout_sec}s"
            ) from e
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"Jira API {method} {endpoint} failed: {e}") from e

        if not response.ok:
            raise RemoteError(
                f"Jira API {method} {endpoint} returned {response.status_code}",
                status_code=response.status_code,
                body=_response_body(response),
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Search and lookup
    # ------------------------------------------------------------------

    def search_issues(
        self,
        jql: str,
        fields: Optional[List[str]] = None,
        max_results: int = 10,
    ) -> List[Dict[str, Any]]:
        """Run a JQL search and return the matching issues."""
        params = {
            "jql": jql,
            "maxResults": max_results,
            "fields": ",".join(fields or ["summary", "status"]),
        }
        response = self._request("GET", self.ENDPOINTS["search"], params=params)
        issues = (response or {}).get("issues", [])
        logger.debug(f"JQL [{jql}] -> {len(issues)} issue(s)")
        return issues

    def get_issue(
        self,
        issue_key: str,
        fields: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Fetch a single issue by key."""
        endpoint = self.ENDPOINTS["issue_by_key"].format(issue_key=issue_key)
        params = {"fields": ",".join(fields or ["summary", "status"])}
        return self._request("GET", endpoint, params=params) or {}

    def get_issue_id(self, issue_key: str) -> str:
        """Resolve an issue key (e.g. "IDC-5") to its numeric id."""
        issue = self.get_issue(issue_key, fields=["summary"])
        issue_id = issue.get("id")
        if not issue_id:
            raise RemoteError(f"Issue {issue_key} has no id in response", body=issue)
        return str(issue_id)

    def get_issue_status(self, issue_key: str) -> str:
        """Return the current workflow status name of an issue."""
        issue = self.get_issue(issue_key, fields=["status"])
        return issue_status_name(issue)

    # ------------------------------------------------------------------
    # Creation and linking
    # ------------------------------------------------------------------

    def create_issue(
        self,
        summary: str,
        issue_type: str,
        description: str = "",
        labels: Optional[List[str]] = None,
    ) -> str:
        """
        Create an issue in the configured project.

        Returns:
            Key of the created issue.
        """
        fields: Dict[str, Any] = {
            "project": {"key": self._config.project_key},
            "summary": summary,
            "issuetype": {"name": issue_type},
        }
        if description:
            fields["description"] = to_adf(description)
        if labels:
            fields["labels"] = list(labels)

        response = self._request("POST", self.ENDPOINTS["issue"], json={"fields": fields})
        issue_key = (response or {}).get("key", "")
        if not issue_key:
            raise RemoteError(f"Issue creation returned no key for '{summary}'", body=response)
        logger.info(f"Created {issue_type} {issue_key}: {summary}")
        return issue_key

    def link_issues(
        self,
        inward_key: str,
        outward_key: str,
        link_type: Optional[str] = None,
    ) -> bool:
        """
        Link two issues.

        Returns:
            True if a link was created, False if it already existed.
        """
        payload = {
            "type": {"name": link_type or self._config.bug_link_type},
            "inwardIssue": {"key": inward_key},
            "outwardIssue": {"key": outward_key},
        }
        try:
            self._request("POST", self.ENDPOINTS["issue_link"], json=payload)
        except RemoteError as e:
            if e.status_code == 400 and _mentions_already_exists(e.body):
                logger.debug(f"Link {inward_key} -> {outward_key} already exists")
                return False
            raise
        logger.info(f"Linked {inward_key} -> {outward_key}")
        return True

    # ------------------------------------------------------------------
    # Workflow transitions
    # ------------------------------------------------------------------

    def get_transitions(self, issue_key: str) -> List[Dict[str, Any]]:
        """List transitions currently available for an issue."""
        endpoint = self.ENDPOINTS["transitions"].format(issue_key=issue_key)
        response = self._request("GET", endpoint)
        return (response or {}).get("transitions", [])

    def transition_issue(self, issue_key: str, *name_fragments: str) -> str:
        """
        Apply the first available transition whose name contains one of
        ``name_fragments`` (case-insensitive, checked in order).

        Returns:
            Name of the applied transition.

        Raises:
            WorkflowError: If no available transition matches.
        """
        transitions = self.get_transitions(issue_key)
        chosen = find_transition(transitions, name_fragments)
        if chosen is None:
            available = [t.get("name", "") for t in transitions]
            raise WorkflowError(
                f"No transition matching {list(name_fragments)} for {issue_key} "
                f"(available: {available})",
                body=transitions,
            )

        endpoint = self.ENDPOINTS["transitions"].format(issue_key=issue_key)
        self._request("POST", endpoint, json={"transition": {"id": chosen["id"]}})
        logger.info(f"Transitioned {issue_key} via '{chosen.get('name')}'")
        return chosen.get("name", "")

    def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None


def issue_status_name(issue: Dict[str, Any]) -> str:
    """Extract the status name from an issue payload ("" if absent)."""
    status = (issue.get("fields") or {}).get("status") or {}
    return status.get("name", "")


def find_transition(
    transitions: List[Dict[str, Any]],
    name_fragments: tuple,
) -> Optional[Dict[str, Any]]:
    for fragment in name_fragments:
        needle = fragment.lower()
        for transition in transitions:
            if needle in transition.get("name", "").lower():
                return transition
    return None


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _mentions_already_exists(body: Any) -> bool:
    if isinstance(body, dict):
        messages = list(body.get("errorMessages") or [])
        messages.extend((body.get("errors") or {}).values())
        return any("already exists" in str(m).lower() for m in messages)
    return "already exists" in str(body or "").lower()
