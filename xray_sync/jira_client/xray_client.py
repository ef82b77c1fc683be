"""
Xray Cloud API Client.

Provides a dedicated client for the Xray Cloud API (v2):
- Client-credential authentication (token cached in an XraySession).
- Associating tests with Test Sets and Test Executions (GraphQL).
- Importing execution results (Xray JSON format).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from xray_sync.errors import AuthError, RemoteError

ADD_TESTS_TO_TEST_SET = """
mutation AddTestsToTestSet($issueId: String!, $testIssueIds: [String]!) {
  addTestsToTestSet(issueId: $issueId, testIssueIds: $testIssueIds) {
    addedTests
    warning
  }
}
"""

ADD_TESTS_TO_TEST_EXECUTION = """
mutation AddTestsToTestExecution($issueId: String!, $testIssueIds: [String]!) {
  addTestsToTestExecution(issueId: $issueId, testIssueIds: $testIssueIds) {
    addedTests
    warning
  }
}
"""


@dataclass
class XrayConfig:
    """Configuration for the Xray Cloud client."""

    base_url: str = "https://xray.cloud.getxray.app"
    client_id: str = ""
    client_secret: str = ""
    timeout_sec: float = 30
    verify_ssl: bool = True


@dataclass
class XraySession:
    """
    Per-run authentication state for the Xray client.

    One instance is created per synchronization run and handed to the
    client; the token is written once by ``XrayClient.authenticate``.
    """

    token: Optional[str] = None
    acquired_at: Optional[datetime] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)


class XrayClient:
    """
    Client for the Xray Cloud REST/GraphQL API.

    Usage::

        client = XrayClient(
            config=XrayConfig(client_id="...", client_secret="..."),
            session=XraySession(),
        )
        client.authenticate()
        client.add_tests_to_test_set("10001", ["10042"])
    """

    ENDPOINTS = {
        "authenticate": "/api/v2/authenticate",
        "graphql": "/api/v2/graphql",
        "import_results": "/api/v2/import/execution",
    }

    def __init__(
        self,
        config: XrayConfig,
        session: Optional[XraySession] = None,
        http: Optional[requests.Session] = None,
    ) -> None:
        base_url = config.base_url.rstrip("/")
        # Accept base URLs configured with the API prefix already attached
        if base_url.endswith("/api/v2"):
            base_url = base_url[: -len("/api/v2")]
        config.base_url = base_url

        self._config = config
        self._session = session if session is not None else XraySession()
        self._http = http
        logger.debug(f"XrayClient initialized: url={config.base_url}")

    @property
    def session(self) -> XraySession:
        return self._session

    @property
    def is_configured(self) -> bool:
        """Check if the client has minimum configuration to operate."""
        c = self._config
        return bool(c.base_url and c.client_id and c.client_secret)

    def _get_http(self) -> requests.Session:
        if self._http is None:
            self._http = requests.Session()
            self._http.verify = self._config.verify_ssl
            self._http.headers.update({
                "Content-Type": "application/json",
                "Accept": "application/json",
            })
        return self._http

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self) -> str:
        """
        Exchange client credentials for a bearer token.

        The token is cached on the XraySession; later calls return it
        without contacting the API.

        Raises:
            AuthError: If the exchange fails for any reason.
        """
        if self._session.token:
            return self._session.token

        url = f"{self._config.base_url}{self.ENDPOINTS['authenticate']}"
        logger.info(f"Authenticating with Xray at {self._config.base_url}")
        payload = {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
        }

        try:
            response = self._get_http().post(
                url, json=payload, timeout=self._config.timeout_sec
            )
        except requests.exceptions.RequestException as e:
            raise AuthError(f"Cannot reach Xray authentication endpoint: {e}") from e

        if not response.ok:
            raise AuthError(
                f"Xray authentication failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            token = response.json()
        except ValueError:
            token = response.text.strip().strip('"')
        if not isinstance(token, str) or not token:
            raise AuthError("Xray authentication returned an empty token", body=token)

        self._session.token = token
        self._session.acquired_at = datetime.now()
        logger.info("Xray authentication succeeded")
        return token

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """
        Make a bearer-authenticated API request.

        Raises:
            RemoteError: On transport failure or any non-2xx status.
        """
        token = self.authenticate()
        url = f"{self._config.base_url}{endpoint}"
        headers = {"Authorization": f"Bearer {token}"}
        logger.debug(f"Xray API {method} {url}")

        try:
            response = self._get_http().request(
                method=method,
                url=url,
                headers=headers,
                timeout=self._config.timeout_sec,
                **kwargs,
            )
        except requests.exceptions.Timeout as e:
            raise RemoteError(
                f"Xray API {method} {endpoint} timed out after {self._config.timeout_sec}s"
            ) from e
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"Xray API {method} {endpoint} failed: {e}") from e

        if not response.ok:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise RemoteError(
                f"Xray API {method} {endpoint} returned {response.status_code}",
                status_code=response.status_code,
                body=body,
            )

        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # GraphQL associations
    # ------------------------------------------------------------------

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a GraphQL operation and return its ``data`` member.

        GraphQL reports failures with HTTP 200 and an ``errors`` list;
        those are raised as RemoteError as well.
        """
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables
        response = self._request("POST", self.ENDPOINTS["graphql"], json=payload) or {}

        errors = response.get("errors")
        if errors:
            messages = "; ".join(str(e.get("message", e)) for e in errors)
            raise RemoteError(f"Xray GraphQL error: {messages}", status_code=200, body=response)
        return response.get("data") or {}

    def add_tests_to_test_set(self, test_set_id: str, test_ids: List[str]) -> Dict[str, Any]:
        """Add tests (numeric issue ids) to a Test Set."""
        data = self.graphql(
            ADD_TESTS_TO_TEST_SET,
            {"issueId": test_set_id, "testIssueIds": list(test_ids)},
        )
        result = data.get("addTestsToTestSet") or {}
        _log_association("Test Set", test_set_id, test_ids, result)
        return result

    def add_tests_to_test_execution(
        self, test_execution_id: str, test_ids: List[str]
    ) -> Dict[str, Any]:
        """Add tests (numeric issue ids) to a Test Execution."""
        data = self.graphql(
            ADD_TESTS_TO_TEST_EXECUTION,
            {"issueId": test_execution_id, "testIssueIds": list(test_ids)},
        )
        result = data.get("addTestsToTestExecution") or {}
        _log_association("Test Execution", test_execution_id, test_ids, result)
        return result

    # ------------------------------------------------------------------
    # Result import
    # ------------------------------------------------------------------

    def import_execution_results(self, results_json: Dict[str, Any]) -> Dict[str, Any]:
        """
        Import execution results in Xray JSON format.

        Returns:
            API response (``{"id", "key", "self"}`` of the Test Execution).
        """
        response = self._request("POST", self.ENDPOINTS["import_results"], json=results_json)
        result = response if isinstance(response, dict) else {"response": response}
        logger.debug(f"Results imported into {result.get('key', 'N/A')}")
        return result

    def close(self) -> None:
        """Close the HTTP session. The auth token stays on the XraySession."""
        if self._http is not None:
            self._http.close()
            self._http = None


def _log_association(
    target: str, target_id: str, test_ids: List[str], result: Dict[str, Any]
) -> None:
    warning = result.get("warning")
    if warning:
        logger.debug(f"{target} {target_id} association warning: {warning}")
    logger.debug(
        f"Added {result.get('addedTests') or []} of {test_ids} to {target} {target_id}"
    )
