"""
Postman Report Parser.

Loads the JSON report written by the Postman CLI and turns it into
immutable TestRunReport / ExecutionRecord objects. The verdict of each
executed request is derived from its assertion outcomes:

- no (non-skipped) assertions -> SKIPPED
- any failed assertion        -> FAILED
- otherwise                   -> PASSED
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from xray_sync.config.schema_registry import SchemaRegistry, SchemaValidationError
from xray_sync.errors import ParseError

REPORT_SCHEMA = "postman_report_schema"
UNNAMED_REQUEST = "Unnamed Request"
NONE_MARKER = "None"


class Verdict(str, Enum):
    """Outcome of one executed request."""

    PASSED = "PASSED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class AssertionOutcome:
    """One ``pm.test`` assertion result."""

    name: str
    status: str
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status == "passed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @property
    def failed(self) -> bool:
        return not (self.passed or self.skipped)


@dataclass(frozen=True)
class ExecutionRecord:
    """
    A single executed request from the run.

    Attributes:
        name: Request name, carrying the bracketed case key.
        assertions: Assertion outcomes in report order.
        url: Request URL, rebuilt from Postman's URL object if needed.
        method: HTTP method.
        params: Query parameters, one ``key=value`` per line.
        test_script: Source of the request's test scripts.
    """

    name: str
    assertions: Tuple[AssertionOutcome, ...] = ()
    url: str = ""
    method: str = ""
    params: str = NONE_MARKER
    test_script: str = NONE_MARKER

    @property
    def verdict(self) -> Verdict:
        return derive_verdict(self.assertions)

    @property
    def failed_assertions(self) -> List[AssertionOutcome]:
        return [a for a in self.assertions if a.failed]


@dataclass(frozen=True)
class TestRunReport:
    """Parsed Postman run: collection name plus executions in run order."""

    __test__ = False

    collection_name: str
    executions: Tuple[ExecutionRecord, ...] = field(default_factory=tuple)
    source: str = ""

    def __len__(self) -> int:
        return len(self.executions)

    def __iter__(self):
        return iter(self.executions)


def derive_verdict(assertions: Iterable[AssertionOutcome]) -> Verdict:
    """Compute the verdict of a request from its assertions."""
    counted = [a for a in assertions if not a.skipped]
    if not counted:
        return Verdict.SKIPPED
    if any(a.failed for a in counted):
        return Verdict.FAILED
    return Verdict.PASSED


def build_request_url(url: Any) -> str:
    """Rebuild a URL string from a Postman URL value (string or object)."""
    if isinstance(url, str):
        return url
    if not isinstance(url, dict):
        return ""
    if url.get("raw"):
        return url["raw"]

    protocol = url.get("protocol") or "http"
    host = url.get("host") or ""
    if isinstance(host, list):
        host = ".".join(str(h) for h in host)
    path = url.get("path") or ""
    if isinstance(path, list):
        path = "/".join(str(p) for p in path)

    result = f"{protocol}://{host}"
    if path:
        result += f"/{path}"
    query = url.get("query")
    pairs = [q for q in query if isinstance(q, dict)] if isinstance(query, list) else []
    if pairs:
        result += "?" + "&".join(f"{q.get('key')}={q.get('value')}" for q in pairs)
    return result


def extract_params(url: Any) -> str:
    """Render query parameters as ``key=value`` lines, or "None"."""
    if not isinstance(url, dict) or not isinstance(url.get("query"), list):
        return NONE_MARKER
    query = [q for q in url["query"] if isinstance(q, dict)]
    if not query:
        return NONE_MARKER
    return "\n".join(
        f"{q.get('key') or 'undefined'}={q.get('value') or 'undefined'}" for q in query
    )


def extract_test_scripts(events: Any) -> str:
    """Concatenate the source lines of ``test`` event scripts, or "None"."""
    if not isinstance(events, list):
        return NONE_MARKER
    lines: List[str] = []
    for event in events:
        if not isinstance(event, dict) or event.get("listen") != "test":
            continue
        script = event.get("script")
        if not isinstance(script, dict):
            continue
        source = script.get("exec") or []
        if isinstance(source, str):
            source = [source]
        lines.extend(str(line) for line in source)
    return "\n".join(lines) or NONE_MARKER


def _error_detail(error: Any) -> Optional[str]:
    if not error:
        return None
    if isinstance(error, dict):
        return error.get("message") or error.get("name") or json.dumps(error)
    return str(error)


def _parse_assertion(raw: Dict[str, Any]) -> AssertionOutcome:
    return AssertionOutcome(
        name=raw.get("name", ""),
        status=str(raw.get("status", "")).strip().lower(),
        error=_error_detail(raw.get("error")),
    )


def _parse_execution(raw: Dict[str, Any]) -> ExecutionRecord:
    request = raw.get("requestExecuted") or {}
    url = request.get("url")
    events = request.get("event", raw.get("event"))
    return ExecutionRecord(
        name=request.get("name") or UNNAMED_REQUEST,
        assertions=tuple(_parse_assertion(t) for t in raw.get("tests") or []),
        url=build_request_url(url),
        method=str(request.get("method") or "").upper(),
        params=extract_params(url),
        test_script=extract_test_scripts(events),
    )


def parse_report(data: Any, source: str = "", registry: Optional[SchemaRegistry] = None) -> TestRunReport:
    """
    Build a TestRunReport from an already-decoded JSON document.

    Raises:
        ParseError: If the document does not have the run/executions shape.
    """
    registry = registry or SchemaRegistry()
    try:
        registry.validate(data, REPORT_SCHEMA)
    except SchemaValidationError as e:
        raise ParseError(f"Unrecognized Postman report {source}: {e}", path=source) from e

    run = data["run"]
    executions = tuple(_parse_execution(e) for e in run["executions"])
    report = TestRunReport(
        collection_name=run["meta"]["collectionName"],
        executions=executions,
        source=source,
    )
    logger.info(
        f"Parsed report '{report.collection_name}': {len(executions)} execution(s)"
    )
    return report


def load_report(path: str | Path, registry: Optional[SchemaRegistry] = None) -> TestRunReport:
    """
    Load and parse a Postman CLI JSON report.

    Raises:
        ParseError: If the file is missing, not valid JSON, or malformed.
    """
    report_path = Path(path)
    if not report_path.is_file():
        raise ParseError(f"Results file not found: {report_path}", path=str(report_path))

    try:
        data = json.loads(report_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"Cannot read {report_path}: {e}", path=str(report_path)) from e
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in {report_path}: {e}", path=str(report_path)) from e

    return parse_report(data, source=str(report_path), registry=registry)
