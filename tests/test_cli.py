"""
Tests for the xray-sync command-line entry point.

Remote services are replaced by the in-memory fakes from conftest.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pytest

from xray_sync import cli
from xray_sync.errors import RemoteError

from tests.conftest import FakeJira, FakeXray, make_execution, make_report


@pytest.fixture
def patched_clients(
    monkeypatch: pytest.MonkeyPatch, fake_jira: FakeJira, fake_xray: FakeXray
):
    monkeypatch.setattr(cli, "JiraClient", lambda config: fake_jira)
    monkeypatch.setattr(cli, "XrayClient", lambda config, session: fake_xray)
    return fake_jira, fake_xray


def _run(results: Path, *extra: str) -> int:
    argv: List[str] = [str(results), "--env-file", ""]
    argv.extend(extra)
    return cli.main(argv)


class TestParseArgs:
    """Tests for argument parsing."""

    def test_defaults(self) -> None:
        args = cli.parse_args([])
        assert args.results == "./results.json"
        assert args.env_file == ".env"
        assert args.config == ""
        assert not args.allow_record_errors
        assert not args.log_json

    def test_options(self) -> None:
        args = cli.parse_args(
            ["out/results.json", "--config", "sync.yaml", "--summary-out", "s.json", "-v"]
        )
        assert args.results == "out/results.json"
        assert args.config == "sync.yaml"
        assert args.summary_out == "s.json"
        assert args.verbose


@pytest.mark.usefixtures("sync_env")
class TestMain:
    """End-to-end runs of main() against the fakes."""

    def test_passing_run_exits_zero(self, write_report, patched_clients, tmp_path: Path) -> None:
        fake_jira, fake_xray = patched_clients
        results = write_report(make_report([make_execution("[API01-TS01-TE01] Get", ["passed"])]))
        summary_path = tmp_path / "summary.json"

        assert _run(results, "--summary-out", str(summary_path)) == cli.EXIT_OK

        assert fake_xray.authenticated
        summary = json.loads(summary_path.read_text(encoding="utf-8"))
        assert summary["processed"] == 1
        assert summary["verdicts"]["PASSED"] == 1

    def test_failing_run_opens_bug_and_exits_zero(self, write_report, patched_clients) -> None:
        fake_jira, _ = patched_clients
        results = write_report(make_report([make_execution("[API01-TS01-TE01] Get", ["failed"])]))

        assert _run(results) == cli.EXIT_OK
        assert len(fake_jira.issues_of_type("Bug")) == 1

    def test_missing_results_file(self, patched_clients, tmp_path: Path) -> None:
        assert _run(tmp_path / "absent.json") == cli.EXIT_FATAL

    def test_malformed_results_file(self, patched_clients, tmp_path: Path) -> None:
        path = tmp_path / "results.json"
        path.write_text('{"run": {}}', encoding="utf-8")
        assert _run(path) == cli.EXIT_FATAL

    def test_missing_credentials(
        self, write_report, patched_clients, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("JIRA_API_TOKEN")
        results = write_report(make_report([]))
        assert _run(results) == cli.EXIT_FATAL

    def test_auth_failure_is_fatal(self, write_report, patched_clients, auth_failure) -> None:
        fake_jira, fake_xray = patched_clients
        fake_xray.failures["authenticate"] = auth_failure
        results = write_report(make_report([make_execution("[API01-TS01-TE01] Get", ["passed"])]))

        assert _run(results) == cli.EXIT_FATAL
        assert "search_issues" not in fake_jira.calls

    def test_record_errors_exit_two(self, write_report, patched_clients) -> None:
        _, fake_xray = patched_clients
        fake_xray.failures["import_execution_results"] = RemoteError("down", status_code=503)
        results = write_report(make_report([make_execution("[API01-TS01-TE01] Get", ["passed"])]))

        assert _run(results) == cli.EXIT_RECORD_ERRORS
        assert _run(results, "--allow-record-errors") == cli.EXIT_OK

    def test_unmatched_names_only_skip(self, write_report, patched_clients) -> None:
        results = write_report(make_report([make_execution("Health check", ["passed"])]))
        assert _run(results) == cli.EXIT_OK

    def test_key_map_persisted(self, write_report, patched_clients, tmp_path: Path) -> None:
        key_map = tmp_path / "keys.json"
        results = write_report(make_report([make_execution("[API01-TS01-TE01] Get", ["failed"])]))

        assert _run(results, "--key-map", str(key_map), "--log-json") == cli.EXIT_OK

        data = json.loads(key_map.read_text(encoding="utf-8"))
        assert list(data["tests"]) == ["API01-TS01-TE01"]
        assert len(data["bugs"]) == 1

    def test_unwritable_key_map_is_fatal(
        self, write_report, patched_clients, tmp_path: Path
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        results = write_report(make_report([make_execution("[API01-TS01-TE01] Get", ["passed"])]))

        code = _run(results, "--key-map", str(blocker / "keys.json"))

        assert code == cli.EXIT_FATAL
        _, fake_xray = patched_clients
        assert len(fake_xray.imports) == 1

    def test_env_file_loaded(
        self,
        write_report,
        patched_clients,
        monkeypatch: pytest.MonkeyPatch,
        tmp_path: Path,
    ) -> None:
        monkeypatch.delenv("XRAY_CLIENT_SECRET")
        env_file = tmp_path / ".env"
        env_file.write_text("XRAY_CLIENT_SECRET=from-dotenv\n", encoding="utf-8")
        results = write_report(make_report([]))

        assert cli.main([str(results), "--env-file", str(env_file)]) == cli.EXIT_OK
