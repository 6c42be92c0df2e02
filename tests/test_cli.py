from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.config import DEFAULT_BASE_URL, load_config


class StubClient:
    def __init__(self, config, upload_response: str = "load.xlsx") -> None:
        self.config = config
        self.upload_response = upload_response
        self.uploaded_path: Path | None = None
        self.import_calls: List[tuple[str, Optional[str], Optional[str]]] = []
        self.aggregated_calls: List[tuple[datetime, datetime, int, bool]] = []
        self.import_payload: Dict[str, Any] = {
            "success": True,
            "imported_count": 144,
            "skipped_count": 1,
            "error_message": None,
            "error_code": None,
            "messages": ["Unable to parse time (row 50): 24:00", "Imported 144 readings"],
            "elapsed_ms": 87,
        }
        self.is_valid = True
        self.aggregated_payload: Dict[str, Any] = {
            "mode": "daily",
            "buckets": [
                {"kind": "summary", "label": "01/01", "average": 120.5, "total": 5784.0, "count": 48},
                {"kind": "summary", "label": "01/02", "average": 121.0, "total": 5808.0, "count": 48},
            ],
        }
        self.closed = False

    def upload_workbook(self, path: Path) -> str:
        self.uploaded_path = path
        return self.upload_response

    def import_workbook(self, workbook: str, sheet_name=None, source=None) -> Dict[str, Any]:
        self.import_calls.append((workbook, sheet_name, source))
        return self.import_payload

    def validate_workbook(self, workbook: str, sheet_name=None) -> bool:
        return self.is_valid

    def aggregated(self, start, end, days, report_mode=False) -> Dict[str, Any]:
        self.aggregated_calls.append((start, end, days, report_mode))
        return self.aggregated_payload

    def stats(self) -> Dict[str, Any]:
        return {"count": 144, "min_date": "2024-01-01T00:00:00", "max_date": None}

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _install_stub(monkeypatch, stub: StubClient) -> None:
    def factory(config):
        stub.config = config
        return stub

    monkeypatch.setattr("cli.app.ApiClient", factory)


def test_upload_command(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)
    workbook_path = tmp_path / "load.xlsx"
    workbook_path.write_bytes(b"PK\x03\x04")

    result = runner.invoke(app, ["--base-url", "http://service:9000/", "upload", str(workbook_path)])

    assert result.exit_code == 0
    assert "Upload stored. key=load.xlsx" in result.stdout
    assert stub.uploaded_path == workbook_path
    assert stub.config.base_url == "http://service:9000"
    assert stub.closed is True


def test_import_command_renders_result(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["import", "load.xlsx", "--sheet", "Load", "--source", "meter-1"])

    assert result.exit_code == 0
    assert stub.import_calls == [("load.xlsx", "Load", "meter-1")]
    assert "Import Result" in result.stdout
    assert "imported_count: 144" in result.stdout
    assert "  - Imported 144 readings" in result.stdout
    assert stub.closed is True


def test_failed_import_exits_non_zero(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    stub.import_payload = {
        "success": False,
        "imported_count": 0,
        "skipped_count": 0,
        "error_message": "Workbook not found: missing.xlsx",
        "error_code": "workbook_not_found",
        "messages": [],
        "elapsed_ms": 1,
    }
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["import", "missing.xlsx"])

    assert result.exit_code == 1
    assert "Workbook not found: missing.xlsx (workbook_not_found)" in result.output
    assert "No messages recorded." in result.output


def test_validate_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    ok = runner.invoke(app, ["validate", "load.xlsx"])
    stub.is_valid = False
    bad = runner.invoke(app, ["validate", "load.xlsx"])

    assert ok.exit_code == 0
    assert "load.xlsx has a valid layout." in ok.stdout
    assert bad.exit_code == 1
    assert "does not have a valid layout" in bad.output


def test_summary_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["summary", "--start", "2024-01-01", "--end", "2024-01-10", "--days", "10"])

    assert result.exit_code == 0
    assert stub.aggregated_calls == [(datetime(2024, 1, 1), datetime(2024, 1, 10), 10, False)]
    assert "Buckets (daily)" in result.stdout
    assert "01/02: average=121.0 total=5808.0 count=48" in result.stdout


def test_summary_report_mode(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    stub.aggregated_payload = {"mode": "raw", "buckets": []}
    _install_stub(monkeypatch, stub)

    result = runner.invoke(
        app,
        ["summary", "--start", "2024-01-01T06:00:00", "--end", "2024-01-01 18:00:00", "--days", "1", "--report"],
    )

    assert result.exit_code == 0
    assert stub.aggregated_calls == [(datetime(2024, 1, 1, 6), datetime(2024, 1, 1, 18), 1, True)]
    assert "No readings in range." in result.stdout


def test_stats_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 0
    assert "Stored Readings" in result.stdout
    assert "count: 144" in result.stdout
    assert "max_date: N/A" in result.stdout


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://api.internal:8080/")
    monkeypatch.setenv("CLI_REQUEST_TIMEOUT", "not-a-number")

    config = load_config()

    assert config.base_url == "http://api.internal:8080"
    assert config.request_timeout == 30.0
    assert load_config(request_timeout=2.5).request_timeout == 2.5


def test_load_config_defaults(monkeypatch) -> None:
    monkeypatch.delenv("API_BASE_URL", raising=False)
    monkeypatch.delenv("CLI_REQUEST_TIMEOUT", raising=False)

    assert load_config().base_url == DEFAULT_BASE_URL
