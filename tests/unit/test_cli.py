from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

import pytest
from rich.console import Console
from typer.testing import CliRunner

from codeticket import main as cli
from codeticket.config import Settings
from codeticket.domain.models import JobRun, JobStatus
from codeticket.errors import ConcurrentRunError, LedgerWriteError
from codeticket.orchestrator import JobReport, RunState
from codeticket.pipeline.abstract import StepResult, StepStatus
from codeticket.reporter import build_report_table, print_last_run

STARTED = datetime(2026, 1, 1, tzinfo=timezone.utc)

runner = CliRunner()


class _FakeOrchestrator:
    def __init__(self, outcome: Any) -> None:
        self.outcome = outcome

    def run(self) -> JobReport:
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


class _FakeLedger:
    def __init__(self, last: Optional[JobRun] = None) -> None:
        self.last = last
        self.schema_tables: List[str] = []

    def last_run(self, job_name: str) -> Optional[JobRun]:
        return self.last

    def ensure_schema(self, import_table: str) -> None:
        self.schema_tables.append(import_table)


class _FakeContext:
    outcome: Any = None
    ledger = _FakeLedger()
    calls: List[dict] = []

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def __enter__(self) -> _FakeContext:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb

    def orchestrator(self, cancel_event=None, resume: bool = True) -> _FakeOrchestrator:
        _FakeContext.calls.append(
            {"resume": resume, "chunk_size": self.settings.chunk_size, "cancel": cancel_event}
        )
        return _FakeOrchestrator(_FakeContext.outcome)


@pytest.fixture(autouse=True)
def fake_context(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    cli.get_settings.cache_clear()
    _FakeContext.calls = []
    _FakeContext.ledger = _FakeLedger()
    monkeypatch.setattr(cli, "ImportJobContext", _FakeContext)
    monkeypatch.setattr(cli, "_install_cancel_handlers", lambda event: None)
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    yield _FakeContext
    cli.get_settings.cache_clear()


def _report(state: RunState, status: JobStatus) -> JobReport:
    run = JobRun(
        job_name="geracao-tickets",
        run_id=3,
        status=status,
        started_at=STARTED,
        watermark=400,
        rows_written=398,
        rows_skipped=2,
    )
    steps = [StepResult(step_name="import", rows_read=400, rows_written=398, rows_skipped=2)]
    if state is RunState.FAILED:
        steps[0].status = StepStatus.FAILED
        steps[0].error = RuntimeError("chunk 2 rolled back")
    return JobReport(job_name="geracao-tickets", state=state, run=run, steps=steps)


def test_run_exits_zero_on_success(fake_context) -> None:
    fake_context.outcome = _report(RunState.SUCCEEDED, JobStatus.ARCHIVE_DONE)

    result = runner.invoke(cli.app, ["run", "--chunk-size", "50"])

    assert result.exit_code == 0, result.output
    assert "Imported 398 rows, skipped 2" in result.output
    assert fake_context.calls[0]["chunk_size"] == 50
    assert fake_context.calls[0]["resume"] is True


def test_run_exits_one_on_failure_and_fresh_disables_resume(fake_context) -> None:
    fake_context.outcome = _report(RunState.FAILED, JobStatus.FAILED)

    result = runner.invoke(cli.app, ["run", "--fresh"])

    assert result.exit_code == 1
    assert fake_context.calls[0]["resume"] is False


def test_run_exit_codes_for_concurrency_and_ledger_failures(fake_context) -> None:
    fake_context.outcome = ConcurrentRunError("geracao-tickets", "job 'geracao-tickets'")
    assert runner.invoke(cli.app, ["run"]).exit_code == 2

    fake_context.outcome = LedgerWriteError("database gone")
    assert runner.invoke(cli.app, ["run"]).exit_code == 3


def test_invalid_override_is_reported_as_configuration_error(fake_context) -> None:
    result = runner.invoke(cli.app, ["run", "--chunk-size", "0"])

    assert result.exit_code != 0
    assert fake_context.calls == []


def test_status_and_init_db(fake_context) -> None:
    fake_context.ledger = _FakeLedger(
        JobRun(job_name="geracao-tickets", run_id=1, status=JobStatus.FAILED, started_at=STARTED)
    )

    status = runner.invoke(cli.app, ["status"])
    init = runner.invoke(cli.app, ["init-db"])

    assert status.exit_code == 0, status.output
    assert "FAILED" in status.output
    assert init.exit_code == 0, init.output
    assert fake_context.ledger.schema_tables == ["importacao"]


def test_report_table_shows_resume_point_on_failure() -> None:
    console = Console(record=True, width=200)

    console.print(build_report_table(_report(RunState.FAILED, JobStatus.FAILED)))
    print_last_run("geracao-tickets", None, console=console)

    text = console.export_text()
    assert "Resume point: run #3 at step 'import', row 400" in text
    assert "No runs recorded" in text
