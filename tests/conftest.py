"""
Pytest configuration for the codeticket import job.

Provides fixtures for:
- In-memory fakes of the execution ledger, row source and chunk sink
- Ticket file and raw row factories
- Database connection management and settings for integration tests
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Iterator, List, Optional, Sequence

import psycopg
import pytest

from codeticket.config import Settings
from codeticket.domain.models import JobRun, JobStatus, RawRow, SourceFile, StepProgress
from codeticket.errors import ConcurrentRunError, LedgerWriteError
from codeticket.pipeline.abstract import Chunk, ChunkAck
from codeticket.utils.clock import utc_now

JOB_NAME = "geracao-tickets"
VALID_FIELDS = (
    "12345678901",
    "Ana Silva",
    "01/02/1990",
    "Rock in Rio",
    "15/09/2025",
    "vip",
    "250,00",
)


class InMemoryLedger:
    """
    ExecutionLedger fake keeping runs in a dict.

    `busy` holds resources ("job:<name>", "input_dir:<path>") owned by another
    live run; `fail_on` makes record_status raise LedgerWriteError for that status.
    """

    def __init__(self) -> None:
        self.runs: Dict[str, List[JobRun]] = {}
        self.busy: set[str] = set()
        self.fail_on: Optional[JobStatus] = None
        self.history: List[tuple[int, JobStatus]] = []
        self.progress_writes: List[StepProgress] = []
        self.lock_calls = 0

    @contextmanager
    def exclusive_run(self, job_name: str, input_dir: Path) -> Iterator[None]:
        for resource in (f"job:{job_name}", f"input_dir:{Path(input_dir).resolve()}"):
            if resource in self.busy:
                raise ConcurrentRunError(job_name, resource)
        self.lock_calls += 1
        yield

    def start_run(
        self,
        job_name: str,
        resumed_from: Optional[JobRun] = None,
        source_files: Sequence[SourceFile] = (),
    ) -> JobRun:
        runs = self.runs.setdefault(job_name, [])
        inherited = resumed_from.progress if resumed_from is not None else StepProgress()
        run = JobRun(
            job_name=job_name,
            run_id=len(runs) + 1,
            status=JobStatus.STARTING,
            started_at=utc_now(),
            watermark=inherited.watermark,
            rows_written=inherited.rows_written,
            rows_skipped=inherited.rows_skipped,
            import_completed=bool(resumed_from and resumed_from.import_completed),
            resumed_from=resumed_from.run_id if resumed_from is not None else None,
            source_files=(
                resumed_from.source_files if resumed_from is not None else tuple(source_files)
            ),
        )
        runs.append(run)
        self.history.append((run.run_id, run.status))
        return run

    def _stored(self, run: JobRun) -> JobRun:
        return self.runs[run.job_name][run.run_id - 1]

    def _replace(self, run: JobRun) -> JobRun:
        self.runs[run.job_name][run.run_id - 1] = run
        return run

    def record_status(
        self, run: JobRun, status: JobStatus, message: Optional[str] = None
    ) -> JobRun:
        if self.fail_on is status:
            raise LedgerWriteError(f"simulated failure writing {status.value}")
        stored = self._stored(run)
        if not stored.status.can_transition_to(status) or stored.status is not run.status:
            raise LedgerWriteError(f"illegal transition {stored.status.value} -> {status.value}")
        updated = stored.model_copy(
            update={
                "status": status,
                "finished_at": utc_now() if status.is_terminal else None,
                "import_completed": stored.import_completed or status is JobStatus.IMPORT_DONE,
                "exit_message": message or stored.exit_message,
            }
        )
        self.history.append((run.run_id, status))
        return self._replace(updated)

    def last_run(self, job_name: str) -> Optional[JobRun]:
        runs = self.runs.get(job_name)
        return runs[-1] if runs else None

    def record_source_files(self, run: JobRun, source_files: Sequence[SourceFile]) -> None:
        stored = self._stored(run)
        if stored.status is not JobStatus.IMPORT_DONE:
            raise LedgerWriteError("run is not archiving")
        self._replace(stored.model_copy(update={"source_files": tuple(source_files)}))

    def save_progress(
        self, run: JobRun, progress: StepProgress, connection: Optional[Any] = None
    ) -> None:
        stored = self._stored(run)
        if stored.status is not JobStatus.IMPORT_IN_PROGRESS or stored.watermark > progress.watermark:
            raise LedgerWriteError("run is not importing or the watermark moved backwards")
        self.progress_writes.append(progress)
        self._replace(
            stored.model_copy(
                update={
                    "watermark": progress.watermark,
                    "rows_written": progress.rows_written,
                    "rows_skipped": progress.rows_skipped,
                }
            )
        )

    def seed_run(self, **overrides: Any) -> JobRun:
        """Insert a run as if a previous process had left it behind."""
        runs = self.runs.setdefault(overrides.get("job_name", JOB_NAME), [])
        fields: Dict[str, Any] = {
            "job_name": JOB_NAME,
            "run_id": len(runs) + 1,
            "started_at": utc_now(),
        }
        fields.update(overrides)
        run = JobRun(**fields)
        runs.append(run)
        return run


class ListSource:
    """
    RowSource over in-memory rows; `files` is what discover() reports.

    The file set passed to rows() is recorded but does not filter the rows.
    """

    def __init__(self, rows: Sequence[RawRow], files: Sequence[Path] = ()) -> None:
        self._rows = list(rows)
        self.files = [Path(path) for path in files]
        self.start_offsets: List[int] = []
        self.requested_files: List[Optional[Sequence[SourceFile]]] = []

    def discover(self) -> List[SourceFile]:
        return [SourceFile(path=path) for path in self.files]

    def rows(
        self, start_at: int = 0, files: Optional[Sequence[SourceFile]] = None
    ) -> Iterator[RawRow]:
        self.start_offsets.append(start_at)
        self.requested_files.append(files)
        for row in self._rows:
            if row.position >= start_at:
                yield row


class RecordingSink:
    """
    ChunkSink fake committing to a list and saving progress through the ledger.

    `failures` maps a chunk index to exceptions raised, one per attempt, before
    the write succeeds.
    """

    def __init__(self, ledger: InMemoryLedger) -> None:
        self.ledger = ledger
        self.committed: List[Chunk] = []
        self.attempts: Dict[int, int] = {}
        self.failures: Dict[int, List[BaseException]] = {}

    def write_chunk(self, chunk: Chunk) -> ChunkAck:
        self.attempts[chunk.index] = self.attempts.get(chunk.index, 0) + 1
        pending = self.failures.get(chunk.index)
        if pending:
            raise pending.pop(0)
        self.ledger.save_progress(chunk.run, chunk.progress)
        self.committed.append(chunk)
        return ChunkAck(
            index=chunk.index,
            rows_written=len(chunk.records),
            watermark=chunk.progress.watermark,
        )

    @property
    def tax_ids(self) -> List[str]:
        return [record.tax_id for chunk in self.committed for record in chunk.records]


def make_row(position: int, fields: Sequence[str] = VALID_FIELDS, **overrides: Any) -> RawRow:
    values: Dict[str, Any] = {
        "position": position,
        "source": "files/tickets.csv",
        "line_number": position + 2,
        "fields": tuple(fields),
    }
    values.update(overrides)
    return RawRow(**values)


def numbered_rows(count: int, bad: Sequence[int] = ()) -> List[RawRow]:
    """Rows whose tax id is their 1-based number; positions in `bad` have a broken date."""
    rows = []
    for position in range(count):
        fields = list(VALID_FIELDS)
        fields[0] = str(position + 1)
        if position in bad:
            fields[2] = "not-a-date"
        rows.append(make_row(position, fields))
    return rows


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def sink(ledger: InMemoryLedger) -> RecordingSink:
    return RecordingSink(ledger)


@pytest.fixture
def rows_factory() -> Callable[..., List[RawRow]]:
    return numbered_rows


@pytest.fixture
def raw_row_factory() -> Callable[..., RawRow]:
    return make_row


@pytest.fixture
def list_source_factory() -> Callable[..., ListSource]:
    return ListSource


@pytest.fixture
def importing_run(ledger: InMemoryLedger) -> JobRun:
    """A freshly started run already moved to IMPORT_IN_PROGRESS."""
    run = ledger.start_run(JOB_NAME)
    return ledger.record_status(run, JobStatus.IMPORT_IN_PROGRESS)


@pytest.fixture
def ticket_file_factory(tmp_path: Path) -> Callable[..., Path]:
    """Write a ticket file under tmp_path/files and return its path."""

    def _write(name: str, lines: Sequence[str], directory: Optional[Path] = None) -> Path:
        target_dir = directory or tmp_path / "files"
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "codeticket"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()
