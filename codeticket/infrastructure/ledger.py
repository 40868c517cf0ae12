"""
PostgreSQL-backed execution ledger.

Keeps one row per job run in `batch_job_run`: identity, status and the restart
checkpoint (watermark and counters) and the
manifest of source files the run discovered. Three properties hold:

- run ids are allocated as max+1 under a transaction-scoped advisory lock per
  job name, with a primary key on (job_name, run_id) as a backstop;
- every status write commits in its own transaction before the call returns,
  and is guarded by the status the caller last saw;
- import rights are session-scoped advisory locks held on a dedicated
  connection for the whole run, so a crashed process releases them with its
  session.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Sequence

import psycopg
from psycopg import Connection
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from codeticket.domain.models import JobRun, JobStatus, SourceFile, StepProgress
from codeticket.errors import ConcurrentRunError, LedgerWriteError
from codeticket.infrastructure.db_factory import get_sync_connection
from codeticket.infrastructure.schema import LEDGER_DDL, LEDGER_TABLE, import_table_ddl
from codeticket.pipeline.abstract import ExecutionLedger
from codeticket.utils.clock import utc_now
from codeticket.utils.logging import get_logger

log = get_logger(__name__)

_COLUMNS = (
    "job_name, run_id, status, started_at, finished_at, watermark, rows_written, "
    "rows_skipped, import_completed, resumed_from, exit_message, source_files"
)

_NEXT_RUN_ID_SQL = (
    f"SELECT COALESCE(MAX(run_id), 0) + 1 AS next_run_id FROM {LEDGER_TABLE} WHERE job_name = %s;"
)

_INSERT_RUN_SQL = f"""
    INSERT INTO {LEDGER_TABLE}
        (job_name, run_id, status, started_at, watermark, rows_written, rows_skipped,
         import_completed, resumed_from, source_files)
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    RETURNING {_COLUMNS};
"""

_UPDATE_STATUS_SQL = f"""
    UPDATE {LEDGER_TABLE}
       SET status = %s,
           finished_at = %s,
           import_completed = %s,
           exit_message = COALESCE(%s, exit_message)
     WHERE job_name = %s AND run_id = %s AND status = %s
    RETURNING {_COLUMNS};
"""

_SAVE_PROGRESS_SQL = f"""
    UPDATE {LEDGER_TABLE}
       SET watermark = %s, rows_written = %s, rows_skipped = %s
     WHERE job_name = %s AND run_id = %s AND watermark <= %s
       AND status = 'IMPORT_IN_PROGRESS';
"""

_SAVE_SOURCE_FILES_SQL = f"""
    UPDATE {LEDGER_TABLE}
       SET source_files = %s
     WHERE job_name = %s AND run_id = %s AND status = 'IMPORT_DONE';
"""

_LAST_RUN_SQL = f"""
    SELECT {_COLUMNS} FROM {LEDGER_TABLE}
     WHERE job_name = %s
     ORDER BY run_id DESC
     LIMIT 1;
"""


def _lock_key(kind: str, value: str) -> str:
    return f"codeticket:{kind}:{value}"


def _manifest(source_files: Sequence[SourceFile]) -> Jsonb:
    return Jsonb(
        [{"path": str(item.path), "processed": item.processed} for item in source_files]
    )


def _row_to_run(row: Dict[str, Any]) -> JobRun:
    return JobRun(
        job_name=row["job_name"],
        run_id=row["run_id"],
        status=JobStatus(row["status"]),
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        watermark=row["watermark"],
        rows_written=row["rows_written"],
        rows_skipped=row["rows_skipped"],
        import_completed=row["import_completed"],
        resumed_from=row["resumed_from"],
        exit_message=row["exit_message"],
        source_files=tuple(SourceFile(**item) for item in row["source_files"] or ()),
    )


class PostgresExecutionLedger(ExecutionLedger):
    """
    Execution ledger stored in PostgreSQL.

    Parameters
    ----------
    pool : ConnectionPool
        Pool used for run bookkeeping transactions.
    connect : Callable[[], Connection] | None
        Factory for the dedicated autocommit connection holding import rights.
    clock : Callable[[], datetime]
        Source of started_at / finished_at timestamps.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        connect: Optional[Callable[[], Connection]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._pool = pool
        self._connect = connect or (lambda: get_sync_connection(autocommit=True))
        self._clock = clock

    def ensure_schema(self, import_table: str) -> None:
        """Create the ledger and import tables if they do not exist."""
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(LEDGER_DDL)
                        cur.execute(import_table_ddl(import_table))
        except psycopg.Error as exc:
            raise LedgerWriteError(f"Could not create schema: {exc}") from exc
        log.info("Schema ensured", extra={"ledger_table": LEDGER_TABLE, "import_table": import_table})

    @contextmanager
    def exclusive_run(self, job_name: str, input_dir: Path) -> Iterator[None]:
        resources = (
            ("job", job_name),
            ("input_dir", str(Path(input_dir).resolve())),
        )
        try:
            conn = self._connect()
        except psycopg.Error as exc:
            raise LedgerWriteError(f"Could not open lock session: {exc}") from exc
        try:
            try:
                with conn.cursor() as cur:
                    for kind, value in resources:
                        cur.execute(
                            "SELECT pg_try_advisory_lock(hashtext(%s));",
                            (_lock_key(kind, value),),
                        )
                        row = cur.fetchone()
                        if not row or not row[0]:
                            raise ConcurrentRunError(job_name, f"{kind} '{value}'")
            except psycopg.Error as exc:
                raise LedgerWriteError(f"Could not acquire import rights: {exc}") from exc
            log.debug("Import rights acquired", extra={"job_name": job_name})
            yield
        finally:
            # Ending the session releases every advisory lock it holds.
            conn.close()

    def start_run(
        self,
        job_name: str,
        resumed_from: Optional[JobRun] = None,
        source_files: Sequence[SourceFile] = (),
    ) -> JobRun:
        inherited = resumed_from.progress if resumed_from is not None else StepProgress()
        manifest = resumed_from.source_files if resumed_from is not None else tuple(source_files)
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor(row_factory=dict_row) as cur:
                        cur.execute(
                            "SELECT pg_advisory_xact_lock(hashtext(%s));",
                            (_lock_key("run_id", job_name),),
                        )
                        cur.execute(_NEXT_RUN_ID_SQL, (job_name,))
                        next_run_id = cur.fetchone()["next_run_id"]
                        cur.execute(
                            _INSERT_RUN_SQL,
                            (
                                job_name,
                                next_run_id,
                                JobStatus.STARTING.value,
                                self._clock(),
                                inherited.watermark,
                                inherited.rows_written,
                                inherited.rows_skipped,
                                bool(resumed_from and resumed_from.import_completed),
                                resumed_from.run_id if resumed_from is not None else None,
                                _manifest(manifest),
                            ),
                        )
                        row = cur.fetchone()
        except psycopg.Error as exc:
            raise LedgerWriteError(f"Could not start run for '{job_name}': {exc}") from exc

        run = _row_to_run(row)
        log.info(
            "Run registered",
            extra={
                "job_name": job_name,
                "run_id": run.run_id,
                "resumed_from": run.resumed_from,
                "watermark": run.watermark,
                "source_files": len(run.source_files),
            },
        )
        return run

    def record_status(
        self, run: JobRun, status: JobStatus, message: Optional[str] = None
    ) -> JobRun:
        if not run.status.can_transition_to(status):
            raise LedgerWriteError(
                f"Illegal status transition {run.status.value} -> {status.value} "
                f"for {run.job_name}#{run.run_id}"
            )
        finished_at = self._clock() if status.is_terminal else None
        import_completed = run.import_completed or status is JobStatus.IMPORT_DONE
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor(row_factory=dict_row) as cur:
                        cur.execute(
                            _UPDATE_STATUS_SQL,
                            (
                                status.value,
                                finished_at,
                                import_completed,
                                message,
                                run.job_name,
                                run.run_id,
                                run.status.value,
                            ),
                        )
                        row = cur.fetchone()
        except psycopg.Error as exc:
            raise LedgerWriteError(
                f"Could not record {status.value} for {run.job_name}#{run.run_id}: {exc}"
            ) from exc
        if row is None:
            raise LedgerWriteError(
                f"Run {run.job_name}#{run.run_id} is no longer {run.status.value}; "
                "its status was changed by another process"
            )
        return _row_to_run(row)

    def last_run(self, job_name: str) -> Optional[JobRun]:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(_LAST_RUN_SQL, (job_name,))
                    row = cur.fetchone()
        except psycopg.Error as exc:
            raise LedgerWriteError(f"Could not read runs for '{job_name}': {exc}") from exc
        return _row_to_run(row) if row is not None else None

    def record_source_files(self, run: JobRun, source_files: Sequence[SourceFile]) -> None:
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(
                            _SAVE_SOURCE_FILES_SQL,
                            (_manifest(source_files), run.job_name, run.run_id),
                        )
                        updated = cur.rowcount
        except psycopg.Error as exc:
            raise LedgerWriteError(
                f"Could not record source files for {run.job_name}#{run.run_id}: {exc}"
            ) from exc
        if updated != 1:
            raise LedgerWriteError(
                f"Run {run.job_name}#{run.run_id} is not archiving; its source files were not recorded"
            )

    def save_progress(
        self, run: JobRun, progress: StepProgress, connection: Optional[Any] = None
    ) -> None:
        """
        Advance the restart checkpoint of an IMPORT_IN_PROGRESS run.

        With `connection`, the update joins the caller's open transaction (the
        chunk writer's) and database errors propagate unchanged so the caller
        rolls back; otherwise it commits on its own.
        """
        params = (
            progress.watermark,
            progress.rows_written,
            progress.rows_skipped,
            run.job_name,
            run.run_id,
            progress.watermark,
        )
        if connection is not None:
            self._update_progress(connection, params, run)
            return
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    self._update_progress(conn, params, run)
        except psycopg.Error as exc:
            raise LedgerWriteError(
                f"Could not save progress for {run.job_name}#{run.run_id}: {exc}"
            ) from exc

    @staticmethod
    def _update_progress(conn: Any, params: tuple, run: JobRun) -> None:
        with conn.cursor() as cur:
            cur.execute(_SAVE_PROGRESS_SQL, params)
            if cur.rowcount != 1:
                raise LedgerWriteError(
                    f"Run {run.job_name}#{run.run_id} is not importing or its watermark "
                    "moved past this checkpoint"
                )


__all__ = ["PostgresExecutionLedger"]
