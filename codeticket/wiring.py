"""
Explicit composition of the import job from Settings.

Every component is built with its constructor here; nothing is resolved by
type at runtime. `ImportJobContext` owns the connection pool for the lifetime
of one CLI invocation.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

from psycopg_pool import ConnectionPool

from codeticket.config import Settings
from codeticket.infrastructure.db_factory import (
    PoolManager,
    build_dsn,
    get_sync_connection,
    get_sync_pool,
)
from codeticket.infrastructure.ledger import PostgresExecutionLedger
from codeticket.orchestrator import JobOrchestrator
from codeticket.pipeline.archiver import ArchiveFilesTasklet
from codeticket.pipeline.mapper import ImportRecordMapper
from codeticket.pipeline.processor import AdminFeeProcessor
from codeticket.pipeline.reader import DelimitedFileSource
from codeticket.pipeline.step import ChunkOrientedStep, TaskletStep
from codeticket.pipeline.writer import PostgresChunkWriter


def input_location(settings: Settings) -> Path:
    """Directory whose import rights a run must hold."""
    if settings.source_file is not None:
        return settings.source_file.parent
    return settings.input_dir


def build_source(settings: Settings) -> DelimitedFileSource:
    return DelimitedFileSource(
        location=settings.source_location,
        pattern=settings.file_pattern,
        delimiter=settings.delimiter,
        comment_marker=settings.comment_marker,
        encoding=settings.file_encoding,
        malformed_line_policy=settings.malformed_line_policy,
    )


def build_ledger(settings: Settings, pool: ConnectionPool) -> PostgresExecutionLedger:
    dsn = build_dsn(settings)
    return PostgresExecutionLedger(pool, connect=lambda: get_sync_connection(dsn, autocommit=True))


def build_orchestrator(
    settings: Settings,
    pool: ConnectionPool,
    ledger: PostgresExecutionLedger,
    cancel_event: Optional[threading.Event] = None,
    resume: bool = True,
) -> JobOrchestrator:
    source = build_source(settings)
    writer = PostgresChunkWriter(
        pool,
        ledger,
        chunk_size=settings.chunk_size,
        table=settings.import_table,
        statement_timeout_ms=settings.db_statement_timeout_ms,
    )
    import_step = ChunkOrientedStep(
        source=source,
        mapper=ImportRecordMapper(date_format=settings.date_format),
        processor=AdminFeeProcessor(
            default_fee=settings.admin_fee_default,
            fees_by_ticket_type=settings.admin_fee_by_ticket_type,
        ),
        sink=writer,
        chunk_size=settings.chunk_size,
        row_error_threshold=settings.row_error_threshold,
        retry_attempts=settings.chunk_retry_attempts,
        cancel_event=cancel_event,
    )
    archive_step = TaskletStep(ArchiveFilesTasklet(ledger, settings.archive_dir))
    return JobOrchestrator(
        job_name=settings.job_name,
        ledger=ledger,
        source=source,
        import_step=import_step,
        archive_step=archive_step,
        input_dir=input_location(settings),
        resume=resume,
        skip_when_idle=settings.skip_when_idle,
    )


class ImportJobContext:
    """
    Own the pool and ledger for one invocation.

    Example
    -------
        with ImportJobContext(settings) as ctx:
            report = ctx.orchestrator(cancel_event=event).run()
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.pool: Optional[ConnectionPool] = None
        self.ledger: Optional[PostgresExecutionLedger] = None

    def __enter__(self) -> "ImportJobContext":
        self.pool = get_sync_pool(self.settings)
        self.ledger = build_ledger(self.settings, self.pool)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        PoolManager().close_all()
        self.pool = None

    def orchestrator(
        self, cancel_event: Optional[threading.Event] = None, resume: bool = True
    ) -> JobOrchestrator:
        if self.pool is None or self.ledger is None:
            raise RuntimeError("ImportJobContext must be entered before building the job")
        return build_orchestrator(
            self.settings, self.pool, self.ledger, cancel_event=cancel_event, resume=resume
        )


__all__ = [
    "ImportJobContext",
    "build_ledger",
    "build_orchestrator",
    "build_source",
    "input_location",
]
