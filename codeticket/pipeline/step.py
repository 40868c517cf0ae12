"""
Step executors: the chunk-oriented import step and the single-action tasklet step.

Both drive their body to a terminal StepResult (COMPLETED or FAILED), profile
it, and log its lifecycle. A LedgerWriteError is never turned into a failed
step: when run state cannot be persisted it propagates to the orchestrator.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import closing
from itertools import islice
from typing import List, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from codeticket.domain.models import ImportRecord, JobRun, RawRow, StepProgress
from codeticket.errors import (
    ChunkWriteError,
    LedgerWriteError,
    RowErrorThresholdExceeded,
    RowMappingError,
    RunCancelledError,
)
from codeticket.pipeline.abstract import (
    Chunk,
    ChunkAck,
    ChunkSink,
    RecordProcessor,
    RowMapper,
    RowSource,
    StepResult,
    StepStatus,
    Tasklet,
)
from codeticket.utils.logging import get_logger
from codeticket.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)

# Row errors kept on the StepResult for reporting; all of them are logged.
ROW_ERROR_SAMPLE_SIZE = 20


def _is_transient_write_error(exc: BaseException) -> bool:
    return isinstance(exc, ChunkWriteError) and exc.transient


class _ProfiledStep(ABC):
    """Shared execute() template: profile, log, and fold failures into the result."""

    name: str

    @abstractmethod
    def _body(self, run: JobRun, result: StepResult) -> None:
        """Do the step's work, updating `result`; raise to fail the step."""

    def _new_result(self, run: JobRun) -> StepResult:
        return StepResult(step_name=self.name)

    def execute(self, run: JobRun) -> StepResult:
        result = self._new_result(run)
        log.info(
            f"[STEP START] {self.name}",
            extra={"step": self.name, "job_name": run.job_name, "run_id": run.run_id},
        )
        with profile_block(self.name) as stats:
            try:
                self._body(run, result)
                log.info(
                    f"[STEP SUCCESS] {self.name}",
                    extra={
                        "step": self.name,
                        "rows_read": result.rows_read,
                        "rows_written": result.rows_written,
                        "rows_skipped": result.rows_skipped,
                        "files_moved": len(result.files_moved),
                    },
                )
            except LedgerWriteError:
                raise
            except Exception as exc:  # noqa: BLE001 - a failed step is reported, not raised
                result.status = StepStatus.FAILED
                result.error = exc
                log.exception(
                    f"[STEP FAILED] {self.name}",
                    extra={"step": self.name, "watermark": result.watermark},
                )
        _apply_stats(result, stats)
        return result


def _apply_stats(result: StepResult, stats: ProfileStats) -> None:
    result.duration_seconds = stats.duration_seconds
    result.peak_rss_bytes = stats.peak_rss_bytes
    result.cpu_percent = stats.cpu_percent


class ChunkOrientedStep(_ProfiledStep):
    """
    Read → map → process → write loop committing `chunk_size` source rows per
    transaction.

    A chunk is formed from up to `chunk_size` consecutive source rows; rows
    that fail mapping are skipped (and counted) until their total exceeds
    `row_error_threshold`, at which point the step fails before writing the
    current chunk. Transient write errors are retried with exponential backoff.
    Cancellation is honoured only between chunks.
    """

    def __init__(
        self,
        source: RowSource,
        mapper: RowMapper,
        sink: ChunkSink,
        processor: Optional[RecordProcessor] = None,
        chunk_size: int = 200,
        row_error_threshold: int = 0,
        retry_attempts: int = 3,
        retry_wait: Optional[wait_base] = None,
        cancel_event: Optional[threading.Event] = None,
        name: str = "import",
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.name = name
        self.source = source
        self.mapper = mapper
        self.sink = sink
        self.processor = processor
        self.chunk_size = chunk_size
        self.row_error_threshold = row_error_threshold
        self.retry_attempts = retry_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=10)
        self.cancel_event = cancel_event or threading.Event()

    def _new_result(self, run: JobRun) -> StepResult:
        return StepResult(
            step_name=self.name,
            rows_written=run.rows_written,
            rows_skipped=run.rows_skipped,
            watermark=run.watermark,
        )

    def _body(self, run: JobRun, result: StepResult) -> None:
        if run.watermark:
            log.info(
                f"[STEP RESUME] {self.name} from row {run.watermark}",
                extra={"step": self.name, "watermark": run.watermark},
            )
        chunk_index = 0
        with closing(self.source.rows(start_at=run.watermark, files=run.source_files)) as rows:
            while True:
                if self.cancel_event.is_set():
                    raise RunCancelledError(
                        f"Step '{self.name}' cancelled at row {result.watermark}"
                    )
                batch: List[RawRow] = list(islice(rows, self.chunk_size))
                if not batch:
                    break
                records = self._transform(batch, result)
                chunk = Chunk(
                    run=run,
                    index=chunk_index,
                    records=records,
                    start_cursor=batch[0].position,
                    end_cursor=batch[-1].position + 1,
                    progress=StepProgress(
                        watermark=batch[-1].position + 1,
                        rows_written=result.rows_written + len(records),
                        rows_skipped=result.rows_skipped,
                    ),
                )
                ack = self._write(chunk)
                result.rows_written = chunk.progress.rows_written
                result.watermark = ack.watermark
                result.chunks_committed += 1
                log.info(
                    f"[CHUNK COMMITTED] {self.name} #{chunk.index}",
                    extra={
                        "step": self.name,
                        "chunk": chunk.index,
                        "rows": ack.rows_written,
                        "watermark": ack.watermark,
                    },
                )
                chunk_index += 1

    def _transform(self, batch: List[RawRow], result: StepResult) -> List[ImportRecord]:
        records: List[ImportRecord] = []
        for row in batch:
            result.rows_read += 1
            try:
                record = self.mapper.map(row)
                if self.processor is not None:
                    record = self.processor.process(record)
            except RowMappingError as exc:
                result.rows_skipped += 1
                if len(result.row_errors) < ROW_ERROR_SAMPLE_SIZE:
                    result.row_errors.append(exc)
                log.warning(
                    f"[ROW SKIPPED] {exc}",
                    extra={"step": self.name, "position": exc.position, "kind": exc.kind.value},
                )
                if result.rows_skipped > self.row_error_threshold:
                    raise RowErrorThresholdExceeded(
                        result.rows_skipped, self.row_error_threshold
                    ) from exc
                continue
            records.append(record)
        return records

    def _write(self, chunk: Chunk) -> ChunkAck:
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_transient_write_error),
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(self.sink.write_chunk, chunk)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            f"[CHUNK RETRY] {self.name} attempt {retry_state.attempt_number} failed",
            extra={"step": self.name, "error": str(exc)},
        )


class TaskletStep(_ProfiledStep):
    """Run a single Tasklet as a step."""

    def __init__(self, tasklet: Tasklet, name: Optional[str] = None) -> None:
        self.tasklet = tasklet
        self.name = name or tasklet.name

    def _body(self, run: JobRun, result: StepResult) -> None:
        self.tasklet.execute(run, result)


__all__ = ["ChunkOrientedStep", "ROW_ERROR_SAMPLE_SIZE", "TaskletStep"]
