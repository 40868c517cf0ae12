"""
Capability interfaces and result contracts for the import pipeline.

Concrete readers, mappers, sinks and tasklets implement these protocols so an
alternate file format or store can be swapped in without touching the step
executor or the orchestrator.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, List, Optional, Protocol, Sequence, runtime_checkable

from codeticket.domain.models import (
    ImportRecord,
    JobRun,
    JobStatus,
    RawRow,
    SourceFile,
    StepProgress,
)
from codeticket.errors import RowMappingError


@dataclass(frozen=True)
class Chunk:
    """
    One commit unit: the mapped records of up to `chunk_size` source rows.

    `start_cursor`/`end_cursor` are read positions; `progress` is the
    checkpoint to persist atomically with the records.
    """

    run: JobRun
    index: int
    records: Sequence[ImportRecord]
    start_cursor: int
    end_cursor: int
    progress: StepProgress


@dataclass(frozen=True)
class ChunkAck:
    index: int
    rows_written: int
    watermark: int


class StepStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class StepResult:
    """
    Outcome of one step, with counters and profiler measurements.
    """

    step_name: str
    status: StepStatus = StepStatus.COMPLETED
    rows_read: int = 0
    rows_written: int = 0
    rows_skipped: int = 0
    watermark: int = 0
    chunks_committed: int = 0
    files_moved: List[Path] = field(default_factory=list)
    row_errors: List[RowMappingError] = field(default_factory=list)
    error: Optional[BaseException] = None
    duration_seconds: float = 0.0
    peak_rss_bytes: Optional[int] = None
    cpu_percent: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.status is StepStatus.COMPLETED

    @property
    def throughput_rows_per_sec(self) -> float:
        return self.rows_read / self.duration_seconds if self.duration_seconds > 0 else 0.0


@runtime_checkable
class RowSource(Protocol):
    """Lazy, forward-only, restartable sequence of raw rows."""

    def discover(self) -> List[SourceFile]:
        ...

    def rows(
        self, start_at: int = 0, files: Optional[Sequence[SourceFile]] = None
    ) -> Iterator[RawRow]:
        """
        Yield counted rows, skipping the first `start_at` of them.

        Parameters
        ----------
        start_at : int
            Resume cursor: number of rows already committed.
        files : Sequence[SourceFile] | None
            Read exactly these files in this order instead of discovering them.
        """
        ...


@runtime_checkable
class RowMapper(Protocol):
    def map(self, row: RawRow) -> ImportRecord:
        """Turn one raw row into a record or raise RowMappingError."""
        ...


@runtime_checkable
class RecordProcessor(Protocol):
    def process(self, record: ImportRecord) -> ImportRecord:
        ...


@runtime_checkable
class ChunkSink(Protocol):
    def write_chunk(self, chunk: Chunk) -> ChunkAck:
        """
        Persist every record of the chunk and its progress checkpoint in one
        transaction, or nothing at all (raising ChunkWriteError).
        """
        ...


@runtime_checkable
class Tasklet(Protocol):
    """A single non-chunked action run as a step body."""

    name: str

    def execute(self, run: JobRun, contribution: StepResult) -> None:
        """Do the work, recording counters on `contribution`; raise to fail the step."""
        ...


@runtime_checkable
class Step(Protocol):
    """One unit of a job, driven to a terminal StepResult."""

    name: str

    def execute(self, run: JobRun) -> StepResult:
        ...


@runtime_checkable
class ExecutionLedger(Protocol):
    """
    Persistent job/step run identity and status.

    Implementations must allocate run ids monotonically per job name even under
    concurrent callers, and make every status write durable before returning.
    """

    def start_run(
        self,
        job_name: str,
        resumed_from: Optional[JobRun] = None,
        source_files: Sequence[SourceFile] = (),
    ) -> JobRun:
        """Register a run; a resumed run inherits the progress and file manifest of `resumed_from`."""
        ...

    def record_status(
        self, run: JobRun, status: JobStatus, message: Optional[str] = None
    ) -> JobRun:
        ...

    def last_run(self, job_name: str) -> Optional[JobRun]:
        ...

    def record_source_files(self, run: JobRun, source_files: Sequence[SourceFile]) -> None:
        """Persist the manifest of an IMPORT_DONE run, e.g. after a file was archived."""
        ...

    def save_progress(
        self, run: JobRun, progress: StepProgress, connection: Optional[Any] = None
    ) -> None:
        ...

    def exclusive_run(self, job_name: str, input_dir: Path) -> AbstractContextManager[None]:
        """Hold import rights for the job and its input directory, or raise ConcurrentRunError."""
        ...


__all__ = [
    "Chunk",
    "ChunkAck",
    "ChunkSink",
    "ExecutionLedger",
    "RecordProcessor",
    "RowMapper",
    "RowSource",
    "Step",
    "StepResult",
    "StepStatus",
    "Tasklet",
]
