"""
Domain models for the codeticket import job.

Defines the imported record schema (aligned with the `importacao` table), the
job run bookkeeping kept by the execution ledger, and the small value types
that flow between reader, mapper, writer and steps.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, Field


class ImportRecord(BaseModel):
    """
    Representation of a single row in the `importacao` table.
    """

    tax_id: str = Field(..., min_length=1, description="Customer tax id (CPF), unvalidated.")
    customer_name: str = Field(..., description="Customer name.")
    birth_date: date = Field(..., description="Customer birth date.")
    event_name: str = Field(..., description="Event the ticket is for.")
    event_date: date = Field(..., description="Event date.")
    ticket_type: str = Field(..., description="Ticket type, e.g. 'vip'.")
    amount: Decimal = Field(..., ge=0, description="Ticket price.")
    admin_fee: Optional[Decimal] = Field(None, ge=0, description="Derived administration fee.")
    imported_at: Optional[datetime] = Field(None, description="Set when the chunk commits.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }


class JobStatus(str, Enum):
    STARTING = "STARTING"
    IMPORT_IN_PROGRESS = "IMPORT_IN_PROGRESS"
    IMPORT_DONE = "IMPORT_DONE"
    ARCHIVE_DONE = "ARCHIVE_DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.ARCHIVE_DONE, JobStatus.FAILED)

    def can_transition_to(self, target: "JobStatus") -> bool:
        """Forward-only progress; FAILED is reachable from any non-terminal state."""
        if self.is_terminal:
            return False
        if target is JobStatus.FAILED:
            return True
        return _STATUS_RANK[target] > _STATUS_RANK[self]


_STATUS_RANK = {
    JobStatus.STARTING: 0,
    JobStatus.IMPORT_IN_PROGRESS: 1,
    JobStatus.IMPORT_DONE: 2,
    JobStatus.ARCHIVE_DONE: 3,
}


class StepProgress(BaseModel):
    """
    Restart checkpoint committed together with each chunk.

    `watermark` counts source rows consumed through the last committed chunk,
    including rows skipped for mapping errors.
    """

    watermark: int = Field(0, ge=0)
    rows_written: int = Field(0, ge=0)
    rows_skipped: int = Field(0, ge=0)

    model_config = {"frozen": True}


class SourceFile(BaseModel):
    """
    A file under the input directory.

    `processed` turns true once the archival step has moved the file out of the
    input location.
    """

    path: Path
    processed: bool = False

    model_config = {"frozen": True}


class JobRun(BaseModel):
    """
    One execution attempt of a job, as recorded by the execution ledger.

    `source_files` is the manifest discovered when the run started (or inherited
    from the run it resumes). The import step reads exactly those files, in that
    order, and the archival step moves exactly those files.
    """

    job_name: str
    run_id: int = Field(..., ge=1)
    status: JobStatus = JobStatus.STARTING
    started_at: datetime
    finished_at: Optional[datetime] = None
    watermark: int = Field(0, ge=0)
    rows_written: int = Field(0, ge=0)
    rows_skipped: int = Field(0, ge=0)
    import_completed: bool = False
    resumed_from: Optional[int] = None
    exit_message: Optional[str] = None
    source_files: Tuple[SourceFile, ...] = ()

    model_config = {"frozen": True}

    @property
    def progress(self) -> StepProgress:
        return StepProgress(
            watermark=self.watermark,
            rows_written=self.rows_written,
            rows_skipped=self.rows_skipped,
        )

    @property
    def is_resumable(self) -> bool:
        """A run that never reached ARCHIVE_DONE left work behind."""
        return self.status is not JobStatus.ARCHIVE_DONE

    @property
    def step_reached(self) -> str:
        if self.status is JobStatus.ARCHIVE_DONE:
            return "archive"
        return "archive" if self.import_completed else "import"


class RawRow(BaseModel):
    """
    One counted (non-comment, non-blank) line of the input.

    `error` carries the parser message for a malformed line; `fields` is empty
    in that case.
    """

    position: int = Field(..., ge=0)
    source: str
    line_number: int = Field(..., ge=1)
    fields: Tuple[str, ...] = ()
    error: Optional[str] = None

    model_config = {"frozen": True}


__all__ = [
    "ImportRecord",
    "JobRun",
    "JobStatus",
    "RawRow",
    "SourceFile",
    "StepProgress",
]
