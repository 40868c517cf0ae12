"""
Exception hierarchy for the codeticket import job.

Row-level errors are recoverable and counted against the step's error
threshold. Write and archival errors fail the step. Concurrency and ledger
errors are raised out of the orchestrator to the caller.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional


class CodeticketError(Exception):
    """Base exception for all import job failures."""


class CodeticketConfigError(CodeticketError):
    """Raised for invalid runtime configuration."""


class MappingErrorKind(str, Enum):
    ARITY_MISMATCH = "arity_mismatch"
    FIELD_PARSE_ERROR = "field_parse_error"
    MALFORMED_LINE = "malformed_line"


class RowMappingError(CodeticketError):
    """
    A single source row could not be turned into an ImportRecord.

    Attributes
    ----------
    kind : MappingErrorKind
        What went wrong with the row.
    field : str | None
        Offending field name, for field parse errors.
    cause : str
        Human-readable reason.
    position : int | None
        Global 0-based row position in the step's input.
    source : str | None
        File the row came from.
    line_number : int | None
        1-based line number within `source`.
    """

    def __init__(
        self,
        kind: MappingErrorKind,
        cause: str,
        field: Optional[str] = None,
        position: Optional[int] = None,
        source: Optional[str] = None,
        line_number: Optional[int] = None,
    ) -> None:
        self.kind = kind
        self.cause = cause
        self.field = field
        self.position = position
        self.source = source
        self.line_number = line_number
        super().__init__(self._describe())

    def _describe(self) -> str:
        where = f"{self.source}:{self.line_number}" if self.source else f"row {self.position}"
        what = f"{self.kind.value}"
        if self.field:
            what = f"{what} on '{self.field}'"
        return f"{where}: {what}: {self.cause}"


class MalformedLineError(RowMappingError):
    """Raised by the reader for a malformed line when the policy is 'abort'."""


class RowErrorThresholdExceeded(CodeticketError):
    """Raised when a step accumulates more row errors than allowed."""

    def __init__(self, errors: int, threshold: int) -> None:
        self.errors = errors
        self.threshold = threshold
        super().__init__(f"{errors} row errors exceed the threshold of {threshold}")


class ChunkWriteError(CodeticketError):
    """
    A chunk transaction was rolled back.

    `resume_cursor` is the read position of the chunk's first row; nothing from
    the chunk was committed, so re-reading from there redelivers all of it.
    """

    def __init__(self, message: str, resume_cursor: int, transient: bool = False) -> None:
        self.resume_cursor = resume_cursor
        self.transient = transient
        super().__init__(message)


class FileArchivalError(CodeticketError):
    """A processed source file could not be moved to the archive directory."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Could not archive '{path}': {reason}")


class ConcurrentRunError(CodeticketError):
    """Another live run already holds the job or its input directory."""

    def __init__(self, job_name: str, resource: str) -> None:
        self.job_name = job_name
        self.resource = resource
        super().__init__(f"Job '{job_name}' cannot start: {resource} is held by another run")


class LedgerWriteError(CodeticketError):
    """Run state could not be persisted; the run status cannot be trusted."""


class RunCancelledError(CodeticketError):
    """The run was cancelled at a chunk boundary."""


__all__ = [
    "ChunkWriteError",
    "CodeticketConfigError",
    "CodeticketError",
    "ConcurrentRunError",
    "FileArchivalError",
    "LedgerWriteError",
    "MalformedLineError",
    "MappingErrorKind",
    "RowErrorThresholdExceeded",
    "RowMappingError",
    "RunCancelledError",
]
