"""
Domain package for the codeticket import job.

Exports the record schema and the job-run bookkeeping models shared by the
pipeline, the ledger and the orchestrator. Keep this package focused on data
definitions and validation concerns.
"""

from codeticket.domain.models import (
    ImportRecord,
    JobRun,
    JobStatus,
    RawRow,
    SourceFile,
    StepProgress,
)

__all__ = [
    "ImportRecord",
    "JobRun",
    "JobStatus",
    "RawRow",
    "SourceFile",
    "StepProgress",
]
