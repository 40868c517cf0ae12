"""
codeticket - restartable batch import of delimited ticket files into PostgreSQL.

The job runs two steps under exclusive import rights:

- a chunk-oriented import step reading `;`-delimited ticket files, mapping and
  enriching each row, and committing `chunk_size` rows per transaction together
  with the resume watermark;
- an archival step moving the imported files out of the input directory.

A failed or interrupted run is resumed by the next invocation from the last
committed chunk, or directly at the archival step when the import had finished.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from codeticket.config import Settings, get_settings
from codeticket.domain.models import ImportRecord, JobRun, JobStatus
from codeticket.errors import (
    CodeticketError,
    ConcurrentRunError,
    LedgerWriteError,
    RowMappingError,
)
from codeticket.orchestrator import JobOrchestrator, JobReport, RunState
from codeticket.pipeline.abstract import StepResult
from codeticket.utils.logging import configure_logging, get_logger
from codeticket.wiring import ImportJobContext, build_orchestrator

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "ImportRecord",
    "JobRun",
    "JobStatus",
    # Errors
    "CodeticketError",
    "ConcurrentRunError",
    "LedgerWriteError",
    "RowMappingError",
    # Orchestration
    "ImportJobContext",
    "JobOrchestrator",
    "JobReport",
    "RunState",
    "StepResult",
    "build_orchestrator",
    # Logging
    "configure_logging",
    "get_logger",
]
