"""
Job orchestrator: sequences the import step and the archival step of one run.

Usage (example from wiring code):
    from codeticket.orchestrator import JobOrchestrator

    orchestrator = JobOrchestrator(
        job_name="geracao-tickets",
        ledger=ledger,
        source=source,
        import_step=import_step,
        archive_step=archive_step,
        input_dir=Path("files"),
    )
    report = orchestrator.run()
    print(report.state, report.rows_imported, report.rows_skipped)

Restart rules:
- a run that never reached ARCHIVE_DONE is resumed by the next invocation;
- a resumed run whose import completed goes straight to the archival step;
- otherwise the import resumes at the committed watermark;
- a run works on the files discovered when it was first started, and a resumed
  run inherits that manifest; files arriving later wait for the next run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from codeticket.domain.models import JobRun, JobStatus, SourceFile
from codeticket.errors import ConcurrentRunError, LedgerWriteError
from codeticket.pipeline.abstract import ExecutionLedger, RowSource, Step, StepResult
from codeticket.utils.logging import get_logger

log = get_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_CONCURRENT_RUN = 2
EXIT_LEDGER_FAILURE = 3


class RunState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass
class JobReport:
    """
    What one invocation did: final run state, per-step results, resume point.
    """

    job_name: str
    state: RunState = RunState.NOT_STARTED
    run: Optional[JobRun] = None
    steps: List[StepResult] = field(default_factory=list)
    skipped: bool = False

    @property
    def rows_imported(self) -> int:
        return self.run.rows_written if self.run else 0

    @property
    def rows_skipped(self) -> int:
        return self.run.rows_skipped if self.run else 0

    @property
    def exit_code(self) -> int:
        return EXIT_SUCCESS if self.state is RunState.SUCCEEDED else EXIT_FAILED

    @property
    def resume_point(self) -> Optional[Dict[str, Any]]:
        """Step reached and row watermark, surfaced when the run failed."""
        if self.state is not RunState.FAILED or self.run is None:
            return None
        return {
            "run_id": self.run.run_id,
            "step": self.run.step_reached,
            "watermark": self.run.watermark,
        }


class JobOrchestrator:
    """
    Run the import step then the archival step under exclusive import rights.

    Parameters
    ----------
    job_name : str
        Ledger identity of the job.
    ledger : ExecutionLedger
        Run bookkeeping and import-rights lock.
    source : RowSource
        Discovers the input files a fresh run records as its manifest.
    import_step : Step
        Chunk-oriented import step.
    archive_step : Step
        Tasklet step moving imported files to the archive.
    input_dir : Path
        Directory whose import rights the run holds.
    resume : bool
        Resume the previous unfinished run instead of starting from row 0.
    skip_when_idle : bool
        Create no run at all when there is nothing to resume and no input.
    """

    def __init__(
        self,
        job_name: str,
        ledger: ExecutionLedger,
        source: RowSource,
        import_step: Step,
        archive_step: Step,
        input_dir: Path,
        resume: bool = True,
        skip_when_idle: bool = True,
    ) -> None:
        self.job_name = job_name
        self.ledger = ledger
        self.source = source
        self.import_step = import_step
        self.archive_step = archive_step
        self.input_dir = Path(input_dir)
        self.resume = resume
        self.skip_when_idle = skip_when_idle

    def run(self) -> JobReport:
        """
        Execute the job once.

        Raises
        ------
        ConcurrentRunError
            Another live run holds the job or its input directory.
        LedgerWriteError
            Run state could not be persisted; the run status cannot be trusted.
        """
        report = JobReport(job_name=self.job_name)
        log.info(f"{'=' * 60}")
        log.info(f"[JOB] {self.job_name}", extra={"job_name": self.job_name})
        log.info(f"{'=' * 60}")

        try:
            with self.ledger.exclusive_run(self.job_name, self.input_dir):
                self._run_locked(report)
        except ConcurrentRunError:
            log.error(f"[JOB REJECTED] {self.job_name}: another run is active")
            raise
        except LedgerWriteError:
            log.critical(f"[JOB ABORTED] {self.job_name}: ledger write failed", exc_info=True)
            raise

        log.info(
            f"[JOB {report.state.value}] {self.job_name}",
            extra={
                "job_name": self.job_name,
                "run_id": report.run.run_id if report.run else None,
                "rows_imported": report.rows_imported,
                "rows_skipped": report.rows_skipped,
                "skipped": report.skipped,
            },
        )
        return report

    def _run_locked(self, report: JobReport) -> None:
        previous = self.ledger.last_run(self.job_name)
        if previous is not None and not previous.status.is_terminal:
            # We hold the import rights, so nobody is still driving this run.
            log.warning(
                f"[RUN ABANDONED] {self.job_name}#{previous.run_id} left in {previous.status.value}",
                extra={"run_id": previous.run_id, "watermark": previous.watermark},
            )
            previous = self.ledger.record_status(
                previous, JobStatus.FAILED, "abandoned: process exited before finishing"
            )

        resume_from = previous if previous is not None and previous.is_resumable and self.resume else None
        source_files = [] if resume_from is not None else self._discover()
        if resume_from is None and self.skip_when_idle and not source_files:
            log.info(
                f"[JOB SKIPPED] {self.job_name}: no input files and nothing to resume",
                extra={"input_dir": str(self.input_dir)},
            )
            report.state = RunState.SUCCEEDED
            report.skipped = True
            return

        run = self.ledger.start_run(
            self.job_name, resumed_from=resume_from, source_files=source_files
        )
        report.run = run
        report.state = RunState.RUNNING
        if resume_from is not None:
            log.info(
                f"[RUN RESUMED] {self.job_name}#{run.run_id} from #{resume_from.run_id}",
                extra={"step": run.step_reached, "watermark": run.watermark},
            )

        if run.import_completed:
            log.info(f"[STEP SKIPPED] {self.import_step.name}: already completed")
            run = self.ledger.record_status(run, JobStatus.IMPORT_DONE)
        else:
            run = self.ledger.record_status(run, JobStatus.IMPORT_IN_PROGRESS)
            report.run = run
            import_result = self.import_step.execute(run)
            report.steps.append(import_result)
            if not import_result.succeeded:
                report.run = self._fail(run, import_result)
                report.state = RunState.FAILED
                return
            run = self.ledger.record_status(run, JobStatus.IMPORT_DONE)
        report.run = run

        archive_result = self.archive_step.execute(run)
        report.steps.append(archive_result)
        if not archive_result.succeeded:
            report.run = self._fail(run, archive_result)
            report.state = RunState.FAILED
            return

        report.run = self.ledger.record_status(run, JobStatus.ARCHIVE_DONE)
        report.state = RunState.SUCCEEDED

    def _discover(self) -> List[SourceFile]:
        return [
            source_file.model_copy(update={"path": source_file.path.resolve()})
            for source_file in self.source.discover()
        ]

    def _fail(self, run: JobRun, result: StepResult) -> JobRun:
        cause = f"{result.step_name}: {result.error}" if result.error else result.step_name
        failed = self.ledger.record_status(run, JobStatus.FAILED, cause)
        log.error(
            f"[RUN FAILED] {self.job_name}#{failed.run_id} at step '{result.step_name}'",
            extra={
                "run_id": failed.run_id,
                "step": failed.step_reached,
                "watermark": failed.watermark,
                "cause": cause,
            },
        )
        return failed


__all__ = [
    "EXIT_CONCURRENT_RUN",
    "EXIT_FAILED",
    "EXIT_LEDGER_FAILURE",
    "EXIT_SUCCESS",
    "JobOrchestrator",
    "JobReport",
    "RunState",
]
