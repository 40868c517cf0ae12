"""
Archival tasklet: move imported source files out of the input location.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import List

from codeticket.domain.models import JobRun, SourceFile
from codeticket.errors import FileArchivalError
from codeticket.pipeline.abstract import ExecutionLedger, StepResult, Tasklet
from codeticket.utils.logging import get_logger

log = get_logger(__name__)


class ArchiveFilesTasklet(Tasklet):
    """
    Move the files recorded on the run into `archive_dir`.

    Only the run's manifest is archived; files that arrived in the input
    directory after the run started stay there for the next run. Each move is
    recorded on the run as soon as it happens, so a resumed archival skips the
    files already moved. A manifest file that is gone from the input location
    but present in the archive was moved by an earlier attempt and counts as
    processed.

    The archive directory is created on demand. A file that cannot be moved,
    including one whose name already exists in the archive, fails the step and
    is named in the error; nothing is overwritten. An empty manifest succeeds
    with zero moves.
    """

    name = "archive"

    def __init__(self, ledger: ExecutionLedger, archive_dir: Path) -> None:
        self.ledger = ledger
        self.archive_dir = Path(archive_dir)

    def execute(self, run: JobRun, contribution: StepResult) -> None:
        try:
            self.archive_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FileArchivalError(self.archive_dir, f"cannot create archive directory: {exc}") from exc

        manifest: List[SourceFile] = list(run.source_files)
        for index, source_file in enumerate(manifest):
            if source_file.processed:
                continue
            destination = self.archive_dir / source_file.path.name
            if source_file.path.exists():
                self._move(source_file.path, destination)
                contribution.files_moved.append(destination)
                log.info(
                    "File archived",
                    extra={
                        "run_id": run.run_id,
                        "source": str(source_file.path),
                        "destination": str(destination),
                    },
                )
            elif destination.exists():
                log.warning(
                    "File already in the archive, marking processed",
                    extra={"run_id": run.run_id, "source": str(source_file.path)},
                )
            else:
                raise FileArchivalError(
                    source_file.path, "file is missing from both the input and the archive"
                )
            manifest[index] = source_file.model_copy(update={"processed": True})
            self.ledger.record_source_files(run, manifest)

    @staticmethod
    def _move(source: Path, destination: Path) -> None:
        if destination.exists():
            raise FileArchivalError(source, f"destination '{destination}' already exists")
        try:
            shutil.move(str(source), str(destination))
        except OSError as exc:
            raise FileArchivalError(source, str(exc)) from exc


__all__ = ["ArchiveFilesTasklet"]
