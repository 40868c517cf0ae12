"""
Delimited flat-file reader for the import step.

Produces a lazy, forward-only stream of RawRow from one file or every file
matching a glob pattern in a directory. Comment and blank lines are dropped
before counting, so `position` is stable across restarts and `rows(start_at=N)`
resumes exactly after the N rows a previous attempt committed. Passing the
run's recorded `files` pins positions to that file set, so files that arrive
later neither shift a resume nor get read by it.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterator, List, Literal, Optional, Sequence

from codeticket.domain.models import RawRow, SourceFile
from codeticket.errors import MalformedLineError, MappingErrorKind
from codeticket.pipeline.abstract import RowSource
from codeticket.utils.logging import get_logger

log = get_logger(__name__)

MalformedLinePolicy = Literal["report", "abort"]


class DelimitedFileSource(RowSource):
    """
    Read `;`-delimited rows (by default) from flat files.

    Files are visited in name order. Malformed lines (input the csv module
    rejects in strict mode) are yielded with `error` set under the "report"
    policy, or raise MalformedLineError under "abort".
    """

    def __init__(
        self,
        location: Path,
        pattern: str = "*.csv",
        delimiter: str = ";",
        comment_marker: str = "--",
        encoding: str = "utf-8",
        malformed_line_policy: MalformedLinePolicy = "report",
    ) -> None:
        self.location = Path(location)
        self.pattern = pattern
        self.delimiter = delimiter
        self.comment_marker = comment_marker
        self.encoding = encoding
        self.malformed_line_policy = malformed_line_policy

    def discover(self) -> List[SourceFile]:
        if self.location.is_file():
            return [SourceFile(path=self.location)]
        if not self.location.is_dir():
            return []
        return [
            SourceFile(path=path)
            for path in sorted(self.location.glob(self.pattern))
            if path.is_file()
        ]

    def rows(
        self, start_at: int = 0, files: Optional[Sequence[SourceFile]] = None
    ) -> Iterator[RawRow]:
        if start_at < 0:
            raise ValueError("start_at must be >= 0")

        targets = self.discover() if files is None else list(files)
        position = 0
        for source_file in targets:
            log.debug("Reading source file", extra={"source": str(source_file.path)})
            with source_file.path.open("r", encoding=self.encoding, newline="") as handle:
                for line_number, line in enumerate(handle, start=1):
                    text = line.rstrip("\r\n")
                    if not text.strip() or self._is_comment(text):
                        continue
                    if position < start_at:
                        position += 1
                        continue
                    yield self._parse(text, position, str(source_file.path), line_number)
                    position += 1

    def _is_comment(self, text: str) -> bool:
        return bool(self.comment_marker) and text.startswith(self.comment_marker)

    def _parse(self, text: str, position: int, source: str, line_number: int) -> RawRow:
        try:
            fields = next(csv.reader([text], delimiter=self.delimiter, strict=True))
        except csv.Error as exc:
            if self.malformed_line_policy == "abort":
                raise MalformedLineError(
                    MappingErrorKind.MALFORMED_LINE,
                    str(exc),
                    position=position,
                    source=source,
                    line_number=line_number,
                ) from exc
            return RawRow(
                position=position,
                source=source,
                line_number=line_number,
                error=str(exc),
            )
        return RawRow(
            position=position,
            source=source,
            line_number=line_number,
            fields=tuple(fields),
        )


__all__ = ["DelimitedFileSource", "MalformedLinePolicy"]
