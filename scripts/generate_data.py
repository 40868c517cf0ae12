"""
Sample input generator for the codeticket import job.

Writes deterministic pseudo-random ticket files in the job's input format:
a `--` comment header followed by `;`-delimited rows. Malformed lines and
rows that fail field parsing can be mixed in to exercise the row error
threshold.
"""

from __future__ import annotations

import csv
import random
import sys
import time
from datetime import date, timedelta
from pathlib import Path

import typer

from codeticket.config import get_settings
from codeticket.pipeline.mapper import EXPECTED_FIELDS

app = typer.Typer(help="Generate sample ticket files for the import job.")

_FIRST_NAMES = ["Ana", "Bruno", "Carla", "Diego", "Elisa", "Fabio", "Gabriela", "Heitor"]
_LAST_NAMES = ["Silva", "Souza", "Oliveira", "Santos", "Lima", "Costa", "Pereira"]
_EVENTS = ["Rock in Rio", "Lollapalooza", "Festival de Verao", "Show da Virada"]
_TICKET_TYPES = ["vip", "pista", "camarote", "meia"]


def _random_date(rng: random.Random, start: date, end: date) -> date:
    return start + timedelta(days=rng.randint(0, (end - start).days))


def _ticket_row(rng: random.Random, date_format: str) -> list[str]:
    tax_id = "".join(str(rng.randint(0, 9)) for _ in range(11))
    birth = _random_date(rng, date(1950, 1, 1), date(2006, 12, 31))
    event_day = _random_date(rng, date(2024, 1, 1), date(2026, 12, 31))
    amount = f"{rng.uniform(50, 1500):.2f}".replace(".", ",")
    return [
        tax_id,
        f"{rng.choice(_FIRST_NAMES)} {rng.choice(_LAST_NAMES)}",
        birth.strftime(date_format),
        rng.choice(_EVENTS),
        event_day.strftime(date_format),
        rng.choice(_TICKET_TYPES),
        amount,
    ]


def _invalid_row(rng: random.Random, date_format: str) -> list[str]:
    row = _ticket_row(rng, date_format)
    # Unparseable birth date or a missing column.
    if rng.random() < 0.5:
        row[2] = "31/02/abc"
    else:
        row = row[:-1]
    return row


def _generate_ticket_file(
    path: Path,
    rows: int,
    seed: int,
    invalid_rows: int = 0,
    malformed_rows: int = 0,
    delimiter: str = ";",
    comment_marker: str = "--",
    date_format: str = "%d/%m/%Y",
) -> int:
    """
    Write one ticket file and return the number of data lines written.

    Invalid and malformed lines are placed at seeded random positions among
    the `rows` valid ones.
    """
    rng = random.Random(seed)
    kinds = ["valid"] * rows + ["invalid"] * invalid_rows + ["malformed"] * malformed_rows
    rng.shuffle(kinds)

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as f:
        f.write(f"{comment_marker} {delimiter.join(EXPECTED_FIELDS)}\n")
        writer = csv.writer(f, delimiter=delimiter, lineterminator="\n")
        for kind in kinds:
            if kind == "valid":
                writer.writerow(_ticket_row(rng, date_format))
            elif kind == "invalid":
                writer.writerow(_invalid_row(rng, date_format))
            else:
                # An unterminated quote is rejected by the strict reader.
                f.write(f'"{rng.randint(0, 10**10)}{delimiter}"broken\n')
    return len(kinds)


@app.command()
def main(
    rows: int = typer.Option(
        1_000,
        "--rows",
        "-r",
        help="Valid rows per file.",
    ),
    files: int = typer.Option(
        1,
        "--files",
        "-f",
        min=1,
        help="Number of files to write.",
    ),
    invalid: int = typer.Option(
        0,
        "--invalid",
        help="Rows per file that fail field parsing or have the wrong arity.",
    ),
    malformed: int = typer.Option(
        0,
        "--malformed",
        help="Lines per file with broken quoting.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output directory (default: the configured INPUT_DIR).",
    ),
) -> None:
    """
    Generate ticket files ready for `codeticket run`.
    """
    settings = get_settings()
    output_dir = output or settings.input_dir
    start = time.perf_counter()
    total = 0
    for index in range(files):
        path = output_dir / f"tickets-{seed}-{index:03d}.csv"
        total += _generate_ticket_file(
            path,
            rows=rows,
            seed=seed + index,
            invalid_rows=invalid,
            malformed_rows=malformed,
            delimiter=settings.delimiter,
            comment_marker=settings.comment_marker,
            date_format=settings.date_format,
        )
        typer.echo(f"Wrote {path}")
    duration = time.perf_counter() - start
    typer.echo(f"Generated {total:,} lines in {files} file(s) in {duration:.2f}s (seed={seed}).")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
