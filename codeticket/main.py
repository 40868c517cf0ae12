from __future__ import annotations

import signal
import sys
import threading
from typing import Any, Dict, Optional

import typer
from pydantic import ValidationError

from codeticket.config import Settings, get_settings
from codeticket.errors import CodeticketConfigError, ConcurrentRunError, LedgerWriteError
from codeticket.orchestrator import EXIT_CONCURRENT_RUN, EXIT_FAILED, EXIT_LEDGER_FAILURE
from codeticket.reporter import print_last_run, print_report
from codeticket.utils.logging import configure_logging
from codeticket.wiring import ImportJobContext, input_location

app = typer.Typer(help="Restartable import of ticket files into PostgreSQL.")


def _load_settings(overrides: Optional[Dict[str, Any]] = None) -> Settings:
    try:
        settings = get_settings()
    except ValidationError as exc:
        raise CodeticketConfigError(f"Invalid configuration:\n{exc}") from exc
    if overrides:
        updates = {key: value for key, value in overrides.items() if value is not None}
        if updates:
            try:
                settings = Settings.model_validate({**settings.model_dump(), **updates})
            except ValidationError as exc:
                raise CodeticketConfigError(f"Invalid configuration:\n{exc}") from exc
    return settings


def _settings_or_exit(overrides: Optional[Dict[str, Any]] = None) -> Settings:
    try:
        return _load_settings(overrides)
    except CodeticketConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=EXIT_FAILED) from exc


def _install_cancel_handlers(cancel_event: threading.Event) -> None:
    """Turn SIGINT/SIGTERM into a cancellation request honoured at the next chunk boundary."""

    def _handler(signum: int, frame: Any) -> None:
        if cancel_event.is_set():
            raise KeyboardInterrupt
        typer.echo(
            f"Received {signal.Signals(signum).name}; stopping after the current chunk.", err=True
        )
        cancel_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = _settings_or_exit()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"job={settings.job_name} table={settings.import_table}"
    )
    typer.echo(
        f"input={settings.source_location} pattern={settings.file_pattern} "
        f"archive={settings.archive_dir}"
    )
    typer.echo(
        f"chunk={settings.chunk_size} threshold={settings.row_error_threshold} "
        f"retries={settings.chunk_retry_attempts} malformed={settings.malformed_line_policy}"
    )


@app.command()
def run(
    fresh: bool = typer.Option(
        False,
        "--fresh",
        help="Start from row 0 instead of resuming the previous unfinished run.",
    ),
    chunk_size: Optional[int] = typer.Option(
        None,
        "--chunk-size",
        "-c",
        min=1,
        help="Override rows per transaction (default from settings).",
    ),
    threshold: Optional[int] = typer.Option(
        None,
        "--threshold",
        "-t",
        min=0,
        help="Override the number of row errors tolerated before the step fails.",
    ),
    json_logs: Optional[bool] = typer.Option(
        None,
        "--json-logs/--no-json-logs",
        help="Emit JSON log lines (default from settings).",
    ),
) -> None:
    """
    Start or resume the import job, then archive the imported files.
    """
    settings = _settings_or_exit(
        {"chunk_size": chunk_size, "row_error_threshold": threshold, "json_logs": json_logs}
    )
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)

    cancel_event = threading.Event()
    _install_cancel_handlers(cancel_event)

    typer.echo(
        f"Running job='{settings.job_name}' on {input_location(settings)} "
        f"(chunk={settings.chunk_size}, threshold={settings.row_error_threshold}, "
        f"resume={'no' if fresh else 'yes'})."
    )
    try:
        with ImportJobContext(settings) as ctx:
            report = ctx.orchestrator(cancel_event=cancel_event, resume=not fresh).run()
    except ConcurrentRunError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=EXIT_CONCURRENT_RUN) from exc
    except LedgerWriteError as exc:
        typer.echo(f"Ledger failure, run state is unknown: {exc}", err=True)
        raise typer.Exit(code=EXIT_LEDGER_FAILURE) from exc

    print_report(report)
    typer.echo(
        f"Imported {report.rows_imported} rows, skipped {report.rows_skipped} "
        f"({report.state.value})."
    )
    raise typer.Exit(code=report.exit_code)


@app.command()
def status() -> None:
    """
    Show the last recorded run of the job and where the next run resumes.
    """
    settings = _settings_or_exit()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)
    try:
        with ImportJobContext(settings) as ctx:
            last = ctx.ledger.last_run(settings.job_name)
    except LedgerWriteError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=EXIT_LEDGER_FAILURE) from exc
    print_last_run(settings.job_name, last)


@app.command("init-db")
def init_db() -> None:
    """
    Create the execution ledger and import tables if they do not exist.
    """
    settings = _settings_or_exit()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)
    try:
        with ImportJobContext(settings) as ctx:
            ctx.ledger.ensure_schema(settings.import_table)
    except LedgerWriteError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=EXIT_LEDGER_FAILURE) from exc
    typer.echo(f"Schema ready (import table '{settings.import_table}').")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
