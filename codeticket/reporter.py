from __future__ import annotations

from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

from codeticket.domain.models import JobRun
from codeticket.orchestrator import JobReport, RunState

_STATE_STYLES = {
    RunState.SUCCEEDED: "bold green",
    RunState.FAILED: "bold red",
    RunState.RUNNING: "yellow",
    RunState.NOT_STARTED: "dim",
}


def _format_mb(value: Optional[int]) -> str:
    if not value:
        return "N/A"
    return f"{value / (1024 * 1024):.2f}"


def build_report_table(report: JobReport) -> Table:
    """
    Render one job invocation as a rich table, one row per executed step.
    """
    style = _STATE_STYLES.get(report.state, "")
    run_label = f"#{report.run.run_id}" if report.run else "-"
    title = f"{report.job_name} {run_label}: [{style}]{report.state.value}[/{style}]"
    caption = None
    if report.skipped:
        caption = "No input files and nothing to resume; no run was created"
    elif report.resume_point is not None:
        point = report.resume_point
        caption = (
            f"Resume point: run #{point['run_id']} at step '{point['step']}', "
            f"row {point['watermark']}"
        )

    table = Table(title=title, caption=caption, box=box.ROUNDED)
    table.add_column("Step", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Read", justify="right", style="magenta")
    table.add_column("Written", justify="right", style="magenta")
    table.add_column("Skipped", justify="right", style="red")
    table.add_column("Files", justify="right")
    table.add_column("Watermark", justify="right", style="blue")
    table.add_column("Duration (s)", justify="right", style="green")
    table.add_column("Throughput (rows/s)", justify="right", style="bold green")
    table.add_column("Peak Memory (MB)", justify="right", style="yellow")
    table.add_column("CPU %", justify="right", style="red")

    for step in report.steps:
        status = step.status.value if step.succeeded else f"[red]{step.status.value}[/red]"
        cpu = f"{step.cpu_percent:.1f}" if step.cpu_percent is not None else "N/A"
        table.add_row(
            step.step_name,
            status,
            f"{step.rows_read:,}",
            f"{step.rows_written:,}",
            f"{step.rows_skipped:,}",
            str(len(step.files_moved)),
            f"{step.watermark:,}",
            f"{step.duration_seconds:.2f}",
            f"{step.throughput_rows_per_sec:,.2f}",
            _format_mb(step.peak_rss_bytes),
            cpu,
        )
    return table


def print_report(report: JobReport, console: Optional[Console] = None) -> None:
    """Print the step table followed by the first row and step errors."""
    console = console or Console()
    console.print(build_report_table(report))
    for step in report.steps:
        for row_error in step.row_errors:
            console.print(f"[yellow]skipped[/yellow] {row_error}")
        if step.error is not None:
            console.print(f"[red]{step.step_name} failed:[/red] {step.error}")


def print_last_run(job_name: str, run: Optional[JobRun], console: Optional[Console] = None) -> None:
    """Render the ledger's latest run for a job, or a notice when it never ran."""
    console = console or Console()
    if run is None:
        console.print(f"[yellow]No runs recorded for job '{job_name}'.[/yellow]")
        return

    table = Table(title=f"{job_name} #{run.run_id}", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("Status", run.status.value)
    table.add_row("Started", run.started_at.isoformat() if run.started_at else "-")
    table.add_row("Finished", run.finished_at.isoformat() if run.finished_at else "-")
    table.add_row("Rows written", f"{run.rows_written:,}")
    table.add_row("Rows skipped", f"{run.rows_skipped:,}")
    table.add_row("Watermark", f"{run.watermark:,}")
    table.add_row("Import completed", "yes" if run.import_completed else "no")
    archived = sum(1 for source_file in run.source_files if source_file.processed)
    table.add_row("Source files", f"{len(run.source_files)} ({archived} archived)")
    if run.resumed_from is not None:
        table.add_row("Resumed from", f"#{run.resumed_from}")
    if run.exit_message:
        table.add_row("Message", run.exit_message)
    if run.is_resumable:
        table.add_row("Next run resumes at", f"step '{run.step_reached}', row {run.watermark}")
    console.print(table)


__all__ = ["build_report_table", "print_last_run", "print_report"]
