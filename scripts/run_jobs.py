#!/usr/bin/env python3
"""
Command-line interface for SKU Scout jobs.

Uses typer for clean CLI with subcommands.
"""

import sys
import time
from pathlib import Path

import typer
from tqdm import tqdm

# Add project root to path so we can import skuscout
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from skuscout.contexts.jobs.ingest import IngestError
from skuscout.contexts.jobs.models import JobStatus
from skuscout.contexts.jobs.registry import InvalidTransitionError, JobNotFoundError
from skuscout.contexts.jobs.service import JobService
from skuscout.contexts.scraping.orchestration import setup_logger

app = typer.Typer(
    add_completion=False,
    help="SKU Scout batch job control",
)

STATUS_COLORS = {
    JobStatus.QUEUED.value: typer.colors.BLUE,
    JobStatus.RUNNING.value: typer.colors.CYAN,
    JobStatus.PAUSED.value: typer.colors.YELLOW,
    JobStatus.COMPLETED.value: typer.colors.GREEN,
    JobStatus.FAILED.value: typer.colors.RED,
}


def _service() -> JobService:
    setup_logger()
    return JobService.from_config()


def _fail(message: str, code: int = 1):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _follow(service: JobService, job_id: str, poll_seconds: float = 2.0) -> None:
    """Show a progress bar until the job's worker loop exits. Ctrl-C pauses the job."""
    snapshot = service.read_job(job_id)
    with tqdm(total=snapshot["job"]["total_items"], initial=snapshot["job"]["processed"], desc=job_id, unit="item") as bar:
        try:
            while service.supervisor.is_alive(job_id):
                time.sleep(poll_seconds)
                processed = service.read_job(job_id)["job"]["processed"]
                bar.update(processed - bar.n)
        except KeyboardInterrupt:
            typer.secho("\n\nInterrupted by user, pausing job", fg=typer.colors.YELLOW, err=True)
            service.pause_job(job_id, reason="Paused by user interrupt")
            service.wait(job_id)
            raise typer.Exit(code=130)

    _print_status(service.read_job(job_id))


def _print_status(snapshot: dict) -> None:
    job = snapshot["job"]
    typer.secho(f"{job['job_id']}  ", bold=True, nl=False)
    typer.secho(job["status"], fg=STATUS_COLORS.get(job["status"]), bold=True)
    typer.echo(f"  Progress: {job['processed']}/{job['total_items']} ({snapshot['progress_percent']}%)")

    items = snapshot["item_stats"]
    typer.echo(
        f"  Items:    pending {items['pending']} | in progress {items['in_progress']} | "
        f"done {items['done']} | not found {items['not_found']} | failed {items['failed']}"
    )
    results = snapshot["result_stats"]
    typer.echo(
        f"  Matches:  {results['with_matches']} with candidates | "
        f"{results['brand_matches']} brand | {results['code_matches']} code"
    )
    if job.get("error_message"):
        typer.secho(f"  Message:  {job['error_message']}", fg=typer.colors.YELLOW)
    if snapshot["recent_errors"]:
        last = snapshot["recent_errors"][-1]
        typer.echo(f"  Last error: row {last['row_id']} {last['error_kind']} ({last['message']})")


@app.command("create")
def create_command(
    sheet: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV or Excel file with code/brand columns"),
    start: bool = typer.Option(False, "--start", "-s", help="Start the job right away and follow progress"),
):
    """
    Create a job from a spreadsheet.

    Examples:

        $ run_jobs.py create inputs/codes.xlsx

        $ run_jobs.py create inputs/codes.csv --start
    """
    service = _service()
    try:
        job = service.create_job_from_file(sheet)
    except (IngestError, ValueError) as e:
        _fail(str(e))

    typer.secho(f"Created {job.job_id} with {job.total_items} items", fg=typer.colors.GREEN)
    if start:
        service.start_job(job.job_id)
        _follow(service, job.job_id)


@app.command("start")
def start_command(
    job_id: str = typer.Argument(..., help="Job to start or resume"),
    detach: bool = typer.Option(False, "--detach", "-d", help="Do not show progress (still runs until the loop exits)"),
):
    """Start a QUEUED job or resume a PAUSED one."""
    service = _service()
    try:
        service.start_job(job_id)
    except JobNotFoundError as e:
        _fail(str(e))
    except InvalidTransitionError as e:
        _fail(str(e), code=2)

    if detach:
        service.wait(job_id)
        _print_status(service.read_job(job_id))
    else:
        _follow(service, job_id)


@app.command("pause")
def pause_command(job_id: str = typer.Argument(..., help="RUNNING job to pause")):
    """Pause a running job; its worker stops after the current item."""
    service = _service()
    try:
        job = service.pause_job(job_id)
    except JobNotFoundError as e:
        _fail(str(e))
    except InvalidTransitionError as e:
        _fail(str(e), code=2)
    typer.secho(f"{job.job_id} paused", fg=typer.colors.YELLOW)


@app.command("retry")
def retry_command(
    job_id: str = typer.Argument(..., help="FAILED job to re-queue"),
    reset_failed: bool = typer.Option(False, "--reset-failed", "-r", help="Also re-process FAILED items"),
):
    """Move a FAILED job back to QUEUED."""
    service = _service()
    try:
        job = service.retry_job(job_id, reset_failed_items=reset_failed)
    except JobNotFoundError as e:
        _fail(str(e))
    except InvalidTransitionError as e:
        _fail(str(e), code=2)
    typer.secho(f"{job.job_id} re-queued; run 'start' to process it", fg=typer.colors.GREEN)


@app.command("status")
def status_command(job_id: str = typer.Argument(..., help="Job to inspect")):
    """Show a job's record, progress and statistics."""
    service = _service()
    try:
        _print_status(service.read_job(job_id))
    except JobNotFoundError as e:
        _fail(str(e))


@app.command("list")
def list_command():
    """List all jobs, newest first."""
    service = _service()
    jobs = service.list_jobs()
    typer.secho(f"Jobs ({len(jobs)}):", fg=typer.colors.BLUE, bold=True)
    for job in jobs:
        typer.echo(f"  • {job.job_id}  ", nl=False)
        typer.secho(f"{job.status.value:<9}", fg=STATUS_COLORS.get(job.status.value), nl=False)
        typer.echo(f"  {job.processed}/{job.total_items}  created {job.created_at}")


@app.command("delete")
def delete_command(
    job_id: str = typer.Argument(..., help="Job to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a job with its items, outcomes, export and error log."""
    if not yes:
        typer.confirm(f"Delete {job_id} and all of its data?", abort=True)
    service = _service()
    try:
        service.delete_job(job_id)
    except JobNotFoundError as e:
        _fail(str(e))
    typer.secho(f"{job_id} deleted", fg=typer.colors.GREEN)


@app.command("export")
def export_command(job_id: str = typer.Argument(..., help="Job to export")):
    """(Re)generate the CSV export of a job's outcomes."""
    service = _service()
    try:
        path = service.export(job_id)
    except ValueError as e:
        _fail(str(e))
    typer.secho(f"Wrote {path}", fg=typer.colors.GREEN)


@app.command("recover")
def recover_command():
    """Relaunch every job left RUNNING by a previous process and wait for them."""
    service = _service()
    recovered = service.recover()
    if not recovered:
        typer.echo("No RUNNING jobs to recover")
        return
    typer.secho(f"Recovered: {', '.join(recovered)}", fg=typer.colors.GREEN)
    try:
        service.wait()
    except KeyboardInterrupt:
        typer.secho("\n\nInterrupted by user, pausing recovered jobs", fg=typer.colors.YELLOW, err=True)
        for job_id in recovered:
            try:
                service.pause_job(job_id, reason="Paused by user interrupt")
            except InvalidTransitionError as e:
                typer.secho(f"  {e}", fg=typer.colors.YELLOW, err=True)
        service.wait()
        raise typer.Exit(code=130)


@app.command("cleanup")
def cleanup_command(
    days: int = typer.Option(30, "--days", "-n", help="Delete COMPLETED jobs older than this many days", min=0),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only report what would be deleted"),
):
    """Delete old completed jobs and their exports."""
    service = _service()
    stats = service.cleanup(days=days, dry_run=dry_run)
    typer.echo(f"Jobs: {stats['jobs_deleted']} | Exports: {stats['exports_deleted']}")


if __name__ == "__main__":
    app()
