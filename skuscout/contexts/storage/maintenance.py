"""
Storage maintenance: purging old completed jobs.

Intended for standalone execution (cron jobs, the ``cleanup`` CLI command).
Removes every document of COMPLETED jobs older than the retention window,
together with their export file and error log.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

from skuscout.contexts.jobs.models import JobStatus
from skuscout.contexts.storage.config import EXPORTS_PATH
from skuscout.contexts.storage.events import LOGS_PATH, clear_error_log
from skuscout.utils.helpers import parse_iso

DEFAULT_RETENTION_DAYS = 30


def find_expired_jobs(registry, days: int = DEFAULT_RETENTION_DAYS, now: Optional[datetime] = None) -> List[str]:
    """
    Ids of COMPLETED jobs whose ``completed_at`` is more than ``days`` days ago.

    Args:
        registry: JobRegistry to scan
        days: Retention window in days
        now: Reference time (default: current UTC time)
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=days)

    expired = []
    for job in registry.jobs_in_status(JobStatus.COMPLETED):
        completed_at = parse_iso(job.completed_at)
        if completed_at is not None and completed_at < cutoff:
            expired.append(job.job_id)
    return expired


def purge_completed_jobs(
    registry,
    days: int = DEFAULT_RETENTION_DAYS,
    exports_dir: Path = EXPORTS_PATH,
    log_dir: Path = LOGS_PATH,
    now: Optional[datetime] = None,
    dry_run: bool = False,
) -> Dict[str, int]:
    """
    Delete COMPLETED jobs older than ``days`` days.

    Args:
        registry: JobRegistry owning the jobs
        days: Retention window (default: 30)
        exports_dir: Directory holding ``<job_id>.csv`` exports
        log_dir: Directory holding per-job error logs
        now: Reference time (default: current UTC time)
        dry_run: Only report what would be deleted

    Returns:
        Dict with keys:
            - jobs_deleted: Number of jobs removed (or that would be, for dry runs)
            - exports_deleted: Number of export files removed
    """
    expired = find_expired_jobs(registry, days=days, now=now)
    stats = {"jobs_deleted": 0, "exports_deleted": 0}

    if not expired:
        logger.info(f"No completed jobs older than {days} days")
        return stats

    for job_id in expired:
        if dry_run:
            logger.info(f"[{job_id}] Would delete (older than {days} days)")
            stats["jobs_deleted"] += 1
            continue

        registry.delete(job_id)
        clear_error_log(job_id, log_dir=log_dir)
        stats["jobs_deleted"] += 1

        export_file = Path(exports_dir) / f"{job_id}.csv"
        if export_file.exists():
            export_file.unlink()
            stats["exports_deleted"] += 1

    logger.info(
        f"Cleanup: {stats['jobs_deleted']} jobs and {stats['exports_deleted']} exports "
        f"{'would be ' if dry_run else ''}deleted"
    )
    return stats
