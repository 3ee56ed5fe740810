"""
Job Registry: durable job records and the job state machine.

The registry is the only writer of job records. Every status change goes
through ``transition``, which consults the transition table and rejects
anything not listed, leaving the stored record untouched.

State machine:
    QUEUED    -> RUNNING, FAILED
    RUNNING   -> PAUSED, COMPLETED, FAILED
    PAUSED    -> RUNNING, FAILED
    FAILED    -> QUEUED            (explicit retry)
    COMPLETED -> (terminal)
"""

from typing import Dict, FrozenSet, List, Optional

from loguru import logger

from skuscout.contexts.jobs.models import Job, JobStatus, new_job_id
from skuscout.contexts.jobs.work_items import WorkItemStore
from skuscout.contexts.storage.base import JOB_DOC, StateStore
from skuscout.utils.helpers import utc_now_iso

VALID_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.PAUSED, JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.PAUSED: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset({JobStatus.QUEUED}),
}


class JobNotFoundError(KeyError):
    """Raised when a job record does not exist in the store."""

    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self):
        return f"Job not found: {self.job_id}"


class InvalidTransitionError(Exception):
    """
    A requested status change is not in the transition table.

    Callers should treat this as a conflict with the job's current state, not
    as a transient failure to retry.
    """

    def __init__(self, job_id: str, current: JobStatus, requested: JobStatus, reason: str = None):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        message = f"[{job_id}] Cannot transition from {current.value} to {requested.value}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


def can_transition(current: JobStatus, requested: JobStatus) -> bool:
    return JobStatus(requested) in VALID_TRANSITIONS[JobStatus(current)]


class JobRegistry:
    def __init__(self, store: StateStore, work_items: Optional[WorkItemStore] = None):
        self.store = store
        self.work_items = work_items or WorkItemStore(store)

    def _save(self, job: Job) -> None:
        self.store.write(job.job_id, JOB_DOC, job.to_dict())

    def create(self, total_items: int, source_file: Optional[str] = None, job_id: Optional[str] = None) -> Job:
        """Persist a new QUEUED job record."""
        job = Job(job_id=job_id or new_job_id(), total_items=total_items, source_file=source_file)
        with self.store.locked(job.job_id):
            self._save(job)
        logger.info(f"[{job.job_id}] Created job with {total_items} items")
        return job

    def find(self, job_id: str) -> Optional[Job]:
        data = self.store.read(job_id, JOB_DOC)
        return Job.from_dict(data) if data else None

    def get(self, job_id: str) -> Job:
        job = self.find(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def exists(self, job_id: str) -> bool:
        return self.find(job_id) is not None

    def list_jobs(self) -> List[Job]:
        """All jobs, newest first."""
        jobs = [job for job in (self.find(job_id) for job_id in self.store.list_jobs()) if job]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    def jobs_in_status(self, status: JobStatus) -> List[Job]:
        status = JobStatus(status)
        return [job for job in self.list_jobs() if job.status == status]

    def transition(self, job_id: str, new_status: JobStatus, error_message: Optional[str] = None) -> Job:
        """
        Move a job to ``new_status`` if the transition table allows it.

        Args:
            job_id: Job identity
            new_status: Requested status
            error_message: Reason recorded on PAUSED/FAILED transitions

        Returns:
            The updated job record

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidTransitionError: If the transition is illegal, or COMPLETED is
                requested while some work item is not terminal
        """
        new_status = JobStatus(new_status)
        with self.store.locked(job_id):
            job = self.get(job_id)
            if not can_transition(job.status, new_status):
                raise InvalidTransitionError(job_id, job.status, new_status)
            if new_status == JobStatus.COMPLETED and not self.work_items.all_terminal(job_id):
                raise InvalidTransitionError(job_id, job.status, new_status, reason="not every work item is terminal")

            previous = job.status
            now = utc_now_iso()
            job.status = new_status

            if new_status == JobStatus.RUNNING:
                if job.started_at is None:
                    job.started_at = now
                job.paused_at = None
            elif new_status == JobStatus.PAUSED:
                job.paused_at = now
                job.error_message = error_message
            elif new_status == JobStatus.COMPLETED:
                job.completed_at = now
            elif new_status == JobStatus.FAILED:
                job.completed_at = now
                job.error_message = error_message
            elif new_status == JobStatus.QUEUED:
                job.started_at = None
                job.paused_at = None
                job.completed_at = None
                job.error_message = None

            self._save(job)

        suffix = f" ({error_message})" if error_message and new_status in (JobStatus.PAUSED, JobStatus.FAILED) else ""
        logger.info(f"[{job_id}] {previous.value} -> {new_status.value}{suffix}")
        return job

    def sync_progress(self, job_id: str, last_processed_row: Optional[int] = None) -> Job:
        """
        Recompute progress counters from the work items.

        ``processed`` is the number of terminal items, so it always equals
        done + failed + not_found.
        """
        with self.store.locked(job_id):
            job = self.get(job_id)
            stats = self.work_items.stats(job_id)
            job.total_items = stats["total"]
            job.processed = stats["done"] + stats["failed"] + stats["not_found"]
            job.failed = stats["failed"]
            if last_processed_row is not None:
                job.last_processed_row = last_processed_row
            self._save(job)
        return job

    def delete(self, job_id: str) -> None:
        """Remove the job and every document it owns."""
        with self.store.locked(job_id):
            self.get(job_id)
            self.store.delete(job_id)
        logger.info(f"[{job_id}] Deleted job")
