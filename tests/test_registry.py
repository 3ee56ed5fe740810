import re

import pytest

from skuscout.contexts.jobs.models import JobStatus, WorkItemStatus
from skuscout.contexts.jobs.registry import InvalidTransitionError, JobNotFoundError, can_transition

from conftest import make_items


def _job_with_items(registry, work_items, *codes):
    job = registry.create(total_items=len(codes))
    work_items.create_all(job.job_id, make_items(*codes))
    return job


def _complete(registry, work_items, job_id):
    registry.transition(job_id, JobStatus.RUNNING)
    for item in work_items.load(job_id):
        work_items.set_status(job_id, item.row_id, WorkItemStatus.DONE)
    return registry.transition(job_id, JobStatus.COMPLETED)


def test_create_persists_queued_job_with_opaque_id(registry):
    job = registry.create(total_items=5, source_file="codes.xlsx")

    assert re.fullmatch(r"JOB_\d{13}_[0-9a-f]{8}", job.job_id)
    stored = registry.get(job.job_id)
    assert stored.status == JobStatus.QUEUED
    assert stored.total_items == 5
    assert stored.processed == 0
    assert stored.source_file == "codes.xlsx"
    assert stored.started_at is None and stored.completed_at is None


def test_get_missing_job_raises_not_found(registry):
    with pytest.raises(JobNotFoundError):
        registry.get("JOB_0_deadbeef")
    assert registry.find("JOB_0_deadbeef") is None


def test_running_stamps_started_once_and_clears_paused(registry):
    job = registry.create(total_items=1)

    running = registry.transition(job.job_id, JobStatus.RUNNING)
    first_started = running.started_at
    assert first_started is not None

    paused = registry.transition(job.job_id, JobStatus.PAUSED, error_message="Paused by request")
    assert paused.paused_at is not None
    assert paused.error_message == "Paused by request"

    resumed = registry.transition(job.job_id, JobStatus.RUNNING)
    assert resumed.started_at == first_started
    assert resumed.paused_at is None


def test_failed_stamps_completed_and_records_message(registry):
    job = registry.create(total_items=1)
    registry.transition(job.job_id, JobStatus.RUNNING)

    failed = registry.transition(job.job_id, JobStatus.FAILED, error_message="Worker crashed: boom")

    assert failed.completed_at is not None
    assert failed.error_message == "Worker crashed: boom"


def test_requeue_from_failed_clears_run_fields(registry):
    job = registry.create(total_items=1)
    registry.transition(job.job_id, JobStatus.RUNNING)
    registry.transition(job.job_id, JobStatus.PAUSED, error_message="too many failures")
    registry.transition(job.job_id, JobStatus.FAILED, error_message="gave up")

    queued = registry.transition(job.job_id, JobStatus.QUEUED)

    assert queued.status == JobStatus.QUEUED
    assert queued.started_at is None
    assert queued.paused_at is None
    assert queued.completed_at is None
    assert queued.error_message is None


@pytest.mark.parametrize(
    "path, illegal",
    [
        ([], JobStatus.PAUSED),
        ([], JobStatus.COMPLETED),
        ([], JobStatus.QUEUED),
        ([JobStatus.RUNNING], JobStatus.RUNNING),
        ([JobStatus.RUNNING], JobStatus.QUEUED),
        ([JobStatus.RUNNING, JobStatus.PAUSED], JobStatus.COMPLETED),
        ([JobStatus.RUNNING, JobStatus.PAUSED], JobStatus.PAUSED),
        ([JobStatus.RUNNING, JobStatus.FAILED], JobStatus.RUNNING),
        ([JobStatus.RUNNING, JobStatus.FAILED], JobStatus.PAUSED),
    ],
)
def test_illegal_transitions_are_rejected_and_leave_record_unchanged(registry, path, illegal):
    job = registry.create(total_items=1)
    for status in path:
        registry.transition(job.job_id, status)
    before = registry.get(job.job_id).to_dict()

    with pytest.raises(InvalidTransitionError):
        registry.transition(job.job_id, illegal)

    assert registry.get(job.job_id).to_dict() == before


def test_completed_job_rejects_running(registry, work_items):
    job = _job_with_items(registry, work_items, "111")
    _complete(registry, work_items, job.job_id)
    before = registry.get(job.job_id).to_dict()

    with pytest.raises(InvalidTransitionError):
        registry.transition(job.job_id, JobStatus.RUNNING)

    assert registry.get(job.job_id).to_dict() == before


def test_completed_requires_every_item_terminal(registry, work_items):
    job = _job_with_items(registry, work_items, "111", "222")
    registry.transition(job.job_id, JobStatus.RUNNING)
    first = work_items.load(job.job_id)[0]
    work_items.set_status(job.job_id, first.row_id, WorkItemStatus.DONE)

    with pytest.raises(InvalidTransitionError, match="terminal"):
        registry.transition(job.job_id, JobStatus.COMPLETED)
    assert registry.get(job.job_id).status == JobStatus.RUNNING


def test_completed_stamps_completed_at(registry, work_items):
    job = _job_with_items(registry, work_items, "111")
    completed = _complete(registry, work_items, job.job_id)
    assert completed.status == JobStatus.COMPLETED
    assert completed.completed_at is not None


def test_transition_table_matches_state_machine():
    legal = {
        (JobStatus.QUEUED, JobStatus.RUNNING),
        (JobStatus.QUEUED, JobStatus.FAILED),
        (JobStatus.RUNNING, JobStatus.PAUSED),
        (JobStatus.RUNNING, JobStatus.COMPLETED),
        (JobStatus.RUNNING, JobStatus.FAILED),
        (JobStatus.PAUSED, JobStatus.RUNNING),
        (JobStatus.PAUSED, JobStatus.FAILED),
        (JobStatus.FAILED, JobStatus.QUEUED),
    }
    for current in JobStatus:
        for requested in JobStatus:
            assert can_transition(current, requested) == ((current, requested) in legal)


def test_sync_progress_counts_terminal_items(registry, work_items):
    job = _job_with_items(registry, work_items, "1", "2", "3", "4")
    rows = [item.row_id for item in work_items.load(job.job_id)]
    work_items.set_status(job.job_id, rows[0], WorkItemStatus.DONE)
    work_items.set_status(job.job_id, rows[1], WorkItemStatus.FAILED)
    work_items.set_status(job.job_id, rows[2], WorkItemStatus.NOT_FOUND)
    work_items.set_status(job.job_id, rows[3], WorkItemStatus.IN_PROGRESS)

    synced = registry.sync_progress(job.job_id, last_processed_row=rows[2])

    stats = work_items.stats(job.job_id)
    assert synced.processed == stats["done"] + stats["failed"] + stats["not_found"] == 3
    assert synced.failed == 1
    assert synced.last_processed_row == rows[2]
    assert synced.progress_percent == 75.0


def test_list_jobs_and_jobs_in_status(registry):
    first = registry.create(total_items=1)
    second = registry.create(total_items=1)
    registry.transition(second.job_id, JobStatus.RUNNING)

    assert {job.job_id for job in registry.list_jobs()} == {first.job_id, second.job_id}
    assert [job.job_id for job in registry.jobs_in_status(JobStatus.RUNNING)] == [second.job_id]


def test_delete_removes_job(registry, work_items):
    job = _job_with_items(registry, work_items, "111")
    registry.delete(job.job_id)

    assert registry.find(job.job_id) is None
    assert work_items.load(job.job_id) == []
    with pytest.raises(JobNotFoundError):
        registry.delete(job.job_id)
