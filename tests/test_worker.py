import csv

import pytest

from skuscout.contexts.export.csv_export import generate_export
from skuscout.contexts.jobs.models import JobStatus, WorkItemStatus
from skuscout.contexts.scraping.catalog import ProductDetails
from skuscout.contexts.scraping.errors import ErrorKind
from skuscout.contexts.storage.events import recent_errors

from conftest import FakeCatalog, catalog_error, make_items


def _statuses(work_items, job_id):
    return [item.status for item in work_items.load(job_id)]


def test_all_not_found_completes_and_exports_every_row(running_job, make_worker, registry, results, exports_dir):
    job = running_job("111", "222", "333")
    catalog = FakeCatalog()
    exported = []

    def export(job_id):
        exported.append(generate_export(job_id, results, exports_dir))

    status = make_worker(job.job_id, catalog, on_complete=export).run()

    assert status == JobStatus.COMPLETED
    stored = registry.get(job.job_id)
    assert stored.processed == 3
    assert stored.failed == 0
    assert stored.completed_at is not None
    assert catalog.search_calls == ["111", "00111", "222", "00222", "333", "00333"]

    with open(exported[0], newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["Input UPC"] for row in rows] == ["111", "222", "333"]
    assert {row["Status"] for row in rows} == {"NOT_FOUND"}


def test_rate_limit_backs_off_then_succeeds(running_job, make_worker, work_items, results, recording_sleep):
    job = running_job("111")
    catalog = FakeCatalog(
        searches={"111": [catalog_error(ErrorKind.RATE_LIMITED, status_code=429)] * 2 + [["B1"]]},
        products={"B1": [ProductDetails(brand="Acme", extracted_code="111")]},
    )

    make_worker(job.job_id, catalog).run()

    assert _statuses(work_items, job.job_id) == [WorkItemStatus.DONE]
    assert len(catalog.search_calls) == 3
    assert len(recording_sleep.calls) == 2
    assert recording_sleep.calls == sorted(recording_sleep.calls)
    assert all(30.0 <= delay <= 300.0 for delay in recording_sleep.calls)
    assert results.get(job.job_id, 2).candidates[0].external_id == "B1"


def test_network_errors_exhaust_retries_and_fail_item(running_job, make_worker, registry, results, recording_sleep, log_dir):
    job = running_job("111")
    catalog = FakeCatalog(searches={"111": [catalog_error(ErrorKind.NETWORK, "ReadTimeout")]})

    status = make_worker(job.job_id, catalog).run()

    assert status == JobStatus.COMPLETED
    assert catalog.search_calls == ["111"] * 4
    assert len(recording_sleep.calls) == 3
    assert all(delay <= 30.0 for delay in recording_sleep.calls)

    outcome = results.get(job.job_id, 2)
    assert outcome.status == WorkItemStatus.FAILED
    assert "NETWORK" in outcome.error
    assert registry.get(job.job_id).failed == 1

    events = recent_errors(job.job_id, log_dir=log_dir)
    assert len(events) == 4
    assert events[-1]["action"] == "give_up"
    assert all(event["row_id"] == 2 for event in events)


def test_repeated_challenges_pause_job_and_leave_item_pending(running_job, make_worker, registry, work_items, results, recording_sleep):
    job = running_job("111", "222")
    catalog = FakeCatalog(searches={"111": [catalog_error(ErrorKind.CHALLENGE, "captcha page")]})

    status = make_worker(job.job_id, catalog).run()

    assert status == JobStatus.PAUSED
    stored = registry.get(job.job_id)
    assert stored.error_message.startswith("Bot challenge detected 3 times")
    assert stored.paused_at is not None
    assert _statuses(work_items, job.job_id) == [WorkItemStatus.PENDING, WorkItemStatus.PENDING]
    assert results.get(job.job_id, 2) is None
    assert catalog.search_calls == ["111"] * 3
    # Cooldown after the first two challenges, none once the job pauses
    assert len(recording_sleep.calls) == 2
    assert all(delay >= 1800.0 for delay in recording_sleep.calls)


def test_product_challenge_discards_partial_candidates(running_job, make_worker, registry, results, work_items):
    job = running_job("111")
    catalog = FakeCatalog(
        searches={"111": [["B1", "B2"]]},
        products={
            "B1": [ProductDetails(brand="Acme")],
            "B2": [catalog_error(ErrorKind.CHALLENGE), ProductDetails(brand="Other")],
        },
    )
    worker = make_worker(job.job_id, catalog, max_consecutive_challenges=1)

    assert worker.run() == JobStatus.PAUSED
    assert results.get(job.job_id, 2) is None
    assert _statuses(work_items, job.job_id) == [WorkItemStatus.PENDING]

    registry.transition(job.job_id, JobStatus.RUNNING)
    assert worker.run() == JobStatus.COMPLETED

    outcome = results.get(job.job_id, 2)
    assert [c.external_id for c in outcome.candidates] == ["B1", "B2"]
    assert results.count(job.job_id) == 1


def test_candidate_that_cannot_be_extracted_is_skipped(running_job, make_worker, results):
    job = running_job("0123456789")
    catalog = FakeCatalog(
        searches={"0123456789": [["B1", "B2"]]},
        products={
            "B1": [catalog_error(ErrorKind.UNKNOWN, status_code=500)],
            "B2": [ProductDetails(brand="ACME Tools Inc.", extracted_code="55555", rating_value=4.5)],
        },
    )

    make_worker(job.job_id, catalog).run()

    assert catalog.product_calls == ["B1", "B2"]
    outcome = results.get(job.job_id, 2)
    assert outcome.status == WorkItemStatus.DONE
    assert len(outcome.candidates) == 1
    match = outcome.candidates[0]
    assert match.external_id == "B2"
    assert match.brand_match is True
    assert match.code_match is False
    assert match.rating_value == 4.5


def test_product_retries_are_bounded(running_job, make_worker, results, recording_sleep):
    job = running_job("111")
    catalog = FakeCatalog(
        searches={"111": [["B1"]]},
        products={"B1": [catalog_error(ErrorKind.SERVICE_UNAVAILABLE, status_code=503)]},
    )

    make_worker(job.job_id, catalog).run()

    assert catalog.product_calls == ["B1", "B1"]
    assert len(recording_sleep.calls) == 1
    outcome = results.get(job.job_id, 2)
    assert outcome.status == WorkItemStatus.DONE
    assert outcome.candidates == []


def test_fallback_search_is_used_when_first_search_is_empty(running_job, make_worker, results):
    job = running_job("111")
    catalog = FakeCatalog(searches={"00111": [["B9"]]}, products={"B9": [ProductDetails(brand="Acme")]})

    make_worker(job.job_id, catalog).run()

    assert catalog.search_calls == ["111", "00111"]
    outcome = results.get(job.job_id, 2)
    assert outcome.used_fallback is True
    assert outcome.candidates[0].external_id == "B9"
    assert outcome.candidates[0].brand_match is True


def test_not_found_search_error_still_tries_fallback(running_job, make_worker, results):
    job = running_job("111")
    catalog = FakeCatalog(searches={"111": [catalog_error(ErrorKind.NOT_FOUND, status_code=404)]})

    make_worker(job.job_id, catalog).run()

    assert catalog.search_calls == ["111", "00111"]
    assert results.get(job.job_id, 2).status == WorkItemStatus.NOT_FOUND


def test_at_most_max_candidates_are_extracted(running_job, make_worker, results):
    job = running_job("111")
    catalog = FakeCatalog(searches={"111": [["B1", "B2", "B3", "B4", "B5"]]})

    make_worker(job.job_id, catalog).run()

    assert catalog.product_calls == ["B1", "B2", "B3"]
    assert len(results.get(job.job_id, 2).candidates) == 3


def test_consecutive_failures_pause_job(running_job, make_worker, registry, work_items):
    job = running_job("a", "b", "c")
    error = catalog_error(ErrorKind.UNKNOWN, status_code=500)
    catalog = FakeCatalog(searches={"a": [error], "b": [error], "c": [error]})

    status = make_worker(job.job_id, catalog, max_consecutive_failures=2).run()

    assert status == JobStatus.PAUSED
    assert registry.get(job.job_id).error_message.startswith("Too many consecutive failures (2)")
    assert _statuses(work_items, job.job_id) == [
        WorkItemStatus.FAILED,
        WorkItemStatus.FAILED,
        WorkItemStatus.PENDING,
    ]


def test_success_resets_failure_counter(running_job, make_worker, registry):
    job = running_job("a", "b", "c", "d")
    error = catalog_error(ErrorKind.UNKNOWN)
    catalog = FakeCatalog(searches={"a": [error], "b": [["B1"]], "c": [error], "d": [error]})

    status = make_worker(job.job_id, catalog, max_consecutive_failures=2).run()

    assert status == JobStatus.PAUSED
    stored = registry.get(job.job_id)
    assert stored.processed == 4
    assert stored.failed == 3


def test_unexpected_exception_fails_only_the_item(running_job, make_worker, results, log_dir):
    job = running_job("111", "222")
    catalog = FakeCatalog(searches={"111": [RuntimeError("parser exploded")]})

    status = make_worker(job.job_id, catalog).run()

    assert status == JobStatus.COMPLETED
    outcome = results.get(job.job_id, 2)
    assert outcome.status == WorkItemStatus.FAILED
    assert outcome.error == "parser exploded"
    assert results.get(job.job_id, 3).status == WorkItemStatus.NOT_FOUND
    assert recent_errors(job.job_id, log_dir=log_dir)[-1]["action"] == "item_failed"


def test_pause_is_observed_between_items(running_job, make_worker, registry, work_items):
    job = running_job("a", "b")

    class PausingCatalog(FakeCatalog):
        def search(self, code):
            if registry.get(job.job_id).status == JobStatus.RUNNING:
                registry.transition(job.job_id, JobStatus.PAUSED, error_message="Paused by request")
            return super().search(code)

    status = make_worker(job.job_id, PausingCatalog()).run()

    assert status == JobStatus.PAUSED
    # The in-flight item finishes; the next one is left for resume
    assert _statuses(work_items, job.job_id) == [WorkItemStatus.NOT_FOUND, WorkItemStatus.PENDING]
    assert registry.get(job.job_id).processed == 1


def test_deleted_job_stops_worker_without_recreating_documents(running_job, make_worker, registry, store):
    job = running_job("a", "b")

    class DeletingCatalog(FakeCatalog):
        def search(self, code):
            if registry.exists(job.job_id):
                registry.delete(job.job_id)
            return super().search(code)

    status = make_worker(job.job_id, DeletingCatalog()).run()

    assert status is None
    assert job.job_id not in store.list_jobs()


def test_queued_job_is_not_processed(registry, work_items, make_worker):
    job = registry.create(total_items=1)
    work_items.create_all(job.job_id, make_items("111"))
    catalog = FakeCatalog()

    assert make_worker(job.job_id, catalog).run() == JobStatus.QUEUED
    assert catalog.search_calls == []


def test_crash_outside_item_processing_fails_job(running_job, make_worker, registry, work_items, monkeypatch):
    job = running_job("111")

    def broken(job_id):
        raise RuntimeError("storage unavailable")

    monkeypatch.setattr(work_items, "next_pending", broken)

    status = make_worker(job.job_id, FakeCatalog()).run()

    assert status == JobStatus.FAILED
    stored = registry.get(job.job_id)
    assert stored.error_message == "Worker crashed: storage unavailable"


def test_export_failure_leaves_job_completed(running_job, make_worker, registry):
    job = running_job("111")

    def failing_export(job_id):
        raise ValueError("disk full")

    assert make_worker(job.job_id, FakeCatalog(), on_complete=failing_export).run() == JobStatus.COMPLETED
    assert registry.get(job.job_id).status == JobStatus.COMPLETED


@pytest.mark.parametrize("kind", [ErrorKind.ACCESS_BLOCKED, ErrorKind.UNKNOWN])
def test_non_retryable_kinds_fail_immediately(kind, running_job, make_worker, results, recording_sleep):
    job = running_job("111")
    catalog = FakeCatalog(searches={"111": [catalog_error(kind, status_code=403)]})

    make_worker(job.job_id, catalog).run()

    assert catalog.search_calls == ["111"]
    assert recording_sleep.calls == []
    assert results.get(job.job_id, 2).status == WorkItemStatus.FAILED
