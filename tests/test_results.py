from skuscout.contexts.jobs.models import CandidateMatch, ProcessedOutcome, WorkItemStatus

JOB = "JOB_1_abcdef01"


def _outcome(row_id, status=WorkItemStatus.DONE, candidates=None, error=None):
    return ProcessedOutcome(
        row_id=row_id,
        input_code=f"0{row_id}",
        input_brand="Acme",
        status=status,
        candidates=candidates or [],
        error=error,
    )


def test_upsert_overwrites_instead_of_duplicating(results):
    results.upsert(JOB, _outcome(2, status=WorkItemStatus.FAILED, error="timeout"))
    results.upsert(JOB, _outcome(2, candidates=[CandidateMatch(external_id="B001", brand_match=True)]))

    assert results.count(JOB) == 1
    stored = results.get(JOB, 2)
    assert stored.status == WorkItemStatus.DONE
    assert stored.error is None
    assert stored.candidates[0].external_id == "B001"
    assert stored.saved_at is not None


def test_all_orders_by_row_id(results):
    for row_id in (12, 3, 7):
        results.upsert(JOB, _outcome(row_id))
    assert [o.row_id for o in results.all(JOB)] == [3, 7, 12]


def test_get_missing_outcome_returns_none(results):
    assert results.get(JOB, 2) is None
    assert results.all(JOB) == []


def test_stats_counts_matches(results):
    results.upsert(
        JOB,
        _outcome(
            2,
            candidates=[
                CandidateMatch(external_id="B1", brand_match=True, code_match=False),
                CandidateMatch(external_id="B2", brand_match=False, code_match=True),
            ],
        ),
    )
    results.upsert(JOB, _outcome(3, candidates=[CandidateMatch(external_id="B3")]))
    results.upsert(JOB, _outcome(4, status=WorkItemStatus.NOT_FOUND))
    results.upsert(JOB, _outcome(5, status=WorkItemStatus.FAILED, error="boom"))

    assert results.stats(JOB) == {
        "total": 4,
        "done": 2,
        "failed": 1,
        "not_found": 1,
        "with_matches": 2,
        "brand_matches": 1,
        "code_matches": 1,
    }
