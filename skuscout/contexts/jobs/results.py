"""Result Store: processed outcomes of a job, keyed by work-item row_id."""

from typing import Dict, List, Optional

from skuscout.contexts.jobs.models import ProcessedOutcome, WorkItemStatus
from skuscout.contexts.storage.base import OUTCOMES_DOC, StateStore
from skuscout.utils.helpers import utc_now_iso


class ResultStore:
    def __init__(self, store: StateStore):
        self.store = store

    def _load_raw(self, job_id: str) -> Dict[str, dict]:
        # JSON object keys are strings, so row ids are stored as str(row_id)
        return self.store.read(job_id, OUTCOMES_DOC) or {}

    def upsert(self, job_id: str, outcome: ProcessedOutcome) -> ProcessedOutcome:
        """Insert or overwrite the outcome for ``outcome.row_id``."""
        outcome.saved_at = utc_now_iso()
        with self.store.locked(job_id):
            raw = self._load_raw(job_id)
            raw[str(outcome.row_id)] = outcome.to_dict()
            self.store.write(job_id, OUTCOMES_DOC, raw)
        return outcome

    def get(self, job_id: str, row_id: int) -> Optional[ProcessedOutcome]:
        data = self._load_raw(job_id).get(str(row_id))
        return ProcessedOutcome.from_dict(data) if data else None

    def all(self, job_id: str) -> List[ProcessedOutcome]:
        """Every outcome of a job, ordered by row_id."""
        outcomes = [ProcessedOutcome.from_dict(data) for data in self._load_raw(job_id).values()]
        return sorted(outcomes, key=lambda o: o.row_id)

    def count(self, job_id: str) -> int:
        return len(self._load_raw(job_id))

    def stats(self, job_id: str) -> Dict[str, int]:
        """
        Summary counts over stored outcomes.

        Returns:
            Dict with total, done, failed, not_found, with_matches, brand_matches, code_matches
        """
        outcomes = self.all(job_id)
        return {
            "total": len(outcomes),
            "done": sum(1 for o in outcomes if o.status == WorkItemStatus.DONE),
            "failed": sum(1 for o in outcomes if o.status == WorkItemStatus.FAILED),
            "not_found": sum(1 for o in outcomes if o.status == WorkItemStatus.NOT_FOUND),
            "with_matches": sum(1 for o in outcomes if o.candidates),
            "brand_matches": sum(1 for o in outcomes if o.has_brand_match),
            "code_matches": sum(1 for o in outcomes if o.has_code_match),
        }
