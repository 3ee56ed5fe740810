"""
Work-Item Store: the durable, ordered list of items belonging to a job.

Items are kept in their original input order; ``next_pending`` always scans
from the start, so processing order is the input order regardless of how many
pause/resume cycles a job goes through.
"""

from typing import Dict, Iterable, List, Optional, Union

from loguru import logger

from skuscout.contexts.jobs.models import WorkItem, WorkItemStatus
from skuscout.contexts.storage.base import ITEMS_DOC, StateStore
from skuscout.utils.helpers import utc_now_iso


class WorkItemNotFoundError(KeyError):
    pass


class WorkItemStore:
    def __init__(self, store: StateStore):
        self.store = store

    def load(self, job_id: str) -> List[WorkItem]:
        """All items of a job in original order (empty list when none were stored)."""
        raw = self.store.read(job_id, ITEMS_DOC) or []
        return [WorkItem.from_dict(item) for item in raw]

    def _save(self, job_id: str, items: List[WorkItem]) -> None:
        self.store.write(job_id, ITEMS_DOC, [item.to_dict() for item in items])

    def create_all(self, job_id: str, items: Iterable[Union[WorkItem, dict]]) -> List[WorkItem]:
        """
        Bulk-create the items of a job, all PENDING, preserving input order.

        Args:
            job_id: Owning job
            items: WorkItem instances or dicts with ``row_id``, ``code`` and ``brand``

        Raises:
            ValueError: If two items share a row_id
        """
        now = utc_now_iso()
        created = []
        seen = set()
        for item in items:
            if isinstance(item, dict):
                item = WorkItem(row_id=int(item["row_id"]), code=str(item["code"]), brand=str(item.get("brand") or ""))
            if item.row_id in seen:
                raise ValueError(f"Duplicate row_id {item.row_id} in work items for {job_id}")
            seen.add(item.row_id)
            created.append(
                WorkItem(row_id=item.row_id, code=item.code, brand=item.brand, status=WorkItemStatus.PENDING, updated_at=now)
            )

        with self.store.locked(job_id):
            self._save(job_id, created)
        logger.debug(f"[{job_id}] Stored {len(created)} work items")
        return created

    def next_pending(self, job_id: str) -> Optional[WorkItem]:
        for item in self.load(job_id):
            if item.status == WorkItemStatus.PENDING:
                return item
        return None

    def get(self, job_id: str, row_id: int) -> WorkItem:
        for item in self.load(job_id):
            if item.row_id == row_id:
                return item
        raise WorkItemNotFoundError(f"[{job_id}] No work item with row_id {row_id}")

    def set_status(self, job_id: str, row_id: int, status: WorkItemStatus) -> WorkItem:
        """Unconditionally set an item's status (last writer wins)."""
        status = WorkItemStatus(status)
        with self.store.locked(job_id):
            items = self.load(job_id)
            for item in items:
                if item.row_id == row_id:
                    item.status = status
                    item.updated_at = utc_now_iso()
                    self._save(job_id, items)
                    return item
        raise WorkItemNotFoundError(f"[{job_id}] No work item with row_id {row_id}")

    def reset_in_progress(self, job_id: str) -> int:
        """Flip every IN_PROGRESS item back to PENDING. Returns how many were reset."""
        with self.store.locked(job_id):
            items = self.load(job_id)
            now = utc_now_iso()
            reset = 0
            for item in items:
                if item.status == WorkItemStatus.IN_PROGRESS:
                    item.status = WorkItemStatus.PENDING
                    item.updated_at = now
                    reset += 1
            if reset:
                self._save(job_id, items)

        if reset:
            logger.info(f"[{job_id}] Reset {reset} in-progress items to PENDING")
        return reset

    def by_status(self, job_id: str, status: WorkItemStatus) -> List[WorkItem]:
        status = WorkItemStatus(status)
        return [item for item in self.load(job_id) if item.status == status]

    def stats(self, job_id: str) -> Dict[str, int]:
        items = self.load(job_id)
        counts = {status: 0 for status in WorkItemStatus}
        for item in items:
            counts[item.status] += 1
        return {
            "total": len(items),
            "pending": counts[WorkItemStatus.PENDING],
            "in_progress": counts[WorkItemStatus.IN_PROGRESS],
            "done": counts[WorkItemStatus.DONE],
            "failed": counts[WorkItemStatus.FAILED],
            "not_found": counts[WorkItemStatus.NOT_FOUND],
        }

    def all_terminal(self, job_id: str) -> bool:
        return all(item.status.is_terminal for item in self.load(job_id))
