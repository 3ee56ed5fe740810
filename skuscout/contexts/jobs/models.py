"""
Record types for jobs, work items and processed outcomes.

All records serialise to plain JSON-compatible dicts (``to_dict``/``from_dict``)
so any StateStore backend can persist them.
"""

import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import List, Optional

from skuscout.utils.helpers import utc_now_iso


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class WorkItemStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ITEM_STATUSES


TERMINAL_ITEM_STATUSES = frozenset(
    {WorkItemStatus.DONE, WorkItemStatus.FAILED, WorkItemStatus.NOT_FOUND}
)


def new_job_id() -> str:
    """Opaque job identity: ``JOB_<epoch-ms>_<8 hex chars>``."""
    return f"JOB_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass
class Job:
    job_id: str
    status: JobStatus = JobStatus.QUEUED
    total_items: int = 0
    processed: int = 0
    failed: int = 0
    created_at: str = field(default_factory=utc_now_iso)
    started_at: Optional[str] = None
    paused_at: Optional[str] = None
    completed_at: Optional[str] = None
    error_message: Optional[str] = None
    last_processed_row: Optional[int] = None
    source_file: Optional[str] = None

    @property
    def progress_percent(self) -> float:
        if not self.total_items:
            return 0.0
        return round(100.0 * self.processed / self.total_items, 1)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        data = dict(data)
        data["status"] = JobStatus(data["status"])
        return cls(**data)


@dataclass
class WorkItem:
    row_id: int
    code: str
    brand: str = ""
    status: WorkItemStatus = WorkItemStatus.PENDING
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "WorkItem":
        data = dict(data)
        data["status"] = WorkItemStatus(data.get("status", WorkItemStatus.PENDING))
        return cls(**data)


@dataclass
class CandidateMatch:
    """One external product record gathered for a work item, with its validation flags."""

    external_id: str
    brand: Optional[str] = None
    title: Optional[str] = None
    rating_value: Optional[float] = None
    review_count: Optional[int] = None
    rank_value: Optional[int] = None
    extracted_code: Optional[str] = None
    brand_match: bool = False
    code_match: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CandidateMatch":
        return cls(**data)


@dataclass
class ProcessedOutcome:
    row_id: int
    input_code: str
    input_brand: str
    status: WorkItemStatus
    candidates: List[CandidateMatch] = field(default_factory=list)
    error: Optional[str] = None
    attempts: int = 1
    used_fallback: bool = False
    saved_at: Optional[str] = None

    @property
    def has_brand_match(self) -> bool:
        return any(c.brand_match for c in self.candidates)

    @property
    def has_code_match(self) -> bool:
        return any(c.code_match for c in self.candidates)

    def to_dict(self) -> dict:
        return {
            "row_id": self.row_id,
            "input_code": self.input_code,
            "input_brand": self.input_brand,
            "status": self.status.value,
            "candidates": [c.to_dict() for c in self.candidates],
            "error": self.error,
            "attempts": self.attempts,
            "used_fallback": self.used_fallback,
            "saved_at": self.saved_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessedOutcome":
        data = dict(data)
        data["status"] = WorkItemStatus(data["status"])
        data["candidates"] = [CandidateMatch.from_dict(c) for c in data.get("candidates", [])]
        return cls(**data)
