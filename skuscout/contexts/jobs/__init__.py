"""
Jobs domain.

Owns job records, their work items and processed outcomes, and the state
machine every job moves through.
"""

from skuscout.contexts.jobs.models import (
    CandidateMatch,
    Job,
    JobStatus,
    ProcessedOutcome,
    WorkItem,
    WorkItemStatus,
)
from skuscout.contexts.jobs.registry import (
    InvalidTransitionError,
    JobNotFoundError,
    JobRegistry,
)
from skuscout.contexts.jobs.work_items import WorkItemStore
from skuscout.contexts.jobs.results import ResultStore
from skuscout.contexts.jobs.ingest import IngestError, load_work_items

__all__ = [
    "Job",
    "JobStatus",
    "WorkItem",
    "WorkItemStatus",
    "CandidateMatch",
    "ProcessedOutcome",
    "JobRegistry",
    "JobNotFoundError",
    "InvalidTransitionError",
    "WorkItemStore",
    "ResultStore",
    "IngestError",
    "load_work_items",
]
