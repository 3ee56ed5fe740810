"""
Generic durable state store for SKU Scout.

Provides a backend-agnostic document interface. Every job owns three documents
(the job record, its ordered work items and its processed outcomes) that can be
read and written independently and survive process restarts. Components in the
jobs context build their semantics on top of this interface; the store itself
knows nothing about job statuses.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, List, Optional

from skuscout.contexts.storage.config import StoreConfig

JOB_DOC = "job"
ITEMS_DOC = "items"
OUTCOMES_DOC = "outcomes"
DOCUMENT_KINDS = (JOB_DOC, ITEMS_DOC, OUTCOMES_DOC)


class StateStore(ABC):
    """
    Abstract base class for job state persistence.

    Provides a common interface for different backends (local files, PostgreSQL, ...).
    """

    def __init__(self, config: StoreConfig):
        """
        Initialize state store.

        Args:
            config: Store config
        """
        self.config = config

    @abstractmethod
    def read(self, job_id: str, kind: str) -> Optional[Any]:
        """
        Read one document of a job.

        Args:
            job_id: Job identity
            kind: One of DOCUMENT_KINDS

        Returns:
            The decoded JSON document, or None if it was never written
        """
        pass

    @abstractmethod
    def write(self, job_id: str, kind: str, value: Any) -> None:
        """Replace one document of a job. The write is atomic: readers see old or new, never a mix."""
        pass

    @abstractmethod
    def delete(self, job_id: str) -> None:
        """Remove every document belonging to a job."""
        pass

    @abstractmethod
    def list_jobs(self) -> List[str]:
        """List identities of all jobs that have a job document."""
        pass

    @abstractmethod
    def locked(self, job_id: str) -> AbstractContextManager:
        """
        Context manager serialising read-modify-write sequences on one job.

        Must be re-entrant for the calling thread so that components can nest
        locked operations (e.g. a status update followed by a progress sync).
        """
        pass

    def _ensure_ready(self) -> None:
        """Create whatever the backend needs before first use (directories, tables)."""
        pass

    @staticmethod
    def _check_kind(kind: str) -> None:
        if kind not in DOCUMENT_KINDS:
            raise ValueError(f"Unknown document kind '{kind}'. Expected one of {DOCUMENT_KINDS}")

    @classmethod
    def from_config(cls, config: StoreConfig, ensure_exists: bool = False):
        store = cls(config)
        if ensure_exists:
            store._ensure_ready()
        return store
