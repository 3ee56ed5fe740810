"""
Data storage domain.

Handles durable persistence of job documents to the local filesystem or PostgreSQL.

Public API exports only the interfaces needed by other contexts.
Credentials and implementation details remain private.
"""

from skuscout.contexts.storage.base import (
    DOCUMENT_KINDS,
    ITEMS_DOC,
    JOB_DOC,
    OUTCOMES_DOC,
    StateStore,
)
from skuscout.contexts.storage.config import StoreConfig
from skuscout.contexts.storage.getter import (
    get_state_store,
)

__all__ = [
    # Factory function (primary interface)
    "get_state_store",
    # Generic interfaces
    "StateStore",
    "StoreConfig",
    # Document kinds
    "JOB_DOC",
    "ITEMS_DOC",
    "OUTCOMES_DOC",
    "DOCUMENT_KINDS",
]
