"""
Product scraping domain.

Handles searching the retail catalog for codes, extracting product pages,
classifying failures and driving jobs through the worker loop.
"""

from skuscout.contexts.scraping.errors import (
    CatalogError,
    ErrorClassifier,
    ErrorKind,
    OutcomeDescriptor,
    RetryPolicy,
    SubstringMarkerDetector,
)
from skuscout.contexts.scraping.delays import DelayPolicy, DelayRange
from skuscout.contexts.scraping.validation import validate_brand, validate_code
from skuscout.contexts.scraping.catalog import (
    Candidate,
    HTTPCatalog,
    ProductDetails,
    SearchResult,
)
from skuscout.contexts.scraping.requests import CatalogFetcher, describe_http_outcome
from skuscout.contexts.scraping.worker import WorkerLoop, WorkerSettings
from skuscout.contexts.scraping.orchestration import (
    WorkerSupervisor,
    recover_running_jobs,
    setup_logger,
)

__all__ = [
    "CatalogError",
    "ErrorClassifier",
    "ErrorKind",
    "OutcomeDescriptor",
    "RetryPolicy",
    "SubstringMarkerDetector",
    "DelayPolicy",
    "DelayRange",
    "validate_brand",
    "validate_code",
    "Candidate",
    "HTTPCatalog",
    "ProductDetails",
    "SearchResult",
    "CatalogFetcher",
    "describe_http_outcome",
    "WorkerLoop",
    "WorkerSettings",
    "WorkerSupervisor",
    "recover_running_jobs",
    "setup_logger",
]
