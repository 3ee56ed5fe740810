"""
Caller-facing job operations.

``JobService`` wires the stores, the registry, the catalog collaborators and
the worker supervisor together and exposes the operations a CLI or API layer
needs: create, start/resume, pause, read, delete, retry, list, recover.
"""

import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from loguru import logger
from omegaconf import DictConfig

from skuscout.contexts.export.csv_export import delete_export, generate_export
from skuscout.contexts.jobs.ingest import load_work_items
from skuscout.contexts.jobs.models import Job, JobStatus, WorkItem, WorkItemStatus, new_job_id
from skuscout.contexts.jobs.registry import InvalidTransitionError, JobRegistry
from skuscout.contexts.jobs.results import ResultStore
from skuscout.contexts.jobs.work_items import WorkItemStore
from skuscout.contexts.scraping.catalog import HTTPCatalog, ProductExtractor, SearchClient
from skuscout.contexts.scraping.requests import CatalogFetcher
from skuscout.contexts.scraping.delays import DelayPolicy
from skuscout.contexts.scraping.errors import ErrorClassifier
from skuscout.contexts.scraping.orchestration import WorkerSupervisor, recover_running_jobs
from skuscout.contexts.scraping.worker import WorkerLoop, WorkerSettings
from skuscout.contexts.storage.base import StateStore
from skuscout.contexts.storage.config import EXPORTS_PATH
from skuscout.contexts.storage.events import LOGS_PATH, clear_error_log, recent_errors
from skuscout.contexts.storage.getter import get_state_store
from skuscout.contexts.storage.maintenance import DEFAULT_RETENTION_DAYS, purge_completed_jobs
from skuscout.utils.config_helpers import load_config
from skuscout.utils.helpers import relative_to_project

PAUSED_BY_REQUEST = "Paused by request"


class JobService:
    """
    Facade over the jobs, scraping and export contexts.

    Args:
        store: StateStore holding every job document
        search_client: SearchClient used by worker loops
        product_extractor: ProductExtractor used by worker loops
        classifier: ErrorClassifier with retry policies
        delays: DelayPolicy for pacing and backoff
        settings: WorkerSettings thresholds
        exports_dir: Where CSV exports are written
        log_dir: Where per-job error logs are written

    Example:
        >>> service = JobService.from_config()
        >>> job = service.create_job_from_file("inputs/codes.xlsx")
        >>> service.start_job(job.job_id)
        >>> service.read_job(job.job_id)["progress_percent"]
    """

    def __init__(
        self,
        store: StateStore,
        search_client: SearchClient,
        product_extractor: ProductExtractor,
        classifier: ErrorClassifier,
        delays: DelayPolicy,
        settings: Optional[WorkerSettings] = None,
        exports_dir: Path = EXPORTS_PATH,
        log_dir: Path = LOGS_PATH,
    ):
        self.store = store
        self.work_items = WorkItemStore(store)
        self.results = ResultStore(store)
        self.registry = JobRegistry(store, self.work_items)
        self.search_client = search_client
        self.product_extractor = product_extractor
        self.classifier = classifier
        self.delays = delays
        self.settings = settings or WorkerSettings()
        self.exports_dir = Path(exports_dir)
        self.log_dir = Path(log_dir)
        self.supervisor = WorkerSupervisor(self.build_worker)

    @classmethod
    def from_config(
        cls,
        store: Optional[StateStore] = None,
        fetch_config: Optional[DictConfig] = None,
        selectors: Optional[DictConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        **kwargs,
    ) -> "JobService":
        """Production wiring: YAML config, HTTP catalog, store from STORE_BACKEND."""
        fetch_config = fetch_config or load_config("fetch")
        selectors = selectors or load_config("selectors")
        classifier = ErrorClassifier.from_config(fetch_config)
        fetcher = CatalogFetcher.from_config(fetch_config, classifier=classifier)
        catalog = HTTPCatalog.from_config(fetch_config, selectors, fetcher=fetcher)
        return cls(
            store=store or get_state_store(),
            search_client=catalog,
            product_extractor=catalog,
            classifier=classifier,
            delays=DelayPolicy.from_config(fetch_config, sleep=sleep),
            settings=WorkerSettings.from_config(fetch_config),
            **kwargs,
        )

    def build_worker(self, job_id: str) -> WorkerLoop:
        return WorkerLoop(
            job_id,
            registry=self.registry,
            work_items=self.work_items,
            results=self.results,
            search_client=self.search_client,
            product_extractor=self.product_extractor,
            classifier=self.classifier,
            delays=self.delays,
            settings=self.settings,
            on_complete=self.export,
            log_dir=self.log_dir,
        )

    # --- Operations ---

    def create_job(self, items: Iterable[Union[WorkItem, dict]], source_file: Optional[str] = None) -> Job:
        """
        Create a QUEUED job with its work items, all PENDING, in the given order.

        Raises:
            ValueError: If ``items`` is empty or holds duplicate row ids
        """
        items = list(items)
        if not items:
            raise ValueError("Cannot create a job without work items")

        job_id = new_job_id()
        # Items first: a job record never exists without its items
        created = self.work_items.create_all(job_id, items)
        return self.registry.create(total_items=len(created), source_file=source_file, job_id=job_id)

    def create_job_from_file(self, path: Union[str, Path]) -> Job:
        items, report = load_work_items(path)
        job = self.create_job(items, source_file=relative_to_project(path))
        logger.info(f"[{job.job_id}] Loaded {report.valid_rows} items from {Path(path).name}")
        return job

    def start_job(self, job_id: str) -> Job:
        """
        Start a QUEUED job or resume a PAUSED one, launching its worker loop.

        IN_PROGRESS items left by an interrupted loop are reset to PENDING first.

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidTransitionError: If the job is not QUEUED or PAUSED
        """
        with self.store.locked(job_id):
            job = self.registry.get(job_id)
            if job.status not in (JobStatus.QUEUED, JobStatus.PAUSED):
                raise InvalidTransitionError(job_id, job.status, JobStatus.RUNNING)
            self.work_items.reset_in_progress(job_id)
            job = self.registry.transition(job_id, JobStatus.RUNNING)

        self.supervisor.launch(job_id)
        return job

    def pause_job(self, job_id: str, reason: str = PAUSED_BY_REQUEST) -> Job:
        """Request a pause; the loop stops at its next per-item checkpoint."""
        return self.registry.transition(job_id, JobStatus.PAUSED, error_message=reason)

    def retry_job(self, job_id: str, reset_failed_items: bool = False) -> Job:
        """
        Move a FAILED job back to QUEUED so it can be started again.

        Args:
            job_id: Job identity
            reset_failed_items: Also put FAILED work items back to PENDING
        """
        with self.store.locked(job_id):
            job = self.registry.transition(job_id, JobStatus.QUEUED)
            if reset_failed_items:
                for item in self.work_items.by_status(job_id, WorkItemStatus.FAILED):
                    self.work_items.set_status(job_id, item.row_id, WorkItemStatus.PENDING)
                job = self.registry.sync_progress(job_id)
        return job

    def read_job(self, job_id: str) -> dict:
        """
        Job record plus derived statistics.

        Returns:
            Dict with keys job, progress_percent, item_stats, result_stats,
            worker_alive and recent_errors
        """
        with self.store.locked(job_id):
            job = self.registry.get(job_id)
            item_stats = self.work_items.stats(job_id)
            result_stats = self.results.stats(job_id)

        return {
            "job": job.to_dict(),
            "progress_percent": job.progress_percent,
            "item_stats": item_stats,
            "result_stats": result_stats,
            "worker_alive": self.supervisor.is_alive(job_id),
            "recent_errors": recent_errors(job_id, log_dir=self.log_dir),
        }

    def delete_job(self, job_id: str) -> None:
        """Remove every durable trace of a job: documents, export file and error log."""
        self.registry.delete(job_id)
        delete_export(job_id, self.exports_dir)
        clear_error_log(job_id, log_dir=self.log_dir)

    def list_jobs(self) -> List[Job]:
        return self.registry.list_jobs()

    def recover(self) -> List[str]:
        """Recovery sweep for jobs left RUNNING by a previous process."""
        return recover_running_jobs(self.registry, self.work_items, self.supervisor)

    def export(self, job_id: str) -> Path:
        return generate_export(job_id, self.results, self.exports_dir)

    def cleanup(self, days: int = DEFAULT_RETENTION_DAYS, dry_run: bool = False) -> dict:
        return purge_completed_jobs(
            self.registry, days=days, exports_dir=self.exports_dir, log_dir=self.log_dir, dry_run=dry_run
        )

    def wait(self, job_id: Optional[str] = None, timeout: Optional[float] = None) -> None:
        """Block until the worker loop of ``job_id`` (or every loop) exits."""
        self.supervisor.join(job_id, timeout)
