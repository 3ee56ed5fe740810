"""
Worker loop: drives one job's work items through search -> extract -> validate.

Per item:
    1. mark IN_PROGRESS
    2. search the code (retrying per policy); empty result -> search again
       with the fallback prefix; still empty -> NotFound
    3. for each candidate (up to max_candidates): wait, extract the product
       page (retrying per policy, bounded attempts), validate and keep it;
       a candidate that cannot be extracted is skipped
    4. Done

A CHALLENGE classification anywhere aborts the item as ``Challenge``; the item
goes back to PENDING and any candidates gathered so far are discarded (the
item is reprocessed from scratch and its outcome overwritten).

Each item resolves to exactly one ``ItemResult`` variant which ``_apply``
dispatches on: persisting the outcome, updating counters and pausing the job
when a consecutive-challenge or consecutive-failure threshold is reached.
"""

import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Union

from loguru import logger
from omegaconf import DictConfig

from skuscout.contexts.jobs.models import (
    CandidateMatch,
    JobStatus,
    ProcessedOutcome,
    WorkItem,
    WorkItemStatus,
)
from skuscout.contexts.jobs.registry import InvalidTransitionError, JobRegistry
from skuscout.contexts.jobs.results import ResultStore
from skuscout.contexts.jobs.work_items import WorkItemStore
from skuscout.contexts.scraping.catalog import ProductExtractor, SearchClient, SearchResult
from skuscout.contexts.scraping.delays import DelayPolicy
from skuscout.contexts.scraping.errors import CatalogError, ErrorClassifier, ErrorKind
from skuscout.contexts.scraping.validation import validate_brand, validate_code
from skuscout.contexts.storage.events import LOGS_PATH, log_error_event

CHALLENGE_PAUSE_MESSAGE = (
    "Bot challenge detected {count} times in a row - job paused. Wait 30-60 minutes before resuming."
)
FAILURE_PAUSE_MESSAGE = "Too many consecutive failures ({count}) - job paused. Check network connectivity."


# --- Item results ---


@dataclass(frozen=True)
class Done:
    candidates: List[CandidateMatch] = field(default_factory=list)
    used_fallback: bool = False
    attempts: int = 1


@dataclass(frozen=True)
class NotFound:
    used_fallback: bool = True
    attempts: int = 1


@dataclass(frozen=True)
class Failed:
    error: str
    kind: Optional[ErrorKind] = None
    attempts: int = 1


@dataclass(frozen=True)
class Challenge:
    message: str


ItemResult = Union[Done, NotFound, Failed, Challenge]


class ItemChallenged(Exception):
    """Internal signal: a CHALLENGE aborted the current item."""

    def __init__(self, error: CatalogError):
        super().__init__(str(error))
        self.error = error


@dataclass
class WorkerSettings:
    max_candidates: int = 3
    product_max_attempts: int = 2
    fallback_prefix: str = "00"
    max_consecutive_challenges: int = 3
    max_consecutive_failures: int = 10

    @classmethod
    def from_config(cls, config: DictConfig) -> "WorkerSettings":
        worker = config.worker
        return cls(
            max_candidates=worker.max_candidates,
            product_max_attempts=worker.product_max_attempts,
            fallback_prefix=worker.fallback_prefix,
            max_consecutive_challenges=worker.max_consecutive_challenges,
            max_consecutive_failures=worker.max_consecutive_failures,
        )


class WorkerLoop:
    """
    Single-lane processor for one job.

    Nothing inside a loop runs concurrently; every fetch and every delay
    blocks the calling thread. Pausing is cooperative: the loop re-reads the
    job after each item and stops when it is no longer RUNNING.

    Args:
        job_id: Job to process
        registry: JobRegistry (job records and transitions)
        work_items: WorkItemStore of the job's items
        results: ResultStore for processed outcomes
        search_client: SearchClient collaborator
        product_extractor: ProductExtractor collaborator
        classifier: ErrorClassifier providing retry policies
        delays: DelayPolicy pacing requests (and performing backoff sleeps)
        settings: WorkerSettings thresholds and limits
        on_complete: Called with job_id once the job reaches COMPLETED (export generation)
        log_dir: Directory for per-job error logs
    """

    def __init__(
        self,
        job_id: str,
        registry: JobRegistry,
        work_items: WorkItemStore,
        results: ResultStore,
        search_client: SearchClient,
        product_extractor: ProductExtractor,
        classifier: ErrorClassifier,
        delays: DelayPolicy,
        settings: Optional[WorkerSettings] = None,
        on_complete: Optional[Callable[[str], object]] = None,
        log_dir: Path = LOGS_PATH,
    ):
        self.job_id = job_id
        self.registry = registry
        self.work_items = work_items
        self.results = results
        self.search_client = search_client
        self.product_extractor = product_extractor
        self.classifier = classifier
        self.delays = delays
        self.settings = settings or WorkerSettings()
        self.on_complete = on_complete
        self.log_dir = log_dir

        self.consecutive_challenges = 0
        self.consecutive_failures = 0
        self._current_row: Optional[int] = None
        self._attempts = 0

    # --- Loop ---

    def run(self) -> Optional[JobStatus]:
        """
        Process items until the job completes, pauses, disappears or runs dry.

        Returns:
            The job status observed when the loop exited (None if the job was deleted)
        """
        logger.info(f"[{self.job_id}] Worker loop started")
        try:
            return self._run()
        except Exception as e:
            logger.error(f"[{self.job_id}] Worker loop crashed: {e}\n{traceback.format_exc()}")
            return self._fail_job(f"Worker crashed: {e}")

    def _run(self) -> Optional[JobStatus]:
        while True:
            job = self.registry.find(self.job_id)
            if job is None:
                logger.warning(f"[{self.job_id}] Job no longer exists, stopping worker")
                return None
            if job.status != JobStatus.RUNNING:
                logger.info(f"[{self.job_id}] Job is {job.status.value}, stopping worker")
                return job.status

            item = self.work_items.next_pending(self.job_id)
            if item is None:
                return self._finish()

            result = self.process_item(item)
            self._apply(item, result)

            # Checkpoint: observe external pause/delete before pacing
            job = self.registry.find(self.job_id)
            if job is None or job.status != JobStatus.RUNNING:
                continue
            self.delays.wait("item_to_item")

    def _finish(self) -> JobStatus:
        if not self.work_items.all_terminal(self.job_id):
            logger.warning(f"[{self.job_id}] No pending items but some are not terminal; leaving job RUNNING")
            return JobStatus.RUNNING

        with self.registry.store.locked(self.job_id):
            self.registry.sync_progress(self.job_id)
            job = self.registry.transition(self.job_id, JobStatus.COMPLETED)
        logger.success(f"[{self.job_id}] Completed: {job.processed}/{job.total_items} items processed, {job.failed} failed")

        if self.on_complete is not None:
            try:
                self.on_complete(self.job_id)
            except Exception as e:
                logger.error(f"[{self.job_id}] Export generation failed: {e}")
        return JobStatus.COMPLETED

    def _fail_job(self, message: str) -> Optional[JobStatus]:
        try:
            return self.registry.transition(self.job_id, JobStatus.FAILED, error_message=message).status
        except (InvalidTransitionError, KeyError) as e:
            logger.error(f"[{self.job_id}] Could not mark job FAILED: {e}")
            job = self.registry.find(self.job_id)
            return job.status if job else None

    # --- Per-item processing ---

    def process_item(self, item: WorkItem) -> ItemResult:
        """Drive one work item to an ItemResult. Never raises for item-level failures."""
        self._current_row = item.row_id
        self._attempts = 0
        self.work_items.set_status(self.job_id, item.row_id, WorkItemStatus.IN_PROGRESS)
        logger.info(f"[{self.job_id}] Row {item.row_id}: code={item.code} brand={item.brand}")

        try:
            return self._resolve(item)
        except ItemChallenged as signal:
            return Challenge(message=signal.error.message)
        except CatalogError as e:
            return Failed(error=str(e), kind=e.kind, attempts=self._attempts)
        except Exception as e:
            logger.error(f"[{self.job_id}] Row {item.row_id}: unexpected error: {e}")
            return Failed(error=str(e), attempts=max(self._attempts, 1))

    def _resolve(self, item: WorkItem) -> ItemResult:
        search, used_fallback = self._search_with_fallback(item.code)
        if search.is_empty:
            logger.info(f"[{self.job_id}] Row {item.row_id}: no candidates found")
            return NotFound(used_fallback=used_fallback, attempts=self._attempts)

        candidates: List[CandidateMatch] = []
        for index, candidate in enumerate(search.candidates[: self.settings.max_candidates]):
            self.delays.wait("search_to_product" if index == 0 else "product_to_product")
            try:
                details = self._with_retry(
                    self.product_extractor.extract_product,
                    candidate.external_id,
                    max_attempts=self.settings.product_max_attempts,
                )
            except CatalogError as e:
                logger.warning(f"[{self.job_id}] Row {item.row_id}: skipping {candidate.external_id} ({e})")
                continue

            match = CandidateMatch(
                external_id=candidate.external_id,
                brand=details.brand,
                title=details.title,
                rating_value=details.rating_value,
                review_count=details.review_count,
                rank_value=details.rank_value,
                extracted_code=details.extracted_code,
                brand_match=validate_brand(details.brand, item.brand),
                code_match=validate_code(details.extracted_code, item.code),
            )
            candidates.append(match)
            logger.debug(
                f"[{self.job_id}] Row {item.row_id}: {match.external_id} "
                f"brand_match={match.brand_match} code_match={match.code_match}"
            )

        return Done(candidates=candidates, used_fallback=used_fallback, attempts=self._attempts)

    def _search_with_fallback(self, code: str):
        search = self._search(code)
        if not search.is_empty:
            return search, False

        fallback = f"{self.settings.fallback_prefix}{code}"
        logger.info(f"[{self.job_id}] No results for {code}, trying fallback {fallback}")
        self.delays.wait("search_to_product")
        return self._search(fallback), True

    def _search(self, code: str) -> SearchResult:
        try:
            return self._with_retry(self.search_client.search, code)
        except CatalogError as e:
            if e.kind == ErrorKind.NOT_FOUND:
                return SearchResult(candidates=[], exhausted=True)
            raise

    def _with_retry(self, fn, arg, max_attempts: Optional[int] = None):
        """
        Call ``fn(arg)``, retrying classified failures per their RetryPolicy.

        CHALLENGE is never retried here; it aborts the item via ItemChallenged.
        """
        attempt = 0
        while True:
            self._attempts += 1
            try:
                return fn(arg)
            except CatalogError as e:
                if e.kind == ErrorKind.CHALLENGE:
                    self._log_error(e, attempt, action="abort_item")
                    raise ItemChallenged(e)

                out_of_attempts = max_attempts is not None and attempt + 1 >= max_attempts
                if out_of_attempts or not self.classifier.is_retryable(e.kind, attempt):
                    self._log_error(e, attempt, action="give_up")
                    raise

                delay = self.classifier.retry_delay(e.kind, attempt)
                self._log_error(e, attempt, action=f"retry_in_{delay:.1f}s")
                logger.warning(f"[{self.job_id}] {e.kind.value} on '{arg}', retrying in {delay:.1f}s")
                self.delays.pause(delay, reason=f"{e.kind.value} backoff")
                attempt += 1

    def _log_error(self, error: CatalogError, attempt: int, action: str) -> None:
        log_error_event(
            self.job_id,
            row_id=self._current_row,
            error_kind=error.kind.value,
            message=error.message,
            action=action,
            attempt=attempt,
            status_code=error.status_code,
            log_dir=self.log_dir,
        )

    # --- Dispatch ---

    def _apply(self, item: WorkItem, result: ItemResult) -> None:
        if isinstance(result, Done):
            self._record(item, WorkItemStatus.DONE, result.candidates, used_fallback=result.used_fallback, attempts=result.attempts)
            self.consecutive_challenges = 0
            self.consecutive_failures = 0
            logger.info(f"[{self.job_id}] Row {item.row_id}: DONE with {len(result.candidates)} candidates")

        elif isinstance(result, NotFound):
            self._record(item, WorkItemStatus.NOT_FOUND, used_fallback=result.used_fallback, attempts=result.attempts)
            self.consecutive_challenges = 0
            self.consecutive_failures = 0

        elif isinstance(result, Failed):
            self._record(item, WorkItemStatus.FAILED, error=result.error, attempts=result.attempts)
            self.consecutive_failures += 1
            if result.kind is None:
                log_error_event(
                    self.job_id, row_id=item.row_id, error_kind=ErrorKind.UNKNOWN.value,
                    message=result.error, action="item_failed", log_dir=self.log_dir,
                )
            logger.warning(f"[{self.job_id}] Row {item.row_id}: FAILED ({result.error})")
            if self.consecutive_failures >= self.settings.max_consecutive_failures:
                self._pause(FAILURE_PAUSE_MESSAGE.format(count=self.consecutive_failures))

        elif isinstance(result, Challenge):
            self.consecutive_challenges += 1
            self.work_items.set_status(self.job_id, item.row_id, WorkItemStatus.PENDING)
            logger.warning(f"[{self.job_id}] Row {item.row_id}: challenge #{self.consecutive_challenges} ({result.message})")
            if self.consecutive_challenges >= self.settings.max_consecutive_challenges:
                self._pause(CHALLENGE_PAUSE_MESSAGE.format(count=self.consecutive_challenges))
            else:
                cooldown = self.classifier.retry_delay(ErrorKind.CHALLENGE, 0)
                self.delays.pause(cooldown, reason="challenge cooldown")

        else:
            raise TypeError(f"Unknown item result: {result!r}")

    def _record(
        self,
        item: WorkItem,
        status: WorkItemStatus,
        candidates: Optional[List[CandidateMatch]] = None,
        error: Optional[str] = None,
        used_fallback: bool = False,
        attempts: int = 1,
    ) -> None:
        outcome = ProcessedOutcome(
            row_id=item.row_id,
            input_code=item.code,
            input_brand=item.brand,
            status=status,
            candidates=list(candidates or []),
            error=error,
            attempts=attempts,
            used_fallback=used_fallback,
        )
        # Outcome, item status and counters change together
        with self.registry.store.locked(self.job_id):
            if not self.registry.exists(self.job_id):
                logger.warning(f"[{self.job_id}] Job deleted while processing row {item.row_id}, dropping outcome")
                return
            self.results.upsert(self.job_id, outcome)
            self.work_items.set_status(self.job_id, item.row_id, status)
            self.registry.sync_progress(self.job_id, last_processed_row=item.row_id)

    def _pause(self, message: str) -> None:
        logger.warning(f"[{self.job_id}] {message}")
        try:
            self.registry.transition(self.job_id, JobStatus.PAUSED, error_message=message)
        except InvalidTransitionError as e:
            # Already paused or stopped externally
            logger.info(f"[{self.job_id}] {e}")
