"""
Worker orchestration: logging setup, supervised worker threads and recovery.

Provides functionality to:
- Log execution details to timestamped files
- Launch one worker loop per job as a supervised thread (no double launch)
- Query which jobs have a live loop
- Recover jobs left RUNNING by an uncontrolled exit
"""

import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from dotenv import load_dotenv
from loguru import logger

from skuscout.contexts.jobs.models import JobStatus
from skuscout.contexts.jobs.registry import JobRegistry
from skuscout.contexts.jobs.work_items import WorkItemStore
from skuscout.contexts.scraping.worker import WorkerLoop

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))


def setup_logger(log_dir: Path = LOGS_PATH) -> Path:
    """
    Configure loguru to write to timestamped log file.

    Args:
        log_dir: Directory for log files (default: LOGS_PATH from environment)

    Returns:
        Path to the created log file
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"scraping_{timestamp}.txt"

    # Remove default handler and add file handler
    logger.remove()  # Remove default stderr handler
    logger.add(log_file, format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {thread.name} | {message}", enqueue=True)
    logger.add(
        lambda msg: print(msg, end=""),  # Also print to console
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}\n",
        level="INFO",
    )

    return log_file


class WorkerSupervisor:
    """
    Keeps a handle on every worker thread, keyed by job id.

    Args:
        worker_factory: Builds a ready-to-run WorkerLoop for a job id
    """

    def __init__(self, worker_factory: Callable[[str], WorkerLoop]):
        self.worker_factory = worker_factory
        self._threads: Dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def launch(self, job_id: str) -> bool:
        """
        Start a worker loop for ``job_id`` unless one is already alive.

        Returns:
            True if a new loop was started, False if one was already running
        """
        with self._lock:
            existing = self._threads.get(job_id)
            if existing is not None and existing.is_alive():
                logger.info(f"[{job_id}] Worker already running, not launching another")
                return False

            thread = threading.Thread(target=self._run, args=(job_id,), name=f"worker-{job_id}")
            self._threads[job_id] = thread
            thread.start()

        logger.info(f"[{job_id}] Worker launched")
        return True

    def _run(self, job_id: str) -> None:
        try:
            self.worker_factory(job_id).run()
        except Exception as e:
            logger.error(f"[{job_id}] Worker could not run: {e}")
        finally:
            with self._lock:
                if self._threads.get(job_id) is threading.current_thread():
                    del self._threads[job_id]

    def is_alive(self, job_id: str) -> bool:
        with self._lock:
            thread = self._threads.get(job_id)
        return thread is not None and thread.is_alive()

    def active_jobs(self) -> List[str]:
        with self._lock:
            return sorted(job_id for job_id, thread in self._threads.items() if thread.is_alive())

    def join(self, job_id: Optional[str] = None, timeout: Optional[float] = None) -> None:
        """Block until the given job's loop (or every loop) has exited."""
        with self._lock:
            threads = [self._threads.get(job_id)] if job_id else list(self._threads.values())
        for thread in threads:
            if thread is not None:
                thread.join(timeout)


def recover_running_jobs(
    registry: JobRegistry,
    work_items: WorkItemStore,
    supervisor: WorkerSupervisor,
) -> List[str]:
    """
    Recovery sweep: relaunch every job left RUNNING.

    For each RUNNING job, IN_PROGRESS items are reset to PENDING before a
    fresh loop is launched, so an item interrupted mid-flight is reprocessed
    rather than lost. Assumes no other process works against the same store.

    Returns:
        Job ids for which a loop was launched
    """
    recovered = []
    for job in registry.jobs_in_status(JobStatus.RUNNING):
        reset = work_items.reset_in_progress(job.job_id)
        logger.info(f"[{job.job_id}] Recovering RUNNING job ({reset} in-progress items reset)")
        if supervisor.launch(job.job_id):
            recovered.append(job.job_id)

    if recovered:
        logger.success(f"Recovered {len(recovered)} job(s): {', '.join(recovered)}")
    else:
        logger.info("No RUNNING jobs to recover")
    return recovered
