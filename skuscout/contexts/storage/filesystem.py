"""
Local-filesystem implementation of StateStore.

Layout: ``<root>/<job_id>/{job,items,outcomes}.json``. Documents are written to
a temporary file in the same directory and moved into place with ``os.replace``
so a crash mid-write never leaves a truncated document behind.
"""

import json
import os
import shutil
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from skuscout.contexts.storage.config import StoreConfig
from skuscout.contexts.storage.base import JOB_DOC, StateStore


class FileStateStore(StateStore):
    """
    Stores each job as a directory of JSON documents.

    Locks are process-local: this backend assumes a single process owns the
    storage directory.
    """

    def __init__(self, config: StoreConfig):
        super().__init__(config)
        self.root = Path(config.root)
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _ensure_ready(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _job_dir(self, job_id: str) -> Path:
        return self.root / job_id

    def _doc_path(self, job_id: str, kind: str) -> Path:
        self._check_kind(kind)
        return self._job_dir(job_id) / f"{kind}.json"

    def read(self, job_id: str, kind: str) -> Optional[Any]:
        path = self._doc_path(job_id, kind)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def write(self, job_id: str, kind: str, value: Any) -> None:
        path = self._doc_path(job_id, kind)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{kind}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            # Leave the previous document intact
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def delete(self, job_id: str) -> None:
        job_dir = self._job_dir(job_id)
        if job_dir.exists():
            shutil.rmtree(job_dir)
            logger.debug(f"[{job_id}] Removed {job_dir}")
        with self._locks_guard:
            self._locks.pop(job_id, None)

    def list_jobs(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(
            entry.name
            for entry in self.root.iterdir()
            if entry.is_dir() and (entry / f"{JOB_DOC}.json").exists()
        )

    @contextmanager
    def locked(self, job_id: str):
        with self._locks_guard:
            lock = self._locks.setdefault(job_id, threading.RLock())
        with lock:
            yield
