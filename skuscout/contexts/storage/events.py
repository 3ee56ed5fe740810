"""Per-job error event log written to JSON Lines."""

import json
import os
from collections import deque
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from skuscout.utils.helpers import utc_now_iso

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))

RECENT_ERRORS_LIMIT = 100


def _error_log_path(job_id: str, log_dir: Path) -> Path:
    return Path(log_dir) / "errors" / f"{job_id}.jsonl"


def log_error_event(
    job_id: str,
    row_id: Optional[int],
    error_kind: str,
    message: str,
    action: str,
    attempt: Optional[int] = None,
    status_code: Optional[int] = None,
    log_dir: Path = LOGS_PATH,
) -> None:
    """Append a classified failure for ``job_id`` to ``errors/<job_id>.jsonl``."""

    path = _error_log_path(job_id, log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "timestamp": utc_now_iso(),
        "job_id": job_id,
        "row_id": row_id,
        "error_kind": error_kind,
        "status_code": status_code,
        "attempt": attempt,
        "action": action,
        "message": message,
    }

    # One JSON object per line so the file can be tailed and streamed.
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(json.dumps(payload) + "\n")


def recent_errors(job_id: str, limit: int = RECENT_ERRORS_LIMIT, log_dir: Path = LOGS_PATH) -> List[dict]:
    """Return the last ``limit`` error events for a job, oldest first."""
    path = _error_log_path(job_id, log_dir)
    if not path.exists():
        return []

    tail = deque(maxlen=limit)
    with open(path, "r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                tail.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return list(tail)


def clear_error_log(job_id: str, log_dir: Path = LOGS_PATH) -> None:
    path = _error_log_path(job_id, log_dir)
    if path.exists():
        path.unlink()
