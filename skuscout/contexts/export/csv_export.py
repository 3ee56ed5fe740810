"""
CSV export of processed outcomes.

One row per candidate match; an outcome without candidates still produces one
row (empty match columns) so every input code appears in the export.
"""

from pathlib import Path
from typing import Iterable, List

import pandas as pd
from loguru import logger

from skuscout.contexts.jobs.models import ProcessedOutcome
from skuscout.contexts.jobs.results import ResultStore
from skuscout.contexts.storage.config import EXPORTS_PATH

EXPORT_COLUMNS = [
    "Input UPC",
    "Input Brand",
    "ASIN1",
    "Brand1",
    "Customer reviews",
    "Global ratings",
    "UPC1",
    "BSR1",
    "Competitors1",
    "Brand Match1",
    "UPC Match1",
    "Status",
]


def _cell(value) -> str:
    return "" if value is None else str(value)


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def export_rows(outcomes: Iterable[ProcessedOutcome]) -> List[dict]:
    """Flatten outcomes into export rows (column name -> string value)."""
    rows = []
    for outcome in outcomes:
        competitors = len(outcome.candidates)
        base = {
            "Input UPC": outcome.input_code,
            "Input Brand": outcome.input_brand,
            "Competitors1": _cell(competitors or None),
            "Status": outcome.status.value,
        }

        if not outcome.candidates:
            rows.append(
                {
                    **base,
                    "ASIN1": "",
                    "Brand1": "",
                    "Customer reviews": "",
                    "Global ratings": "",
                    "UPC1": outcome.input_code,
                    "BSR1": "",
                    "Brand Match1": _yes_no(False),
                    "UPC Match1": _yes_no(False),
                }
            )
            continue

        for candidate in outcome.candidates:
            rows.append(
                {
                    **base,
                    "ASIN1": candidate.external_id,
                    "Brand1": _cell(candidate.brand),
                    "Customer reviews": _cell(candidate.review_count),
                    "Global ratings": _cell(candidate.rating_value),
                    "UPC1": candidate.extracted_code or outcome.input_code,
                    "BSR1": _cell(candidate.rank_value),
                    "Brand Match1": _yes_no(candidate.brand_match),
                    "UPC Match1": _yes_no(candidate.code_match),
                }
            )
    return rows


def build_export_frame(outcomes: Iterable[ProcessedOutcome]) -> pd.DataFrame:
    return pd.DataFrame(export_rows(outcomes), columns=EXPORT_COLUMNS, dtype=str)


def export_path(job_id: str, exports_dir: Path = EXPORTS_PATH) -> Path:
    return Path(exports_dir) / f"{job_id}.csv"


def generate_export(job_id: str, results: ResultStore, exports_dir: Path = EXPORTS_PATH) -> Path:
    """
    Write ``<exports_dir>/<job_id>.csv`` from the job's stored outcomes.

    Args:
        job_id: Job to export
        results: ResultStore holding the job's outcomes
        exports_dir: Output directory (default: EXPORTS_PATH from environment)

    Returns:
        Path of the written CSV

    Raises:
        ValueError: If the job has no outcomes
    """
    outcomes = results.all(job_id)
    if not outcomes:
        raise ValueError(f"[{job_id}] No results to export")

    frame = build_export_frame(outcomes)
    path = export_path(job_id, exports_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=False)

    logger.info(f"[{job_id}] Exported {len(frame)} rows to {path}")
    return path


def delete_export(job_id: str, exports_dir: Path = EXPORTS_PATH) -> bool:
    path = export_path(job_id, exports_dir)
    if path.exists():
        path.unlink()
        logger.debug(f"[{job_id}] Deleted export {path}")
        return True
    return False
