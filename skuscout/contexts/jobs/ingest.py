"""
Spreadsheet ingestion: turn an uploaded CSV/XLSX into ordered work items.

The header row is located by looking for a known code-column name in the
first rows of each sheet; the first sheet that yields at least one row wins.
``row_id`` is the 1-based row number in the sheet, so outcomes can be traced
back to the source file.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd
from loguru import logger

from skuscout.contexts.jobs.models import WorkItem
from skuscout.utils.text_processing import clean_cell_value

CODE_ALIASES = ["upc", "upc_code", "upc code", "upccode", "product upc", "item upc", "barcode", "ean", "gtin"]
BRAND_ALIASES = ["brand", "brand name", "brandname", "manufacturer", "product brand", "vendor", "supplier"]
HEADER_SEARCH_ROWS = 20
SUPPORTED_SUFFIXES = (".csv", ".xlsx", ".xls")


class IngestError(ValueError):
    """The file could not be turned into work items."""


@dataclass
class IngestReport:
    sheet_name: str
    header_row: int
    total_rows: int
    valid_rows: int

    @property
    def skipped_rows(self) -> int:
        return self.total_rows - self.valid_rows


def _normalize_header(value) -> str:
    return " ".join(clean_cell_value(value).lower().split())


def read_sheets(path: Union[str, Path]) -> Dict[str, pd.DataFrame]:
    """Read every sheet of ``path`` without header inference, all cells as raw values."""
    path = Path(path)
    if not path.exists():
        raise IngestError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise IngestError(f"Unsupported file type '{suffix}'. Expected one of {SUPPORTED_SUFFIXES}")

    try:
        if suffix == ".csv":
            return {path.stem: pd.read_csv(path, header=None, dtype=str, keep_default_na=False)}
        return pd.read_excel(path, sheet_name=None, header=None, dtype=object)
    except (ValueError, OSError, pd.errors.ParserError) as e:
        raise IngestError(f"Failed to read {path.name}: {e}") from e


def find_header_row(frame: pd.DataFrame) -> Optional[int]:
    """Index of the first row (within HEADER_SEARCH_ROWS) containing a code-column name."""
    for index in range(min(HEADER_SEARCH_ROWS, len(frame))):
        if any(_normalize_header(cell) in CODE_ALIASES for cell in frame.iloc[index].tolist()):
            return index
    return None


def find_column(header: List, aliases: List[str]) -> Optional[int]:
    normalized = [_normalize_header(cell) for cell in header]
    for position, name in enumerate(normalized):
        if name in aliases:
            return position
    return None


def parse_frame(frame: pd.DataFrame) -> Tuple[List[WorkItem], Optional[int]]:
    """
    Extract work items from one headerless sheet.

    Returns:
        (items, header_row_index); header_row_index is None when no header was found
    """
    header_index = find_header_row(frame)
    if header_index is None:
        return [], None

    header = frame.iloc[header_index].tolist()
    code_col = find_column(header, CODE_ALIASES)
    brand_col = find_column(header, BRAND_ALIASES)

    items = []
    for position in range(header_index + 1, len(frame)):
        row = frame.iloc[position].tolist()
        code = clean_cell_value(row[code_col])
        if not code:
            continue
        brand = clean_cell_value(row[brand_col]) if brand_col is not None else ""
        items.append(WorkItem(row_id=position + 1, code=code, brand=brand))
    return items, header_index


def load_work_items(path: Union[str, Path]) -> Tuple[List[WorkItem], IngestReport]:
    """
    Load work items from a CSV or Excel file.

    Args:
        path: Spreadsheet path

    Returns:
        (items in sheet order, IngestReport)

    Raises:
        IngestError: If the file is unreadable or no sheet has a code column with data
    """
    for sheet_name, frame in read_sheets(path).items():
        items, header_index = parse_frame(frame)
        if header_index is None:
            logger.debug(f"No header row found in sheet '{sheet_name}'")
            continue
        if not items:
            logger.debug(f"No data rows in sheet '{sheet_name}'")
            continue

        report = IngestReport(
            sheet_name=str(sheet_name),
            header_row=header_index + 1,
            total_rows=len(frame) - header_index - 1,
            valid_rows=len(items),
        )
        logger.info(
            f"Parsed {report.valid_rows} rows from sheet '{report.sheet_name}' "
            f"(header at row {report.header_row}, {report.skipped_rows} skipped)"
        )
        return items, report

    raise IngestError(
        f"Required code column not found in any sheet of {Path(path).name}. "
        f"Expected a column named one of: {', '.join(CODE_ALIASES)}"
    )
