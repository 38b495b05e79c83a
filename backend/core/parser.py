"""
parser.py — Item-analysis workbook ingestion with header auto-detection.

Supports:
- Excel (.xlsx, .xlsm, .xls) — first sheet only
- ODS (OpenDocument Spreadsheet)
- CSV files
- Header rows buried below title/metadata rows
- Column name variants for the content (QPC) and outcome (QPO) tags
"""

import csv
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pandas as pd

from core.models import (
    CHUNK_FIELD_PREFIX,
    CONTENT_COL,
    ITEM_COL,
    OUTCOME_COL,
    REQUIRED_COLUMNS,
    SUBJECT_COL,
)

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm", ".xls", ".ods", ".csv")

HEADER_SCAN_ROWS = 20
# Image chunk columns sit to the right of the data columns; the header scan
# must never stringify them.
HEADER_SCAN_COLUMNS = 12
MAX_HEADER_CELL_CHARS = 1000

# Header variants → canonical column name
HEADER_VARIANTS = {
    CONTENT_COL: {
        "contains": ["Content Area", "(QPC)"],
        "equals": ["QPC"],
    },
    OUTCOME_COL: {
        "contains": ["Learning Outcome", "(QPO)"],
        "equals": ["QPO"],
    },
}


class IngestionError(ValueError):
    """The input cannot be read or has no usable header row."""


def read_worksheet(file_path: str) -> List[List[Any]]:
    """
    Read the first sheet of a workbook as a plain grid of cell values.

    No header interpretation happens here; missing cells come back as "".
    """
    path = Path(file_path)
    ext = path.suffix.lower()

    if ext not in SUPPORTED_EXTENSIONS:
        raise IngestionError(f"Unsupported file type: {ext or '(none)'}")

    try:
        if ext == ".csv":
            # Title rows and extra chunk cells make CSV rows uneven; read
            # against the widest row so short rows pad out.
            width = _csv_width(file_path)
            if width == 0:
                raise IngestionError(f"'{path.name}' contains no rows.")
            df = pd.read_csv(
                file_path, header=None, names=list(range(width)), dtype=str,
                keep_default_na=False, encoding="utf-8-sig",
            )
        else:
            engine = {".xls": "xlrd", ".ods": "odf"}.get(ext, "openpyxl")
            df = pd.read_excel(file_path, sheet_name=0, header=None, dtype=object, engine=engine)
    except IngestionError:
        raise
    except Exception as e:
        raise IngestionError(f"Could not read '{path.name}': {e}") from e

    if df.empty:
        raise IngestionError(f"'{path.name}' contains no rows.")

    df = df.astype(object).where(pd.notna(df), "")
    return df.values.tolist()


def _csv_width(file_path: str) -> int:
    with open(file_path, newline="", encoding="utf-8-sig") as f:
        return max((len(row) for row in csv.reader(f)), default=0)


def _cell_text(value: Any, max_chars: int = MAX_HEADER_CELL_CHARS) -> str:
    """Trimmed string form of a header cell; oversized cells read as empty."""
    if value is None:
        return ""
    text = str(value)
    if len(text) > max_chars:
        return ""
    return text.strip()


def find_header_row(grid: List[List[Any]]) -> int:
    """
    Locate the header row: the first of the top 20 rows whose first 12 cells
    include exactly "Subject" and some cell containing "Question (Item)".
    Falls back to row 0.
    """
    for idx, row in enumerate(grid[:HEADER_SCAN_ROWS]):
        cells = [_cell_text(c) for c in list(row)[:HEADER_SCAN_COLUMNS]]
        has_subject = SUBJECT_COL in cells
        has_question = any(ITEM_COL in c for c in cells)
        if has_subject and has_question:
            logger.debug("Found header at row %d", idx)
            return idx

    logger.info("No header row matched in the first %d rows; using row 0", HEADER_SCAN_ROWS)
    return 0


def canonicalize_header(name: Any) -> str:
    """Map a raw header onto its canonical column name."""
    cleaned = _cell_text(name)
    for canonical, variants in HEADER_VARIANTS.items():
        if cleaned in variants["equals"] or any(v in cleaned for v in variants["contains"]):
            return canonical
    return cleaned


def build_column_map(header_row: List[Any]) -> List[Tuple[int, str]]:
    """
    Return (column_index, canonical_name) pairs, left to right.

    Blank headers are skipped and when two headers share a canonical name
    the leftmost one wins.
    """
    seen = set()
    columns: List[Tuple[int, str]] = []
    for idx, raw in enumerate(header_row):
        canonical = canonicalize_header(raw)
        if not canonical or canonical in seen:
            continue
        seen.add(canonical)
        columns.append((idx, canonical))
    return columns


def extract_rows(grid: List[List[Any]]) -> Tuple[List[Dict[str, Any]], int]:
    """
    Turn a worksheet grid into row dicts keyed by canonical column name.

    Returns (rows, header_row_index). Raises IngestionError when the header
    lacks Subject, Year or Question (Item).
    """
    if not grid:
        raise IngestionError("The worksheet is empty.")

    header_idx = find_header_row(grid)
    columns = build_column_map(grid[header_idx])
    names = {name for _, name in columns}

    missing = [c for c in REQUIRED_COLUMNS if c not in names]
    if missing:
        raise IngestionError(
            f"No header row found. Missing required column(s): {missing}. "
            f"Expected a row containing {REQUIRED_COLUMNS}."
        )

    rows = []
    for raw in grid[header_idx + 1:]:
        raw = list(raw)
        row = {}
        for idx, name in columns:
            row[name] = raw[idx] if idx < len(raw) else ""
        rows.append(row)

    chunk_cols = sum(1 for name in names if name.startswith(CHUNK_FIELD_PREFIX))
    logger.info(
        "Header at row %d: %d columns (%d image chunk columns), %d data rows",
        header_idx, len(columns), chunk_cols, len(rows),
    )
    return rows, header_idx
