"""
cleaner.py — Pandas cleaning pipeline for item-analysis rows.

Handles:
- Whitespace trimming
- Year → integer where possible
- Mean / max-mark → float (0 when unparseable)
- MC/ER classification
- Removal of repeated header rows and rows missing subject/year/question
- Cleaning report generation
"""

import logging
import math
from numbers import Integral, Real
from pathlib import Path
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd

from core.models import (
    CANONICAL_COLUMNS,
    CHUNK_FIELD_PREFIX,
    CONTENT_COL,
    ITEM_COL,
    KIND_COL,
    MAX_MARK_COL,
    OUTCOME_COL,
    SCHOOL_MEAN_COL,
    STATE_MEAN_COL,
    SUBJECT_COL,
    YEAR_COL,
    ItemKind,
    ItemRecord,
    YearKey,
)
from core.parser import extract_rows, read_worksheet

logger = logging.getLogger(__name__)

NUMERIC_COLUMNS = [SCHOOL_MEAN_COL, STATE_MEAN_COL, MAX_MARK_COL]
TEXT_COLUMNS = [SUBJECT_COL, ITEM_COL, KIND_COL, CONTENT_COL, OUTCOME_COL]

# Repeated header / metadata rows inside the data start with this
HEADER_REPEAT_PREFIX = "question"


# ── Coercion helpers ────────────────────────────────────────────────

def clean_text(value: Any) -> str:
    """Trimmed string form of a cell; blanks and NaN become ""."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def coerce_year(value: Any) -> YearKey:
    """Integer year where the value parses as one, else the trimmed text."""
    if isinstance(value, Integral) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, Real) and not isinstance(value, bool):
        if math.isfinite(value) and float(value).is_integer():
            return int(value)
    text = clean_text(value)
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return text
    if math.isfinite(number) and number.is_integer():
        return int(number)
    return text


# ── Main Cleaning Pipeline ──────────────────────────────────────────

def clean_rows(rows: List[Dict[str, Any]]) -> Tuple[List[ItemRecord], Dict]:
    """
    Coerce and filter canonical row dicts.

    Returns (records, cleaning_report). Records keep the input row order.
    """
    report: Dict = {
        "original_rows": len(rows),
        "steps": [],
        "warnings": [],
    }

    if not rows:
        report.update({"cleaned_rows": 0, "rejected_rows": 0, "rejected_header_repeats": 0,
                       "rejected_missing_fields": 0})
        report["warnings"].append("No data rows found below the header row.")
        return [], report

    df = pd.DataFrame(rows)
    for col in CANONICAL_COLUMNS:
        if col not in df.columns:
            df[col] = ""
    chunk_cols = [c for c in df.columns if str(c).startswith(CHUNK_FIELD_PREFIX)]

    # ── 1. Trim text fields ────────────────────────────────────────
    for col in TEXT_COLUMNS:
        df[col] = df[col].map(clean_text)
    report["steps"].append("Trimmed whitespace from subject, question, MC/ER and tag fields.")

    # ── 2. Year coercion ───────────────────────────────────────────
    df[YEAR_COL] = df[YEAR_COL].map(coerce_year)
    text_years = df[YEAR_COL].map(lambda y: isinstance(y, str) and y != "").sum()
    if text_years:
        report["warnings"].append(
            f"{text_years} year values are not whole numbers and were kept as text."
        )
    report["steps"].append("Converted years to integers where possible.")

    # ── 3. Numeric fields ──────────────────────────────────────────
    for col in NUMERIC_COLUMNS:
        raw_blank = df[col].map(lambda v: clean_text(v) == "")
        numeric = pd.to_numeric(df[col].map(clean_text), errors="coerce")
        numeric = numeric.replace([np.inf, -np.inf], np.nan)
        parse_errors = int((numeric.isna() & ~raw_blank).sum())
        if parse_errors > 0:
            report["warnings"].append(
                f"{parse_errors} '{col}' values could not be converted to numbers and were set to 0."
            )
        df[col] = numeric.fillna(0.0).astype(float)
    report["steps"].append("Converted school mean, state mean and max mark to numbers (0 when missing).")

    # ── 4. Validity filter ─────────────────────────────────────────
    header_repeat = df[ITEM_COL].str.lower().str.startswith(HEADER_REPEAT_PREFIX)
    missing = (df[SUBJECT_COL] == "") | (df[YEAR_COL].map(clean_text) == "") | (df[ITEM_COL] == "")
    keep = ~header_repeat & ~missing

    report["rejected_header_repeats"] = int(header_repeat.sum())
    report["rejected_missing_fields"] = int((missing & ~header_repeat).sum())
    if header_repeat.any():
        report["steps"].append(
            f"Removed {int(header_repeat.sum())} repeated header/metadata rows."
        )
    if (missing & ~header_repeat).any():
        report["steps"].append(
            f"Removed {int((missing & ~header_repeat).sum())} rows missing subject, year or question."
        )

    cleaned = df[keep]

    # ── 5. Build records ───────────────────────────────────────────
    records = []
    for row in cleaned.to_dict(orient="records"):
        records.append(ItemRecord(
            subject=row[SUBJECT_COL],
            year=coerce_year(row[YEAR_COL]),
            item_label=row[ITEM_COL],
            item_kind=ItemKind.parse(row[KIND_COL]),
            content_tag=row[CONTENT_COL],
            outcome_tag=row[OUTCOME_COL],
            school_mean=float(row[SCHOOL_MEAN_COL]),
            state_mean=float(row[STATE_MEAN_COL]),
            max_mark=float(row[MAX_MARK_COL]),
            payload_fields={c: row[c] for c in chunk_cols},
        ))

    zero_max_kept = sum(1 for r in records if r.max_mark == 0)
    if zero_max_kept:
        report["warnings"].append(
            f"{zero_max_kept} questions have a max mark of 0; their success rate will show as n/a."
        )

    unknown_kinds = sum(1 for r in records if r.item_kind is ItemKind.UNKNOWN)
    if unknown_kinds:
        report["warnings"].append(
            f"{unknown_kinds} questions are not marked MC or ER and only appear in summaries."
        )

    report["cleaned_rows"] = len(records)
    report["rejected_rows"] = len(rows) - len(records)
    logger.info(
        "Cleaned %d rows: %d kept, %d rejected",
        report["original_rows"], report["cleaned_rows"], report["rejected_rows"],
    )
    return records, report


def load_item_records(file_path: str) -> Tuple[List[ItemRecord], Dict]:
    """Read, normalise and clean an item-analysis workbook."""
    grid = read_worksheet(file_path)
    rows, header_idx = extract_rows(grid)
    records, report = clean_rows(rows)
    report["source_file"] = Path(file_path).name
    report["header_row"] = header_idx
    return records, report


def generate_cleaning_report(report: Dict) -> str:
    """Generate a human-readable cleaning report text."""
    lines = [
        "═══ Data Cleaning Report ═══",
        f"Rows read:     {report['original_rows']}",
        f"Rows kept:     {report['cleaned_rows']}",
        f"Rows rejected: {report['rejected_rows']}",
        "",
        "Steps performed:",
    ]
    for i, step in enumerate(report["steps"], 1):
        lines.append(f"  {i}. {step}")

    if report["warnings"]:
        lines.append("")
        lines.append("⚠ Warnings:")
        for w in report["warnings"]:
            lines.append(f"  • {w}")

    return "\n".join(lines)
