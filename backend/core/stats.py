"""
stats.py — Grouping, tag aggregation, natural ordering and outlier selection.

Computes:
- Subject → Year partitions of the cleaned records
- Per-tag (QPC / QPO) aggregates: summed max mark, averaged school/state means
- Natural (numeric-then-suffix) ordering of question and tag labels
- Success rates and top/bottom question selection per subject/year
- The dataset overview shown after upload
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

import numpy as np

from core.models import GroupKey, ItemKind, ItemRecord, TagField, YearKey

T = TypeVar("T")

OUTLIER_COUNT = 5

_NATURAL_LABEL = re.compile(r"([0-9]+)([A-Za-z]*)")


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val) -> Optional[float]:
    """Convert to float or return None."""
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round(v, 2)
    except (TypeError, ValueError):
        return None


def sanitize(obj):
    """Recursively coerce numpy scalars and non-finite floats to JSON-safe types."""
    if isinstance(obj, dict):
        return {k: sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize(v) for v in obj]
    if isinstance(obj, (np.bool_,)):
        return bool(obj)
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


# ── Natural Sort ────────────────────────────────────────────────────

def natural_sort_key(label: Any) -> Tuple[float, str]:
    """
    Sort key for question/tag labels such as "12b".

    Labels made of digits plus optional letters sort by number, then by
    lower-cased suffix. Anything else sorts after them by its raw text.
    """
    text = str(label if label is not None else "").strip()
    match = _NATURAL_LABEL.fullmatch(text)
    if match:
        return (int(match.group(1)), match.group(2).lower())
    return (math.inf, text)


def sort_naturally(items: Iterable[T], key: Callable[[T], Any] = lambda x: x) -> List[T]:
    """Stable natural sort of items by the label returned from key."""
    return sorted(items, key=lambda item: natural_sort_key(key(item)))


# ── Grouping ────────────────────────────────────────────────────────

def group_records(records: Iterable[ItemRecord]) -> Dict[str, Dict[YearKey, List[ItemRecord]]]:
    """Partition records by subject then year, preserving input order."""
    grouped: Dict[str, Dict[YearKey, List[ItemRecord]]] = {}
    for rec in records:
        grouped.setdefault(rec.subject, {}).setdefault(rec.year, []).append(rec)
    return grouped


def split_by_kind(records: Iterable[ItemRecord]) -> Dict[ItemKind, List[ItemRecord]]:
    """Split a group's records into MC and ER lists (unknown kinds dropped)."""
    split: Dict[ItemKind, List[ItemRecord]] = {ItemKind.MC: [], ItemKind.ER: []}
    for rec in records:
        if rec.item_kind in split:
            split[rec.item_kind].append(rec)
    return split


def group_by_tag(records: Iterable[ItemRecord], tag_field: TagField) -> Dict[str, List[ItemRecord]]:
    """Records per non-empty tag, in encounter order."""
    groups: Dict[str, List[ItemRecord]] = {}
    for rec in records:
        tag = rec.tag(tag_field)
        if not tag:
            continue
        groups.setdefault(tag, []).append(rec)
    return groups


# ── Tag Aggregation ─────────────────────────────────────────────────

@dataclass(frozen=True)
class TagAggregate:
    """Finalised aggregate row for one tag within a subject/year."""

    tag: str
    max_mark: float
    school_mean: float
    state_mean: float
    count: int


class TagBucket:
    """Running totals for one (subject, year, tag); frozen once finalised."""

    def __init__(self, tag: str):
        self.tag = tag
        self.count = 0
        self.max_mark_sum = 0.0
        self.school_mean_sum = 0.0
        self.state_mean_sum = 0.0
        self._finalized = False

    def add(self, rec: ItemRecord) -> None:
        if self._finalized:
            raise RuntimeError(f"Bucket for tag '{self.tag}' is already finalised.")
        self.count += 1
        self.max_mark_sum += rec.max_mark
        self.school_mean_sum += rec.school_mean
        self.state_mean_sum += rec.state_mean

    @property
    def school_mean_avg(self) -> float:
        return self.school_mean_sum / self.count if self.count else 0.0

    @property
    def state_mean_avg(self) -> float:
        return self.state_mean_sum / self.count if self.count else 0.0

    def finalize(self) -> TagAggregate:
        self._finalized = True
        return TagAggregate(
            tag=self.tag,
            max_mark=self.max_mark_sum,
            school_mean=self.school_mean_avg,
            state_mean=self.state_mean_avg,
            count=self.count,
        )


def aggregate_by_tag(
    records: Iterable[ItemRecord], tag_field: TagField
) -> Dict[GroupKey, List[TagAggregate]]:
    """
    Aggregate records per (subject, year, tag).

    Records with a blank tag are skipped so they never form a group. Each
    (subject, year) list is naturally sorted by tag.
    """
    buckets: Dict[Tuple[GroupKey, str], TagBucket] = {}
    for rec in records:
        tag = rec.tag(tag_field)
        if not tag:
            continue
        key = (rec.group_key, tag)
        if key not in buckets:
            buckets[key] = TagBucket(tag)
        buckets[key].add(rec)

    result: Dict[GroupKey, List[TagAggregate]] = {}
    for (group_key, _), bucket in buckets.items():
        result.setdefault(group_key, []).append(bucket.finalize())

    return {
        key: sort_naturally(rows, key=lambda r: r.tag)
        for key, rows in result.items()
    }


# ── Outliers ────────────────────────────────────────────────────────

def success_rate(school_mean: float, max_mark: float) -> float:
    """School mean as a percentage of the max mark; nan/inf when max mark is 0."""
    if max_mark == 0:
        if school_mean == 0 or math.isnan(school_mean):
            return math.nan
        return math.copysign(math.inf, school_mean)
    return school_mean / max_mark * 100


@dataclass(frozen=True)
class ScoredRecord:
    record: ItemRecord
    success_rate: float


@dataclass(frozen=True)
class OutlierSelection:
    top: Tuple[ScoredRecord, ...]
    bottom: Tuple[ScoredRecord, ...]


def score_records(records: Iterable[ItemRecord]) -> List[ScoredRecord]:
    return [ScoredRecord(r, success_rate(r.school_mean, r.max_mark)) for r in records]


def select_outliers(
    records: List[ItemRecord], count: int = OUTLIER_COUNT
) -> Optional[OutlierSelection]:
    """
    Best and worst questions of one subject/year.

    Ranked by raw school mean (not success rate), descending. Bottom is the
    last `count` reversed, so the two lists overlap for small groups.
    """
    if not records:
        return None
    ranked = sorted(score_records(records), key=lambda s: s.record.school_mean, reverse=True)
    top = ranked[:count]
    bottom = ranked[-count:][::-1] if count > 0 else []
    return OutlierSelection(top=tuple(top), bottom=tuple(bottom))


# ── Overview ────────────────────────────────────────────────────────

def _year_sort_key(year: YearKey) -> Tuple[int, Any]:
    return (0, year) if isinstance(year, int) else (1, str(year))


def compute_overview(records: List[ItemRecord], cleaning_report: Optional[Dict] = None) -> Dict[str, Any]:
    """Dataset summary shown after upload, before report generation."""
    report = cleaning_report or {}
    subjects = sorted({r.subject for r in records})
    years = sorted({r.year for r in records}, key=_year_sort_key)
    rates = [
        success_rate(r.school_mean, r.max_mark) for r in records
    ]
    finite_rates = [v for v in rates if math.isfinite(v)]

    per_subject = []
    grouped = group_records(records)
    for subject in subjects:
        year_groups = grouped.get(subject, {})
        items = [r for rows in year_groups.values() for r in rows]
        subj_rates = [success_rate(r.school_mean, r.max_mark) for r in items]
        subj_finite = [v for v in subj_rates if math.isfinite(v)]
        per_subject.append({
            "subject": subject,
            "years": sorted(year_groups.keys(), key=_year_sort_key),
            "question_count": len(items),
            "mean_success_rate": _safe_float(np.mean(subj_finite)) if subj_finite else None,
        })

    overview = {
        "total_rows": report.get("original_rows", len(records)),
        "valid_rows": len(records),
        "rejected_rows": report.get("rejected_rows", 0),
        "subject_count": len(subjects),
        "year_count": len(years),
        "subjects": subjects,
        "years": years,
        "mc_count": sum(1 for r in records if r.item_kind is ItemKind.MC),
        "er_count": sum(1 for r in records if r.item_kind is ItemKind.ER),
        "mean_success_rate": _safe_float(np.mean(finite_rates)) if finite_rates else None,
        "subjects_detail": per_subject,
    }
    return sanitize(overview)
