"""
pages.py — Page planning: what goes in each subject's PDF and in what order.

Every page is described by a PageDescriptor carrying an explicit
PageCategory. Within a subject, pages are grouped by (subject, year) and then
ordered by the category score; the table of contents is numbered from that
final order.
"""

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from core.charts import (
    ChartSpec,
    chart_title,
    diff_chart,
    item_chart,
    performance_summary_chart,
    tag_comparison_chart,
    tag_summary_chart,
)
from core.models import ItemKind, ItemRecord, TagField, YearKey
from core.stats import (
    OUTLIER_COUNT,
    ScoredRecord,
    aggregate_by_tag,
    group_by_tag,
    group_records,
    select_outliers,
    sort_naturally,
    split_by_kind,
)

logger = logging.getLogger(__name__)

TOC_ENTRIES_PER_PAGE = 20
FILENAME_PREFIX = "HSC_Analysis_"

TOP_GROUP = f"Top {OUTLIER_COUNT}"
BOTTOM_GROUP = f"Bottom {OUTLIER_COUNT}"
TOP_TITLE = "Best Performing Questions"
BOTTOM_TITLE = "Questions Needing Additional Support"


class PageKind(str, Enum):
    CHART = "chart"
    DETAIL = "detail"


class PageCategory(Enum):
    """Page categories; lower scores render first within a subject/year."""

    ITEM_CHART = 10
    COMPARISON_CHART = 20
    PERFORMANCE_SUMMARY = 25
    OUTLIER_DETAIL = 35
    TAG_SUMMARY = 40
    BREAKDOWN = 50
    TAG_COMPARISON = 60

    @property
    def score(self) -> int:
        return self.value


@dataclass(frozen=True)
class PageDescriptor:
    subject: str
    year: YearKey
    title: str
    kind: PageKind
    category: PageCategory
    chart: Optional[ChartSpec] = None
    entry: Optional[ScoredRecord] = None
    outlier_group: str = ""

    @property
    def ordering_score(self) -> int:
        return self.category.score

    @property
    def group_key(self) -> str:
        return f"{self.subject}|{self.year}"


@dataclass(frozen=True)
class TocEntry:
    subject: str
    year: YearKey
    title: str
    page_number: int
    show_header: bool


@dataclass(frozen=True)
class SubjectPlan:
    subject: str
    filename: str
    pages: Tuple[PageDescriptor, ...]
    toc: Tuple[TocEntry, ...]
    toc_page_count: int
    entries_per_page: int = TOC_ENTRIES_PER_PAGE

    @property
    def page_count(self) -> int:
        """Title page + TOC pages + content pages."""
        return 1 + self.toc_page_count + len(self.pages)


def output_filename(subject: str) -> str:
    """HSC_Analysis_<subject with non-alphanumerics replaced by _>.pdf"""
    return f"{FILENAME_PREFIX}{re.sub(r'[^A-Za-z0-9]', '_', subject)}.pdf"


# ── Page construction ───────────────────────────────────────────────

def _chart_page(subject: str, year, spec: ChartSpec, category: PageCategory) -> PageDescriptor:
    return PageDescriptor(
        subject=subject, year=year, title=spec.title,
        kind=PageKind.CHART, category=category, chart=spec,
    )


def _detail_pages(subject: str, year, scored: Iterable[ScoredRecord], group: str, heading: str) -> List[PageDescriptor]:
    return [
        PageDescriptor(
            subject=subject, year=year,
            title=chart_title(subject, year, heading),
            kind=PageKind.DETAIL, category=PageCategory.OUTLIER_DETAIL,
            entry=s, outlier_group=group,
        )
        for s in scored
    ]


def plan_group_pages(
    subject: str,
    year: YearKey,
    records: List[ItemRecord],
    tag_aggregates: Optional[Dict[TagField, List]] = None,
) -> List[PageDescriptor]:
    """
    All pages for one subject/year, in encounter (pre-ordering) order.

    tag_aggregates may carry precomputed aggregates per TagField; otherwise
    they are computed from records.
    """
    pages: List[PageDescriptor] = []
    by_kind = split_by_kind(records)

    # 1. MC / ER item charts
    for kind in (ItemKind.MC, ItemKind.ER):
        if by_kind[kind]:
            spec = item_chart(subject, year, by_kind[kind], kind.value)
            pages.append(_chart_page(subject, year, spec, PageCategory.ITEM_CHART))

    # 2. School vs state per question
    for kind in (ItemKind.MC, ItemKind.ER):
        if by_kind[kind]:
            spec = diff_chart(subject, year, by_kind[kind], f"{kind.value} - School vs State")
            pages.append(_chart_page(subject, year, spec, PageCategory.COMPARISON_CHART))

    # 3. Top / bottom summaries
    outliers = select_outliers(records)
    if outliers is not None:
        if outliers.top:
            spec = performance_summary_chart(subject, year, outliers.top, f"{TOP_TITLE} ({TOP_GROUP})")
            pages.append(_chart_page(subject, year, spec, PageCategory.PERFORMANCE_SUMMARY))
        if outliers.bottom:
            spec = performance_summary_chart(subject, year, outliers.bottom, f"{BOTTOM_TITLE} ({BOTTOM_GROUP})")
            pages.append(_chart_page(subject, year, spec, PageCategory.PERFORMANCE_SUMMARY))

    # 4. QPC / QPO summaries
    if tag_aggregates is None:
        tag_aggregates = {
            field: aggregate_by_tag(records, field).get((subject, year), [])
            for field in TagField
        }
    for field in TagField:
        if tag_aggregates.get(field):
            spec = tag_summary_chart(subject, year, tag_aggregates[field], field)
            pages.append(_chart_page(subject, year, spec, PageCategory.TAG_SUMMARY))
    for field in TagField:
        if tag_aggregates.get(field):
            spec = tag_comparison_chart(subject, year, tag_aggregates[field], field)
            pages.append(_chart_page(subject, year, spec, PageCategory.TAG_COMPARISON))

    # 5. Per-tag breakdowns
    for field in TagField:
        groups = group_by_tag(records, field)
        for tag in sort_naturally(groups.keys()):
            spec = item_chart(subject, year, groups[tag], f"{field.short_name} Breakdown: {tag}")
            pages.append(_chart_page(subject, year, spec, PageCategory.BREAKDOWN))

    # 6. One detail page per top / bottom question
    if outliers is not None:
        pages.extend(_detail_pages(subject, year, outliers.top, TOP_GROUP, TOP_TITLE))
        pages.extend(_detail_pages(subject, year, outliers.bottom, BOTTOM_GROUP, BOTTOM_TITLE))

    return pages


# ── Ordering & TOC ──────────────────────────────────────────────────

def order_pages(pages: Iterable[PageDescriptor]) -> List[PageDescriptor]:
    """
    Final render order: (subject, year) groups in ascending key order, then
    by category score. Ties keep encounter order.
    """
    groups: Dict[str, List[PageDescriptor]] = {}
    for page in pages:
        groups.setdefault(page.group_key, []).append(page)

    ordered: List[PageDescriptor] = []
    for key in sorted(groups):
        ordered.extend(sorted(groups[key], key=lambda p: p.ordering_score))
    return ordered


def toc_page_count(entry_count: int, entries_per_page: int = TOC_ENTRIES_PER_PAGE) -> int:
    return math.ceil(entry_count / entries_per_page)


def build_toc(
    pages: List[PageDescriptor], entries_per_page: int = TOC_ENTRIES_PER_PAGE
) -> Tuple[List[TocEntry], int]:
    """
    Number the ordered pages for the table of contents.

    Page numbers count the title page and the TOC pages themselves, so the
    first content page is 2 + toc_pages.
    """
    toc_pages = toc_page_count(len(pages), entries_per_page)
    entries = []
    prev_key = None
    for position, page in enumerate(pages, 1):
        key = (page.subject, page.year)
        entries.append(TocEntry(
            subject=page.subject,
            year=page.year,
            title=page.title,
            page_number=position + 1 + toc_pages,
            show_header=key != prev_key,
        ))
        prev_key = key
    return entries, toc_pages


# ── Subject plans ───────────────────────────────────────────────────

def plan_subject(
    subject: str,
    year_groups: Dict[YearKey, List[ItemRecord]],
    entries_per_page: int = TOC_ENTRIES_PER_PAGE,
) -> SubjectPlan:
    """Ordered pages and TOC for one subject's PDF."""
    records = [r for rows in year_groups.values() for r in rows]
    aggregates = {field: aggregate_by_tag(records, field) for field in TagField}

    pages: List[PageDescriptor] = []
    for year, rows in year_groups.items():
        per_year = {field: aggregates[field].get((subject, year), []) for field in TagField}
        pages.extend(plan_group_pages(subject, year, rows, per_year))

    ordered = order_pages(pages)
    toc, toc_pages = build_toc(ordered, entries_per_page)
    logger.info(
        "Planned %s: %d content pages, %d TOC pages", subject, len(ordered), toc_pages,
    )
    return SubjectPlan(
        subject=subject,
        filename=output_filename(subject),
        pages=tuple(ordered),
        toc=tuple(toc),
        toc_page_count=toc_pages,
        entries_per_page=entries_per_page,
    )


def iter_subject_plans(
    records: Iterable[ItemRecord], entries_per_page: int = TOC_ENTRIES_PER_PAGE
) -> Iterator[SubjectPlan]:
    """
    Yield one SubjectPlan per subject, in subject order.

    Plans are built only when requested so a caller that renders each plan
    before asking for the next holds one subject at a time.
    """
    grouped = group_records(records)
    for subject in sorted(grouped):
        yield plan_subject(subject, grouped[subject], entries_per_page)
