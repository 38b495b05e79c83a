"""
charts.py — Declarative chart specifications for the report pages.

Nothing here draws. Each builder returns a ChartSpec holding the series
values, axis roles and point labels; core.chart_renderer turns specs into
PNG images.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from core.models import ITEM_COL, ItemRecord, TagField
from core.stats import ScoredRecord, TagAggregate, sort_naturally, success_rate

# ── Colour palette ──────────────────────────────────────────────────

BAR_COLOR = "#4C72B0"
LINE_COLOR = "#DD1C77"
STATE_COLOR = "#FFA500"
POSITIVE_COLOR = "#4BC0C0"
NEGATIVE_COLOR = "#FF6384"

PRIMARY = "primary"
SECONDARY = "secondary"


@dataclass(frozen=True)
class ChartSeries:
    label: str
    values: Tuple[float, ...]
    kind: str = "bar"  # "bar" or "line"
    axis: str = PRIMARY
    color: str = BAR_COLOR
    point_colors: Optional[Tuple[str, ...]] = None
    dashed: bool = False
    point_labels: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class ChartSpec:
    title: str
    labels: Tuple[str, ...]
    series: Tuple[ChartSeries, ...]
    x_label: str = ""
    y_label: str = ""
    y2_label: str = ""
    y2_range: Tuple[float, float] = (0.0, 100.0)
    rotate_labels: bool = False
    show_legend: bool = True

    @property
    def dual_axis(self) -> bool:
        return any(s.axis == SECONDARY for s in self.series)


# ── Label formatting ────────────────────────────────────────────────

def format_rate(rate: float, mean: Optional[float] = None, decimals: int = 0) -> str:
    """'60% (6.00)'; non-finite rates read 'n/a'."""
    text = f"{rate:.{decimals}f}%" if math.isfinite(rate) else "n/a"
    if mean is not None:
        text += f" ({mean:.2f})"
    return text


def format_whole(value: float) -> str:
    if not math.isfinite(value):
        return "n/a"
    return str(int(math.floor(value + 0.5)))


def format_signed(value: float) -> str:
    return f"{value:+.2f}" if math.isfinite(value) else "n/a"


def chart_title(subject: str, year, suffix: str) -> str:
    return f"{subject} - {year} - {suffix}"


def _rate_with_max_mark_series(
    max_marks: Sequence[float], rates: Sequence[float], means: Sequence[float]
) -> Tuple[ChartSeries, ChartSeries]:
    rate_series = ChartSeries(
        label="Success Rate (%)",
        values=tuple(rates),
        kind="line",
        axis=SECONDARY,
        color=LINE_COLOR,
        point_labels=tuple(format_rate(r, m) for r, m in zip(rates, means)),
    )
    max_series = ChartSeries(
        label="Maximum Mark",
        values=tuple(max_marks),
        kind="bar",
        axis=PRIMARY,
        color=BAR_COLOR,
        point_labels=tuple(format_whole(m) for m in max_marks),
    )
    return rate_series, max_series


# ── Builders ────────────────────────────────────────────────────────

def item_chart(subject: str, year, records: List[ItemRecord], suffix: str) -> ChartSpec:
    """Max mark bars with a success-rate line, one point per question."""
    rows = sort_naturally(records, key=lambda r: r.item_label)
    max_marks = [r.max_mark for r in rows]
    means = [r.school_mean for r in rows]
    rates = [success_rate(r.school_mean, r.max_mark) for r in rows]

    return ChartSpec(
        title=chart_title(subject, year, suffix),
        labels=tuple(r.item_label for r in rows),
        series=_rate_with_max_mark_series(max_marks, rates, means),
        x_label=ITEM_COL,
        y_label="Max Mark",
        y2_label="Success Rate (%)",
    )


def diff_chart(subject: str, year, records: List[ItemRecord], suffix: str) -> ChartSpec:
    """School minus state mean per question, coloured by sign."""
    rows = sort_naturally(records, key=lambda r: r.item_label)
    diffs = [r.school_mean - r.state_mean for r in rows]

    return ChartSpec(
        title=chart_title(subject, year, suffix),
        labels=tuple(r.item_label for r in rows),
        series=(ChartSeries(
            label="Difference",
            values=tuple(diffs),
            point_colors=tuple(POSITIVE_COLOR if d >= 0 else NEGATIVE_COLOR for d in diffs),
            point_labels=tuple(format_signed(d) for d in diffs),
        ),),
        x_label="Question Number",
        y_label="Difference (School - State Mean)",
        show_legend=False,
    )


def performance_summary_chart(subject: str, year, scored: Sequence[ScoredRecord], suffix: str) -> ChartSpec:
    """School and state mean bars for the top or bottom questions, in rank order."""
    school = [s.record.school_mean for s in scored]
    state = [s.record.state_mean for s in scored]

    return ChartSpec(
        title=chart_title(subject, year, suffix),
        labels=tuple(s.record.item_label for s in scored),
        series=(
            ChartSeries(
                label="School Mean",
                values=tuple(school),
                color=BAR_COLOR,
                point_labels=tuple(f"{v:.2f}" for v in school),
            ),
            ChartSeries(
                label="State Mean",
                values=tuple(state),
                color=STATE_COLOR,
                point_labels=tuple(f"{v:.2f}" for v in state),
            ),
        ),
        x_label="Question Number",
        y_label="Mean Mark",
    )


def tag_summary_chart(subject: str, year, aggregates: Sequence[TagAggregate], tag_field: TagField) -> ChartSpec:
    """Max mark bars with a success-rate line, one point per tag."""
    max_marks = [a.max_mark for a in aggregates]
    means = [a.school_mean for a in aggregates]
    rates = [success_rate(a.school_mean, a.max_mark) for a in aggregates]

    return ChartSpec(
        title=chart_title(subject, year, f"{tag_field.short_name} Summary"),
        labels=tuple(a.tag for a in aggregates),
        series=_rate_with_max_mark_series(max_marks, rates, means),
        x_label=tag_field.column,
        y_label="Max Mark",
        y2_label="Success Rate (%)",
        rotate_labels=True,
    )


def tag_comparison_chart(subject: str, year, aggregates: Sequence[TagAggregate], tag_field: TagField) -> ChartSpec:
    """School vs state success rate per tag over max mark bars."""
    max_marks = [a.max_mark for a in aggregates]
    school_rates = [success_rate(a.school_mean, a.max_mark) for a in aggregates]
    state_rates = [success_rate(a.state_mean, a.max_mark) for a in aggregates]

    return ChartSpec(
        title=chart_title(subject, year, f"{tag_field.short_name} Summary (School vs State)"),
        labels=tuple(a.tag for a in aggregates),
        series=(
            ChartSeries(
                label="School Rate (%)",
                values=tuple(school_rates),
                kind="line",
                axis=SECONDARY,
                color=LINE_COLOR,
                point_labels=tuple(format_rate(r) for r in school_rates),
            ),
            ChartSeries(
                label="State Rate (%)",
                values=tuple(state_rates),
                kind="line",
                axis=SECONDARY,
                color=STATE_COLOR,
                dashed=True,
            ),
            ChartSeries(
                label="Maximum Mark",
                values=tuple(max_marks),
                color=BAR_COLOR,
            ),
        ),
        x_label=tag_field.column,
        y_label="Max Mark",
        y2_label="Success Rate (%)",
        rotate_labels=True,
    )
