"""
Tests for core/pages.py and core/charts.py — page planning, ordering, TOC numbering.
"""

import math
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.charts import chart_title, format_rate, format_signed, item_chart
from core.models import ItemKind, ItemRecord
from core.pages import (
    PageCategory,
    PageDescriptor,
    PageKind,
    build_toc,
    iter_subject_plans,
    order_pages,
    output_filename,
    plan_group_pages,
    toc_page_count,
)


def _record(label, kind=ItemKind.MC, school_mean=1.0, max_mark=2.0, **kwargs):
    fields = {"subject": "Mathematics", "year": 2023, "content_tag": "", "outcome_tag": ""}
    fields.update(kwargs)
    return ItemRecord(
        item_label=label, item_kind=kind, school_mean=school_mean,
        max_mark=max_mark, state_mean=1.0, **fields,
    )


def _page(title, category, subject="Mathematics", year=2023):
    return PageDescriptor(
        subject=subject, year=year, title=title, kind=PageKind.CHART, category=category,
    )


@pytest.fixture
def group_records():
    return [
        _record("1", ItemKind.MC, school_mean=0.9, content_tag="Algebra", outcome_tag="MA-2"),
        _record("2", ItemKind.MC, school_mean=0.4, content_tag="Geometry", outcome_tag="MA-1"),
        _record("3", ItemKind.ER, school_mean=3.0, max_mark=5, content_tag="Algebra", outcome_tag="MA-1"),
    ]


class TestPlanGroupPages:
    """Tests for the pages planned for one subject/year."""

    def test_encounter_order(self, group_records):
        pages = plan_group_pages("Mathematics", 2023, group_records)
        categories = [p.category for p in pages]
        assert categories == [
            PageCategory.ITEM_CHART, PageCategory.ITEM_CHART,
            PageCategory.COMPARISON_CHART, PageCategory.COMPARISON_CHART,
            PageCategory.PERFORMANCE_SUMMARY, PageCategory.PERFORMANCE_SUMMARY,
            PageCategory.TAG_SUMMARY, PageCategory.TAG_SUMMARY,
            PageCategory.TAG_COMPARISON, PageCategory.TAG_COMPARISON,
            PageCategory.BREAKDOWN, PageCategory.BREAKDOWN,
            PageCategory.BREAKDOWN, PageCategory.BREAKDOWN,
        ] + [PageCategory.OUTLIER_DETAIL] * 6

    def test_titles(self, group_records):
        titles = [p.title for p in plan_group_pages("Mathematics", 2023, group_records)]
        assert titles[0] == "Mathematics - 2023 - MC"
        assert titles[1] == "Mathematics - 2023 - ER"
        assert titles[2] == "Mathematics - 2023 - MC - School vs State"
        assert "Mathematics - 2023 - QPC Summary" in titles
        assert "Mathematics - 2023 - QPO Summary (School vs State)" in titles
        assert "Mathematics - 2023 - QPC Breakdown: Algebra" in titles
        assert "Mathematics - 2023 - QPO Breakdown: MA-1" in titles

    def test_missing_kind_skips_its_charts(self):
        pages = plan_group_pages("Mathematics", 2023, [_record("1", ItemKind.MC)])
        titles = [p.title for p in pages]
        assert "Mathematics - 2023 - ER" not in titles
        assert "Mathematics - 2023 - ER - School vs State" not in titles

    def test_detail_pages_carry_scored_records(self, group_records):
        pages = plan_group_pages("Mathematics", 2023, group_records)
        details = [p for p in pages if p.kind is PageKind.DETAIL]
        assert [p.outlier_group for p in details] == ["Top 5"] * 3 + ["Bottom 5"] * 3
        assert details[0].entry.record.item_label == "3"
        assert details[3].entry.record.item_label == "2"
        assert details[0].entry.success_rate == pytest.approx(60.0)


class TestOrderPages:
    """Tests for the final page order."""

    def test_breakdown_before_tag_comparison(self):
        pages = [
            _page("Mathematics - 2023 - QPC Summary (School vs State)", PageCategory.TAG_COMPARISON),
            _page("Mathematics - 2023 - QPC Breakdown: X", PageCategory.BREAKDOWN),
        ]
        ordered = order_pages(pages)
        assert [p.category for p in ordered] == [PageCategory.BREAKDOWN, PageCategory.TAG_COMPARISON]

    def test_groups_sorted_by_subject_then_year(self):
        pages = [
            _page("b", PageCategory.ITEM_CHART, year=2024),
            _page("a", PageCategory.TAG_COMPARISON, year=2023),
            _page("c", PageCategory.ITEM_CHART, subject="Biology"),
        ]
        assert [p.title for p in order_pages(pages)] == ["c", "a", "b"]

    def test_stable_within_score(self):
        pages = [_page(str(i), PageCategory.BREAKDOWN) for i in range(5)]
        assert [p.title for p in order_pages(pages)] == ["0", "1", "2", "3", "4"]

    def test_scores(self):
        assert PageCategory.ITEM_CHART.score < PageCategory.COMPARISON_CHART.score
        assert PageCategory.OUTLIER_DETAIL.score < PageCategory.TAG_SUMMARY.score
        assert _page("x", PageCategory.BREAKDOWN).ordering_score == 50


class TestBuildToc:
    """Tests for table of contents numbering."""

    def test_page_count(self):
        assert toc_page_count(1) == 1
        assert toc_page_count(20) == 1
        assert toc_page_count(21) == 2
        assert toc_page_count(0) == 0

    def test_numbers_follow_title_and_toc_pages(self):
        pages = [_page(str(i), PageCategory.ITEM_CHART) for i in range(25)]
        entries, toc_pages = build_toc(pages)
        assert toc_pages == 2
        assert entries[0].page_number == 4
        numbers = [e.page_number for e in entries]
        assert numbers == list(range(4, 29))

    def test_header_only_on_group_change(self):
        pages = [
            _page("a", PageCategory.ITEM_CHART, year=2023),
            _page("b", PageCategory.ITEM_CHART, year=2023),
            _page("c", PageCategory.ITEM_CHART, year=2024),
        ]
        entries, _ = build_toc(pages)
        assert [e.show_header for e in entries] == [True, False, True]


class TestSubjectPlans:
    """Tests for per-subject plans."""

    def test_one_plan_per_subject_in_order(self, group_records):
        records = group_records + [_record("1", subject="Biology")]
        plans = list(iter_subject_plans(records))
        assert [p.subject for p in plans] == ["Biology", "Mathematics"]

    def test_plans_are_lazy(self, group_records):
        plans = iter_subject_plans(group_records)
        assert not isinstance(plans, list)
        assert next(plans).subject == "Mathematics"

    def test_toc_matches_page_positions(self, group_records):
        records = group_records + [_record("4", year=2024)]
        (plan,) = iter_subject_plans(records)
        assert len(plan.toc) == len(plan.pages)
        for position, (entry, page) in enumerate(zip(plan.toc, plan.pages), 1):
            assert entry.title == page.title
            assert entry.page_number == 1 + plan.toc_page_count + position
        assert plan.page_count == 1 + plan.toc_page_count + len(plan.pages)
        years = [p.year for p in plan.pages]
        assert years == sorted(years)

    def test_output_filename(self):
        assert output_filename("Mathematics Advanced") == "HSC_Analysis_Mathematics_Advanced.pdf"
        assert output_filename("English (Std)/EAL") == "HSC_Analysis_English__Std__EAL.pdf"


class TestChartSpecs:
    """Tests for chart labels and formatting."""

    def test_item_chart_natural_order_and_labels(self):
        recs = [_record("10", school_mean=1, max_mark=2), _record("2", school_mean=6, max_mark=10)]
        spec = item_chart("Mathematics", 2023, recs, "MC")
        assert spec.labels == ("2", "10")
        assert spec.dual_axis
        rate_series = spec.series[0]
        assert rate_series.point_labels == ("60% (6.00)", "50% (1.00)")

    def test_non_finite_rate_reads_na(self):
        assert format_rate(math.nan) == "n/a"
        assert format_rate(math.inf, 2.0) == "n/a (2.00)"

    def test_rate_with_one_decimal(self):
        assert format_rate(60.0, decimals=1) == "60.0%"
        assert format_rate(66.666, decimals=1) == "66.7%"
        assert format_rate(math.nan, decimals=1) == "n/a"

    def test_signed(self):
        assert format_signed(0.5) == "+0.50"
        assert format_signed(-0.25) == "-0.25"

    def test_chart_title(self):
        assert chart_title("Biology", 2024, "ER") == "Biology - 2024 - ER"
