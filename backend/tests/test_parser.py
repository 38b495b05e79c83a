"""
Tests for core/parser.py — worksheet reading, header detection, column canonicalisation.
"""

import os
import sys
import pytest
from openpyxl import Workbook

# Ensure backend/ is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.parser import (
    IngestionError,
    build_column_map,
    canonicalize_header,
    extract_rows,
    find_header_row,
    read_worksheet,
)

HEADER = [
    "Subject", "Year", "Question (Item)", "MC/ER", "Content Area (QPC)",
    "Learning Outcome (QPO)", "School Mean (Item)", "State Mean (Item)", "Max Mark (Item)",
]


class TestFindHeaderRow:
    """Tests for header row detection."""

    def test_header_on_first_row(self):
        grid = [HEADER, ["Maths", 2023, "1"]]
        assert find_header_row(grid) == 0

    def test_header_below_title_rows(self):
        grid = [["HSC Item Analysis"], [], ["Exported 2023"], HEADER, ["Maths", 2023, "1"]]
        assert find_header_row(grid) == 3

    def test_question_cell_may_contain_extra_text(self):
        grid = [["notes"], ["Subject", "Year", "Question (Item) No."]]
        assert find_header_row(grid) == 1

    def test_subject_must_match_exactly(self):
        grid = [["Subject Name", "Question (Item)"], ["x"]]
        assert find_header_row(grid) == 0
        grid = [["junk"], ["Subject Name", "Question (Item)"]]
        assert find_header_row(grid) == 0

    def test_falls_back_to_row_zero(self):
        grid = [["a", "b"], ["c", "d"]]
        assert find_header_row(grid) == 0

    def test_only_first_twenty_rows_scanned(self):
        grid = [["filler"]] * 20 + [HEADER]
        assert find_header_row(grid) == 0
        grid = [["filler"]] * 19 + [HEADER]
        assert find_header_row(grid) == 19

    def test_only_first_twelve_columns_scanned(self):
        row = [""] * 12 + ["Subject", "Question (Item)"]
        grid = [["x"], row]
        assert find_header_row(grid) == 0

    def test_oversized_cell_treated_as_empty(self):
        huge = "Question (Item)" + "A" * 2000
        grid = [["x"], ["Subject", huge], HEADER]
        assert find_header_row(grid) == 2


class TestCanonicalizeHeader:
    """Tests for QPC/QPO header variants."""

    @pytest.mark.parametrize("raw", ["Content Area (QPC)", "QPC", "  QPC  ", "Syllabus Content Area"])
    def test_content_variants(self, raw):
        assert canonicalize_header(raw) == "Question Per Content"

    @pytest.mark.parametrize("raw", ["Learning Outcome (QPO)", "QPO", "Outcome (QPO)"])
    def test_outcome_variants(self, raw):
        assert canonicalize_header(raw) == "Question Per Outcome"

    def test_other_headers_trimmed_only(self):
        assert canonicalize_header("  School Mean (Item) ") == "School Mean (Item)"
        assert canonicalize_header("QPC notes") == "QPC notes"

    def test_none_is_blank(self):
        assert canonicalize_header(None) == ""


class TestBuildColumnMap:
    """Tests for column map construction."""

    def test_blank_headers_skipped(self):
        cols = build_column_map(["Subject", "", "Year"])
        assert cols == [(0, "Subject"), (2, "Year")]

    def test_first_duplicate_wins(self):
        cols = build_column_map(["Subject", "QPC", "Content Area (QPC)"])
        assert cols == [(0, "Subject"), (1, "Question Per Content")]


class TestExtractRows:
    """Tests for turning a grid into row dicts."""

    def test_rows_keyed_by_canonical_name(self):
        grid = [["Title"], HEADER, ["Maths", 2023, "1", "MC", "Algebra", "MA-1", 0.8, 0.7, 1]]
        rows, header_idx = extract_rows(grid)
        assert header_idx == 1
        assert len(rows) == 1
        assert rows[0]["Subject"] == "Maths"
        assert rows[0]["Question Per Content"] == "Algebra"
        assert rows[0]["Question Per Outcome"] == "MA-1"

    def test_short_rows_padded(self):
        grid = [HEADER, ["Maths", 2023]]
        rows, _ = extract_rows(grid)
        assert rows[0]["Question (Item)"] == ""

    def test_chunk_columns_carried(self):
        grid = [HEADER + ["HSC_BASE64_0"], ["Maths", 2023, "1", "MC", "", "", 1, 1, 1, "abc"]]
        rows, _ = extract_rows(grid)
        assert rows[0]["HSC_BASE64_0"] == "abc"

    def test_headerless_input_raises(self):
        grid = [["Maths", 2023, "1"], ["English", 2023, "2"]]
        with pytest.raises(IngestionError):
            extract_rows(grid)

    def test_empty_grid_raises(self):
        with pytest.raises(IngestionError):
            extract_rows([])


class TestReadWorksheet:
    """Tests for reading workbook files."""

    def test_reads_xlsx_first_sheet(self, tmp_path):
        path = tmp_path / "items.xlsx"
        wb = Workbook()
        ws = wb.active
        ws.append(["HSC Item Analysis"])
        ws.append(HEADER)
        ws.append(["Maths", 2023, "1", "MC", "Algebra", "MA-1", 0.8, 0.7, 1])
        wb.save(path)

        grid = read_worksheet(str(path))
        assert grid[0][0] == "HSC Item Analysis"
        assert grid[0][1] == ""
        assert grid[1][0] == "Subject"
        assert grid[2][0] == "Maths"

    def test_reads_csv(self, tmp_path):
        path = tmp_path / "items.csv"
        path.write_text(",".join(HEADER) + "\nMaths,2023,1,MC,Algebra,MA-1,0.8,0.7,1\n")
        grid = read_worksheet(str(path))
        assert grid[1][0] == "Maths"
        assert len(grid) == 2

    def test_reads_csv_with_title_rows(self, tmp_path):
        path = tmp_path / "items.csv"
        path.write_text(
            "HSC Item Analysis\n"
            + ",".join(HEADER + ["HSC_BASE64_1"]) + "\n"
            + "Maths,2023,1,MC,Algebra,MA-1,0.8,0.7,1,AAAA,BBBB\n"
            + "Maths,2023,2,ER,Algebra,MA-1,3.1,2.9,5\n"
        )
        grid = read_worksheet(str(path))
        assert len(grid) == 4
        assert all(len(row) == 11 for row in grid)
        assert grid[0][:2] == ["HSC Item Analysis", ""]
        assert find_header_row(grid) == 1
        assert grid[2][9:] == ["AAAA", "BBBB"]
        assert grid[3][8:] == ["5", "", ""]

    def test_empty_csv_raises(self, tmp_path):
        path = tmp_path / "items.csv"
        path.write_text("")
        with pytest.raises(IngestionError, match="contains no rows"):
            read_worksheet(str(path))

    def test_unsupported_extension_raises(self, tmp_path):
        path = tmp_path / "items.txt"
        path.write_text("hello")
        with pytest.raises(IngestionError):
            read_worksheet(str(path))

    def test_missing_file_raises(self):
        with pytest.raises(IngestionError):
            read_worksheet("nonexistent_file.xlsx")

    def test_ingestion_error_is_value_error(self):
        assert issubclass(IngestionError, ValueError)
