"""
Tests for the HTTP API — upload validation, template download, report generation.
"""

import io
import os
import sys
import zipfile
import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from main import app

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("CHART_DPI", "40")
    return TestClient(app)


@pytest.fixture
def workbook_bytes():
    wb = Workbook()
    ws = wb.active
    ws.append(["Subject", "Year", "Question (Item)", "MC/ER", "QPC", "QPO",
               "School Mean (Item)", "State Mean (Item)", "Max Mark (Item)", "HSC_BASE64_0"])
    ws.append(["Biology", 2023, "1", "MC", "Cells", "BIO-1", 6, 5, 10, "AAAA"])
    ws.append(["Biology", 2023, "2", "ER", "Cells", "BIO-2", 15, 16, 20, ""])
    ws.append(["Chemistry", 2023, "1", "MC", "Bonding", "CH-1", 0.5, 0.6, 1, ""])
    ws.append(["Chemistry", 2023, "Question", "", "", "", "", "", "", ""])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _upload(data, name="items.xlsx"):
    return {"file": (name, data, XLSX_TYPE)}


class TestHealth:
    """Health and config endpoints."""

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_config(self, client):
        body = client.get("/api/config").json()
        assert body["chart_dpi"] == 40
        assert body["toc_entries_per_page"] == 20


class TestUpload:
    """Upload validation endpoint."""

    def test_upload_returns_overview(self, client, workbook_bytes):
        resp = client.post("/api/upload/file", files=_upload(workbook_bytes))
        assert resp.status_code == 200
        body = resp.json()
        assert body["overview"]["subjects"] == ["Biology", "Chemistry"]
        assert body["overview"]["valid_rows"] == 3
        assert body["cleaning_report"]["rejected_header_repeats"] == 1
        assert len(body["preview"]) == 3
        assert "payload_fields" not in body["preview"][0]
        assert body["preview"][0]["has_image"] is True

    def test_unsupported_type(self, client):
        resp = client.post("/api/upload/file", files=_upload(b"hello", name="notes.txt"))
        assert resp.status_code == 400

    def test_headerless_upload(self, client):
        resp = client.post(
            "/api/upload/file",
            files={"file": ("items.csv", b"Maths,2023,1\nEnglish,2023,2\n", "text/csv")},
        )
        assert resp.status_code == 400
        assert "Missing required column" in resp.json()["detail"]

    def test_template_download(self, client):
        resp = client.get("/api/upload/template")
        assert resp.status_code == 200
        assert resp.content[:2] == b"PK"


class TestReports:
    """Report generation endpoints."""

    def test_generate_zip(self, client, workbook_bytes):
        resp = client.post("/api/reports/generate", files=_upload(workbook_bytes))
        assert resp.status_code == 200
        archive = zipfile.ZipFile(io.BytesIO(resp.content))
        assert sorted(archive.namelist()) == ["HSC_Analysis_Biology.pdf", "HSC_Analysis_Chemistry.pdf"]
        assert archive.read("HSC_Analysis_Biology.pdf")[:4] == b"%PDF"

    def test_subject_pdf(self, client, workbook_bytes):
        resp = client.post(
            "/api/reports/subject-pdf",
            files=_upload(workbook_bytes),
            data={"subject": "Chemistry"},
        )
        assert resp.status_code == 200
        assert resp.content[:4] == b"%PDF"
        assert "HSC_Analysis_Chemistry.pdf" in resp.headers["content-disposition"]
        assert int(resp.headers["x-page-count"]) >= 3

    def test_subject_pdf_unknown_subject(self, client, workbook_bytes):
        resp = client.post(
            "/api/reports/subject-pdf",
            files=_upload(workbook_bytes),
            data={"subject": "Physics"},
        )
        assert resp.status_code == 404
