"""
Report routes — per-subject PDF generation endpoints.
"""

import uuid
import zipfile

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse, Response
from starlette.background import BackgroundTask

from core.cleaner import load_item_records
from core.parser import IngestionError
from core.pipeline import PipelineConfig, iter_subject_documents
from routes.upload import UPLOAD_DIR, safe_unlink, save_upload

router = APIRouter()

REPORTS_DIR = UPLOAD_DIR / "reports"
REPORTS_DIR.mkdir(parents=True, exist_ok=True)
ARCHIVE_FILENAME = "HSC_Analysis_Reports.zip"


async def _records_from_upload(file: UploadFile):
    save_path = await save_upload(file)
    try:
        return load_item_records(str(save_path))
    except IngestionError as e:
        raise HTTPException(400, f"Failed to process upload '{file.filename}': {e}")
    finally:
        safe_unlink(str(save_path))


@router.post("/generate")
async def generate_reports(file: UploadFile = File(...)):
    """Build one PDF per subject and return them as a ZIP archive."""
    records, _ = await _records_from_upload(file)
    if not records:
        raise HTTPException(400, "No valid question rows found in the upload.")

    output_path = REPORTS_DIR / f"reports_{uuid.uuid4().hex[:8]}.zip"
    config = PipelineConfig.from_env()
    try:
        # Each PDF is written and released before the next subject is planned.
        with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for document in iter_subject_documents(records, config):
                archive.writestr(document.filename, document.content)
    except Exception:
        safe_unlink(str(output_path))
        raise

    return FileResponse(
        str(output_path),
        media_type="application/zip",
        filename=ARCHIVE_FILENAME,
        background=BackgroundTask(safe_unlink, str(output_path)),
    )


@router.post("/subject-pdf")
async def subject_report_pdf(file: UploadFile = File(...), subject: str = Form(...)):
    """Build the PDF for a single subject from the uploaded workbook."""
    records, _ = await _records_from_upload(file)
    wanted = subject.strip()
    subject_records = [r for r in records if r.subject == wanted]
    if not subject_records:
        raise HTTPException(404, f"No data found for subject '{wanted}'.")

    document = next(iter_subject_documents(subject_records, PipelineConfig.from_env()))
    return Response(
        content=document.content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{document.filename}"',
            "X-Page-Count": str(document.page_count),
        },
    )
