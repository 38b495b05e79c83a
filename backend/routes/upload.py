"""
Upload routes — validate an item-analysis workbook and hand out the input template.
"""

import uuid
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core.cleaner import generate_cleaning_report, load_item_records
from core.models import ItemRecord
from core.parser import SUPPORTED_EXTENSIONS, IngestionError
from core.report_builder import generate_template_workbook
from core.stats import compute_overview, sanitize

router = APIRouter()

PREVIEW_ROWS = 10
TEMPLATE_FILENAME = "HSC_Item_Analysis_Template.xlsx"

# Keep upload path stable regardless of process working directory.
UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
UPLOAD_DIR.mkdir(exist_ok=True)


def safe_unlink(path: str):
    """Best-effort file deletion after response is sent."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        pass


async def save_upload(file: UploadFile) -> Path:
    """Stream an upload to a uniquely named temp file; rejects unknown extensions."""
    ext = Path(file.filename or "").suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise HTTPException(400, f"Unsupported file type: {ext or 'none'}. Use Excel, ODS or CSV.")

    save_path = UPLOAD_DIR / f"{uuid.uuid4()}{ext}"
    with open(save_path, "wb") as f:
        while True:
            chunk = await file.read(1024 * 1024)
            if not chunk:
                break
            f.write(chunk)
    return save_path


def _record_preview(record: ItemRecord) -> Dict[str, Any]:
    """JSON-safe row without the image chunk columns."""
    return {
        "subject": record.subject,
        "year": record.year,
        "item_label": record.item_label,
        "item_kind": record.item_kind.value,
        "content_tag": record.content_tag,
        "outcome_tag": record.outcome_tag,
        "school_mean": record.school_mean,
        "state_mean": record.state_mean,
        "max_mark": record.max_mark,
        "has_image": any(str(v).strip() for v in record.payload_fields.values()),
    }


@router.post("/file")
async def upload_file(file: UploadFile = File(...)):
    """
    Upload an Excel, ODS or CSV item-analysis export.
    Returns the dataset overview, the cleaning report and a preview.
    """
    save_path = await save_upload(file)
    try:
        records, report = load_item_records(str(save_path))
    except IngestionError as e:
        raise HTTPException(400, f"Failed to process upload '{file.filename}': {e}")
    finally:
        # Nothing about the upload is kept between requests.
        safe_unlink(str(save_path))

    return {
        "filename": file.filename,
        "overview": compute_overview(records, report),
        "cleaning_report": sanitize(report),
        "cleaning_report_text": generate_cleaning_report(report),
        "preview": sanitize([_record_preview(r) for r in records[:PREVIEW_ROWS]]),
    }


@router.get("/template")
async def download_template():
    """Blank workbook with the expected header row."""
    output_path = UPLOAD_DIR / f"template_{uuid.uuid4().hex[:8]}.xlsx"
    generate_template_workbook(str(output_path))
    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=TEMPLATE_FILENAME,
        background=BackgroundTask(safe_unlink, str(output_path)),
    )
