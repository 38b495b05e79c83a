"""
report_builder.py — PDF and Excel generation.

Generates:
- Subject Report PDF (title page, table of contents, one page per chart or
  top/bottom question, footer with page numbers)
- Input Template (blank item-analysis workbook with the expected headers)

PDFs are US Letter landscape. Each subject is composed independently; chart
images and question images live only for the duration of that subject's build.
"""

import io
import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from PIL import Image as PILImage
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import landscape, letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.platypus import (
    Image,
    KeepInFrame,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from core.chart_renderer import DEFAULT_DPI, render_chart
from core.charts import format_rate
from core.models import CANONICAL_COLUMNS, CHUNK_FIELD_PREFIX, ItemKind
from core.pages import TOP_GROUP, PageDescriptor, PageKind, SubjectPlan
from core.payload import decode_payload, reconstruct_payload

logger = logging.getLogger(__name__)

DEFAULT_REPORT_TITLE = "HSC Analysis Report - HSC Insight 2026"

PAGE_SIZE = landscape(letter)
MARGIN = 0.5 * inch
FRAME_WIDTH = PAGE_SIZE[0] - 2 * MARGIN
FRAME_HEIGHT = PAGE_SIZE[1] - 2 * MARGIN

CHART_MAX_WIDTH = 10 * inch
QUESTION_IMAGE_MAX_WIDTH = 5 * inch
QUESTION_IMAGE_MAX_HEIGHT = 4 * inch

NO_IMAGE_TEXT = "(No question image provided in Excel)"
IMAGE_ERROR_TEXT = "(Error rendering question image)"
CHART_ERROR_TEXT = "(Error rendering chart)"


# ── Colour palette ──────────────────────────────────────────────────

BRAND_DARK = colors.HexColor("#1a1a2e")
BRAND_ACCENT = colors.HexColor("#4C72B0")
GREEN = colors.HexColor("#008000")
RED = colors.HexColor("#ff0000")
MUTED = colors.HexColor("#969696")


# ── PDF Helpers ─────────────────────────────────────────────────────

def _styles():
    """Return custom paragraph styles."""
    ss = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "CustomTitle", parent=ss["Title"],
            fontSize=24, leading=30, textColor=BRAND_DARK, alignment=TA_CENTER,
        ),
        "subtitle": ParagraphStyle(
            "CustomSubtitle", parent=ss["Normal"],
            fontSize=18, leading=24, textColor=BRAND_ACCENT, alignment=TA_CENTER,
            fontName="Helvetica-Bold",
        ),
        "center": ParagraphStyle(
            "CenterBody", parent=ss["Normal"],
            fontSize=14, leading=18, alignment=TA_CENTER,
        ),
        "heading": ParagraphStyle(
            "CustomHeading", parent=ss["Heading2"],
            fontSize=18, leading=22, textColor=BRAND_DARK, alignment=TA_CENTER,
            spaceAfter=12,
        ),
        "toc_group": ParagraphStyle(
            "TocGroup", parent=ss["Normal"],
            fontSize=12, leading=14, textColor=BRAND_ACCENT, fontName="Helvetica-Bold",
        ),
        "toc_entry": ParagraphStyle(
            "TocEntry", parent=ss["Normal"], fontSize=10, leading=12,
        ),
        "body": ParagraphStyle(
            "CustomBody", parent=ss["Normal"], fontSize=12, leading=17,
        ),
        "label": ParagraphStyle(
            "DetailLabel", parent=ss["Normal"],
            fontSize=11, leading=15, fontName="Helvetica-Bold", spaceBefore=6,
        ),
        "tag": ParagraphStyle(
            "DetailTag", parent=ss["Normal"],
            fontSize=10, leading=13, fontName="Helvetica-Oblique", leftIndent=14,
        ),
        "placeholder": ParagraphStyle(
            "Placeholder", parent=ss["Normal"],
            fontSize=9, leading=12, textColor=MUTED, spaceBefore=10,
        ),
    }


def _footer(canvas, doc, plan: SubjectPlan):
    """Subject and page number on every content page."""
    page_num = canvas.getPageNumber()
    if page_num <= 1 + plan.toc_page_count:
        return
    canvas.saveState()
    canvas.setFont("Helvetica", 9)
    canvas.setFillColor(colors.grey)
    canvas.drawRightString(PAGE_SIZE[0] - MARGIN, MARGIN - 0.15 * inch,
                           f"{plan.subject} - Page {page_num}")
    canvas.restoreState()


def _scaled_image(data: bytes, max_width: float, max_height: float) -> Image:
    """ReportLab Image scaled to fit the box, keeping aspect ratio."""
    width, height = ImageReader(io.BytesIO(data)).getSize()
    scale = min(max_width / width, max_height / height)
    return Image(io.BytesIO(data), width=width * scale, height=height * scale)


def _validated_png(data: bytes) -> bytes:
    """Fully decode image bytes and re-encode them as PNG; raises on corrupt data."""
    with PILImage.open(io.BytesIO(data)) as img:
        img.load()
        if img.mode not in ("RGB", "RGBA", "L", "LA", "P"):
            img = img.convert("RGBA")
        out = io.BytesIO()
        img.save(out, format="PNG")
    return out.getvalue()


def _one_page(flowables: List[Any]) -> KeepInFrame:
    """Shrink content so it never spills onto a second page."""
    return KeepInFrame(0, 0, flowables, mode="shrink")


# ── Page builders ───────────────────────────────────────────────────

def _title_page(subject: str, report_title: str, generated_on: datetime, st) -> List[Any]:
    return [
        Spacer(1, 1.7 * inch),
        Paragraph(escape(report_title), st["title"]),
        Spacer(1, 0.5 * inch),
        Paragraph(escape(subject), st["subtitle"]),
        Spacer(1, 0.6 * inch),
        Paragraph(f"Generated: {generated_on.day} {generated_on.strftime('%B %Y')}", st["center"]),
    ]


def _toc_pages(plan: SubjectPlan, st) -> List[List[Any]]:
    """One flowable list per TOC page."""
    if not plan.toc:
        return []
    per_page = plan.entries_per_page
    pages = []
    for i in range(plan.toc_page_count):
        chunk = plan.toc[i * per_page:(i + 1) * per_page]
        heading = "Table of Contents" if i == 0 else "Table of Contents (continued)"
        rows = []
        style_cmds = [
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("ALIGN", (1, 0), (1, -1), "RIGHT"),
            ("FONTSIZE", (1, 0), (1, -1), 10),
            ("TOPPADDING", (0, 0), (-1, -1), 1),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 1),
        ]
        for entry in chunk:
            if entry.show_header:
                style_cmds.append(("SPAN", (0, len(rows)), (1, len(rows))))
                rows.append([Paragraph(escape(f"{entry.subject} - {entry.year}"), st["toc_group"]), ""])
            rows.append([
                Paragraph(f"&bull; {escape(entry.title)}", st["toc_entry"]),
                str(entry.page_number),
            ])
        table = Table(rows, colWidths=[FRAME_WIDTH - 0.8 * inch, 0.8 * inch])
        table.setStyle(TableStyle(style_cmds))
        pages.append([Paragraph(heading, st["heading"]), table])
    return pages


def _chart_page(page: PageDescriptor, dpi: int, st) -> List[Any]:
    try:
        png = render_chart(page.chart, dpi=dpi)
        return [_scaled_image(png, CHART_MAX_WIDTH, FRAME_HEIGHT - 0.3 * inch)]
    except Exception:
        logger.exception("Failed to render chart '%s'", page.title)
        return [
            Paragraph(escape(page.title), st["heading"]),
            Paragraph(CHART_ERROR_TEXT, st["placeholder"]),
        ]


def _question_image(page: PageDescriptor, st) -> Any:
    """Question screenshot, rebuilt from its chunks only for this page."""
    record = page.entry.record
    payload = reconstruct_payload(record)
    if payload is None:
        return Paragraph(NO_IMAGE_TEXT, st["placeholder"])
    try:
        data = _validated_png(decode_payload(payload))
        return _scaled_image(data, QUESTION_IMAGE_MAX_WIDTH, QUESTION_IMAGE_MAX_HEIGHT)
    except Exception:
        logger.exception("Error adding image for question %s to PDF", record.item_label)
        return Paragraph(IMAGE_ERROR_TEXT, st["placeholder"])


def _detail_page(page: PageDescriptor, st) -> List[Any]:
    record = page.entry.record
    accent = GREEN if page.outlier_group == TOP_GROUP else RED
    hex_accent = accent.hexval()[2:]
    kind = record.item_kind.value if record.item_kind is not ItemKind.UNKNOWN else ""

    text = [
        Paragraph(
            f'<font color="#{hex_accent}" size="14"><b>Question: {escape(record.item_label)}</b></font>',
            st["body"],
        ),
        Paragraph(f"MC/ER: {kind}", st["body"]),
        Paragraph(f"<b>School Mean: {record.school_mean:.2f} / {record.max_mark:g}</b>", st["body"]),
        Paragraph(
            f'<font color="#{hex_accent}"><b>Success Rate: {format_rate(page.entry.success_rate, decimals=1)}</b></font>',
            st["body"],
        ),
        Paragraph(f"State Mean: {record.state_mean:.2f}", st["body"]),
        Paragraph("Content Area (QPC):", st["label"]),
        Paragraph(escape(record.content_tag or "N/A"), st["tag"]),
        Paragraph("Learning Outcome (QPO):", st["label"]),
        Paragraph(escape(record.outcome_tag or "N/A"), st["tag"]),
    ]

    body = Table(
        [[text, _question_image(page, st)]],
        colWidths=[FRAME_WIDTH - QUESTION_IMAGE_MAX_WIDTH - 0.2 * inch, QUESTION_IMAGE_MAX_WIDTH + 0.2 * inch],
    )
    body.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    return [Paragraph(escape(page.title), st["heading"]), Spacer(1, 0.2 * inch), body]


# ═══════════════════════════════════════════════════════════════════
# 1. SUBJECT REPORT PDF
# ═══════════════════════════════════════════════════════════════════

def compose_subject_pdf(
    plan: SubjectPlan,
    report_title: str = DEFAULT_REPORT_TITLE,
    dpi: int = DEFAULT_DPI,
    generated_on: Optional[datetime] = None,
) -> Tuple[bytes, int]:
    """
    Build one subject's PDF. Returns (pdf_bytes, page_count).

    A failing chart or question image is replaced by a placeholder on that
    page only.
    """
    st = _styles()
    generated_on = generated_on or datetime.now()

    sections = [_title_page(plan.subject, report_title, generated_on, st)]
    sections.extend(_toc_pages(plan, st))
    for page in plan.pages:
        if page.kind is PageKind.CHART:
            sections.append(_chart_page(page, dpi, st))
        else:
            sections.append(_detail_page(page, st))

    story = []
    for i, flowables in enumerate(sections):
        if i:
            story.append(PageBreak())
        story.append(_one_page(flowables))

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=PAGE_SIZE,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN,
        title=f"{report_title} - {plan.subject}",
    )
    doc.build(
        story,
        onFirstPage=lambda c, d: _footer(c, d, plan),
        onLaterPages=lambda c, d: _footer(c, d, plan),
    )

    if doc.page != plan.page_count:
        logger.warning(
            "%s: built %d pages but the table of contents expects %d",
            plan.subject, doc.page, plan.page_count,
        )
    return buf.getvalue(), doc.page


# ═══════════════════════════════════════════════════════════════════
# 2. INPUT TEMPLATE
# ═══════════════════════════════════════════════════════════════════

TEMPLATE_CHUNK_COLUMNS = 5


def generate_template_workbook(output_path: str, chunk_columns: int = TEMPLATE_CHUNK_COLUMNS):
    """Write a blank item-analysis workbook with the expected header row."""
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="1a1a2e", end_color="1a1a2e", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    wb = Workbook()
    ws = wb.active
    ws.title = "Item Analysis"
    ws.sheet_properties.tabColor = "4C72B0"

    ws.append(["HSC Item Analysis"])
    ws["A1"].font = Font(bold=True, size=14)
    ws.append([])

    headers = list(CANONICAL_COLUMNS) + [f"{CHUNK_FIELD_PREFIX}{i}" for i in range(chunk_columns)]
    ws.append(headers)
    header_row = ws.max_row
    for cell in ws[header_row]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", wrap_text=True)
        cell.border = thin_border

    ws.append(["Mathematics Advanced", 2025, "1", "MC", "Functions", "MA-F1", 0.85, 0.78, 1])

    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)
    for col_cells in ws.iter_cols(min_row=header_row, max_row=header_row):
        cell = col_cells[0]
        ws.column_dimensions[cell.column_letter].width = min(len(str(cell.value or "")) + 6, 30)

    wb.save(output_path)
