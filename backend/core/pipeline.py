"""
pipeline.py — End-to-end report generation.

Threads an explicit PipelineConfig through ingestion, planning and
composition, and returns a ReportContext instead of keeping results in
module state. Subjects are planned and composed strictly one after another.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from core.chart_renderer import DEFAULT_DPI
from core.cleaner import load_item_records
from core.models import ItemRecord
from core.pages import TOC_ENTRIES_PER_PAGE, iter_subject_plans
from core.report_builder import DEFAULT_REPORT_TITLE, compose_subject_pdf
from core.stats import compute_overview

logger = logging.getLogger(__name__)

# Stage names passed to PipelineConfig.on_stage
STAGE_PLANNED = "planned"
STAGE_COMPOSED = "composed"

StageCallback = Callable[[str, str], None]


@dataclass
class PipelineConfig:
    report_title: str = DEFAULT_REPORT_TITLE
    chart_dpi: int = DEFAULT_DPI
    toc_entries_per_page: int = TOC_ENTRIES_PER_PAGE
    on_stage: Optional[StageCallback] = None

    @classmethod
    def from_env(cls, on_stage: Optional[StageCallback] = None) -> "PipelineConfig":
        """Build settings from REPORT_TITLE, CHART_DPI and TOC_ENTRIES_PER_PAGE."""
        return cls(
            report_title=os.getenv("REPORT_TITLE", DEFAULT_REPORT_TITLE),
            chart_dpi=int(os.getenv("CHART_DPI", str(DEFAULT_DPI))),
            toc_entries_per_page=int(os.getenv("TOC_ENTRIES_PER_PAGE", str(TOC_ENTRIES_PER_PAGE))),
            on_stage=on_stage,
        )

    def notify(self, stage: str, subject: str):
        if self.on_stage is not None:
            self.on_stage(stage, subject)


@dataclass(frozen=True)
class SubjectDocument:
    subject: str
    filename: str
    content: bytes
    page_count: int


@dataclass
class ReportContext:
    config: PipelineConfig
    records: List[ItemRecord]
    cleaning_report: Dict
    overview: Dict
    documents: List[SubjectDocument] = field(default_factory=list)

    @property
    def filenames(self) -> List[str]:
        return [d.filename for d in self.documents]


def iter_subject_documents(
    records: List[ItemRecord], config: Optional[PipelineConfig] = None
) -> Iterator[SubjectDocument]:
    """
    Yield one finished PDF per subject, in subject order.

    The next subject is not planned until the caller asks for it, so only one
    subject's charts and images are held at a time.
    """
    config = config or PipelineConfig()
    for plan in iter_subject_plans(records, config.toc_entries_per_page):
        config.notify(STAGE_PLANNED, plan.subject)
        content, page_count = compose_subject_pdf(plan, config.report_title, config.chart_dpi)
        logger.info("Generated %s (%d pages, %dKB)", plan.filename, page_count, len(content) // 1024)
        config.notify(STAGE_COMPOSED, plan.subject)
        yield SubjectDocument(
            subject=plan.subject,
            filename=plan.filename,
            content=content,
            page_count=page_count,
        )


def build_report(
    records: List[ItemRecord], cleaning_report: Dict, config: Optional[PipelineConfig] = None
) -> ReportContext:
    """Compose every subject PDF for already-cleaned records."""
    config = config or PipelineConfig()
    context = ReportContext(
        config=config,
        records=records,
        cleaning_report=cleaning_report,
        overview=compute_overview(records, cleaning_report),
    )
    for document in iter_subject_documents(records, config):
        context.documents.append(document)
    logger.info("Report complete: %d subject documents", len(context.documents))
    return context


def run_report(file_path: str, config: Optional[PipelineConfig] = None) -> ReportContext:
    """Read a workbook and generate the per-subject PDFs."""
    records, cleaning_report = load_item_records(file_path)
    return build_report(records, cleaning_report, config)
