"""
HSC Insight — Item Analysis Report Generator
FastAPI backend entry point.
"""

import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.log_config import configure_logging
from core.pipeline import PipelineConfig
from routes.reports import router as reports_router
from routes.upload import router as upload_router

# Load environment
load_dotenv()
configure_logging(os.getenv("LOG_LEVEL", "INFO"))

# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

app = FastAPI(
    title="HSC Insight API",
    description=(
        "Item-analysis reporting — per-subject PDF reports with question "
        "charts, tag summaries and best/worst question detail pages."
    ),
    version="1.0.0",
)

# CORS — allow the React dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Page-Count"],
)

# Register route modules
app.include_router(upload_router, prefix="/api/upload", tags=["Upload"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    config = PipelineConfig.from_env()
    return {
        "report_title": config.report_title,
        "chart_dpi": config.chart_dpi,
        "toc_entries_per_page": config.toc_entries_per_page,
    }
