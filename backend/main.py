"""
Score Analytics — spreadsheet gradebook analysis.
FastAPI backend entry point.
"""

import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment before the routers read their settings.
load_dotenv()

from core.log_setup import setup_logging  # noqa: E402
from routes.upload import router as upload_router  # noqa: E402
from routes.analyze import router as analyze_router, PASS_MARK  # noqa: E402
from routes.reports import router as reports_router, REPORT_TITLE  # noqa: E402

logger = setup_logging()

# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]
AI_ENABLED = os.getenv("AI_ENABLED", "false").strip().lower() in {"1", "true", "yes", "on"}

app = FastAPI(
    title="Score Analytics API",
    description=(
        "Descriptive statistics, performance bands and correlations for "
        "spreadsheet gradebooks, with optional AI-written action plans."
    ),
    version="1.0.0",
)

# CORS: allow the React dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(upload_router, prefix="/api/upload", tags=["Upload"])
app.include_router(analyze_router, prefix="/api/analyze", tags=["Analytics"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])

logger.info("API ready (pass mark %s, AI %s)", PASS_MARK, "on" if AI_ENABLED else "off")


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "report_title": REPORT_TITLE,
        "pass_mark": PASS_MARK,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "report_title": REPORT_TITLE,
        "pass_mark": PASS_MARK,
        "ai_enabled": AI_ENABLED,
    }
