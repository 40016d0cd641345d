"""
Report routes — PDF and Excel report generation endpoints.
"""

import os
import re
import uuid
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core.ai_insights import generate_action_plan
from core.report_builder import generate_analysis_report_pdf, generate_excel_export
from routes.analyze import PASS_MARK, analyzed_from_payload

router = APIRouter()

REPORT_TITLE = os.getenv("REPORT_TITLE", "Class Performance Report")
UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
REPORTS_DIR = UPLOAD_DIR / "reports"
REPORTS_DIR.mkdir(parents=True, exist_ok=True)


def _safe_token(value: str, fallback: str = "item") -> str:
    """Create filesystem-safe token for filenames."""
    token = re.sub(r"[^A-Za-z0-9._-]+", "_", str(value)).strip("._-")
    return token or fallback


def _safe_unlink(path: str):
    """Delete the generated file after the response is sent."""
    Path(path).unlink(missing_ok=True)


def _analysis_or_404(payload: dict):
    result = analyzed_from_payload(payload)
    if result.is_empty:
        raise HTTPException(404, f"No students found for '{result.source_name}'.")
    return result


@router.post("/pdf")
async def analysis_report_pdf(payload: dict):
    """Generate the analysis report PDF, optionally with the action plan."""
    result = _analysis_or_404(payload)
    title = payload.get("title") or REPORT_TITLE
    report_id = str(uuid.uuid4())[:8]
    source_token = _safe_token(result.source_name, fallback="all")
    output_path = REPORTS_DIR / f"analysis_report_{source_token}_{report_id}.pdf"

    plan = generate_action_plan(result.analysis) if payload.get("include_action_plan") else None

    generate_analysis_report_pdf(
        output_path=str(output_path),
        title=title,
        analysis=result.analysis,
        source_name=result.source_name,
        total_label=result.mapped.total_label,
        action_plan=plan,
        pass_mark=PASS_MARK,
    )

    return FileResponse(
        str(output_path),
        media_type="application/pdf",
        filename=f"Analysis_Report_{source_token}_{report_id}.pdf",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )


@router.post("/excel")
async def excel_export(payload: dict):
    """Export students and component statistics as an Excel workbook."""
    result = _analysis_or_404(payload)
    title = payload.get("title") or REPORT_TITLE
    report_id = str(uuid.uuid4())[:8]
    output_path = REPORTS_DIR / f"analysis_export_{report_id}.xlsx"

    generate_excel_export(
        output_path=str(output_path),
        analysis=result.analysis,
        title=title,
        total_label=result.mapped.total_label,
        pass_mark=PASS_MARK,
    )

    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"Analysis_Export_{report_id}.xlsx",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
