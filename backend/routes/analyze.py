"""
Analyze routes — analytics API endpoints.

Payloads carry either a `session_id` whose columns are already mapped, or
the inline `sheets`, `selected_sheets` and `mapping`. `sheet_filter`
(default "All") narrows the student set before analysis.
"""

import os

from fastapi import APIRouter, HTTPException

from core.ai_insights import generate_action_plan
from core.analysis import top_performers
from core.correlation import (
    available_variables,
    component_correlation_pairs,
    default_selectors,
    explore_correlation,
)
from core.grading import get_all_band_thresholds, get_all_grade_thresholds
from core.normalizer import ALL_SHEETS
from core.pipeline import Analyzed, ColumnsMapped, analyze, map_columns, select_sheets, start
from routes.upload import get_session

router = APIRouter()

PASS_MARK = float(os.getenv("PASS_MARK", "60"))


def _mapped_from_payload(payload: dict) -> ColumnsMapped:
    """Mapped stage from a session, or built from inline sheets + mapping."""
    session_id = payload.get("session_id")
    if session_id:
        stage = get_session(session_id)["stage"]
        if not isinstance(stage, ColumnsMapped):
            raise HTTPException(409, "Confirm the column mapping before analyzing.")
        return stage

    sheets = payload.get("sheets")
    mapping = payload.get("mapping")
    if not sheets or not mapping:
        raise HTTPException(400, "Provide 'session_id', or 'sheets' and 'mapping'.")
    try:
        uploaded = start(sheets)
        selected = select_sheets(uploaded, payload.get("selected_sheets") or uploaded.sheet_names)
        return map_columns(selected, mapping)
    except (ValueError, TypeError, AttributeError) as e:
        raise HTTPException(400, f"Invalid analysis input: {e}")


def analyzed_from_payload(payload: dict) -> Analyzed:
    mapped = _mapped_from_payload(payload)
    return analyze(mapped, payload.get("sheet_filter") or ALL_SHEETS, pass_mark=PASS_MARK)


@router.post("/full")
async def full_analysis(payload: dict):
    """Summary, component stats, strongest/weakest component, bands and students."""
    result = analyzed_from_payload(payload)
    response = {
        "sheet_filter": result.sheet_filter,
        "sheet_filters": result.mapped.sheet_filter_options,
        "source_name": result.source_name,
        "total_label": result.mapped.total_label,
        "pass_mark": PASS_MARK,
        "empty": result.is_empty,
        "analysis": None,
    }
    if result.is_empty:
        return response

    analysis = result.analysis
    response.update({
        "analysis": analysis.to_dict(),
        "top_performers": [s.to_dict() for s in top_performers(analysis.students)],
        "component_correlations": component_correlation_pairs(analysis),
        "variables": available_variables(analysis),
        "default_selectors": default_selectors(analysis),
    })
    return response


@router.post("/correlation")
async def correlation(payload: dict):
    """Paired values and Pearson r for two variables ("total" or a component name)."""
    result = analyzed_from_payload(payload)
    defaults = default_selectors(result.analysis) if result.analysis else {"x": "total", "y": "total"}
    x = payload.get("x") or defaults["x"]
    y = payload.get("y") or defaults["y"]
    return explore_correlation(result.students, x, y, total_label=result.mapped.total_label)


@router.post("/action-plan")
async def action_plan(payload: dict):
    """
    Differentiated action plan for the analyzed cohort.
    Deterministic unless AI is enabled by env vars; only aggregates are sent out.
    """
    result = analyzed_from_payload(payload)
    if result.is_empty:
        raise HTTPException(400, f"No students found for '{result.source_name}'.")
    return generate_action_plan(result.analysis)


@router.get("/grade-scale")
async def grade_scale():
    """Letter grade and performance band thresholds."""
    return {
        "pass_mark": PASS_MARK,
        "grades": get_all_grade_thresholds(),
        "bands": get_all_band_thresholds(),
    }
