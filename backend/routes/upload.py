"""
Upload routes — file upload, sheet selection and column mapping.

Each session holds the latest pipeline stage for one uploaded workbook.
"""

import json
import os
import uuid
from pathlib import Path
from time import time
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from core.log_setup import get_logger
from core.parser import SUPPORTED_EXTENSIONS, parse_workbook
from core.pipeline import ColumnsMapped, SheetsSelected, Uploaded, map_columns, select_sheets, start

router = APIRouter()
logger = get_logger()

# In-memory session store: session_id → { stage, filename, created_at }
sessions: dict = {}
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", str(60 * 60)))

# Keep upload path stable regardless of process working directory.
UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
UPLOAD_DIR.mkdir(exist_ok=True)


def _purge_expired_sessions():
    now = time()
    expired = [
        sid for sid, s in sessions.items()
        if (now - float(s.get("created_at", now))) > SESSION_TTL_SECONDS
    ]
    for sid in expired:
        sessions.pop(sid, None)


def get_session(session_id: str) -> dict:
    _purge_expired_sessions()
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(404, "Session not found. Please re-upload the file.")
    return session


def _stage_of(session: dict, *kinds):
    stage = session["stage"]
    # Later stages keep the sheets, so an earlier step can be redone from any of them.
    if isinstance(stage, kinds):
        return stage
    raise HTTPException(409, f"Session is at step '{type(stage).__name__}'; complete the earlier steps first.")


def _json_form(raw: str, what: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(400, f"Invalid {what} JSON.")


def _mapping_response(session_id: str, stage: SheetsSelected) -> dict:
    return {
        "session_id": session_id,
        "selected_sheets": list(stage.selected_sheet_names),
        "headers": stage.headers,
        "sample_row": stage.sample_row,
        "suggested_mapping": stage.suggested_mapping(),
    }


@router.post("/file")
async def upload_file(file: UploadFile = File(...)):
    """
    Upload a CSV, Excel, or ODS file.
    Returns the usable sheets and their row counts.
    """
    ext = Path(file.filename or "").suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise HTTPException(400, f"Unsupported file type: {ext}. Use CSV, Excel, or ODS.")

    session_id = str(uuid.uuid4())
    save_path = UPLOAD_DIR / f"{session_id}{ext}"

    try:
        _purge_expired_sessions()
        with open(save_path, "wb") as f:
            while True:
                chunk = await file.read(1024 * 1024)
                if not chunk:
                    break
                f.write(chunk)
        sheets = parse_workbook(str(save_path))
    finally:
        # The parsed rows live in the session; the file itself is not kept.
        save_path.unlink(missing_ok=True)

    if not sheets:
        raise HTTPException(400, f"No usable sheets found in '{file.filename}'.")

    stage = start(sheets)
    sessions[session_id] = {
        "stage": stage,
        "uploaded": stage,
        "filename": file.filename,
        "created_at": time(),
    }
    logger.info("session %s: uploaded %s with %d sheet(s)", session_id, file.filename, len(sheets))

    response = {
        "session_id": session_id,
        "filename": file.filename,
        "sheets": stage.sheet_names,
        "sheet_row_counts": stage.row_counts,
    }
    # A single sheet needs no choosing; jump straight to mapping.
    if len(sheets) == 1:
        selected = select_sheets(stage, stage.sheet_names)
        sessions[session_id]["stage"] = selected
        response.update(_mapping_response(session_id, selected))
    return response


@router.post("/select-sheets")
async def choose_sheets(
    session_id: str = Form(...),
    sheets: str = Form(...),  # JSON list of sheet names
):
    """Pick which sheets to merge. Returns headers and a suggested column mapping."""
    session = get_session(session_id)
    names = _json_form(sheets, "sheet list")
    if not isinstance(names, list):
        raise HTTPException(400, "Sheet list must be a JSON array.")

    uploaded: Uploaded = session["uploaded"]
    try:
        selected = select_sheets(uploaded, names)
    except ValueError as e:
        raise HTTPException(400, str(e))

    session["stage"] = selected
    return _mapping_response(session_id, selected)


@router.post("/confirm-mapping")
async def confirm_mapping(
    session_id: str = Form(...),
    mapping: str = Form(...),  # JSON object of column mapping
):
    """Confirm the column mapping and normalize the selected rows into student records."""
    session = get_session(session_id)
    stage = _stage_of(session, SheetsSelected, ColumnsMapped)
    if isinstance(stage, ColumnsMapped):
        stage = SheetsSelected(sheets=stage.sheets, selected_sheet_names=stage.selected_sheet_names)

    col_mapping = _json_form(mapping, "mapping")
    if not isinstance(col_mapping, dict):
        raise HTTPException(400, "Mapping must be a JSON object.")

    try:
        mapped = map_columns(stage, col_mapping)
    except ValueError as e:
        raise HTTPException(400, f"Failed to confirm mapping: {e}")

    session["stage"] = mapped
    return {
        "session_id": session_id,
        "mapping": mapped.mapping.to_dict(),
        "student_count": len(mapped.students),
        "sheet_filters": mapped.sheet_filter_options,
        "students": [s.to_dict() for s in mapped.students],
    }


@router.get("/session/{session_id}")
async def session_info(session_id: str):
    """Get session info."""
    s = get_session(session_id)
    stage = s["stage"]
    info = {
        "session_id": session_id,
        "filename": s.get("filename"),
        "step": type(stage).__name__,
        "sheets": s["uploaded"].sheet_names,
    }
    if isinstance(stage, (SheetsSelected, ColumnsMapped)):
        info["selected_sheets"] = list(stage.selected_sheet_names)
    if isinstance(stage, ColumnsMapped):
        info["mapping"] = stage.mapping.to_dict()
        info["student_count"] = len(stage.students)
    return info


@router.post("/end-session")
async def end_session(session_id: Optional[str] = Form(None)):
    """
    Explicitly end a session and drop its data.
    If session_id is omitted, all in-memory sessions are purged (single-user mode).
    """
    if session_id:
        sessions.pop(session_id, None)
        return {"status": "ok", "message": f"Session {session_id} deleted."}

    sessions.clear()
    return {"status": "ok", "message": "All active sessions deleted."}
