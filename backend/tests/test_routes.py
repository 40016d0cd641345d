"""
Tests for the HTTP API — upload flow, analytics and report endpoints.
"""

import io
import json
import os
import sys
import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from main import app
from routes.upload import sessions

SHEETS = {
    "Form 1A": [
        {"Name": "Alice", "Quiz": 45, "Exam": 50},
        {"Name": "Brian", "Quiz": 30, "Exam": 35},
        {"Name": "", "Quiz": 1, "Exam": 1},
    ],
    "Form 1B": [
        {"Name": "Chen", "Quiz": 15, "Exam": 25},
    ],
}
MAPPING = {"name_column": "Name", "component_columns": ["Quiz", "Exam"]}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("AI_ENABLED", "false")
    sessions.clear()
    return TestClient(app)


def _workbook_bytes():
    wb = Workbook()
    ws = wb.active
    ws.title = "Form 1A"
    ws.append(["Student Name", "Class", "Quiz", "Exam", "Total"])
    ws.append(["Alice", "1A", 45, 50, 95])
    ws.append(["Brian", "1A", 30, 35, 65])
    other = wb.create_sheet("Form 1B")
    other.append(["Student Name", "Class", "Quiz", "Exam", "Total"])
    other.append(["Chen", "1B", 15, 25, 40])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _inline(**extra):
    return {"sheets": SHEETS, "mapping": MAPPING, **extra}


class TestHealth:

    def test_health(self, client):
        res = client.get("/api/health")
        assert res.status_code == 200
        assert res.json()["status"] == "ok"

    def test_config(self, client):
        body = client.get("/api/config").json()
        assert {"report_title", "pass_mark", "ai_enabled"} <= set(body)


class TestUploadFlow:

    def test_full_flow(self, client):
        res = client.post(
            "/api/upload/file",
            files={"file": ("marks.xlsx", _workbook_bytes(),
                            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
        )
        assert res.status_code == 200
        upload = res.json()
        assert upload["sheets"] == ["Form 1A", "Form 1B"]
        assert upload["sheet_row_counts"] == {"Form 1A": 2, "Form 1B": 1}
        session_id = upload["session_id"]

        res = client.post(
            "/api/upload/select-sheets",
            data={"session_id": session_id, "sheets": json.dumps(["Form 1A", "Form 1B"])},
        )
        assert res.status_code == 200
        selected = res.json()
        assert selected["headers"] == ["Student Name", "Class", "Quiz", "Exam", "Total"]
        suggestion = selected["suggested_mapping"]
        assert suggestion["name_column"] == "Student Name"
        assert suggestion["total_column"] == "Total"
        assert suggestion["component_columns"] == ["Quiz", "Exam"]

        res = client.post(
            "/api/upload/confirm-mapping",
            data={"session_id": session_id, "mapping": json.dumps(suggestion)},
        )
        assert res.status_code == 200
        mapped = res.json()
        assert mapped["student_count"] == 3
        assert mapped["sheet_filters"] == ["All", "Form 1A", "Form 1B"]

        res = client.post("/api/analyze/full", json={"session_id": session_id})
        assert res.status_code == 200
        body = res.json()
        assert body["total_label"] == "Total"
        assert body["analysis"]["summary"]["pass_count"] == 2

        info = client.get(f"/api/upload/session/{session_id}").json()
        assert info["step"] == "ColumnsMapped"

        client.post("/api/upload/end-session", data={"session_id": session_id})
        assert client.get(f"/api/upload/session/{session_id}").status_code == 404

    def test_single_sheet_is_auto_selected(self, client):
        csv = b"Name,Quiz,Exam\nAlice,45,50\n"
        res = client.post("/api/upload/file", files={"file": ("marks.csv", csv, "text/csv")})
        body = res.json()
        assert body["selected_sheets"] == ["Sheet1"]
        assert body["suggested_mapping"]["name_column"] == "Name"

    def test_unsupported_file(self, client):
        res = client.post("/api/upload/file", files={"file": ("notes.txt", b"hi", "text/plain")})
        assert res.status_code == 400

    def test_analyze_before_mapping_conflicts(self, client):
        res = client.post(
            "/api/upload/file",
            files={"file": ("marks.xlsx", _workbook_bytes(), "application/octet-stream")},
        )
        session_id = res.json()["session_id"]
        res = client.post("/api/analyze/full", json={"session_id": session_id})
        assert res.status_code == 409

    def test_unknown_session(self, client):
        res = client.post("/api/analyze/full", json={"session_id": "nope"})
        assert res.status_code == 404


class TestAnalyze:

    def test_full_inline(self, client):
        body = client.post("/api/analyze/full", json=_inline()).json()
        assert body["empty"] is False
        assert body["source_name"] == "All Sheets"
        summary = body["analysis"]["summary"]
        assert summary["pass_count"] == 2
        assert summary["fail_count"] == 1
        assert summary["grade_distribution"] == {"A": 1, "B": 0, "C": 0, "D": 1, "F": 1}
        assert body["analysis"]["strongest_component"] == "Exam"
        assert body["variables"] == ["total", "Quiz", "Exam"]
        assert [s["name"] for s in body["top_performers"]] == ["Alice", "Brian", "Chen"]

    def test_sheet_filter(self, client):
        body = client.post("/api/analyze/full", json=_inline(sheet_filter="Form 1B")).json()
        assert body["source_name"] == "Form 1B"
        assert [s["name"] for s in body["analysis"]["students"]] == ["Chen"]

    def test_empty_filter(self, client):
        body = client.post("/api/analyze/full", json=_inline(sheet_filter="Form 9")).json()
        assert body["empty"] is True
        assert body["analysis"] is None

    def test_missing_mapping(self, client):
        res = client.post("/api/analyze/full", json={"sheets": SHEETS})
        assert res.status_code == 400

    def test_invalid_mapping(self, client):
        res = client.post(
            "/api/analyze/full",
            json={"sheets": SHEETS, "mapping": {"name_column": "Name", "component_columns": []}},
        )
        assert res.status_code == 400

    def test_correlation_defaults(self, client):
        body = client.post("/api/analyze/correlation", json=_inline()).json()
        assert body["x"] == "Quiz"
        assert body["y"] == "total"
        assert body["count"] == 3
        assert body["strength"] == "Strong"

    def test_correlation_explicit(self, client):
        body = client.post("/api/analyze/correlation", json=_inline(x="Exam", y="Quiz")).json()
        assert [p["name"] for p in body["points"]] == ["Alice", "Brian", "Chen"]
        assert body["points"][0]["x"] == 50

    def test_action_plan(self, client):
        body = client.post("/api/analyze/action-plan", json=_inline()).json()
        assert body["mode"] == "deterministic"
        assert body["hod_insights"]

    def test_action_plan_empty(self, client):
        res = client.post("/api/analyze/action-plan", json=_inline(sheet_filter="Form 9"))
        assert res.status_code == 400

    def test_grade_scale(self, client):
        body = client.get("/api/analyze/grade-scale").json()
        assert [g["label"] for g in body["grades"]] == ["A", "B", "C", "D", "F"]
        assert len(body["bands"]) == 5


class TestReportRoutes:

    def test_pdf(self, client):
        res = client.post("/api/reports/pdf", json=_inline(include_action_plan=True))
        assert res.status_code == 200
        assert res.headers["content-type"] == "application/pdf"
        assert res.content[:5] == b"%PDF-"

    def test_excel(self, client):
        res = client.post("/api/reports/excel", json=_inline())
        assert res.status_code == 200
        assert "spreadsheetml" in res.headers["content-type"]

    def test_empty_report(self, client):
        res = client.post("/api/reports/pdf", json=_inline(sheet_filter="Form 9"))
        assert res.status_code == 404
