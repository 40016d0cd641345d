"""
Tests for core/pipeline.py — upload → select → map → analyze stages.
"""

import os
import sys
from dataclasses import FrozenInstanceError

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core import pipeline
from core.models import ColumnMapping


@pytest.fixture
def sheets():
    return {
        "Term 1": [
            {"Name": "Alice", "Quiz": 45, "Exam": 50},
            {"Name": "Brian", "Quiz": 30, "Exam": 35},
        ],
        "Term 2": [
            {"Name": "Chen", "Quiz": 20, "Exam": 20},
        ],
        "Staff": [
            {"Name": "", "Quiz": None, "Exam": None},
        ],
    }


MAPPING = {"name_column": "Name", "component_columns": ["Quiz", "Exam"]}


class TestStages:

    def test_start(self, sheets):
        stage = pipeline.start(sheets)
        assert stage.sheet_names == ["Term 1", "Term 2", "Staff"]
        assert stage.row_counts == {"Term 1": 2, "Term 2": 1, "Staff": 1}

    def test_start_copies_rows(self, sheets):
        stage = pipeline.start(sheets)
        sheets["Term 1"][0]["Quiz"] = 0
        assert stage.sheets["Term 1"][0]["Quiz"] == 45

    def test_stages_are_frozen(self, sheets):
        stage = pipeline.start(sheets)
        with pytest.raises(FrozenInstanceError):
            stage.sheets = {}

    def test_select_sheets(self, sheets):
        selected = pipeline.select_sheets(pipeline.start(sheets), ["Term 2", "Term 1", "Term 2"])
        assert selected.selected_sheet_names == ("Term 2", "Term 1")
        assert selected.headers == ["Name", "Quiz", "Exam"]
        assert selected.sample_row == {"Name": "Chen", "Quiz": 20, "Exam": 20}

    def test_select_requires_a_sheet(self, sheets):
        with pytest.raises(ValueError):
            pipeline.select_sheets(pipeline.start(sheets), [])

    def test_select_rejects_unknown_sheet(self, sheets):
        with pytest.raises(ValueError, match="Unknown"):
            pipeline.select_sheets(pipeline.start(sheets), ["Term 9"])

    def test_suggested_mapping(self, sheets):
        selected = pipeline.select_sheets(pipeline.start(sheets), ["Term 1"])
        suggestion = selected.suggested_mapping()
        assert suggestion["name_column"] == "Name"
        assert suggestion["component_columns"] == ["Quiz", "Exam"]

    def test_map_columns_accepts_dict_or_mapping(self, sheets):
        selected = pipeline.select_sheets(pipeline.start(sheets), ["Term 1", "Term 2"])
        from_dict = pipeline.map_columns(selected, MAPPING)
        from_obj = pipeline.map_columns(selected, ColumnMapping("Name", ["Quiz", "Exam"]))
        assert from_dict.students == from_obj.students
        assert len(from_dict.students) == 3
        assert from_dict.total_label == "Overall Score"
        assert from_dict.sheet_filter_options == ["All", "Term 1", "Term 2"]

    def test_total_label_uses_total_column(self, sheets):
        selected = pipeline.select_sheets(pipeline.start(sheets), ["Term 1"])
        mapped = pipeline.map_columns(selected, {**MAPPING, "total_column": "Final"})
        assert mapped.total_label == "Final"

    def test_invalid_mapping(self, sheets):
        selected = pipeline.select_sheets(pipeline.start(sheets), ["Term 1"])
        with pytest.raises(ValueError):
            pipeline.map_columns(selected, {"name_column": "Name", "component_columns": []})


class TestAnalyze:

    def test_all_sheets(self, sheets):
        result = pipeline.run(sheets, ["Term 1", "Term 2"], MAPPING)
        assert not result.is_empty
        assert result.source_name == "All Sheets"
        assert len(result.analysis.students) == 3

    def test_sheet_filter(self, sheets):
        result = pipeline.run(sheets, ["Term 1", "Term 2"], MAPPING, sheet_filter="Term 2")
        assert result.source_name == "Term 2"
        assert [s.name for s in result.students] == ["Chen"]
        assert result.analysis.summary.mean == 40

    def test_empty_selection_has_no_analysis(self, sheets):
        result = pipeline.run(sheets, ["Staff"], MAPPING)
        assert result.is_empty
        assert result.analysis is None
        assert result.students == ()

    def test_filter_to_unselected_sheet_is_empty(self, sheets):
        result = pipeline.run(sheets, ["Term 1"], MAPPING, sheet_filter="Term 2")
        assert result.is_empty

    def test_reanalyze_from_earlier_stage(self, sheets):
        selected = pipeline.select_sheets(pipeline.start(sheets), ["Term 1", "Term 2"])
        mapped = pipeline.map_columns(selected, MAPPING)
        first = pipeline.analyze(mapped, "Term 1")
        second = pipeline.analyze(mapped, "Term 1")
        assert first.analysis == second.analysis
        assert pipeline.analyze(mapped).analysis.summary.pass_count == 2

    def test_pass_mark(self, sheets):
        result = pipeline.run(sheets, ["Term 1", "Term 2"], MAPPING, pass_mark=90)
        assert result.analysis.summary.pass_count == 1
