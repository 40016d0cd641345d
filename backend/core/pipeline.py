"""
pipeline.py — Upload → sheet selection → column mapping → analysis.

Each stage is an immutable snapshot carrying everything accumulated so far.
Transitions are pure functions returning the next stage; going back is just
keeping a reference to an earlier stage.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from core.analysis import perform_full_analysis
from core.correlation import DEFAULT_TOTAL_LABEL
from core.models import ColumnMapping, FullAnalysis, RawRow, StudentRecord
from core.normalizer import ALL_SHEETS, filter_by_sheet, normalize_sheets
from core.parser import get_headers, get_sample_row, suggest_column_mapping

Sheets = Mapping[str, Tuple[RawRow, ...]]


@dataclass(frozen=True)
class Uploaded:
    sheets: Sheets

    @property
    def sheet_names(self) -> List[str]:
        return list(self.sheets.keys())

    @property
    def row_counts(self) -> Dict[str, int]:
        return {name: len(rows) for name, rows in self.sheets.items()}


@dataclass(frozen=True)
class SheetsSelected:
    sheets: Sheets
    selected_sheet_names: Tuple[str, ...]

    @property
    def headers(self) -> List[str]:
        return get_headers(self.sheets, self.selected_sheet_names)

    @property
    def sample_row(self) -> Dict[str, Any]:
        return get_sample_row(self.sheets, self.selected_sheet_names)

    def suggested_mapping(self) -> Dict[str, Any]:
        return suggest_column_mapping(self.headers, self.sample_row)


@dataclass(frozen=True)
class ColumnsMapped:
    sheets: Sheets
    selected_sheet_names: Tuple[str, ...]
    mapping: ColumnMapping
    students: Tuple[StudentRecord, ...]

    @property
    def total_label(self) -> str:
        return self.mapping.total_column or DEFAULT_TOTAL_LABEL

    @property
    def sheet_filter_options(self) -> List[str]:
        return [ALL_SHEETS] + list(self.selected_sheet_names)


@dataclass(frozen=True)
class Analyzed:
    mapped: ColumnsMapped
    sheet_filter: str
    students: Tuple[StudentRecord, ...]
    analysis: Optional[FullAnalysis]

    @property
    def is_empty(self) -> bool:
        return self.analysis is None

    @property
    def source_name(self) -> str:
        return "All Sheets" if self.sheet_filter == ALL_SHEETS else self.sheet_filter


# ── Transitions ─────────────────────────────────────────────────────

def start(sheets: Mapping[str, Sequence[RawRow]]) -> Uploaded:
    frozen = {
        str(name): tuple(MappingProxyType(dict(row)) for row in rows)
        for name, rows in sheets.items()
    }
    return Uploaded(sheets=MappingProxyType(frozen))


def select_sheets(stage: Uploaded, sheet_names: Iterable[str]) -> SheetsSelected:
    selected = tuple(dict.fromkeys(str(n) for n in sheet_names))
    if not selected:
        raise ValueError("Select at least one sheet.")
    unknown = [n for n in selected if n not in stage.sheets]
    if unknown:
        raise ValueError(f"Unknown sheet(s): {unknown}. Available: {stage.sheet_names}")
    return SheetsSelected(sheets=stage.sheets, selected_sheet_names=selected)


def map_columns(stage: SheetsSelected, mapping: Union[ColumnMapping, Mapping[str, Any]]) -> ColumnsMapped:
    if not isinstance(mapping, ColumnMapping):
        mapping = ColumnMapping.from_dict(mapping)
    students = normalize_sheets(stage.sheets, stage.selected_sheet_names, mapping)
    return ColumnsMapped(
        sheets=stage.sheets,
        selected_sheet_names=stage.selected_sheet_names,
        mapping=mapping,
        students=tuple(students),
    )


def analyze(stage: ColumnsMapped, sheet_filter: Optional[str] = ALL_SHEETS, pass_mark: Optional[float] = None) -> Analyzed:
    """Filter by source sheet and analyze; an empty selection yields analysis=None."""
    sheet_filter = sheet_filter or ALL_SHEETS
    students = tuple(filter_by_sheet(stage.students, sheet_filter))
    analysis = perform_full_analysis(students, pass_mark=pass_mark) if students else None
    return Analyzed(mapped=stage, sheet_filter=sheet_filter, students=students, analysis=analysis)


def run(
    sheets: Mapping[str, Sequence[RawRow]],
    selected_sheet_names: Iterable[str],
    mapping: Union[ColumnMapping, Mapping[str, Any]],
    sheet_filter: Optional[str] = ALL_SHEETS,
    pass_mark: Optional[float] = None,
) -> Analyzed:
    """All four transitions in one call."""
    selected = select_sheets(start(sheets), selected_sheet_names)
    return analyze(map_columns(selected, mapping), sheet_filter, pass_mark=pass_mark)
