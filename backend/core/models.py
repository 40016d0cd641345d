"""
models.py — Value types flowing through the analysis pipeline.

All of these are frozen and rebuilt from raw input on every run; nothing is
updated in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from core.grading import PerformanceBand
from core.stats import sanitize

# A raw spreadsheet row: column header -> number, string or None.
RawRow = Mapping[str, Union[float, int, str, None]]

# Accepted spellings for each ColumnMapping field in request payloads.
_MAPPING_KEYS = {
    "name_column": ("name_column", "nameColumn", "nameCol"),
    "group_column": ("group_column", "groupColumn", "classCol", "class_column"),
    "component_columns": ("component_columns", "componentColumns", "componentCols"),
    "total_column": ("total_column", "totalColumn", "totalCol"),
}


def _first_present(data: Mapping[str, Any], keys) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


@dataclass(frozen=True)
class ColumnMapping:
    """Which spreadsheet columns hold the name, group, components and total."""

    name_column: str
    component_columns: Tuple[str, ...]
    group_column: Optional[str] = None
    total_column: Optional[str] = None

    def __post_init__(self):
        if not self.name_column or not str(self.name_column).strip():
            raise ValueError("Column mapping needs a student name column.")
        # Accept any iterable of names; keep declared order.
        object.__setattr__(self, "component_columns", tuple(self.component_columns or ()))
        if not self.component_columns:
            raise ValueError("Column mapping needs at least one component column.")
        object.__setattr__(self, "group_column", _blank_to_none(self.group_column))
        object.__setattr__(self, "total_column", _blank_to_none(self.total_column))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColumnMapping":
        components = _first_present(data, _MAPPING_KEYS["component_columns"]) or []
        if isinstance(components, str):
            components = [components]
        return cls(
            name_column=_first_present(data, _MAPPING_KEYS["name_column"]) or "",
            component_columns=tuple(str(c) for c in components),
            group_column=_first_present(data, _MAPPING_KEYS["group_column"]),
            total_column=_first_present(data, _MAPPING_KEYS["total_column"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name_column": self.name_column,
            "group_column": self.group_column,
            "component_columns": list(self.component_columns),
            "total_column": self.total_column,
        }


@dataclass(frozen=True)
class StudentRecord:
    id: str
    name: str
    group: str
    sheet_name: str
    components: Mapping[str, float]
    total_score: float
    performance_band: PerformanceBand
    original_row: RawRow = field(default_factory=dict, compare=False, repr=False)

    max_possible_score = 100.0

    def __post_init__(self):
        object.__setattr__(self, "components", MappingProxyType(dict(self.components)))

    @property
    def percentage(self) -> float:
        # Totals are already on a 0-100 scale; no rescaling against max_possible_score.
        return self.total_score

    def to_dict(self, include_row: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "group": self.group,
            "sheet_name": self.sheet_name,
            "components": dict(self.components),
            "total_score": self.total_score,
            "max_possible_score": self.max_possible_score,
            "percentage": self.percentage,
            "performance_band": self.performance_band.value,
        }
        if include_row:
            data["original_row"] = dict(self.original_row)
        return sanitize(data)


@dataclass(frozen=True)
class AnalysisSummary:
    mean: float
    median: float
    mode: float
    std_dev: float
    min: float
    max: float
    range: float
    pass_count: int
    fail_count: int
    grade_distribution: Dict[str, int]

    @property
    def pass_rate(self) -> float:
        total = self.pass_count + self.fail_count
        return self.pass_count / total * 100 if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return sanitize({
            "mean": self.mean,
            "median": self.median,
            "mode": self.mode,
            "std_dev": self.std_dev,
            "min": self.min,
            "max": self.max,
            "range": self.range,
            "pass_count": self.pass_count,
            "fail_count": self.fail_count,
            "pass_rate": self.pass_rate,
            "grade_distribution": dict(self.grade_distribution),
        })


@dataclass(frozen=True)
class ComponentStat:
    name: str
    mean: float
    median: float
    mode: float
    std_dev: float
    min: float
    max: float
    correlation_with_total: float

    def to_dict(self) -> Dict[str, Any]:
        return sanitize({
            "name": self.name,
            "mean": self.mean,
            "median": self.median,
            "mode": self.mode,
            "std_dev": self.std_dev,
            "min": self.min,
            "max": self.max,
            "correlation_with_total": self.correlation_with_total,
        })


@dataclass(frozen=True)
class FullAnalysis:
    summary: AnalysisSummary
    students: Tuple[StudentRecord, ...]
    component_stats: Tuple[ComponentStat, ...]
    strongest_component: str
    weakest_component: str
    band_distribution: Dict[str, int] = field(default_factory=dict)

    @property
    def component_names(self) -> List[str]:
        return [c.name for c in self.component_stats]

    def summary_payload(self) -> Dict[str, Any]:
        """The aggregate-only view handed to narrative generation; no per-student data."""
        return {
            "summary": self.summary.to_dict(),
            "component_stats": [c.to_dict() for c in self.component_stats],
            "strongest_component": self.strongest_component,
            "weakest_component": self.weakest_component,
        }

    def to_dict(self, include_rows: bool = False) -> Dict[str, Any]:
        data = self.summary_payload()
        data["students"] = [s.to_dict(include_row=include_rows) for s in self.students]
        data["band_distribution"] = dict(self.band_distribution)
        return data
