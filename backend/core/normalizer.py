"""
normalizer.py — Raw spreadsheet rows → StudentRecord.

Handles:
- Two-phase column lookup (exact key, then trimmed case-insensitive)
- Lossy numeric coercion (unparseable → 0)
- Derived or mapped total score
- Population filter: rows without a name never become records
- Merging selected sheets and filtering records by source sheet
"""

import math
import re
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from core.grading import get_performance_band
from core.log_setup import get_logger
from core.models import ColumnMapping, RawRow, StudentRecord

ALL_SHEETS = "All"

# Leading decimal number, read the way spreadsheet apps read "85%" or " 7.5 pts".
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

logger = get_logger()


# ── Column lookup ───────────────────────────────────────────────────

def resolve_column(row: RawRow, column: Optional[str]) -> Any:
    """
    Look up a column value by exact header, falling back to a trimmed,
    case-insensitive match against every header in row order.

    Returns None when neither lookup finds the column.
    """
    if not column:
        return None
    if column in row:
        return row[column]
    wanted = str(column).lower().strip()
    for key in row:
        if str(key).lower().strip() == wanted:
            return row[key]
    return None


# ── Coercion ────────────────────────────────────────────────────────

def parse_number(value: Any) -> Optional[float]:
    """
    Parse a cell as a number, or None when it has no numeric reading.

    Strings are read up to the end of their leading number, so "85%" is 85
    and "junk" has no value. NaN/inf cells count as missing.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) or hasattr(value, "dtype"):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
    else:
        match = _LEADING_NUMBER.match(str(value).strip())
        if not match:
            return None
        number = float(match.group(0))
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_number_or_zero(value: Any) -> float:
    """Missing-is-zero policy: any cell without a numeric reading scores 0."""
    number = parse_number(value)
    return 0.0 if number is None else number


def _cell_text(value: Any) -> str:
    # Empty, null, NaN and numeric zero cells all read as "no value".
    if value is None or value == "" or value == 0:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


# ── Row → record ────────────────────────────────────────────────────

def normalize_row(
    row: RawRow,
    mapping: ColumnMapping,
    sheet_name: str,
    position: int,
) -> Optional[StudentRecord]:
    """
    Build the StudentRecord for one row, or None if the row has no name.

    `position` is the row's index in the merged input and, with the sheet
    name, forms the record id.
    """
    name = _cell_text(resolve_column(row, mapping.name_column))
    if not name.strip():
        return None

    group = sheet_name
    if mapping.group_column:
        group = _cell_text(resolve_column(row, mapping.group_column)) or sheet_name

    components: Dict[str, float] = {}
    component_sum = 0.0
    for column in mapping.component_columns:
        value = coerce_number_or_zero(resolve_column(row, column))
        components[column] = value
        component_sum += value

    total = component_sum
    if mapping.total_column:
        mapped_total = parse_number(resolve_column(row, mapping.total_column))
        if mapped_total is not None:
            total = mapped_total

    return StudentRecord(
        id=f"s-{sheet_name}-{position}",
        name=name,
        group=group,
        sheet_name=sheet_name,
        components=components,
        total_score=total,
        performance_band=get_performance_band(total),
        original_row=MappingProxyType(dict(row)),
    )


# ── Sheets → records ────────────────────────────────────────────────

def merge_sheets(
    sheets: Mapping[str, Sequence[RawRow]],
    selected_sheet_names: Iterable[str],
) -> List[Tuple[str, RawRow]]:
    """Concatenate the selected sheets in the given order, tagging each row with its sheet."""
    merged: List[Tuple[str, RawRow]] = []
    for sheet_name in selected_sheet_names:
        for row in sheets.get(sheet_name) or []:
            merged.append((sheet_name, row))
    return merged


def normalize_sheets(
    sheets: Mapping[str, Sequence[RawRow]],
    selected_sheet_names: Iterable[str],
    mapping: ColumnMapping,
) -> List[StudentRecord]:
    """Normalize every row of the selected sheets, dropping unnamed rows."""
    merged = merge_sheets(sheets, selected_sheet_names)
    students = []
    for position, (sheet_name, row) in enumerate(merged):
        record = normalize_row(row, mapping, sheet_name, position)
        if record is not None:
            students.append(record)

    dropped = len(merged) - len(students)
    if dropped:
        logger.debug("dropped %d of %d rows without a student name", dropped, len(merged))
    logger.info("normalized %d students from %d rows", len(students), len(merged))
    return students


def filter_by_sheet(students: Sequence[StudentRecord], sheet_filter: Optional[str] = ALL_SHEETS) -> List[StudentRecord]:
    """Keep records from one source sheet, or all of them for "All"."""
    if not sheet_filter or sheet_filter == ALL_SHEETS:
        return list(students)
    return [s for s in students if s.sheet_name == sheet_filter]
