"""
parser.py — CSV, Excel and ODS ingestion into raw row records.

Supports:
- CSV files (one sheet, "Sheet1")
- Excel .xlsx (openpyxl, honours hidden columns) and .xls (xlrd)
- ODS (OpenDocument Spreadsheet)
- Column-mapping suggestions from headers and a sample row

Output is {sheet_name: [row, ...]} where each row maps header -> cell value
(number, string or None). Unreadable files give an empty dict.
"""

import math
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils import column_index_from_string

from core.log_setup import get_logger
from core.normalizer import parse_number

SUPPORTED_EXTENSIONS = (".csv", ".xlsx", ".xls", ".ods")

# Header patterns used to pre-fill the mapping form.
NAME_PATTERN = re.compile(r"name|student|candidate", re.IGNORECASE)
GROUP_PATTERN = re.compile(r"class|grade|section|batch", re.IGNORECASE)
TOTAL_PRIMARY_PATTERN = re.compile(r"overall score|quarter 1", re.IGNORECASE)
TOTAL_FALLBACK_PATTERN = re.compile(r"total|final mark|sum|score", re.IGNORECASE)
NON_COMPONENT_PATTERN = re.compile(r"roll|phone|\bid\b|id$", re.IGNORECASE)

logger = get_logger()

Grid = List[Sequence[Any]]


# ── Cell helpers ────────────────────────────────────────────────────

def _clean_cell(value: Any) -> Any:
    if value is None:
        return None
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _cell(row: Sequence[Any], idx: int) -> Any:
    return _clean_cell(row[idx]) if idx < len(row) else None


def _dedupe_headers(headers: List[str]) -> List[str]:
    """Suffix repeated headers: Score, Score -> Score, Score_2."""
    seen: Dict[str, int] = {}
    result = []
    for header in headers:
        if header in seen:
            seen[header] += 1
            result.append(f"{header}_{seen[header]}")
        else:
            seen[header] = 1
            result.append(header)
    return result


def _grid_to_rows(grid: Grid, hidden: Set[int]) -> List[Dict[str, Any]]:
    """
    First grid row is the header. Keep visible, named columns that hold at
    least one value; drop rows that are blank across the kept columns.
    """
    if not grid:
        return []
    headers = list(grid[0])
    data = grid[1:]

    keep = [
        idx for idx, header in enumerate(headers)
        if idx not in hidden
        and not _is_blank(_clean_cell(header))
        and any(not _is_blank(_cell(row, idx)) for row in data)
    ]
    names = _dedupe_headers([str(_clean_cell(headers[idx])).strip() for idx in keep])

    rows = []
    for raw in data:
        record = {name: _cell(raw, idx) for name, idx in zip(names, keep)}
        if any(not _is_blank(v) for v in record.values()):
            rows.append(record)
    return rows


# ── Readers ─────────────────────────────────────────────────────────

def _read_xlsx(path: Path) -> Dict[str, Tuple[Grid, Set[int]]]:
    wb = load_workbook(str(path), data_only=True)
    try:
        result = {}
        for ws in wb.worksheets:
            hidden: Set[int] = set()
            for dim in ws.column_dimensions.values():
                if not dim.hidden:
                    continue
                first = dim.min or column_index_from_string(dim.index)
                hidden.update(range(first - 1, dim.max or first))
            grid = [list(r) for r in ws.iter_rows(values_only=True)]
            result[ws.title] = (grid, hidden)
        return result
    finally:
        wb.close()


def _read_with_pandas(path: Path, ext: str) -> Dict[str, Tuple[Grid, Set[int]]]:
    if ext == ".csv":
        frames = {"Sheet1": pd.read_csv(path, header=None, dtype=object)}
    else:
        engine = "xlrd" if ext == ".xls" else "odf"
        frames = pd.read_excel(path, sheet_name=None, header=None, engine=engine)
    return {
        str(name): (frame.astype(object).values.tolist(), set())
        for name, frame in frames.items()
    }


def parse_workbook(file_path: str) -> Dict[str, List[Dict[str, Any]]]:
    """
    Parse a spreadsheet into {sheet_name: rows}.

    Raises ValueError for an unsupported extension. Any failure while reading
    a supported file is logged and yields an empty dict. Sheets left with no
    rows are omitted.
    """
    path = Path(file_path)
    ext = path.suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Unsupported file type: {ext}")

    try:
        grids = _read_xlsx(path) if ext == ".xlsx" else _read_with_pandas(path, ext)
    except Exception:
        logger.exception("could not read workbook %s", path.name)
        return {}

    sheets = {}
    for sheet_name, (grid, hidden) in grids.items():
        rows = _grid_to_rows(grid, hidden)
        if rows:
            sheets[sheet_name] = rows
    logger.info("parsed %s: %d usable sheet(s)", path.name, len(sheets))
    return sheets


# ── Schema helpers ──────────────────────────────────────────────────

def get_headers(sheets: Dict[str, List[Dict[str, Any]]], selected_sheet_names: Sequence[str]) -> List[str]:
    """Headers of the first row of the first selected sheet, which defines the mapping schema."""
    sample = get_sample_row(sheets, selected_sheet_names)
    return list(sample.keys())


def get_sample_row(sheets: Dict[str, List[Dict[str, Any]]], selected_sheet_names: Sequence[str]) -> Dict[str, Any]:
    if not selected_sheet_names:
        return {}
    rows = sheets.get(selected_sheet_names[0]) or []
    return dict(rows[0]) if rows else {}


def _looks_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and parse_number(value) is not None


def _first_match(headers: Sequence[str], pattern: re.Pattern) -> Optional[str]:
    return next((h for h in headers if pattern.search(h)), None)


def suggest_column_mapping(headers: Sequence[str], sample_row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Guess a column mapping from header names and one sample row.

    Components are the numeric-looking columns other than the name, group
    and total, skipping anything that looks like a roll number or id.
    """
    headers = [str(h) for h in headers]
    name_col = _first_match(headers, NAME_PATTERN) or (headers[0] if headers else None)
    group_col = _first_match(headers, GROUP_PATTERN)
    total_col = _first_match(headers, TOTAL_PRIMARY_PATTERN) or _first_match(headers, TOTAL_FALLBACK_PATTERN)

    components = [
        h for h in headers
        if _looks_numeric(sample_row.get(h))
        and h not in (name_col, group_col, total_col)
        and not NON_COMPONENT_PATTERN.search(h)
    ]

    return {
        "name_column": name_col,
        "group_column": group_col,
        "component_columns": components,
        "total_column": total_col,
    }
