"""XLSX workbook engine backing the spreadsheet tools.

The workbook is loaded from disk on every call and written back whole after a
mutation. There is no caching, locking or versioning: concurrent writers race
and the last save wins.
"""
import datetime
import logging
import os
import re
import tempfile
from typing import Any, List, Optional, Tuple, TypedDict, Union

from openpyxl import Workbook, load_workbook
from openpyxl.utils.cell import (
    absolute_coordinate,
    coordinate_to_tuple,
    get_column_letter,
    quote_sheetname,
    range_boundaries,
)
from openpyxl.workbook.defined_name import DefinedName
from openpyxl.worksheet.worksheet import Worksheet

from services.errors import InvalidRangeError, SheetNotFoundError, WorkbookNotFoundError

logger = logging.getLogger(__name__)

CellValue = Union[str, int, float, bool, None]
WritableValue = Union[str, int, float, bool, None, datetime.date, datetime.datetime]

# Sheet-scoped defined name holding the bound that cleared cells must not shrink
USED_RANGE_NAME = "UsedRange"

CELL_RE = re.compile(r"^\$?[A-Za-z]{1,3}\$?[0-9]+$")

SAMPLE_ROWS = [
    ["Item", "Quantity", "Price", "Total", "Notes"],
    ["Widget", 5, 10.5, 52.5, "In Stock"],
    ["Gadget", 2, 25.0, 50.0, "Low Stock"],
    ["Doodad", 10, 1.99, 19.9, "Clearance"],
    ["Thingamajig", 1, 99.99, 99.99, "Special Order"],
    ["Doohickey", 0, 5.0, 0, "Out of Stock"],
]


class RangeResult(TypedDict):
    sheet: str
    range: str
    values: List[List[CellValue]]


class UpdateCellResult(TypedDict):
    sheet: str
    cell: str
    previous: CellValue
    updated: CellValue


class FormulaResult(TypedDict):
    sheet: str
    cell: str
    formula: Optional[str]
    explanation: str


def normalize_value(value: Any) -> CellValue:
    """Map a stored cell value to a JSON-friendly scalar."""
    if value is None:
        return None
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (bool, int, float, str)):
        return value
    # ArrayFormula and friends carry their source in .text
    text = getattr(value, "text", None)
    if isinstance(text, str):
        return text
    return str(value)


def split_sheet_reference(reference: str) -> Tuple[Optional[str], str]:
    """Split ``Sheet1!A1:B2`` (or ``'My Sheet'!A1``) into sheet and address parts."""
    reference = reference.strip().lstrip("@")
    if "!" not in reference:
        return None, reference
    sheet, _, address = reference.rpartition("!")
    sheet = sheet.strip()
    if len(sheet) >= 2 and sheet[0] == sheet[-1] == "'":
        sheet = sheet[1:-1].replace("''", "'")
    return sheet or None, address.strip()


def decode_range(reference: str) -> Tuple[int, int, int, int]:
    """
    Decode an A1 range into (min_row, min_col, max_row, max_col), 1-based.

    Raises:
        InvalidRangeError: for malformed or unbounded references.
    """
    try:
        min_col, min_row, max_col, max_row = range_boundaries(reference.upper())
    except (ValueError, TypeError) as e:
        raise InvalidRangeError(f"Invalid range: {reference}") from e
    if None in (min_col, min_row, max_col, max_row):
        raise InvalidRangeError(f"Range must be bounded on both axes: {reference}")
    return min_row, min_col, max_row, max_col


def decode_cell(reference: str) -> Tuple[int, int]:
    """Decode an A1 cell address into (row, col), 1-based."""
    if not CELL_RE.match(reference):
        raise InvalidRangeError(f"Invalid cell address: {reference}")
    try:
        return coordinate_to_tuple(reference.replace("$", "").upper())
    except ValueError as e:
        raise InvalidRangeError(f"Invalid cell address: {reference}") from e


def merge_bounds(*bounds: Tuple[int, int, int, int]) -> Tuple[int, int, int, int]:
    return (
        min(b[0] for b in bounds),
        min(b[1] for b in bounds),
        max(b[2] for b in bounds),
        max(b[3] for b in bounds),
    )


def format_bounds(bounds: Tuple[int, int, int, int]) -> str:
    min_row, min_col, max_row, max_col = bounds
    return f"{get_column_letter(min_col)}{min_row}:{get_column_letter(max_col)}{max_row}"


def sheet_bounds(ws: Worksheet) -> Tuple[int, int, int, int]:
    """
    Used range as (min_row, min_col, max_row, max_col): the populated cells
    widened by the bound recorded on earlier writes.
    """
    bounds = (ws.min_row, ws.min_column, ws.max_row, ws.max_column)
    recorded = ws.defined_names.get(USED_RANGE_NAME)
    if recorded is None:
        return bounds
    _, address = split_sheet_reference(recorded.attr_text)
    try:
        return merge_bounds(bounds, decode_range(address))
    except InvalidRangeError:
        logger.warning(f"Ignoring unreadable {USED_RANGE_NAME} on sheet {ws.title}: {recorded.attr_text}")
        return bounds


def record_bounds(ws: Worksheet, bounds: Tuple[int, int, int, int]) -> None:
    ref = f"{quote_sheetname(ws.title)}!{absolute_coordinate(format_bounds(bounds))}"
    ws.defined_names[USED_RANGE_NAME] = DefinedName(USED_RANGE_NAME, attr_text=ref)


class WorkbookService:
    """Range read, single-cell write and formula lookup over one XLSX file."""

    def __init__(self, path: str):
        self.path = path

    def _load(self, data_only: bool = False) -> Workbook:
        """Formula mode by default; ``data_only`` yields the cached computed values instead."""
        if not os.path.exists(self.path):
            raise WorkbookNotFoundError(self.path)
        return load_workbook(self.path, data_only=data_only)

    def _save(self, workbook: Workbook) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(suffix=".xlsx", dir=directory)
        os.close(fd)
        try:
            workbook.save(tmp_path)
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    @staticmethod
    def _sheet(workbook: Workbook, sheet_name: Optional[str]) -> Worksheet:
        if not workbook.sheetnames:
            raise SheetNotFoundError(sheet_name or "<first sheet>")
        target = sheet_name or workbook.sheetnames[0]
        if target not in workbook.sheetnames:
            raise SheetNotFoundError(target)
        return workbook[target]

    def read_range(self, range_ref: str, sheet: Optional[str] = None) -> RangeResult:
        """Return a dense grid (rows outer, columns inner) for the range."""
        ref_sheet, address = split_sheet_reference(range_ref)
        sheet = sheet or ref_sheet
        min_row, min_col, max_row, max_col = decode_range(address)

        # Cached results, so formula cells read as their last computed value
        workbook = self._load(data_only=True)
        ws = self._sheet(workbook, sheet)
        values = [
            [normalize_value(value) for value in row]
            for row in ws.iter_rows(
                min_row=min_row, max_row=max_row,
                min_col=min_col, max_col=max_col,
                values_only=True,
            )
        ]
        return {"sheet": ws.title, "range": address, "values": values}

    def write_cell(self, cell: str, value: WritableValue, sheet: Optional[str] = None) -> UpdateCellResult:
        """
        Write one cell and persist the whole workbook.

        ``None`` clears the cell. Writing outside the sheet's used range
        extends it; clearing never shrinks it.
        """
        ref_sheet, address = split_sheet_reference(cell)
        sheet = sheet or ref_sheet
        row, col = decode_cell(address)

        workbook = self._load()
        ws = self._sheet(workbook, sheet)
        bounds = merge_bounds(sheet_bounds(ws), (row, col, row, col))
        target = ws.cell(row=row, column=col)
        previous = normalize_value(target.value)

        target.value = value
        if isinstance(value, str) and value.startswith("="):
            # Literal text, never a formula
            target.data_type = "s"
        record_bounds(ws, bounds)

        self._save(workbook)
        logger.info(f"Updated {ws.title}!{address}: {previous!r} -> {value!r}")
        return {
            "sheet": ws.title,
            "cell": address,
            "previous": previous,
            "updated": normalize_value(value),
        }

    def explain_formula(self, cell: str, sheet: Optional[str] = None) -> FormulaResult:
        ref_sheet, address = split_sheet_reference(cell)
        sheet = sheet or ref_sheet
        row, col = decode_cell(address)

        workbook = self._load()
        ws = self._sheet(workbook, sheet)
        target = ws.cell(row=row, column=col)

        formula = None
        if target.data_type == "f":
            raw = normalize_value(target.value)
            formula = str(raw)[1:] if str(raw).startswith("=") else str(raw)

        return {
            "sheet": ws.title,
            "cell": address,
            "formula": formula,
            "explanation": (
                f"The cell uses the formula {formula}."
                if formula else "This cell does not contain a formula."
            ),
        }

    def used_range(self, sheet: Optional[str] = None) -> str:
        """Bounding A1 range of the sheet, including cells cleared since they were written."""
        workbook = self._load()
        return format_bounds(sheet_bounds(self._sheet(workbook, sheet)))

    def health(self) -> dict:
        workbook = self._load()
        return {"path": self.path, "sheets": workbook.sheetnames}


def seed_sample_workbook(path: str, overwrite: bool = True) -> bool:
    """Write the six-row sample workbook to ``path``. Returns False if skipped."""
    if os.path.exists(path) and not overwrite:
        return False
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    workbook = Workbook()
    ws = workbook.active
    ws.title = "Sheet1"
    for row in SAMPLE_ROWS:
        ws.append(row)
    workbook.save(path)
    logger.info(f"Seeded sample workbook at {path}")
    return True
