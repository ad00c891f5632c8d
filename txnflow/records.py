"""Header-row tabular record store over .xlsx (openpyxl) and .csv files."""

import csv
import re
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from openpyxl import load_workbook

from txnflow.constants import FIELD_ALIASES
from txnflow.errors import PersistenceFailure


def normalize_header(name) -> str:
    return re.sub(r"\s+", " ", str(name or "").strip().lower())


def cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        # only expiry columns hold dates in these sheets
        return value.strftime("%m/%Y")
    return str(value).strip()


class Record:
    """One data row. ``index`` is the zero-based row position under the header."""

    def __init__(self, index: int, values: Dict[str, str]):
        self.index = index
        self.values = values
        self._normalized: Dict[str, str] = {}
        for key, value in values.items():
            norm = normalize_header(key)
            if value and not self._normalized.get(norm):
                self._normalized[norm] = value

    @property
    def row_number(self) -> int:
        """1-based position, as shown to the operator."""
        return self.index + 1

    def get(self, *aliases: str) -> str:
        """First non-empty value among the aliases: exact header, then normalized header."""
        for alias in aliases:
            value = self.values.get(alias, "")
            if value:
                return value
        for alias in aliases:
            value = self._normalized.get(normalize_header(alias), "")
            if value:
                return value
        return ""

    def field(self, logical_name: str) -> str:
        return self.get(*FIELD_ALIASES[logical_name])

    @property
    def status(self) -> str:
        return self.field("status")

    def __repr__(self):
        return f"Record(row={self.row_number}, headers={list(self.values)})"


def _records_from_rows(rows: Sequence[Sequence]) -> List[Record]:
    if not rows:
        return []
    header = [cell_text(h) for h in rows[0]]
    records = []
    for index, raw in enumerate(rows[1:]):
        cells = [cell_text(v) for v in raw]
        if not any(cells):
            continue
        values = {name: (cells[col] if col < len(cells) else "") for col, name in enumerate(header) if name}
        records.append(Record(index, values))
    return records


class WorkbookStore:
    """Reads every record in bulk and writes single fields back by row position.

    The first worksheet (or the CSV file) must start with a header row.
    """

    def __init__(self, path):
        self.path = Path(path)

    @property
    def is_csv(self) -> bool:
        return self.path.suffix.lower() == ".csv"

    def read_all(self) -> List[Record]:
        if not self.path.exists():
            raise FileNotFoundError(f"Input file not found: {self.path}")
        if self.is_csv:
            return _records_from_rows(self._read_csv_rows())
        workbook = load_workbook(self.path, read_only=True, data_only=True)
        try:
            sheet = workbook.worksheets[0]
            return _records_from_rows(list(sheet.iter_rows(values_only=True)))
        finally:
            workbook.close()

    def write_field(self, row_index: int, field_name: str, value: str):
        """Set ``field_name`` on data row ``row_index``, adding the column if absent."""
        try:
            if self.is_csv:
                self._write_csv_field(row_index, field_name, value)
            else:
                self._write_xlsx_field(row_index, field_name, value)
        except Exception as exc:
            # corrupt or half-saved workbooks, illegal characters in the value
            raise PersistenceFailure(f"Could not write {field_name} for row {row_index + 1} to {self.path}: {exc}") from exc

    def _write_xlsx_field(self, row_index: int, field_name: str, value: str):
        workbook = load_workbook(self.path)
        try:
            sheet = workbook.worksheets[0]
            column = _find_column([c.value for c in sheet[1]] if sheet.max_row >= 1 else [], field_name)
            if column is None:
                column = sheet.max_column + 1 if sheet.max_row >= 1 and sheet.cell(row=1, column=1).value is not None else 1
                sheet.cell(row=1, column=column, value=field_name)
            # header is sheet row 1, data row 0 is sheet row 2
            sheet.cell(row=row_index + 2, column=column, value=value)
            workbook.save(self.path)
        finally:
            workbook.close()

    def _read_csv_rows(self) -> List[List[str]]:
        with self.path.open(newline="", encoding="utf-8-sig") as handle:
            return [row for row in csv.reader(handle)]

    def _write_csv_field(self, row_index: int, field_name: str, value: str):
        rows = self._read_csv_rows()
        if not rows:
            rows = [[]]
        header = rows[0]
        column = _find_column(header, field_name)
        if column is None:
            header.append(field_name)
            column = len(header)
        target = row_index + 1
        while len(rows) <= target:
            rows.append([])
        row = rows[target]
        while len(row) < column:
            row.append("")
        row[column - 1] = value
        with self.path.open("w", newline="", encoding="utf-8") as handle:
            csv.writer(handle).writerows(rows)


def _find_column(header: Sequence, field_name: str) -> Optional[int]:
    """1-based column whose header matches ``field_name`` case-insensitively."""
    wanted = normalize_header(field_name)
    for col, name in enumerate(header, start=1):
        if normalize_header(cell_text(name)) == wanted:
            return col
    return None
