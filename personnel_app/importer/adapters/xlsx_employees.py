"""XLSX adapter for employee imports.

Reads the first worksheet of a workbook, takes the first row as the header
row and yields one ``{header: value}`` mapping per non-blank data row. Header
labels are passed through untouched so the record mapper can apply the
canonical/alias lookup; unlabeled header cells get ``column_<n>`` keys, which
keeps the given name and patronymic cells that follow a combined full-name
column addressable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from os import PathLike
from typing import IO, Any, Iterator, Sequence, Union
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from personnel_app.importer.contracts import FULL_NAME_HEADERS, get_employee_field_specs, get_employee_template_headers
from personnel_app.importer.errors import ImporterError

WorkbookSource = Union[str, PathLike, IO[bytes]]


class XLSXAdapterError(ImporterError):
    """Base exception for workbook adapter failures."""


class XLSXHeaderError(XLSXAdapterError):
    """Raised when the header row is absent or carries no recognizable column."""

    def __init__(self, *, headers: Sequence[str] = ()) -> None:
        if headers:
            message = (
                "Workbook header row has no recognized employee columns. "
                "Found: " + ", ".join(headers) + "."
            )
        else:
            message = "Workbook has no header row."
        super().__init__(message)
        self.headers = tuple(headers)


@dataclass
class XLSXReadStatistics:
    rows_processed: int = 0
    rows_skipped_blank: int = 0


def _sanitize_header(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value).lstrip("\ufeff")).strip()


def _build_headers(header_row: Sequence[Any], width: int) -> list[str]:
    headers: list[str] = []
    for column in range(width):
        value = header_row[column] if column < len(header_row) else None
        key = _sanitize_header(value) or f"column_{column + 1}"
        base = key
        suffix = 0
        while key in headers:
            suffix += 1
            key = f"{base}_{suffix}"
        headers.append(key)
    return headers


def _recognized(headers: Sequence[str]) -> bool:
    known = set(FULL_NAME_HEADERS)
    for spec in get_employee_field_specs():
        known.update(spec.headers())
    return any(header in known for header in headers)


def _row_is_blank(values: Sequence[Any]) -> bool:
    return all(value is None or (isinstance(value, str) and value.strip() == "") for value in values)


class EmployeeXLSXAdapter:
    """Streams employee rows out of an ``.xlsx`` workbook."""

    def __init__(self, source: WorkbookSource, *, skip_blank_rows: bool = True) -> None:
        self.source = source
        self.skip_blank_rows = skip_blank_rows
        self.headers: tuple[str, ...] = ()
        self.statistics = XLSXReadStatistics()

    def _load_rows(self) -> list[tuple[Any, ...]]:
        try:
            workbook = load_workbook(self.source, read_only=True, data_only=True)
        except (BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as exc:
            raise XLSXAdapterError(f"Unable to open workbook: {exc}") from exc
        try:
            sheet = workbook.worksheets[0]
            return list(sheet.iter_rows(values_only=True))
        finally:
            workbook.close()

    def iter_rows(self) -> Iterator[dict[str, Any]]:
        rows = self._load_rows()
        if not rows or _row_is_blank(rows[0]):
            raise XLSXHeaderError()

        width = max(len(row) for row in rows)
        headers = _build_headers(rows[0], width)
        labeled = [header for header in headers if not header.startswith("column_")]
        if not _recognized(headers):
            raise XLSXHeaderError(headers=labeled)
        self.headers = tuple(headers)

        for row in rows[1:]:
            if self.skip_blank_rows and _row_is_blank(row):
                self.statistics.rows_skipped_blank += 1
                continue
            self.statistics.rows_processed += 1
            values = list(row) + [None] * (width - len(row))
            yield dict(zip(headers, values))


def read_employee_rows(source: WorkbookSource) -> list[dict[str, Any]]:
    """Read every data row of the first sheet."""

    return list(EmployeeXLSXAdapter(source).iter_rows())


def write_template(target: WorkbookSource) -> None:
    """Write an empty workbook carrying the canonical header row."""

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Employees"
    sheet.append(list(get_employee_template_headers()))
    workbook.save(target)
