"""
Record mapper: raw spreadsheet rows -> canonical ``ImportRecord``.

Mapping is pure and total. Missing or unparseable cells become ``None`` and
are left for the validator to judge.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence, Tuple

from openpyxl.utils.datetime import from_excel

from personnel_app.importer.contracts import FULL_NAME_HEADERS, NAME_FIELDS, FieldSpec, get_employee_field_specs

from .records import ImportRecord

DATE_FORMATS: Tuple[str, ...] = ("%d.%m.%Y", "%d/%m/%Y", "%Y-%m-%d")
TRAILING_PUNCTUATION = ".,;:"
# Serial numbers beyond 9999-12-31 in the 1900 date system
_MAX_EXCEL_SERIAL = 2958465


def _known_headers() -> frozenset[str]:
    headers: set[str] = set(FULL_NAME_HEADERS)
    for spec in get_employee_field_specs():
        headers.update(spec.headers())
    return frozenset(headers)


KNOWN_HEADERS = _known_headers()


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def clean_text(value: Any) -> str | None:
    """Render a cell as trimmed text without trailing punctuation."""

    if _is_blank(value):
        return None
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, float) and value.is_integer():
        # Identifiers typed as numbers arrive as floats from some readers
        text = str(int(value))
    elif isinstance(value, datetime):
        text = value.date().isoformat()
    elif isinstance(value, date):
        text = value.isoformat()
    else:
        text = str(value)
    text = text.strip().rstrip(TRAILING_PUNCTUATION).strip()
    return text or None


def _from_serial(value: float) -> date | None:
    if value < 1 or value > _MAX_EXCEL_SERIAL:
        return None
    try:
        converted = from_excel(value)
    except (OverflowError, TypeError, ValueError):
        return None
    if isinstance(converted, datetime):
        return converted.date()
    return None


def parse_date(value: Any) -> date | None:
    """Parse a spreadsheet date cell; anything unrecognized maps to ``None``."""

    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return _from_serial(float(value))
    text = str(value).strip().rstrip(TRAILING_PUNCTUATION).strip()
    if text.isdigit():
        return _from_serial(float(text))
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _lookup(raw_row: Mapping[str, Any], headers: Sequence[str]) -> Any:
    for header in headers:
        value = raw_row.get(header)
        if not _is_blank(value):
            return value
    return None


def _full_name_parts(raw_row: Mapping[str, Any]) -> Tuple[str | None, str | None, str | None] | None:
    """
    Read surname, given name and patronymic from the combined full-name column.

    The combined header labels the surname cell; the given name and patronymic
    sit in the next two unlabeled cells. A single cell holding all parts
    separated by whitespace is split instead.
    """

    keys = list(raw_row.keys())
    for header in FULL_NAME_HEADERS:
        if header not in raw_row:
            continue
        position = keys.index(header)
        adjacent: list[Any] = []
        for key in keys[position + 1 : position + 3]:
            if key in KNOWN_HEADERS:
                break
            adjacent.append(raw_row[key])
        head = clean_text(raw_row[header])
        tail = [clean_text(value) for value in adjacent]
        tail += [None] * (2 - len(tail))
        if head and not any(tail) and len(head.split()) > 1:
            parts = head.split()
            return parts[0], parts[1], " ".join(parts[2:]) or None
        if head or any(tail):
            return head, tail[0], tail[1]
    return None


def _map_field(raw_row: Mapping[str, Any], spec: FieldSpec) -> Any:
    value = _lookup(raw_row, spec.headers())
    if spec.kind == "date":
        return parse_date(value)
    return clean_text(value)


def map_row(raw_row: Mapping[str, Any], row_index: int) -> ImportRecord:
    """Map one raw row; never raises for cell content."""

    if not isinstance(raw_row, Mapping):
        raw_row = {}
    values: dict[str, Any] = {spec.name: _map_field(raw_row, spec) for spec in get_employee_field_specs()}

    if any(values[name] is None for name in NAME_FIELDS):
        parts = _full_name_parts(raw_row)
        if parts is not None:
            for name, part in zip(NAME_FIELDS, parts):
                if values[name] is None:
                    values[name] = part

    return ImportRecord(row_index=row_index, **values)


def map_rows(rows: Iterable[Mapping[str, Any]], *, start_index: int = 1) -> Tuple[ImportRecord, ...]:
    """Map rows in order; row indices are 1-based positions among data rows."""

    return tuple(map_row(raw_row, index) for index, raw_row in enumerate(rows, start=start_index))
