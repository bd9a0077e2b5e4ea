from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest
from openpyxl import Workbook

from personnel_app.importer.contracts import get_employee_field_specs, get_employee_template_headers
from personnel_app.importer.pipeline.records import ImportRecord

# Default employee tax id (12 digits)
TAX_ID_A = "500100732259"

# Spreadsheet cell values for a row that imports cleanly, keyed by field name
DEFAULT_ROW_VALUES = {
    "last_name": "Иванов",
    "first_name": "Иван",
    "middle_name": "Иванович",
    "tax_id": TAX_ID_A,
    "insurance_id": "112-233-445 95",
    "citizenship": "Россия",
    "birth_date": "17.05.1990",
    "position": "монтажник",
    "organization_name": "ООО Генподряд",
    "organization_tax_id": "7701234567",
    "organization_sub_code": "770101001",
}


def make_record(row_index: int = 1, **overrides) -> ImportRecord:
    """A record that passes validation against the ``caller`` and ``citizenships`` fixtures."""
    record = ImportRecord(
        row_index=row_index,
        last_name="Иванов",
        first_name="Иван",
        middle_name="Иванович",
        tax_id=TAX_ID_A,
        insurance_id="11223344595",
        citizenship="Россия",
        birth_date=date(1990, 5, 17),
        position="монтажник",
        organization_name="ООО Генподряд",
        organization_tax_id="7701234567",
        organization_sub_code="770101001",
    )
    return replace(record, **overrides)


def make_row(**overrides) -> list:
    """Cell values in template column order."""
    values = dict(DEFAULT_ROW_VALUES)
    values.update(overrides)
    return [values.get(spec.name) for spec in get_employee_field_specs()]


def write_workbook(target, rows, headers=None):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(list(get_employee_template_headers() if headers is None else headers))
    for row in rows:
        sheet.append(list(row))
    workbook.save(target)
    return target


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def row_factory():
    return make_row


@pytest.fixture
def workbook_factory():
    return write_workbook


@pytest.fixture
def reference_data(caller, subcontractor, citizenships):
    return {"caller": caller, "subcontractor": subcontractor, **citizenships}
