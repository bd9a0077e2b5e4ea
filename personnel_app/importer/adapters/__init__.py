"""Importer source adapters."""

from __future__ import annotations

from .xlsx_employees import (
    EmployeeXLSXAdapter,
    XLSXAdapterError,
    XLSXHeaderError,
    XLSXReadStatistics,
    read_employee_rows,
    write_template,
)

__all__ = [
    "EmployeeXLSXAdapter",
    "XLSXAdapterError",
    "XLSXHeaderError",
    "XLSXReadStatistics",
    "read_employee_rows",
    "write_template",
]
