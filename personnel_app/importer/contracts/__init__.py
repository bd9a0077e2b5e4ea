"""Canonical import contract helpers."""

from __future__ import annotations

from .employee import (
    EMPLOYEE_CANONICAL_FIELDS,
    FULL_NAME_HEADERS,
    NAME_FIELDS,
    FieldSpec,
    get_employee_field_map,
    get_employee_field_specs,
    get_employee_template_headers,
)

__all__ = [
    "FieldSpec",
    "EMPLOYEE_CANONICAL_FIELDS",
    "FULL_NAME_HEADERS",
    "NAME_FIELDS",
    "get_employee_field_specs",
    "get_employee_field_map",
    "get_employee_template_headers",
]
