"""
Employee import JSON API.

``validate`` and ``execute`` implement the server side of the import backend
contract used by ``HttpImportBackend``. ``preview`` parses an uploaded
workbook into records for clients that do not read spreadsheets themselves.
"""

from __future__ import annotations

import io
from http import HTTPStatus
from typing import Any, Mapping

from flask import Blueprint, current_app, jsonify, request

from personnel_app.utils.importer import is_importer_enabled

from .adapters.xlsx_employees import EmployeeXLSXAdapter
from .backend import LocalImportBackend
from .contracts import get_employee_field_specs
from .errors import CallerCounterpartyError, ImporterError, ImportPayloadError
from .pipeline.mapper import map_rows
from .pipeline.records import records_from_payload, resolutions_from_payload

employee_import_blueprint = Blueprint("employee_import", __name__, url_prefix="/api/employees/import")


def _json_error(message: str, status: HTTPStatus | int):
    return jsonify({"error": message}), status


@employee_import_blueprint.before_request
def _ensure_importer_enabled_api():
    if not is_importer_enabled(current_app):
        return _json_error("Employee importer is disabled.", HTTPStatus.NOT_FOUND)
    return None


def _json_payload() -> Mapping[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, Mapping):
        raise ImportPayloadError("Request body must be a JSON object.")
    return payload


def _caller_counterparty_id(payload: Mapping[str, Any]) -> int:
    """Caller's own counterparty: body ``counterparty_id`` first, then the configured header."""

    raw = payload.get("counterparty_id")
    if raw in (None, ""):
        raw = request.headers.get(current_app.config.get("IMPORTER_COUNTERPARTY_HEADER", "X-Counterparty-Id"))
    if raw in (None, ""):
        raise CallerCounterpartyError("Caller counterparty is not specified.")
    if isinstance(raw, bool):
        raise ImportPayloadError(f"Invalid counterparty id: {raw!r}")
    try:
        return int(str(raw).strip())
    except ValueError as exc:
        raise ImportPayloadError(f"Invalid counterparty id: {raw!r}") from exc


def _backend(caller_counterparty_id: int) -> LocalImportBackend:
    return LocalImportBackend.from_config(
        current_app.config,
        caller_counterparty_id,
        logger=current_app.logger,
    )


@employee_import_blueprint.post("/validate")
def validate_employee_import():
    try:
        payload = _json_payload()
        caller_counterparty_id = _caller_counterparty_id(payload)
        records = records_from_payload(payload.get("records"))
        report = _backend(caller_counterparty_id).validate_import(records)
    except ImporterError as exc:
        return _json_error(str(exc), exc.status_code)
    return jsonify(report.as_dict()), HTTPStatus.OK


@employee_import_blueprint.post("/execute")
def execute_employee_import():
    try:
        payload = _json_payload()
        caller_counterparty_id = _caller_counterparty_id(payload)
        records = records_from_payload(payload.get("records"))
        resolutions = resolutions_from_payload(payload.get("conflict_resolutions"))
        outcome = _backend(caller_counterparty_id).execute_import(records, resolutions)
    except ImporterError as exc:
        return _json_error(str(exc), exc.status_code)
    return jsonify(outcome.as_dict()), HTTPStatus.OK


@employee_import_blueprint.post("/preview")
def preview_employee_workbook():
    """Parse an uploaded ``.xlsx`` (multipart field ``file``) into import records."""

    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return _json_error("No workbook uploaded.", HTTPStatus.BAD_REQUEST)
    if not upload.filename.lower().endswith(".xlsx"):
        return _json_error("Only .xlsx workbooks are supported.", HTTPStatus.BAD_REQUEST)

    adapter = EmployeeXLSXAdapter(io.BytesIO(upload.read()))
    try:
        rows = list(adapter.iter_rows())
    except ImporterError as exc:
        return _json_error(str(exc), exc.status_code)
    records = map_rows(rows)
    return (
        jsonify(
            {
                "headers": list(adapter.headers),
                "rows_skipped_blank": adapter.statistics.rows_skipped_blank,
                "records": [record.as_dict() for record in records],
            }
        ),
        HTTPStatus.OK,
    )


@employee_import_blueprint.get("/template")
def employee_import_template():
    return (
        jsonify(
            {
                "fields": [
                    {
                        "name": spec.name,
                        "header": spec.header,
                        "aliases": list(spec.aliases),
                        "required": spec.required,
                        "description": spec.description,
                    }
                    for spec in get_employee_field_specs()
                ]
            }
        ),
        HTTPStatus.OK,
    )
