from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from personnel_app.importer.backend import (
    EXECUTE_PATH,
    VALIDATE_PATH,
    HttpImportBackend,
    LocalImportBackend,
)
from personnel_app.importer.errors import CallerCounterpartyError, ImportLimitError, ImportTransportError
from personnel_app.importer.pipeline.conflicts import ExistingEmployeeCache
from personnel_app.importer.pipeline.records import Resolution
from personnel_app.models import Employee, db

TAX_ID_A = "500100732259"
TAX_ID_B = "773301234567"


def _backend(caller, **kwargs):
    return LocalImportBackend(caller.id, today=lambda: date(2026, 10, 18), **kwargs)


def test_local_validate_splits_valid_and_invalid(reference_data, record_factory):
    records = [record_factory(1), record_factory(2, tax_id="123")]

    report = _backend(reference_data["caller"]).validate_import(records)

    assert [record.row_index for record in report.valid_records] == [1]
    assert [error.row_index for error in report.validation_errors] == [2]
    assert report.conflicts == ()


def test_local_validate_reports_conflicts_and_matches(reference_data, record_factory):
    db.session.add_all(
        [
            Employee(last_name="Петров", first_name="Иван", inn=TAX_ID_A),
            Employee(
                last_name="Иванов",
                first_name="Иван",
                middle_name="Иванович",
                inn=TAX_ID_B,
                snils="11223344595",
                birth_date=date(1990, 5, 17),
            ),
        ]
    )
    db.session.commit()

    report = _backend(reference_data["caller"]).validate_import(
        [record_factory(1), record_factory(2, tax_id=TAX_ID_B)]
    )

    assert report.conflicting_tax_ids == (TAX_ID_A,)
    assert report.matched_tax_ids == (TAX_ID_B,)
    assert len(report.valid_records) == 2


def test_local_validate_rejects_empty_submission(reference_data):
    with pytest.raises(ImportLimitError):
        _backend(reference_data["caller"]).validate_import([])


def test_local_validate_rejects_unknown_caller(reference_data, record_factory):
    backend = LocalImportBackend(9999)
    with pytest.raises(CallerCounterpartyError) as excinfo:
        backend.validate_import([record_factory()])
    assert excinfo.value.status_code == 403


def test_local_execute_revalidates_submitted_rows(reference_data, record_factory):
    records = [record_factory(1), record_factory(2, tax_id=TAX_ID_B, citizenship="Атлантида")]

    outcome = _backend(reference_data["caller"]).execute_import(records, {})

    assert outcome.created == 1
    assert outcome.failed == 1
    (error,) = outcome.errors
    assert error.row_index == 2
    assert error.error.startswith("Validation failed:")
    assert outcome.processed == len(records)


def test_local_execute_invalidates_existing_cache(reference_data, record_factory):
    backend = _backend(reference_data["caller"], cache=ExistingEmployeeCache(ttl_seconds=300))

    first = backend.validate_import([record_factory()])
    assert first.matched_tax_ids == ()
    backend.execute_import(first.valid_records, {})
    second = backend.validate_import([record_factory()])

    assert second.matched_tax_ids == (TAX_ID_A,)


def test_local_backends_do_not_share_existing_cache(app, reference_data, record_factory):
    app.config["IMPORTER_EXISTING_CACHE_TTL_SECONDS"] = 300
    first = LocalImportBackend.from_config(app.config, reference_data["caller"].id)
    second = LocalImportBackend.from_config(app.config, reference_data["caller"].id)

    assert first.cache is not second.cache
    assert first.cache.ttl_seconds == 300

    first.validate_import([record_factory()])
    db.session.add(Employee(last_name="Петров", first_name="Пётр", inn=TAX_ID_A))
    db.session.commit()

    assert second.validate_import([record_factory()]).conflicting_tax_ids == (TAX_ID_A,)


def _response(status=200, payload=None, text=""):
    response = MagicMock()
    response.ok = status < 400
    response.status_code = status
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def _http_backend(response=None, **kwargs):
    session = MagicMock()
    if response is not None:
        session.post.return_value = response
    backend = HttpImportBackend(
        "https://personnel.example.org/",
        caller_counterparty_id=12,
        timeout=30,
        token="secret",
        session=session,
        **kwargs,
    )
    return backend, session


def test_http_validate_posts_records(record_factory):
    backend, session = _http_backend(
        _response(payload={"valid_records": [record_factory().as_dict()], "validation_errors": [], "conflicts": []})
    )

    report = backend.validate_import([record_factory()])

    assert report.valid_records == (record_factory(),)
    args, kwargs = session.post.call_args
    assert args[0] == "https://personnel.example.org" + VALIDATE_PATH
    assert kwargs["timeout"] == 30
    assert kwargs["headers"]["X-Counterparty-Id"] == "12"
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["json"]["counterparty_id"] == 12
    assert kwargs["json"]["records"][0]["birth_date"] == "1990-05-17"


def test_http_execute_sends_resolutions(record_factory):
    backend, session = _http_backend(
        _response(
            payload={
                "created": 1,
                "updated": 0,
                "skipped": 1,
                "errors": [{"row_index": 2, "last_name": "Иванов", "error": "boom", "fatal": True}],
            }
        )
    )

    outcome = backend.execute_import([record_factory()], {TAX_ID_A: Resolution.UPDATE, TAX_ID_B: "skip"})

    assert (outcome.created, outcome.skipped, outcome.failed) == (1, 1, 1)
    args, kwargs = session.post.call_args
    assert args[0].endswith(EXECUTE_PATH)
    assert kwargs["json"]["conflict_resolutions"] == {TAX_ID_A: "update", TAX_ID_B: "skip"}


def test_http_custom_counterparty_header(record_factory):
    backend, session = _http_backend(_response(payload={}), counterparty_header="X-Org")
    backend.validate_import([record_factory()])
    assert session.post.call_args.kwargs["headers"]["X-Org"] == "12"


def test_http_timeout_becomes_transport_error(record_factory):
    backend, session = _http_backend()
    session.post.side_effect = requests.Timeout("slow")

    with pytest.raises(ImportTransportError, match="timed out after 30s"):
        backend.validate_import([record_factory()])


def test_http_connection_failure_becomes_transport_error(record_factory):
    backend, session = _http_backend()
    session.post.side_effect = requests.ConnectionError("refused")

    with pytest.raises(ImportTransportError, match="failed: refused"):
        backend.execute_import([record_factory()], {})


def test_http_error_status_carries_server_message(record_factory):
    backend, _ = _http_backend(_response(status=403, payload={"error": "Caller counterparty is required."}))

    with pytest.raises(ImportTransportError) as excinfo:
        backend.validate_import([record_factory()])

    assert excinfo.value.http_status == 403
    assert "Caller counterparty is required." in str(excinfo.value)


def test_http_error_status_without_body(record_factory):
    backend, _ = _http_backend(_response(status=502, payload=ValueError("no json")))

    with pytest.raises(ImportTransportError, match="HTTP 502: no response body"):
        backend.validate_import([record_factory()])


@pytest.mark.parametrize(
    "payload,message",
    [
        (ValueError("bad json"), "not valid JSON"),
        (["not", "an", "object"], "not a JSON object"),
        ({"valid_records": [{"row_index": 0}]}, "Unexpected validation response"),
    ],
)
def test_http_malformed_success_response(record_factory, payload, message):
    backend, _ = _http_backend(_response(payload=payload))

    with pytest.raises(ImportTransportError, match=message):
        backend.validate_import([record_factory()])
