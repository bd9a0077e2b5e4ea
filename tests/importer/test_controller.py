from __future__ import annotations

import io
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from personnel_app.importer.backend import LocalImportBackend
from personnel_app.importer.contracts import get_employee_template_headers
from personnel_app.importer.controller import (
    ConflictsState,
    ImportController,
    ImportStateError,
    ImportStep,
    PreviewState,
    ReadyState,
    ReportedState,
    UploadState,
    next_stage_after_validation,
)
from personnel_app.importer.errors import ImportTransportError
from personnel_app.importer.pipeline.records import (
    ConflictRecord,
    FieldError,
    ImportOutcome,
    PersistedEmployeeSummary,
    Resolution,
    RowValidationError,
    ValidationReport,
)
from personnel_app.models import Employee, db

ROWS = [
    {"Фамилия": "Иванов", "Имя": "Иван", "ИНН Сотрудник": "500100732259"},
    {"Фамилия": "Петров", "Имя": "Пётр", "ИНН Сотрудник": "773301234567"},
    {"Фамилия": "Сидоров", "Имя": "Семён", "ИНН Сотрудник": "910201234563"},
]


class FakeBackend:
    def __init__(self, report=None, outcome=None):
        self.report = report or ValidationReport()
        self.outcome = outcome or ImportOutcome()
        self.validate_error = None
        self.execute_error = None
        self.on_validate = None
        self.validate_calls = []
        self.execute_calls = []

    def validate_import(self, records):
        self.validate_calls.append(tuple(records))
        if self.on_validate is not None:
            self.on_validate()
        if self.validate_error is not None:
            raise self.validate_error
        return self.report

    def execute_import(self, records, resolutions):
        self.execute_calls.append((tuple(records), dict(resolutions)))
        if self.execute_error is not None:
            raise self.execute_error
        return self.outcome


def _conflict(record):
    existing = PersistedEmployeeSummary(
        id=1,
        last_name="Другой",
        first_name=record.first_name,
        middle_name=None,
        tax_id=record.tax_id,
        insurance_id=None,
        birth_date=date(1990, 5, 17),
    )
    return ConflictRecord(tax_id=record.tax_id, incoming=record, existing=existing, differing_fields=("last_name",))


def _validation_error(row_index):
    return RowValidationError(row_index=row_index, field_errors=(FieldError("tax_id", "Tax id is invalid"),))


def _controller(record_factory, **report_fields):
    records = tuple(record_factory(index + 1, tax_id=row["ИНН Сотрудник"]) for index, row in enumerate(ROWS))
    report = ValidationReport(valid_records=records, **report_fields)
    backend = FakeBackend(report=report, outcome=ImportOutcome(created=len(records)))
    controller = ImportController(backend)
    controller.load_rows(ROWS)
    return controller, backend, records


def _row(row_factory, **overrides):
    return dict(zip(get_employee_template_headers(), row_factory(**overrides)))


def _local_backend(reference_data):
    return LocalImportBackend(reference_data["caller"].id, today=lambda: date(2026, 10, 18))


def test_clean_import_goes_straight_to_ready(record_factory):
    controller, backend, records = _controller(record_factory)
    assert controller.step is ImportStep.PREVIEW
    assert [record.last_name for record in controller.state.records] == ["Иванов", "Петров", "Сидоров"]

    state = controller.validate()

    assert isinstance(state, ReadyState)
    assert controller.plan().to_create == 3

    state = controller.execute()

    assert isinstance(state, ReportedState)
    assert controller.step is ImportStep.RESULTS
    assert state.outcome.created == 3
    assert backend.execute_calls == [(records, {})]


def test_validation_errors_route_through_review(record_factory):
    controller, backend, records = _controller(record_factory)
    backend.report = ValidationReport(valid_records=records[:2], validation_errors=(_validation_error(3),))

    assert isinstance(controller.validate(), ConflictsState)
    plan = controller.plan()
    assert (plan.to_create, plan.excluded) == (2, 1)

    controller.proceed()
    controller.execute()

    ((submitted, resolutions),) = backend.execute_calls
    assert submitted == records[:2]
    assert resolutions == {}


def test_conflict_resolutions_are_submitted_complete(record_factory):
    controller, backend, records = _controller(record_factory)
    backend.report = ValidationReport(valid_records=records, conflicts=(_conflict(records[0]), _conflict(records[1])))

    controller.validate()
    assert controller.step is ImportStep.CONFLICTS
    controller.set_resolution(records[0].tax_id, "update")
    plan = controller.plan()
    assert (plan.to_create, plan.to_update, plan.to_skip) == (1, 1, 1)

    controller.proceed()
    controller.execute()

    _, resolutions = backend.execute_calls[0]
    assert resolutions == {records[0].tax_id: Resolution.UPDATE, records[1].tax_id: Resolution.SKIP}


def test_resolve_all(record_factory):
    controller, backend, records = _controller(record_factory)
    backend.report = ValidationReport(valid_records=records, conflicts=(_conflict(records[0]),))
    controller.validate()

    controller.resolve_all(Resolution.UPDATE)

    assert controller.plan().to_update == 1
    assert controller.resolutions.pending() == ()


def test_matched_records_are_counted_as_unchanged(record_factory):
    controller, _, records = _controller(record_factory, matched_tax_ids=("500100732259",))
    controller.validate()
    plan = controller.plan()
    assert (plan.to_create, plan.to_update, plan.unchanged) == (2, 0, 1)
    assert plan.submitted == 3


def test_matched_records_with_new_details_are_counted_as_updates(record_factory):
    controller, _, records = _controller(
        record_factory,
        matched_tax_ids=("500100732259", "773301234567"),
        pending_update_tax_ids=("773301234567",),
    )
    controller.validate()
    plan = controller.plan()
    assert (plan.to_create, plan.to_update, plan.unchanged) == (1, 1, 1)
    assert plan.submitted == 3



def test_validate_transport_failure_stays_in_preview(record_factory):
    controller, backend, _ = _controller(record_factory)
    backend.validate_error = ImportTransportError("Import request timed out", http_status=None)

    state = controller.validate()

    assert isinstance(state, PreviewState)
    assert controller.last_error == "Import request timed out"
    backend.validate_error = None
    assert isinstance(controller.validate(), ReadyState)


def test_execute_transport_failure_returns_to_ready(record_factory):
    controller, backend, _ = _controller(record_factory)
    controller.validate()
    backend.execute_error = ImportTransportError("HTTP 502", http_status=502)

    state = controller.execute()

    assert isinstance(state, ReadyState)
    assert controller.last_error == "HTTP 502"
    backend.execute_error = None
    assert isinstance(controller.execute(), ReportedState)
    assert len(backend.execute_calls) == 2


def test_unexpected_execute_error_returns_to_ready_and_propagates(record_factory):
    controller, backend, _ = _controller(record_factory)
    controller.validate()
    backend.execute_error = RuntimeError("connection reset")

    with pytest.raises(RuntimeError):
        controller.execute()

    assert isinstance(controller.state, ReadyState)
    assert controller.last_error == "Unexpected RuntimeError during execution"
    assert not controller.is_busy
    backend.execute_error = None
    assert isinstance(controller.execute(), ReportedState)


def test_database_failure_during_execute_allows_retry(reference_data, row_factory, monkeypatch):
    controller = ImportController(_local_backend(reference_data))
    controller.load_rows([_row(row_factory)])
    assert isinstance(controller.validate(), ReadyState)

    def locked_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    with monkeypatch.context() as patch:
        patch.setattr(db.session, "commit", locked_commit)
        state = controller.execute()

    assert isinstance(state, ReadyState)
    assert "database is locked" in controller.last_error
    assert db.session.scalar(select(func.count()).select_from(Employee)) == 0

    state = controller.execute()

    assert isinstance(state, ReportedState)
    assert state.outcome.created == 1


def test_plan_matches_outcome_for_registered_employees(reference_data, row_factory):
    db.session.add(
        Employee(
            last_name="Иванов",
            first_name="Иван",
            middle_name="Иванович",
            inn="500100732259",
            snils="11223344595",
            birth_date=date(1990, 5, 17),
        )
    )
    db.session.commit()
    backend = _local_backend(reference_data)

    first = ImportController(backend)
    first.load_rows([_row(row_factory)])
    assert isinstance(first.validate(), ReadyState)
    first_plan = first.plan()
    first_outcome = first.execute().outcome

    assert (first_plan.to_update, first_plan.unchanged) == (1, 0)
    assert first_outcome.updated == first_plan.to_update
    assert first_outcome.skipped == first_plan.to_skip + first_plan.unchanged

    second = ImportController(backend)
    second.load_rows([_row(row_factory)])
    second.validate()
    second_plan = second.plan()
    second_outcome = second.execute().outcome

    assert (second_plan.to_update, second_plan.unchanged) == (0, 1)
    assert (second_outcome.updated, second_outcome.skipped) == (0, 1)


def test_execute_is_ignored_while_busy(record_factory):
    controller, backend, _ = _controller(record_factory)
    controller.validate()

    controller._busy.acquire()
    try:
        assert controller.is_busy
        state = controller.execute()
    finally:
        controller._busy.release()

    assert isinstance(state, ReadyState)
    assert backend.execute_calls == []


def test_execute_twice_submits_once(record_factory):
    controller, backend, _ = _controller(record_factory)
    controller.validate()
    controller.execute()
    controller.execute()
    assert len(backend.execute_calls) == 1


def test_reset_discards_in_flight_validation(record_factory):
    controller, backend, _ = _controller(record_factory)
    backend.on_validate = controller.reset

    state = controller.validate()

    assert isinstance(state, UploadState)
    assert len(controller.resolutions) == 0


def test_nothing_valid_finishes_without_backend_call(record_factory):
    controller, backend, _ = _controller(record_factory)
    backend.report = ValidationReport(validation_errors=tuple(_validation_error(index) for index in (1, 2, 3)))
    controller.validate()
    controller.proceed()

    state = controller.execute()

    assert isinstance(state, ReportedState)
    assert state.outcome == ImportOutcome()
    assert backend.execute_calls == []


def test_back_navigation(record_factory):
    controller, backend, records = _controller(record_factory)
    backend.report = ValidationReport(valid_records=records, conflicts=(_conflict(records[0]),))
    controller.validate()
    controller.set_resolution(records[0].tax_id, Resolution.UPDATE)
    controller.proceed()

    assert isinstance(controller.back(), ConflictsState)
    assert isinstance(controller.back(), PreviewState)
    assert len(controller.resolutions) == 0
    assert isinstance(controller.back(), UploadState)
    with pytest.raises(ImportStateError):
        controller.back()


def test_operations_outside_their_state_are_rejected(record_factory):
    controller = ImportController(FakeBackend())
    with pytest.raises(ImportStateError):
        controller.proceed()
    with pytest.raises(ImportStateError):
        controller.plan()
    with pytest.raises(ImportStateError):
        controller.validate()
    controller.load_rows(ROWS)
    with pytest.raises(ImportStateError):
        controller.load_rows(ROWS)
    with pytest.raises(ImportStateError):
        controller.set_resolution("500100732259", Resolution.UPDATE)


def test_unreadable_workbook_stays_in_upload():
    controller = ImportController(FakeBackend())
    state = controller.load_workbook(io.BytesIO(b"not a workbook"))
    assert isinstance(state, UploadState)
    assert controller.last_error.startswith("Unable to open workbook")


@pytest.mark.parametrize(
    "errors,conflicts,expected",
    [
        (0, 0, ImportStep.READY),
        (1, 0, ImportStep.CONFLICTS),
        (0, 1, ImportStep.CONFLICTS),
        (2, 3, ImportStep.CONFLICTS),
    ],
)
def test_next_stage_after_validation(record_factory, errors, conflicts, expected):
    validation_errors = [_validation_error(index + 1) for index in range(errors)]
    conflict_records = [_conflict(record_factory(index + 1)) for index in range(conflicts)]
    assert next_stage_after_validation(validation_errors, conflict_records) is expected
