"""
Batch executor: partial-failure tolerant upsert of validated employee records.

Every row runs inside its own SAVEPOINT. A failed core write rolls back that
row only and is reported as a fatal ``RowError``; auxiliary writes run in
nested savepoints of their own and downgrade the row to "succeeded with
warning" when they fail. Upserts are keyed by employee tax id, so replaying a
row with unchanged data is a no-op.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from flask import current_app, has_app_context
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.monitoring import ImporterMonitoring
from personnel_app.importer.errors import ImportExecutionError
from personnel_app.models import (
    Counterparty,
    Employee,
    EmployeeCounterpartyMapping,
    Position,
    db,
)

from .conflicts import differing_identity_fields
from .directory import summarize_employee
from .records import ImportOutcome, ImportRecord, Resolution, RowError, RowOutcome, RowOutcomeKind
from .validation import CounterpartyMatch, Validator, capitalize_position

# Employee columns an import may fill, keyed by record field
UPDATABLE_FIELDS: tuple[tuple[str, str], ...] = (
    ("last_name", "last_name"),
    ("first_name", "first_name"),
    ("middle_name", "middle_name"),
    ("tax_id", "inn"),
    ("insurance_id", "snils"),
    ("work_card_id", "kig"),
    ("work_card_expiry", "kig_end_date"),
    ("birth_date", "birth_date"),
)


class RowWriteError(Exception):
    """Raised inside a row's core write when the row cannot be persisted."""


@dataclass
class _RowContext:
    record: ImportRecord
    match: CounterpartyMatch
    citizenship_id: int | None
    resolution: Resolution | None


class BatchExecutor:
    """Applies creates and updates for a working set of validated records."""

    def __init__(
        self,
        validator: Validator,
        *,
        session: Session | None = None,
        batch_size: int = 100,
    ) -> None:
        self.validator = validator
        self.session = session or db.session
        self.batch_size = max(1, int(batch_size))
        self._position_ids: dict[str, int] = {}

    # Core write

    def _position_id(self, name: str | None) -> int | None:
        if not name:
            return None
        capitalized = capitalize_position(name)
        cached = self._position_ids.get(capitalized)
        if cached is not None:
            return cached
        position = self.session.scalars(select(Position).where(Position.name == capitalized)).first()
        if position is None:
            position = Position(name=capitalized)
            self.session.add(position)
            self.session.flush()
        self._position_ids[capitalized] = position.id
        return position.id

    def _field_changes(self, employee: Employee, record: ImportRecord, context: _RowContext) -> dict[str, object]:
        changes: dict[str, object] = {}
        for record_field, column in UPDATABLE_FIELDS:
            value = getattr(record, record_field)
            if value in (None, ""):
                continue
            if getattr(employee, column) != value:
                changes[column] = value
        if context.citizenship_id is not None and context.citizenship_id != employee.citizenship_id:
            changes["citizenship_id"] = context.citizenship_id
        return changes

    def _write_core(self, context: _RowContext) -> tuple[Employee | None, RowOutcomeKind, str | None]:
        record = context.record
        employee = self.session.scalars(select(Employee).where(Employee.inn == record.tax_id)).first()

        if employee is not None:
            differing = differing_identity_fields(record, summarize_employee(employee))
            if differing and context.resolution is not Resolution.UPDATE:
                # Stored identity changed after detection; never overwrite without a decision
                note = (
                    f"Skipped: stored employee differs in {', '.join(differing)}; "
                    "validate again to review the conflict"
                )
                return None, RowOutcomeKind.SKIPPED, note
            changes = self._field_changes(employee, record, context)
            position_id = self._position_id(record.position)
            if position_id is not None and position_id != employee.position_id:
                changes["position_id"] = position_id
            kind = RowOutcomeKind.SKIPPED
            if changes:
                for column, value in changes.items():
                    setattr(employee, column, value)
                kind = RowOutcomeKind.UPDATED
        else:
            if not record.last_name or not record.first_name:
                raise RowWriteError("Last and first name are required to create an employee")
            employee = Employee(
                last_name=record.last_name,
                first_name=record.first_name,
                middle_name=record.middle_name,
                inn=record.tax_id,
                snils=record.insurance_id,
                kig=record.work_card_id,
                kig_end_date=record.work_card_expiry,
                birth_date=record.birth_date,
                citizenship_id=context.citizenship_id,
                position_id=self._position_id(record.position),
            )
            self.session.add(employee)
            kind = RowOutcomeKind.CREATED

        self.session.flush()
        self._link_counterparty(employee, context.match.counterparty.id)
        return employee, kind, None

    def _link_counterparty(self, employee: Employee, counterparty_id: int) -> None:
        stmt = select(EmployeeCounterpartyMapping).where(
            EmployeeCounterpartyMapping.employee_id == employee.id,
            EmployeeCounterpartyMapping.counterparty_id == counterparty_id,
        )
        if self.session.scalars(stmt).first() is None:
            self.session.add(EmployeeCounterpartyMapping(employee_id=employee.id, counterparty_id=counterparty_id))
            self.session.flush()

    # Auxiliary writes

    def _refresh_card_status(self, employee: Employee) -> None:
        self.session.refresh(employee)
        status = employee.expected_card_status()
        if employee.card_status != status:
            employee.card_status = status
            self.session.flush()

    def _fill_counterparty_sub_code(self, match: CounterpartyMatch) -> None:
        if not match.sub_code_to_fill:
            return
        counterparty = self.session.get(Counterparty, match.counterparty.id)
        if counterparty is not None and not counterparty.kpp:
            counterparty.kpp = match.sub_code_to_fill
            self.session.flush()

    def _run_auxiliary(self, label: str, action, *args) -> str | None:
        savepoint = self.session.begin_nested()
        try:
            action(*args)
            savepoint.commit()
        except SQLAlchemyError as exc:
            savepoint.rollback()
            return f"{label} failed: {exc.__class__.__name__}"
        return None

    # Row and batch handling

    def _prepare(
        self,
        record: ImportRecord,
        resolutions: Mapping[str, Resolution],
        allowed_ids: frozenset[int] | None,
    ) -> _RowContext | RowError:
        record = self.validator.normalize(record)
        if not record.tax_id:
            return RowError(record.row_index, record.last_name, "Employee tax id is required")
        match, errors = self.validator.resolve_counterparty(record, allowed_ids)
        if match is None:
            message = "; ".join(error.message for error in errors) or "Counterparty could not be resolved"
            return RowError(record.row_index, record.last_name, message)
        citizenship, errors = self.validator.resolve_citizenship(record)
        if errors:
            return RowError(record.row_index, record.last_name, "; ".join(error.message for error in errors))
        return _RowContext(
            record=record,
            match=match,
            citizenship_id=citizenship.id if citizenship is not None else None,
            resolution=resolutions.get(record.tax_id),
        )

    def execute_row(
        self,
        record: ImportRecord,
        resolutions: Mapping[str, Resolution],
        allowed_ids: frozenset[int] | None,
    ) -> RowOutcome | RowError:
        """Execute one record, returning its outcome instead of raising."""

        if record.tax_id and resolutions.get(record.tax_id) is Resolution.SKIP:
            return RowOutcome(record.row_index, RowOutcomeKind.SKIPPED)

        context = self._prepare(record, resolutions, allowed_ids)
        if isinstance(context, RowError):
            return context
        if context.resolution is Resolution.SKIP:
            return RowOutcome(record.row_index, RowOutcomeKind.SKIPPED)

        savepoint = self.session.begin_nested()
        try:
            employee, kind, note = self._write_core(context)
            savepoint.commit()
        except (SQLAlchemyError, RowWriteError) as exc:
            savepoint.rollback()
            self._position_ids.clear()
            return RowError(record.row_index, record.last_name, _error_message(exc))

        if employee is None:
            return RowOutcome(record.row_index, kind, warnings=(note,) if note else ())

        warnings = [
            warning
            for warning in (
                self._run_auxiliary("Card status update", self._refresh_card_status, employee),
                self._run_auxiliary("Counterparty sub-code update", self._fill_counterparty_sub_code, context.match),
            )
            if warning
        ]
        return RowOutcome(record.row_index, kind, employee_id=employee.id, warnings=tuple(warnings))

    def execute(
        self,
        records: Iterable[ImportRecord],
        resolutions: Mapping[str, Resolution] | None = None,
    ) -> ImportOutcome:
        started = time.perf_counter()
        resolutions = dict(resolutions or {})
        records = tuple(records)
        allowed_ids = self.validator.allowed_counterparty_ids()

        created = updated = skipped = 0
        committed = 0
        errors: list[RowError] = []
        for batch in _batched(records, self.batch_size):
            try:
                for record in batch:
                    result = self.execute_row(record, resolutions, allowed_ids)
                    if isinstance(result, RowError):
                        errors.append(result)
                        continue
                    if result.kind is RowOutcomeKind.CREATED:
                        created += 1
                    elif result.kind is RowOutcomeKind.UPDATED:
                        updated += 1
                    else:
                        skipped += 1
                    errors.extend(
                        RowError(record.row_index, record.last_name, warning, fatal=False)
                        for warning in result.warnings
                    )
                self.session.commit()
            except SQLAlchemyError as exc:
                self.session.rollback()
                self._position_ids.clear()
                ImporterMonitoring.record_execution(duration_seconds=time.perf_counter() - started, status="error")
                raise ImportExecutionError(
                    f"Batch starting at row {batch[0].row_index} was not saved: {_error_message(exc)}",
                    committed=committed,
                ) from exc
            committed += len(batch)
            self._position_ids.clear()

        outcome = ImportOutcome(created=created, updated=updated, skipped=skipped, errors=tuple(errors))
        ImporterMonitoring.record_execution(
            duration_seconds=time.perf_counter() - started,
            status="partial" if outcome.failed else "success",
            created=outcome.created,
            updated=outcome.updated,
            skipped=outcome.skipped,
            failed=outcome.failed,
            warned=outcome.warned,
        )
        if has_app_context():
            current_app.logger.info(
                "Employee import executed %s rows (created=%s updated=%s skipped=%s failed=%s warned=%s)",
                len(records),
                outcome.created,
                outcome.updated,
                outcome.skipped,
                outcome.failed,
                outcome.warned,
            )
        return outcome


def _error_message(exc: Exception) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__


def _batched(records: Sequence[ImportRecord], size: int) -> Iterable[Sequence[ImportRecord]]:
    for start in range(0, len(records), size):
        yield records[start : start + size]
