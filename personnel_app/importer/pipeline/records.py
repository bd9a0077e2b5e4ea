"""
Value types shared by every employee import stage.

All records are frozen dataclasses: stages derive new instances with
``dataclasses.replace`` rather than patching earlier ones. Each type knows how
to turn itself into a JSON-safe payload (``as_dict``) and back (``from_dict``)
so the same shapes travel over the HTTP backend.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from datetime import date
from typing import Any, Mapping, Sequence, Tuple

from personnel_app.importer.errors import ImportPayloadError

DATE_FIELDS = frozenset({"birth_date", "work_card_expiry"})


def _date_to_iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _date_from_payload(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _text_from_payload(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _row_index_from_payload(value: Any) -> int:
    if isinstance(value, bool):
        raise ImportPayloadError(f"Invalid row index: {value!r}")
    try:
        row_index = int(value)
    except (TypeError, ValueError) as exc:
        raise ImportPayloadError(f"Invalid row index: {value!r}") from exc
    if row_index < 1:
        raise ImportPayloadError(f"Row index must be positive, got {row_index}")
    return row_index


@dataclass(frozen=True)
class ImportRecord:
    """One normalized spreadsheet row."""

    row_index: int
    last_name: str | None = None
    first_name: str | None = None
    middle_name: str | None = None
    tax_id: str | None = None
    insurance_id: str | None = None
    work_card_id: str | None = None
    work_card_expiry: date | None = None
    citizenship: str | None = None
    birth_date: date | None = None
    position: str | None = None
    organization_name: str | None = None
    organization_tax_id: str | None = None
    organization_sub_code: str | None = None

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.last_name, self.first_name, self.middle_name) if part)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for record_field in fields(self):
            value = getattr(self, record_field.name)
            payload[record_field.name] = _date_to_iso(value) if record_field.name in DATE_FIELDS else value
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ImportRecord":
        if not isinstance(payload, Mapping):
            raise ImportPayloadError("Each record must be a JSON object.")
        values: dict[str, Any] = {"row_index": _row_index_from_payload(payload.get("row_index"))}
        for record_field in fields(cls):
            name = record_field.name
            if name == "row_index" or name not in payload:
                continue
            if name in DATE_FIELDS:
                values[name] = _date_from_payload(payload[name])
            else:
                values[name] = _text_from_payload(payload[name])
        return cls(**values)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class RowValidationError:
    """All rule violations found for one input row."""

    row_index: int
    field_errors: Tuple[FieldError, ...]
    last_name: str | None = None
    first_name: str | None = None
    tax_id: str | None = None

    @property
    def messages(self) -> Tuple[str, ...]:
        return tuple(error.message for error in self.field_errors)

    def as_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "last_name": self.last_name,
            "first_name": self.first_name,
            "tax_id": self.tax_id,
            "field_errors": [error.as_dict() for error in self.field_errors],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RowValidationError":
        return cls(
            row_index=_row_index_from_payload(payload.get("row_index")),
            field_errors=tuple(
                FieldError(field=str(item.get("field", "")), message=str(item.get("message", "")))
                for item in payload.get("field_errors") or ()
            ),
            last_name=_text_from_payload(payload.get("last_name")),
            first_name=_text_from_payload(payload.get("first_name")),
            tax_id=_text_from_payload(payload.get("tax_id")),
        )


@dataclass(frozen=True)
class PersistedEmployeeSummary:
    """Snapshot of an already registered employee: identity plus the fields an import refreshes."""

    id: int
    last_name: str | None
    first_name: str | None
    middle_name: str | None
    tax_id: str | None
    insurance_id: str | None
    birth_date: date | None
    work_card_id: str | None = None
    work_card_expiry: date | None = None
    citizenship_id: int | None = None
    position_name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "last_name": self.last_name,
            "first_name": self.first_name,
            "middle_name": self.middle_name,
            "tax_id": self.tax_id,
            "insurance_id": self.insurance_id,
            "birth_date": _date_to_iso(self.birth_date),
            "work_card_id": self.work_card_id,
            "work_card_expiry": _date_to_iso(self.work_card_expiry),
            "citizenship_id": self.citizenship_id,
            "position_name": self.position_name,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PersistedEmployeeSummary":
        citizenship_id = payload.get("citizenship_id")
        return cls(
            id=int(payload["id"]),
            last_name=_text_from_payload(payload.get("last_name")),
            first_name=_text_from_payload(payload.get("first_name")),
            middle_name=_text_from_payload(payload.get("middle_name")),
            tax_id=_text_from_payload(payload.get("tax_id")),
            insurance_id=_text_from_payload(payload.get("insurance_id")),
            birth_date=_date_from_payload(payload.get("birth_date")),
            work_card_id=_text_from_payload(payload.get("work_card_id")),
            work_card_expiry=_date_from_payload(payload.get("work_card_expiry")),
            citizenship_id=int(citizenship_id) if citizenship_id is not None else None,
            position_name=_text_from_payload(payload.get("position_name")),
        )


@dataclass(frozen=True)
class ConflictRecord:
    """Incoming record whose tax id matches an employee with different identity data."""

    tax_id: str
    incoming: ImportRecord
    existing: PersistedEmployeeSummary
    differing_fields: Tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "tax_id": self.tax_id,
            "incoming": self.incoming.as_dict(),
            "existing": self.existing.as_dict(),
            "differing_fields": list(self.differing_fields),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ConflictRecord":
        return cls(
            tax_id=str(payload["tax_id"]),
            incoming=ImportRecord.from_dict(payload["incoming"]),
            existing=PersistedEmployeeSummary.from_dict(payload["existing"]),
            differing_fields=tuple(payload.get("differing_fields") or ()),
        )


class Resolution(str, enum.Enum):
    """Operator decision for one conflict."""

    UPDATE = "update"
    SKIP = "skip"

    @classmethod
    def parse(cls, value: Any) -> "Resolution":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ImportPayloadError(f"Unknown conflict resolution: {value!r}") from exc


class RowOutcomeKind(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class RowOutcome:
    """Successful result of executing one row; warnings do not retract it."""

    row_index: int
    kind: RowOutcomeKind
    employee_id: int | None = None
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RowError:
    """
    Execution problem attributed to one input row.

    ``fatal`` rows were neither created nor updated. Non-fatal entries are
    warnings attached to a row that still counts as created or updated.
    """

    row_index: int
    last_name: str | None
    error: str
    fatal: bool = True

    def as_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "last_name": self.last_name,
            "error": self.error,
            "fatal": self.fatal,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RowError":
        return cls(
            row_index=_row_index_from_payload(payload.get("row_index")),
            last_name=_text_from_payload(payload.get("last_name")),
            error=str(payload.get("error") or ""),
            fatal=bool(payload.get("fatal", True)),
        )


@dataclass(frozen=True)
class ImportOutcome:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: Tuple[RowError, ...] = ()

    @property
    def failed(self) -> int:
        """Rows whose core write failed."""
        return len({error.row_index for error in self.errors if error.fatal})

    @property
    def warned(self) -> int:
        """Rows that succeeded with at least one warning."""
        return len({error.row_index for error in self.errors if not error.fatal})

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.skipped + self.failed

    def as_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "warned": self.warned,
            "errors": [error.as_dict() for error in self.errors],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ImportOutcome":
        try:
            return cls(
                created=int(payload.get("created", 0)),
                updated=int(payload.get("updated", 0)),
                skipped=int(payload.get("skipped", 0)),
                errors=tuple(RowError.from_dict(item) for item in payload.get("errors") or ()),
            )
        except (TypeError, ValueError) as exc:
            raise ImportPayloadError(f"Malformed import outcome: {exc}") from exc


@dataclass(frozen=True)
class ValidationReport:
    """
    Result of one validate round trip.

    ``valid_records`` holds every record without validation errors (clean and
    conflicting alike), already normalized. ``matched_tax_ids`` lists valid
    records that match an existing employee with identical identity data;
    ``pending_update_tax_ids`` is the subset of those whose work card,
    citizenship or position the import would refresh.
    """

    valid_records: Tuple[ImportRecord, ...] = ()
    validation_errors: Tuple[RowValidationError, ...] = ()
    conflicts: Tuple[ConflictRecord, ...] = ()
    matched_tax_ids: Tuple[str, ...] = ()
    pending_update_tax_ids: Tuple[str, ...] = ()

    @property
    def has_errors(self) -> bool:
        return bool(self.validation_errors)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def conflicting_tax_ids(self) -> Tuple[str, ...]:
        return tuple(conflict.tax_id for conflict in self.conflicts)

    def as_dict(self) -> dict[str, Any]:
        return {
            "valid_records": [record.as_dict() for record in self.valid_records],
            "validation_errors": [error.as_dict() for error in self.validation_errors],
            "conflicts": [conflict.as_dict() for conflict in self.conflicts],
            "conflicting_tax_ids": list(self.conflicting_tax_ids),
            "matched_tax_ids": list(self.matched_tax_ids),
            "pending_update_tax_ids": list(self.pending_update_tax_ids),
            "has_errors": self.has_errors,
            "has_conflicts": self.has_conflicts,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ValidationReport":
        try:
            return cls(
                valid_records=tuple(ImportRecord.from_dict(item) for item in payload.get("valid_records") or ()),
                validation_errors=tuple(
                    RowValidationError.from_dict(item) for item in payload.get("validation_errors") or ()
                ),
                conflicts=tuple(ConflictRecord.from_dict(item) for item in payload.get("conflicts") or ()),
                matched_tax_ids=tuple(str(tax_id) for tax_id in payload.get("matched_tax_ids") or ()),
                pending_update_tax_ids=tuple(
                    str(tax_id) for tax_id in payload.get("pending_update_tax_ids") or ()
                ),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ImportPayloadError(f"Malformed validation report: {exc}") from exc


@dataclass(frozen=True)
class ImportPlan:
    """
    Exact pre-commit counts shown to the operator.

    Rows matching a stored employee with identical identity data count in
    ``to_update`` when the import refreshes their work card, citizenship or
    position, and in ``unchanged`` when nothing differs. Executing the plan
    yields ``updated == to_update`` and ``skipped == to_skip + unchanged``
    unless rows fail or stored data changes in between.
    """

    to_create: int = 0
    to_update: int = 0
    to_skip: int = 0
    unchanged: int = 0
    excluded: int = 0

    @property
    def submitted(self) -> int:
        return self.to_create + self.to_update + self.to_skip + self.unchanged

    def as_dict(self) -> dict[str, int]:
        return {
            "to_create": self.to_create,
            "to_update": self.to_update,
            "to_skip": self.to_skip,
            "unchanged": self.unchanged,
            "excluded": self.excluded,
        }


def records_from_payload(items: Any) -> Tuple[ImportRecord, ...]:
    if not isinstance(items, Sequence) or isinstance(items, (str, bytes)):
        raise ImportPayloadError("'records' must be a list of objects.")
    return tuple(ImportRecord.from_dict(item) for item in items)


def resolutions_from_payload(payload: Any) -> dict[str, Resolution]:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ImportPayloadError("'conflict_resolutions' must be an object keyed by tax id.")
    return {str(tax_id): Resolution.parse(value) for tax_id, value in payload.items()}


__all__ = [
    "ImportRecord",
    "FieldError",
    "RowValidationError",
    "PersistedEmployeeSummary",
    "ConflictRecord",
    "Resolution",
    "RowOutcomeKind",
    "RowOutcome",
    "RowError",
    "ImportOutcome",
    "ValidationReport",
    "ImportPlan",
    "records_from_payload",
    "resolutions_from_payload",
]
