"""
Business-rule validation for mapped employee records.

``Validator.validate`` never mutates its input and never raises for row
content: every problem becomes a ``FieldError`` on the row's
``RowValidationError``. Only the file-level limit check raises.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Iterable, Sequence

from personnel_app.importer.errors import ImportLimitError

from .directory import CitizenshipRef, CounterpartyRef, DirectoryLookupError, ReferenceDirectory
from .records import FieldError, ImportRecord, RowValidationError

TAX_ID_LENGTHS = (10, 12)
INSURANCE_ID_LENGTH = 11
WORK_CARD_LETTERS = 2
WORK_CARD_DIGITS = 7

_NON_DIGITS = re.compile(r"\D")
_CYRILLIC = re.compile(r"[А-Яа-яЁё]")
_NON_ALNUM_LATIN = re.compile(r"[^0-9A-Za-z]")


def digits_only(value: str | None) -> str | None:
    if not value:
        return None
    return _NON_DIGITS.sub("", value) or None


def normalize_work_card(value: str | None) -> str | None:
    """Upper-case letters followed by digits, or ``None`` when not a well-formed card id."""
    if not value or _CYRILLIC.search(value):
        return None
    cleaned = _NON_ALNUM_LATIN.sub("", value).upper()
    letters = "".join(char for char in cleaned if char.isalpha())
    numbers = "".join(char for char in cleaned if char.isdigit())
    if len(letters) != WORK_CARD_LETTERS or len(numbers) != WORK_CARD_DIGITS:
        return None
    return f"{letters}{numbers}"


def age_on(birth_date: date, today: date) -> int:
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


def capitalize_position(name: str) -> str:
    name = name.strip()
    return name[:1].upper() + name[1:].lower()


@dataclass(frozen=True)
class ValidationRules:
    min_age: int = 16
    max_age: int = 80
    max_records: int = 5000

    @classmethod
    def from_config(cls, config) -> "ValidationRules":
        return cls(
            min_age=int(config.get("IMPORTER_MIN_AGE", cls.min_age)),
            max_age=int(config.get("IMPORTER_MAX_AGE", cls.max_age)),
            max_records=int(config.get("IMPORTER_MAX_RECORDS", cls.max_records)),
        )


@dataclass(frozen=True)
class CounterpartyMatch:
    """Counterparty a record resolves to, plus a sub-code to backfill when the stored one is empty."""

    counterparty: CounterpartyRef
    sub_code_to_fill: str | None = None


class Validator:
    """Applies field-level and cross-row rules for one caller counterparty."""

    def __init__(
        self,
        directory: ReferenceDirectory,
        caller_counterparty_id: int,
        *,
        rules: ValidationRules | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.directory = directory
        self.caller_counterparty_id = caller_counterparty_id
        self.rules = rules or ValidationRules()
        self._today = today

    def check_limits(self, records: Sequence[ImportRecord]) -> None:
        if not records or len(records) > self.rules.max_records:
            raise ImportLimitError(len(records), self.rules.max_records)

    def allowed_counterparty_ids(self) -> frozenset[int] | None:
        """Caller plus its sub-contractors; ``None`` when the lookup failed."""
        try:
            return self.directory.allowed_counterparty_ids(self.caller_counterparty_id)
        except DirectoryLookupError:
            return None

    def resolve_counterparty(
        self,
        record: ImportRecord,
        allowed_ids: frozenset[int] | None,
    ) -> tuple[CounterpartyMatch | None, list[FieldError]]:
        tax_id = digits_only(record.organization_tax_id)
        if not tax_id:
            return None, [FieldError("organization_tax_id", "Organization tax id is required")]
        sub_code = digits_only(record.organization_sub_code)
        try:
            candidates = list(self.directory.counterparties_for_tax_id(tax_id))
        except DirectoryLookupError as exc:
            return None, [FieldError("organization_tax_id", f"Counterparty lookup failed: {exc}")]
        if not candidates:
            return None, [FieldError("organization_tax_id", f"Counterparty with tax id {tax_id} not found")]

        match: CounterpartyMatch | None = None
        if sub_code:
            exact = [candidate for candidate in candidates if candidate.sub_code == sub_code]
            blank = [candidate for candidate in candidates if not candidate.sub_code]
            if exact:
                match = CounterpartyMatch(exact[0])
            elif blank:
                match = CounterpartyMatch(blank[0], sub_code_to_fill=sub_code)
            else:
                stored = ", ".join(sorted({candidate.sub_code for candidate in candidates if candidate.sub_code}))
                return None, [
                    FieldError("organization_sub_code", f"Sub-code mismatch: stored {stored}, file has {sub_code}")
                ]
        else:
            if allowed_ids:
                candidates.sort(key=lambda candidate: candidate.id not in allowed_ids)
            match = CounterpartyMatch(candidates[0])

        if allowed_ids is None:
            return None, [FieldError("organization_tax_id", "Counterparty permissions could not be checked")]
        if match.counterparty.id not in allowed_ids:
            return None, [
                FieldError("organization_tax_id", "Counterparty belongs to another organization")
            ]
        return match, []

    def resolve_citizenship(self, record: ImportRecord) -> tuple[CitizenshipRef | None, list[FieldError]]:
        if not record.citizenship:
            return None, []
        try:
            citizenship = self.directory.find_citizenship(record.citizenship)
        except DirectoryLookupError as exc:
            return None, [FieldError("citizenship", f"Citizenship lookup failed: {exc}")]
        if citizenship is None:
            return None, [FieldError("citizenship", f'Citizenship "{record.citizenship}" not found')]
        return citizenship, []

    def _check_record(
        self, record: ImportRecord, allowed_ids: frozenset[int] | None, today: date
    ) -> list[FieldError]:
        errors: list[FieldError] = []
        if not record.last_name:
            errors.append(FieldError("last_name", "Last name is required"))
        if not record.first_name:
            errors.append(FieldError("first_name", "First name is required"))

        tax_id = digits_only(record.tax_id)
        if not record.tax_id:
            errors.append(FieldError("tax_id", "Employee tax id is required"))
        elif not tax_id or len(tax_id) not in TAX_ID_LENGTHS:
            length = len(tax_id or "")
            errors.append(FieldError("tax_id", f"Employee tax id must have 10 or 12 digits, got {length}"))

        if record.insurance_id:
            insurance_id = digits_only(record.insurance_id) or ""
            if len(insurance_id) != INSURANCE_ID_LENGTH:
                errors.append(
                    FieldError("insurance_id", f"Insurance id must have 11 digits, got {len(insurance_id)}")
                )

        citizenship, citizenship_errors = self.resolve_citizenship(record)
        errors.extend(citizenship_errors)
        if record.work_card_id:
            if _CYRILLIC.search(record.work_card_id):
                errors.append(FieldError("work_card_id", "Work card id must use Latin letters, not Cyrillic"))
            elif normalize_work_card(record.work_card_id) is None:
                errors.append(
                    FieldError("work_card_id", "Work card id must be 2 Latin letters followed by 7 digits")
                )
        elif citizenship is not None and citizenship.requires_patent:
            errors.append(FieldError("work_card_id", f"Work card id is required for {citizenship.name} citizens"))

        if record.birth_date is not None:
            age = age_on(record.birth_date, today)
            if not self.rules.min_age <= age <= self.rules.max_age:
                errors.append(
                    FieldError(
                        "birth_date",
                        f"Age must be between {self.rules.min_age} and {self.rules.max_age}, got {age}",
                    )
                )

        _, counterparty_errors = self.resolve_counterparty(record, allowed_ids)
        errors.extend(counterparty_errors)
        return errors

    @staticmethod
    def _duplicate_errors(records: Sequence[ImportRecord]) -> dict[int, list[FieldError]]:
        rows_by_tax_id: dict[str, list[int]] = defaultdict(list)
        for record in records:
            tax_id = digits_only(record.tax_id)
            if tax_id:
                rows_by_tax_id[tax_id].append(record.row_index)
        errors: dict[int, list[FieldError]] = defaultdict(list)
        for tax_id, rows in rows_by_tax_id.items():
            if len(rows) < 2:
                continue
            listed = ", ".join(str(row) for row in rows)
            for row_index in rows:
                errors[row_index].append(
                    FieldError("tax_id", f"Employee tax id {tax_id} appears more than once in the file (rows {listed})")
                )
        return errors

    @staticmethod
    def _sub_code_consistency_errors(records: Sequence[ImportRecord]) -> dict[int, list[FieldError]]:
        first_seen: dict[str, str | None] = {}
        errors: dict[int, list[FieldError]] = defaultdict(list)
        for record in records:
            tax_id = digits_only(record.organization_tax_id)
            if not tax_id:
                continue
            sub_code = digits_only(record.organization_sub_code)
            if tax_id not in first_seen:
                first_seen[tax_id] = sub_code
            elif first_seen[tax_id] != sub_code:
                errors[record.row_index].append(
                    FieldError(
                        "organization_sub_code",
                        f'Different sub-codes for organization tax id {tax_id}: "{first_seen[tax_id] or ""}" '
                        f'and "{sub_code or ""}"',
                    )
                )
        return errors

    def validate(self, records: Iterable[ImportRecord]) -> list[RowValidationError]:
        """Return one ``RowValidationError`` per invalid record, in input order."""

        records = tuple(records)
        today = self._today()
        allowed_ids = self.allowed_counterparty_ids()
        duplicates = self._duplicate_errors(records)
        sub_code_conflicts = self._sub_code_consistency_errors(records)

        results: list[RowValidationError] = []
        for record in records:
            field_errors = self._check_record(record, allowed_ids, today)
            field_errors.extend(duplicates.get(record.row_index, ()))
            field_errors.extend(sub_code_conflicts.get(record.row_index, ()))
            if field_errors:
                results.append(
                    RowValidationError(
                        row_index=record.row_index,
                        field_errors=tuple(field_errors),
                        last_name=record.last_name,
                        first_name=record.first_name,
                        tax_id=record.tax_id,
                    )
                )
        return results

    @staticmethod
    def normalize(record: ImportRecord) -> ImportRecord:
        """Derive the canonical form of a valid record (digits-only ids, upper-case card id)."""

        return replace(
            record,
            tax_id=digits_only(record.tax_id),
            insurance_id=digits_only(record.insurance_id),
            work_card_id=normalize_work_card(record.work_card_id),
            organization_tax_id=digits_only(record.organization_tax_id),
            organization_sub_code=digits_only(record.organization_sub_code),
        )
