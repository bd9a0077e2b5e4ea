"""
Lookups the import pipeline needs from persisted data.

Stages depend on the ``ReferenceDirectory`` / ``EmployeeDirectory`` protocols;
the SQLAlchemy implementations below are the production backing. Database
failures surface as ``DirectoryLookupError`` so callers can report them per
row instead of crashing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from personnel_app.importer.errors import ImporterError
from personnel_app.models import (
    Citizenship,
    CitizenshipSynonym,
    Counterparty,
    CounterpartySubcontractor,
    Employee,
    db,
)

from .records import PersistedEmployeeSummary

# Keeps IN (...) lists well below driver parameter limits
LOOKUP_CHUNK_SIZE = 500


class DirectoryLookupError(ImporterError):
    """Raised when a directory lookup cannot be completed."""


@dataclass(frozen=True)
class CounterpartyRef:
    id: int
    name: str
    tax_id: str
    sub_code: str | None = None


@dataclass(frozen=True)
class CitizenshipRef:
    id: int
    name: str
    requires_patent: bool = True


class ReferenceDirectory(Protocol):
    def get_counterparty(self, counterparty_id: int) -> CounterpartyRef | None: ...

    def allowed_counterparty_ids(self, caller_counterparty_id: int) -> frozenset[int]: ...

    def counterparties_for_tax_id(self, tax_id: str) -> Sequence[CounterpartyRef]: ...

    def find_citizenship(self, name: str) -> CitizenshipRef | None: ...


class EmployeeDirectory(Protocol):
    def find_by_tax_ids(self, tax_ids: Sequence[str]) -> Mapping[str, PersistedEmployeeSummary]: ...


def _chunks(values: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


def _counterparty_ref(counterparty: Counterparty) -> CounterpartyRef:
    return CounterpartyRef(
        id=counterparty.id,
        name=counterparty.name,
        tax_id=counterparty.inn,
        sub_code=counterparty.kpp or None,
    )


def summarize_employee(employee: Employee) -> PersistedEmployeeSummary:
    return PersistedEmployeeSummary(
        id=employee.id,
        last_name=employee.last_name,
        first_name=employee.first_name,
        middle_name=employee.middle_name,
        tax_id=employee.inn,
        insurance_id=employee.snils,
        birth_date=employee.birth_date,
        work_card_id=employee.kig,
        work_card_expiry=employee.kig_end_date,
        citizenship_id=employee.citizenship_id,
        position_name=employee.position.name if employee.position is not None else None,
    )


class SqlReferenceDirectory:
    """Counterparty and citizenship lookups backed by the application database."""

    def __init__(self, session: Session | None = None) -> None:
        self.session = session or db.session
        self._counterparties_by_tax_id: dict[str, tuple[CounterpartyRef, ...]] = {}
        self._citizenships: dict[str, CitizenshipRef] | None = None

    def get_counterparty(self, counterparty_id: int) -> CounterpartyRef | None:
        try:
            counterparty = self.session.get(Counterparty, counterparty_id)
        except SQLAlchemyError as exc:
            raise DirectoryLookupError(f"Counterparty lookup failed: {exc}") from exc
        return _counterparty_ref(counterparty) if counterparty is not None else None

    def allowed_counterparty_ids(self, caller_counterparty_id: int) -> frozenset[int]:
        stmt = select(CounterpartySubcontractor.child_counterparty_id).where(
            CounterpartySubcontractor.parent_counterparty_id == caller_counterparty_id
        )
        try:
            children = set(self.session.scalars(stmt))
        except SQLAlchemyError as exc:
            raise DirectoryLookupError(f"Sub-contractor lookup failed: {exc}") from exc
        return frozenset({caller_counterparty_id, *children})

    def prefetch_counterparties(self, tax_ids: Iterable[str]) -> None:
        """Load counterparties for many tax ids in as few queries as possible."""
        pending = sorted({tax_id for tax_id in tax_ids if tax_id} - set(self._counterparties_by_tax_id))
        if not pending:
            return
        found: dict[str, list[CounterpartyRef]] = {tax_id: [] for tax_id in pending}
        try:
            for chunk in _chunks(pending, LOOKUP_CHUNK_SIZE):
                stmt = select(Counterparty).where(Counterparty.inn.in_(chunk)).order_by(Counterparty.id)
                for counterparty in self.session.scalars(stmt):
                    found[counterparty.inn].append(_counterparty_ref(counterparty))
        except SQLAlchemyError as exc:
            raise DirectoryLookupError(f"Counterparty lookup failed: {exc}") from exc
        for tax_id, refs in found.items():
            self._counterparties_by_tax_id[tax_id] = tuple(refs)

    def counterparties_for_tax_id(self, tax_id: str) -> Sequence[CounterpartyRef]:
        if tax_id not in self._counterparties_by_tax_id:
            self.prefetch_counterparties([tax_id])
        return self._counterparties_by_tax_id.get(tax_id, ())

    def _load_citizenships(self) -> dict[str, CitizenshipRef]:
        lookup: dict[str, CitizenshipRef] = {}
        try:
            citizenships = list(self.session.scalars(select(Citizenship)))
            by_id: dict[int, CitizenshipRef] = {}
            for citizenship in citizenships:
                ref = CitizenshipRef(
                    id=citizenship.id,
                    name=citizenship.name,
                    requires_patent=citizenship.requires_patent is not False,
                )
                by_id[ref.id] = ref
                lookup[citizenship.name.strip().casefold()] = ref
            for synonym in self.session.scalars(select(CitizenshipSynonym)):
                ref = by_id.get(synonym.citizenship_id)
                if ref is not None:
                    lookup.setdefault(synonym.synonym.strip().casefold(), ref)
        except SQLAlchemyError as exc:
            raise DirectoryLookupError(f"Citizenship lookup failed: {exc}") from exc
        return lookup

    def find_citizenship(self, name: str) -> CitizenshipRef | None:
        if self._citizenships is None:
            self._citizenships = self._load_citizenships()
        return self._citizenships.get(name.strip().casefold())


class SqlEmployeeDirectory:
    """Batched employee lookups by tax id."""

    def __init__(self, session: Session | None = None) -> None:
        self.session = session or db.session

    def find_by_tax_ids(self, tax_ids: Sequence[str]) -> Mapping[str, PersistedEmployeeSummary]:
        unique = sorted({tax_id for tax_id in tax_ids if tax_id})
        found: dict[str, PersistedEmployeeSummary] = {}
        try:
            for chunk in _chunks(unique, LOOKUP_CHUNK_SIZE):
                stmt = select(Employee).options(selectinload(Employee.position)).where(Employee.inn.in_(chunk))
                for employee in self.session.scalars(stmt):
                    found[employee.inn] = summarize_employee(employee)
        except SQLAlchemyError as exc:
            raise DirectoryLookupError(f"Employee lookup failed: {exc}") from exc
        return found
