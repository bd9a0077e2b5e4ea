"""
Conflict detection: classify valid records against persisted employees.

One batched directory call per ``detect``. Results may be served from an
explicit ``ExistingEmployeeCache`` owned by the caller; there is no
module-level state.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Sequence, Tuple

from .directory import EmployeeDirectory
from .records import ConflictRecord, ImportRecord, PersistedEmployeeSummary
from .validation import capitalize_position

IDENTITY_FIELDS: Tuple[Tuple[str, str], ...] = (
    # (incoming record field, persisted summary field)
    ("last_name", "last_name"),
    ("first_name", "first_name"),
    ("middle_name", "middle_name"),
    ("birth_date", "birth_date"),
    ("insurance_id", "insurance_id"),
)

# Non-identity fields an import refreshes on a matched employee
REFRESHED_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("work_card_id", "work_card_id"),
    ("work_card_expiry", "work_card_expiry"),
)


class ExistingEmployeeCache:
    """TTL cache of employee summaries keyed by tax id, with an injectable clock."""

    _MISSING = object()

    def __init__(self, ttl_seconds: float = 60.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, PersistedEmployeeSummary | None]] = {}

    def get_many(self, tax_ids: Iterable[str]) -> tuple[dict[str, PersistedEmployeeSummary | None], list[str]]:
        """Return ``(hits, misses)``; a hit may be ``None`` for a known-absent tax id."""
        now = self._clock()
        hits: dict[str, PersistedEmployeeSummary | None] = {}
        misses: list[str] = []
        for tax_id in tax_ids:
            entry = self._entries.get(tax_id)
            if entry is None or now - entry[0] >= self.ttl_seconds:
                self._entries.pop(tax_id, None)
                misses.append(tax_id)
            else:
                hits[tax_id] = entry[1]
        return hits, misses

    def put_many(self, tax_ids: Iterable[str], found: Mapping[str, PersistedEmployeeSummary]) -> None:
        if self.ttl_seconds <= 0:
            return
        now = self._clock()
        for tax_id in tax_ids:
            self._entries[tax_id] = (now, found.get(tax_id))

    def invalidate(self, tax_ids: Iterable[str] | None = None) -> None:
        if tax_ids is None:
            self._entries.clear()
            return
        for tax_id in tax_ids:
            self._entries.pop(tax_id, None)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class DetectionResult:
    clean: Tuple[ImportRecord, ...] = ()
    conflicts: Tuple[ConflictRecord, ...] = ()
    matched_tax_ids: Tuple[str, ...] = ()
    pending_update_tax_ids: Tuple[str, ...] = ()


def differing_identity_fields(record: ImportRecord, existing: PersistedEmployeeSummary) -> Tuple[str, ...]:
    """
    Identity fields where the incoming record disagrees with the stored employee.

    Blank incoming values are "not supplied" and never count as a difference,
    matching the executor which never clears stored values.
    """

    differing = []
    for incoming_field, existing_field in IDENTITY_FIELDS:
        incoming = getattr(record, incoming_field)
        if incoming is None or incoming == "":
            continue
        if incoming != getattr(existing, existing_field):
            differing.append(incoming_field)
    return tuple(differing)


def pending_changes(
    record: ImportRecord,
    existing: PersistedEmployeeSummary,
    citizenship_id: int | None = None,
) -> Tuple[str, ...]:
    """Fields the executor would overwrite on a matched employee; blank incoming values are skipped."""

    changed = [
        incoming_field
        for incoming_field, existing_field in REFRESHED_FIELDS
        if getattr(record, incoming_field) not in (None, "")
        and getattr(record, incoming_field) != getattr(existing, existing_field)
    ]
    if citizenship_id is not None and citizenship_id != existing.citizenship_id:
        changed.append("citizenship")
    if record.position and capitalize_position(record.position) != existing.position_name:
        changed.append("position")
    return tuple(changed)


class ConflictDetector:
    """Splits valid records into clean ones and operator-facing conflicts."""

    def __init__(
        self,
        directory: EmployeeDirectory,
        *,
        cache: ExistingEmployeeCache | None = None,
        citizenship_id_for: Callable[[ImportRecord], int | None] | None = None,
    ) -> None:
        self.directory = directory
        self.cache = cache
        self.citizenship_id_for = citizenship_id_for

    def _existing_for(self, tax_ids: Sequence[str]) -> Mapping[str, PersistedEmployeeSummary]:
        if self.cache is None:
            return self.directory.find_by_tax_ids(tax_ids)
        hits, misses = self.cache.get_many(tax_ids)
        existing = {tax_id: summary for tax_id, summary in hits.items() if summary is not None}
        if misses:
            found = self.directory.find_by_tax_ids(misses)
            self.cache.put_many(misses, found)
            existing.update(found)
        return existing

    def detect(self, valid_records: Iterable[ImportRecord]) -> DetectionResult:
        records = tuple(valid_records)
        tax_ids = list(dict.fromkeys(record.tax_id for record in records if record.tax_id))
        existing_by_tax_id = self._existing_for(tax_ids) if tax_ids else {}

        clean: list[ImportRecord] = []
        conflicts: list[ConflictRecord] = []
        matched: list[str] = []
        pending: list[str] = []
        seen: set[str] = set()
        for record in records:
            existing = existing_by_tax_id.get(record.tax_id) if record.tax_id else None
            if existing is None:
                clean.append(record)
                continue
            if record.tax_id in seen:
                # First occurrence per tax id wins; validation flags in-file duplicates
                continue
            seen.add(record.tax_id)
            differing = differing_identity_fields(record, existing)
            if differing:
                conflicts.append(
                    ConflictRecord(
                        tax_id=record.tax_id,
                        incoming=record,
                        existing=existing,
                        differing_fields=differing,
                    )
                )
            else:
                clean.append(record)
                matched.append(record.tax_id)
                citizenship_id = self.citizenship_id_for(record) if self.citizenship_id_for else None
                if pending_changes(record, existing, citizenship_id):
                    pending.append(record.tax_id)
        return DetectionResult(
            clean=tuple(clean),
            conflicts=tuple(conflicts),
            matched_tax_ids=tuple(matched),
            pending_update_tax_ids=tuple(pending),
        )
