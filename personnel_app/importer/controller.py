"""
Import session state machine.

States form a tagged union of frozen dataclasses:

    Upload -> Preview -> Validated -> (Conflicts | Ready) -> Executing -> Reported

Each transition builds a new state object. The choice between Conflicts and
Ready is made by ``next_stage_after_validation``, a pure function of the
validation errors and conflicts. ``Reported`` is terminal; ``reset`` starts
a new session.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, replace
from os import PathLike
from typing import IO, Any, Iterable, Mapping, Sequence, Tuple, Union

from .adapters.xlsx_employees import XLSXAdapterError, read_employee_rows
from .backend import ImportBackend
from .errors import ImporterError
from .pipeline.mapper import map_rows
from .pipeline.records import (
    ConflictRecord,
    ImportOutcome,
    ImportPlan,
    ImportRecord,
    Resolution,
    RowValidationError,
    ValidationReport,
)
from .pipeline.resolutions import ResolutionStore


class ImportStateError(ImporterError):
    """Raised when an operation is not allowed in the current state."""


class ImportStep(str, enum.Enum):
    """Operator-facing steps, in order."""

    UPLOAD = "upload"
    PREVIEW = "preview"
    CONFLICTS = "conflicts"
    READY = "ready"
    RESULTS = "results"


@dataclass(frozen=True)
class UploadState:
    last_error: str | None = None


@dataclass(frozen=True)
class PreviewState:
    rows: Tuple[Mapping[str, Any], ...]
    records: Tuple[ImportRecord, ...]
    last_error: str | None = None


@dataclass(frozen=True)
class ValidatedState:
    rows: Tuple[Mapping[str, Any], ...]
    records: Tuple[ImportRecord, ...]
    report: ValidationReport


@dataclass(frozen=True)
class ConflictsState:
    rows: Tuple[Mapping[str, Any], ...]
    records: Tuple[ImportRecord, ...]
    report: ValidationReport


@dataclass(frozen=True)
class ReadyState:
    rows: Tuple[Mapping[str, Any], ...]
    records: Tuple[ImportRecord, ...]
    report: ValidationReport
    last_error: str | None = None


@dataclass(frozen=True)
class ExecutingState:
    rows: Tuple[Mapping[str, Any], ...]
    records: Tuple[ImportRecord, ...]
    report: ValidationReport


@dataclass(frozen=True)
class ReportedState:
    records: Tuple[ImportRecord, ...]
    report: ValidationReport
    outcome: ImportOutcome


PipelineState = Union[
    UploadState,
    PreviewState,
    ValidatedState,
    ConflictsState,
    ReadyState,
    ExecutingState,
    ReportedState,
]

_STEP_BY_STATE: Mapping[type, ImportStep] = {
    UploadState: ImportStep.UPLOAD,
    PreviewState: ImportStep.PREVIEW,
    ValidatedState: ImportStep.PREVIEW,
    ConflictsState: ImportStep.CONFLICTS,
    ReadyState: ImportStep.READY,
    ExecutingState: ImportStep.READY,
    ReportedState: ImportStep.RESULTS,
}


def next_stage_after_validation(
    validation_errors: Sequence[RowValidationError],
    conflicts: Sequence[ConflictRecord],
) -> ImportStep:
    """Conflicts when the operator has errors or conflicts to review, otherwise Ready."""

    if len(validation_errors) > 0 or len(conflicts) > 0:
        return ImportStep.CONFLICTS
    return ImportStep.READY


def stage_after_validation(state: ValidatedState) -> ConflictsState | ReadyState:
    stage = next_stage_after_validation(state.report.validation_errors, state.report.conflicts)
    if stage is ImportStep.CONFLICTS:
        return ConflictsState(rows=state.rows, records=state.records, report=state.report)
    return ReadyState(rows=state.rows, records=state.records, report=state.report)


def step_for(state: PipelineState) -> ImportStep:
    return _STEP_BY_STATE[type(state)]


def build_plan(report: ValidationReport, resolutions: ResolutionStore) -> ImportPlan:
    conflict_tax_ids = set(report.conflicting_tax_ids)
    matched = set(report.matched_tax_ids)
    to_create = sum(
        1 for record in report.valid_records if record.tax_id not in conflict_tax_ids and record.tax_id not in matched
    )
    decisions = resolutions.as_mapping()
    resolved_updates = sum(1 for decision in decisions.values() if decision is Resolution.UPDATE)
    refreshed = len(matched.intersection(report.pending_update_tax_ids))
    return ImportPlan(
        to_create=to_create,
        to_update=resolved_updates + refreshed,
        to_skip=len(decisions) - resolved_updates,
        unchanged=len(matched) - refreshed,
        excluded=len(report.validation_errors),
    )


class ImportController:
    """Drives one import session through its stages against an ``ImportBackend``."""

    def __init__(self, backend: ImportBackend, *, logger: logging.Logger | None = None) -> None:
        self.backend = backend
        self.logger = logger or logging.getLogger(__name__)
        self._busy = threading.Lock()
        self._generation = 0
        self._state: PipelineState = UploadState()
        self.resolutions = ResolutionStore()

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def step(self) -> ImportStep:
        return step_for(self._state)

    @property
    def last_error(self) -> str | None:
        return getattr(self._state, "last_error", None)

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    def _require(self, *allowed: type) -> None:
        if not isinstance(self._state, allowed):
            names = ", ".join(state_type.__name__ for state_type in allowed)
            raise ImportStateError(
                f"Operation not allowed in {type(self._state).__name__}; expected one of: {names}"
            )

    # Upload -> Preview

    def load_rows(self, rows: Iterable[Mapping[str, Any]]) -> PipelineState:
        self._require(UploadState)
        rows = tuple(rows)
        self._state = PreviewState(rows=rows, records=map_rows(rows))
        self.logger.info("Employee import session loaded %s rows", len(rows))
        return self._state

    def load_workbook(self, source: str | PathLike[str] | IO[bytes]) -> PipelineState:
        self._require(UploadState)
        try:
            rows = read_employee_rows(source)
        except XLSXAdapterError as exc:
            self.logger.warning("Employee import workbook rejected: %s", exc)
            self._state = UploadState(last_error=str(exc))
            return self._state
        return self.load_rows(rows)

    # Preview -> Validated -> Conflicts | Ready

    def validate(self) -> PipelineState:
        if not self._busy.acquire(blocking=False):
            return self._state
        try:
            self._require(PreviewState)
            preview: PreviewState = self._state  # type: ignore[assignment]
            generation = self._generation
            try:
                report = self.backend.validate_import(preview.records)
            except ImporterError as exc:
                self.logger.warning("Employee import validation failed: %s", exc)
                if generation == self._generation:
                    self._state = replace(preview, last_error=str(exc))
                return self._state
            if generation != self._generation:
                return self._state
            validated = ValidatedState(rows=preview.rows, records=preview.records, report=report)
            self._state = validated
            self.resolutions = ResolutionStore(report.conflicts)
            self._state = stage_after_validation(validated)
            return self._state
        finally:
            self._busy.release()

    # Conflicts

    def set_resolution(self, tax_id: str, resolution: Resolution | str) -> None:
        self._require(ConflictsState)
        self.resolutions.set(tax_id, resolution)

    def resolve_all(self, resolution: Resolution | str) -> None:
        self._require(ConflictsState)
        self.resolutions.resolve_all(resolution)

    def proceed(self) -> PipelineState:
        """Conflicts -> Ready; undecided conflicts stay at the default ``skip``."""

        self._require(ConflictsState)
        current: ConflictsState = self._state  # type: ignore[assignment]
        self._state = ReadyState(rows=current.rows, records=current.records, report=current.report)
        return self._state

    def back(self) -> PipelineState:
        if isinstance(self._state, ReadyState):
            current = self._state
            stage = next_stage_after_validation(current.report.validation_errors, current.report.conflicts)
            if stage is ImportStep.CONFLICTS:
                self._state = ConflictsState(rows=current.rows, records=current.records, report=current.report)
            else:
                self._state = PreviewState(rows=current.rows, records=current.records)
        elif isinstance(self._state, ConflictsState):
            self._state = PreviewState(rows=self._state.rows, records=self._state.records)
            self.resolutions = ResolutionStore()
        elif isinstance(self._state, PreviewState):
            self._state = UploadState()
        else:
            raise ImportStateError(f"Cannot go back from {type(self._state).__name__}")
        return self._state

    def plan(self) -> ImportPlan:
        self._require(ConflictsState, ReadyState, ExecutingState)
        return build_plan(self._state.report, self.resolutions)  # type: ignore[union-attr]

    # Ready -> Executing -> Reported

    def execute(self) -> PipelineState:
        if not self._busy.acquire(blocking=False):
            return self._state
        try:
            if isinstance(self._state, (ExecutingState, ReportedState)):
                return self._state
            self._require(ReadyState)
            ready: ReadyState = self._state  # type: ignore[assignment]
            if not ready.report.valid_records:
                self._state = ReportedState(records=ready.records, report=ready.report, outcome=ImportOutcome())
                return self._state
            generation = self._generation
            self._state = ExecutingState(rows=ready.rows, records=ready.records, report=ready.report)
            try:
                outcome = self.backend.execute_import(ready.report.valid_records, self.resolutions.as_mapping())
            except ImporterError as exc:
                self.logger.warning("Employee import execution failed: %s", exc)
                if generation == self._generation:
                    self._state = replace(ready, last_error=str(exc))
                return self._state
            except Exception as exc:
                self.logger.exception("Unexpected error during employee import execution")
                if generation == self._generation:
                    self._state = replace(ready, last_error=f"Unexpected {type(exc).__name__} during execution")
                raise
            if generation == self._generation:
                self._state = ReportedState(records=ready.records, report=ready.report, outcome=outcome)
            return self._state
        finally:
            self._busy.release()

    def reset(self) -> PipelineState:
        """Discard every session artifact and start over at Upload."""

        self._generation += 1
        self._state = UploadState()
        self.resolutions = ResolutionStore()
        return self._state
