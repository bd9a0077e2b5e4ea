"""Employee import pipeline stages."""

from __future__ import annotations

from .conflicts import ConflictDetector, DetectionResult, ExistingEmployeeCache, differing_identity_fields
from .directory import (
    CitizenshipRef,
    CounterpartyRef,
    DirectoryLookupError,
    SqlEmployeeDirectory,
    SqlReferenceDirectory,
)
from .executor import BatchExecutor
from .mapper import clean_text, map_row, map_rows, parse_date
from .records import (
    ConflictRecord,
    FieldError,
    ImportOutcome,
    ImportPlan,
    ImportRecord,
    PersistedEmployeeSummary,
    Resolution,
    RowError,
    RowOutcome,
    RowOutcomeKind,
    RowValidationError,
    ValidationReport,
    records_from_payload,
    resolutions_from_payload,
)
from .resolutions import DEFAULT_RESOLUTION, ResolutionStore
from .validation import ValidationRules, Validator, capitalize_position

__all__ = [
    "BatchExecutor",
    "CitizenshipRef",
    "ConflictDetector",
    "ConflictRecord",
    "CounterpartyRef",
    "DEFAULT_RESOLUTION",
    "DetectionResult",
    "DirectoryLookupError",
    "ExistingEmployeeCache",
    "FieldError",
    "ImportOutcome",
    "ImportPlan",
    "ImportRecord",
    "PersistedEmployeeSummary",
    "Resolution",
    "ResolutionStore",
    "RowError",
    "RowOutcome",
    "RowOutcomeKind",
    "RowValidationError",
    "SqlEmployeeDirectory",
    "SqlReferenceDirectory",
    "ValidationReport",
    "ValidationRules",
    "Validator",
    "capitalize_position",
    "clean_text",
    "differing_identity_fields",
    "map_row",
    "map_rows",
    "parse_date",
    "records_from_payload",
    "resolutions_from_payload",
]
