"""
Transport-agnostic validate/execute contract for employee imports.

``LocalImportBackend`` runs the pipeline in-process against the application
database; ``HttpImportBackend`` calls the JSON API of a remote instance. Both
raise ``ImporterError`` subclasses for whole-stage failures and report
row-level problems inside their return values.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Callable, Mapping, Protocol, Sequence

import requests
from sqlalchemy.orm import Session

from config.monitoring import ImporterMonitoring
from personnel_app.importer.errors import CallerCounterpartyError, ImportPayloadError, ImportTransportError
from personnel_app.models import db

from .pipeline.conflicts import ConflictDetector, ExistingEmployeeCache
from .pipeline.directory import (
    ReferenceDirectory,
    SqlEmployeeDirectory,
    SqlReferenceDirectory,
)
from .pipeline.executor import BatchExecutor
from .pipeline.records import (
    ImportOutcome,
    ImportRecord,
    Resolution,
    RowError,
    ValidationReport,
)
from .pipeline.validation import ValidationRules, Validator, digits_only

VALIDATE_PATH = "/api/employees/import/validate"
EXECUTE_PATH = "/api/employees/import/execute"


class ImportBackend(Protocol):
    def validate_import(self, records: Sequence[ImportRecord]) -> ValidationReport: ...

    def execute_import(
        self,
        records: Sequence[ImportRecord],
        resolutions: Mapping[str, Resolution],
    ) -> ImportOutcome: ...


class LocalImportBackend:
    """Runs validation, conflict detection and execution in-process."""

    def __init__(
        self,
        caller_counterparty_id: int,
        *,
        session: Session | None = None,
        rules: ValidationRules | None = None,
        batch_size: int = 100,
        cache: ExistingEmployeeCache | None = None,
        cache_ttl_seconds: float = 60.0,
        today: Callable[[], date] = date.today,
        logger: logging.Logger | None = None,
    ) -> None:
        self.caller_counterparty_id = caller_counterparty_id
        self.session = session or db.session
        self.rules = rules or ValidationRules()
        self.batch_size = batch_size
        # Lookups are cached per backend instance only, never across import sessions
        self.cache = cache if cache is not None else ExistingEmployeeCache(ttl_seconds=cache_ttl_seconds)
        self.today = today
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        caller_counterparty_id: int,
        *,
        cache: ExistingEmployeeCache | None = None,
        session: Session | None = None,
        logger: logging.Logger | None = None,
    ) -> "LocalImportBackend":
        return cls(
            caller_counterparty_id,
            session=session,
            rules=ValidationRules.from_config(config),
            batch_size=int(config.get("IMPORTER_BATCH_SIZE", 100)),
            cache=cache,
            cache_ttl_seconds=float(config.get("IMPORTER_EXISTING_CACHE_TTL_SECONDS", 60)),
            logger=logger,
        )

    def _validator(self, directory: ReferenceDirectory) -> Validator:
        return Validator(directory, self.caller_counterparty_id, rules=self.rules, today=self.today)

    def _prepare(self, records: Sequence[ImportRecord]) -> Validator:
        directory = SqlReferenceDirectory(self.session)
        validator = self._validator(directory)
        validator.check_limits(records)
        if directory.get_counterparty(self.caller_counterparty_id) is None:
            raise CallerCounterpartyError(f"Counterparty {self.caller_counterparty_id} does not exist.")
        directory.prefetch_counterparties(digits_only(record.organization_tax_id) for record in records)
        return validator

    def _build_report(self, records: Sequence[ImportRecord]) -> ValidationReport:
        validator = self._prepare(records)
        validation_errors = validator.validate(records)
        invalid_rows = {error.row_index for error in validation_errors}
        valid_records = tuple(validator.normalize(record) for record in records if record.row_index not in invalid_rows)

        def citizenship_id_for(record: ImportRecord) -> int | None:
            citizenship, _ = validator.resolve_citizenship(record)
            return citizenship.id if citizenship is not None else None

        detector = ConflictDetector(
            SqlEmployeeDirectory(self.session),
            cache=self.cache,
            citizenship_id_for=citizenship_id_for,
        )
        detection = detector.detect(valid_records)
        return ValidationReport(
            valid_records=valid_records,
            validation_errors=tuple(validation_errors),
            conflicts=detection.conflicts,
            matched_tax_ids=detection.matched_tax_ids,
            pending_update_tax_ids=detection.pending_update_tax_ids,
        )

    def validate_import(self, records: Sequence[ImportRecord]) -> ValidationReport:
        started = time.perf_counter()
        records = tuple(records)
        try:
            report = self._build_report(records)
        except Exception:
            ImporterMonitoring.record_validation(
                duration_seconds=time.perf_counter() - started,
                status="error",
                row_count=len(records),
            )
            raise
        ImporterMonitoring.record_validation(
            duration_seconds=time.perf_counter() - started,
            status="success",
            row_count=len(records),
            error_count=len(report.validation_errors),
            conflict_count=len(report.conflicts),
        )
        self.logger.info(
            "Employee import validated %s rows (valid=%s errors=%s conflicts=%s unchanged=%s)",
            len(records),
            len(report.valid_records),
            len(report.validation_errors),
            len(report.conflicts),
            len(report.matched_tax_ids),
        )
        return report

    def execute_import(
        self,
        records: Sequence[ImportRecord],
        resolutions: Mapping[str, Resolution],
    ) -> ImportOutcome:
        records = tuple(records)
        validator = self._prepare(records)

        # Submitted rows are re-checked; rows that no longer pass fail individually
        rejected: list[RowError] = []
        invalid_rows: set[int] = set()
        for error in validator.validate(records):
            invalid_rows.add(error.row_index)
            rejected.append(
                RowError(error.row_index, error.last_name, "Validation failed: " + "; ".join(error.messages))
            )
        working_set = [record for record in records if record.row_index not in invalid_rows]

        executor = BatchExecutor(validator, session=self.session, batch_size=self.batch_size)
        outcome = executor.execute(working_set, resolutions)
        self.cache.invalidate(digits_only(record.tax_id) for record in working_set)
        if not rejected:
            return outcome
        errors = sorted((*rejected, *outcome.errors), key=lambda error: (error.row_index, not error.fatal))
        return ImportOutcome(
            created=outcome.created,
            updated=outcome.updated,
            skipped=outcome.skipped,
            errors=tuple(errors),
        )


class HttpImportBackend:
    """Calls a remote instance's import API. No automatic retry."""

    def __init__(
        self,
        base_url: str,
        *,
        caller_counterparty_id: int,
        timeout: float = 300.0,
        token: str | None = None,
        session: requests.Session | None = None,
        counterparty_header: str = "X-Counterparty-Id",
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.caller_counterparty_id = caller_counterparty_id
        self.timeout = timeout
        self.session: requests.Session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)
        self._headers = {
            "Content-Type": "application/json",
            counterparty_header: str(caller_counterparty_id),
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def _post(self, path: str, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, headers=self._headers, json=payload, timeout=self.timeout)
        except requests.Timeout as exc:
            raise ImportTransportError(f"Import request to {url} timed out after {self.timeout:g}s") from exc
        except requests.RequestException as exc:
            raise ImportTransportError(f"Import request to {url} failed: {exc}") from exc

        if not response.ok:
            try:
                error_data = response.json()
                error_msg = error_data.get("error") if isinstance(error_data, Mapping) else None
            except ValueError:
                error_msg = None
            error_msg = error_msg or (response.text or "").strip()[:200] or "no response body"
            self.logger.error(
                "Import request to %s failed with HTTP %s: %s",
                url,
                response.status_code,
                error_msg,
            )
            raise ImportTransportError(
                f"Import request failed with HTTP {response.status_code}: {error_msg}",
                http_status=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ImportTransportError(f"Import response from {url} is not valid JSON") from exc
        if not isinstance(data, Mapping):
            raise ImportTransportError(f"Import response from {url} is not a JSON object")
        return data

    def validate_import(self, records: Sequence[ImportRecord]) -> ValidationReport:
        data = self._post(
            VALIDATE_PATH,
            {
                "counterparty_id": self.caller_counterparty_id,
                "records": [record.as_dict() for record in records],
            },
        )
        try:
            return ValidationReport.from_dict(data)
        except ImportPayloadError as exc:
            raise ImportTransportError(f"Unexpected validation response: {exc}") from exc

    def execute_import(
        self,
        records: Sequence[ImportRecord],
        resolutions: Mapping[str, Resolution],
    ) -> ImportOutcome:
        data = self._post(
            EXECUTE_PATH,
            {
                "counterparty_id": self.caller_counterparty_id,
                "records": [record.as_dict() for record in records],
                "conflict_resolutions": {
                    tax_id: Resolution.parse(resolution).value for tax_id, resolution in resolutions.items()
                },
            },
        )
        try:
            return ImportOutcome.from_dict(data)
        except ImportPayloadError as exc:
            raise ImportTransportError(f"Unexpected execution response: {exc}") from exc
