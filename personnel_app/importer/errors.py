"""Whole-stage failures raised by the employee import pipeline.

Row-level problems never raise: they are reported as validation errors,
conflicts, or row errors on the execution outcome.
"""

from __future__ import annotations

from http import HTTPStatus


class ImporterError(Exception):
    """Base exception for import stage failures."""

    status_code = HTTPStatus.BAD_REQUEST


class ImportPayloadError(ImporterError):
    """Raised when an import request body cannot be interpreted."""


class ImportLimitError(ImporterError):
    """Raised when a submission is empty or exceeds the configured record limit."""

    def __init__(self, record_count: int, max_records: int) -> None:
        if record_count == 0:
            message = "No employee records were provided."
        else:
            message = (
                f"Record limit exceeded: at most {max_records} records per import, "
                f"{record_count} submitted."
            )
        super().__init__(message)
        self.record_count = record_count
        self.max_records = max_records


class CallerCounterpartyError(ImporterError):
    """Raised when the caller's own counterparty is missing or unknown."""

    status_code = HTTPStatus.FORBIDDEN


class ImportTransportError(ImporterError):
    """Raised when a remote validate/execute call fails as a whole."""

    status_code = HTTPStatus.BAD_GATEWAY

    def __init__(self, message: str, *, http_status: int | None = None) -> None:
        super().__init__(message)
        self.http_status = http_status


class ImportExecutionError(ImporterError):
    """Raised when a batch cannot be committed; rows already committed stay committed."""

    status_code = HTTPStatus.SERVICE_UNAVAILABLE

    def __init__(self, message: str, *, committed: int = 0) -> None:
        super().__init__(message)
        self.committed = committed
