# config/monitoring.py

"""
Logging and metrics settings.

Each environment has a logging profile; explicit environment variables win
over the profile, so ``LOG_LEVEL=DEBUG`` works in production too.
"""

import os

from prometheus_client import Counter, Histogram

from .base import _coerce_bool, _parse_int

LOGGING_PROFILES = {
    "development": {
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "text",
        "ENABLE_FILE_LOGGING": True,
        "ENABLE_CONSOLE_LOGGING": True,
        "MONITORING_ENABLED": False,
    },
    "testing": {
        "LOG_LEVEL": "WARNING",
        "LOG_FORMAT": "text",
        "ENABLE_FILE_LOGGING": False,
        "ENABLE_CONSOLE_LOGGING": False,
        "MONITORING_ENABLED": False,
    },
    # Containers collect stdout, so file logs plus JSON is the default
    "production": {
        "LOG_LEVEL": "INFO",
        "LOG_FORMAT": "json",
        "ENABLE_FILE_LOGGING": True,
        "ENABLE_CONSOLE_LOGGING": False,
        "MONITORING_ENABLED": True,
    },
}

BOOLEAN_SETTINGS = ("ENABLE_FILE_LOGGING", "ENABLE_CONSOLE_LOGGING", "MONITORING_ENABLED")


def monitoring_settings(flask_env, environ=None):
    """Return logging/metrics config keys for ``flask_env``."""
    environ = os.environ if environ is None else environ
    profile = LOGGING_PROFILES.get(flask_env, LOGGING_PROFILES["development"])

    settings = {
        "LOG_LEVEL": environ.get("LOG_LEVEL", profile["LOG_LEVEL"]).upper(),
        "LOG_FORMAT": environ.get("LOG_FORMAT", profile["LOG_FORMAT"]).lower(),
        "LOG_DIR": environ.get("LOG_DIR", "logs"),
        "LOG_FILE_MAX_BYTES": _parse_int(environ.get("LOG_FILE_MAX_BYTES"), 10 * 1024 * 1024, minimum=1024),
        "LOG_FILE_BACKUP_COUNT": _parse_int(environ.get("LOG_FILE_BACKUP_COUNT"), 10, minimum=0),
        "METRICS_ENDPOINT": environ.get("METRICS_ENDPOINT", "/metrics"),
        "APP_NAME": environ.get("APP_NAME", "Personnel Registry"),
        "APP_VERSION": environ.get("APP_VERSION", "0.1.0"),
    }
    for key in BOOLEAN_SETTINGS:
        settings[key] = _coerce_bool(environ.get(key), default=profile[key])
    return settings


class ImporterMonitoring:
    """Prometheus metric helpers for the employee import pipeline."""

    STAGE_COUNTER = Counter(
        "employee_import_stage_total",
        "Total employee import stage invocations.",
        labelnames=("stage", "status"),
    )
    STAGE_LATENCY = Histogram(
        "employee_import_stage_seconds",
        "Latency histogram for employee import stages.",
        labelnames=("stage", "status"),
        buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
    )
    BATCH_SIZE = Histogram(
        "employee_import_batch_rows",
        "Number of rows submitted per employee import stage.",
        labelnames=("stage",),
        buckets=(0, 1, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000),
    )
    VALIDATION_FINDINGS = Counter(
        "employee_import_validation_findings_total",
        "Validation errors and conflicts found while validating employee imports.",
        labelnames=("kind",),
    )
    ROW_OUTCOMES = Counter(
        "employee_import_row_outcomes_total",
        "Per-row employee import execution outcomes.",
        labelnames=("outcome",),
    )

    @classmethod
    def record_validation(
        cls,
        *,
        duration_seconds: float,
        status: str,
        row_count: int,
        error_count: int = 0,
        conflict_count: int = 0,
    ):
        cls.STAGE_COUNTER.labels(stage="validate", status=status).inc()
        cls.STAGE_LATENCY.labels(stage="validate", status=status).observe(max(duration_seconds, 0.0))
        cls.BATCH_SIZE.labels(stage="validate").observe(float(max(row_count, 0)))
        if error_count:
            cls.VALIDATION_FINDINGS.labels(kind="error").inc(error_count)
        if conflict_count:
            cls.VALIDATION_FINDINGS.labels(kind="conflict").inc(conflict_count)

    @classmethod
    def record_execution(
        cls,
        *,
        duration_seconds: float,
        status: str,
        created: int = 0,
        updated: int = 0,
        skipped: int = 0,
        failed: int = 0,
        warned: int = 0,
    ):
        cls.STAGE_COUNTER.labels(stage="execute", status=status).inc()
        cls.STAGE_LATENCY.labels(stage="execute", status=status).observe(max(duration_seconds, 0.0))
        cls.BATCH_SIZE.labels(stage="execute").observe(float(max(created + updated + skipped + failed, 0)))
        for outcome, count in (
            ("created", created),
            ("updated", updated),
            ("skipped", skipped),
            ("failed", failed),
            ("warned", warned),
        ):
            if count:
                cls.ROW_OUTCOMES.labels(outcome=outcome).inc(count)
