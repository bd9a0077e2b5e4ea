"""
Application logging setup driven by the monitoring configuration.

``LOG_FORMAT=json`` emits one JSON object per line; ``text`` is the readable
development format. Console and rotating file handlers are toggled by
``ENABLE_CONSOLE_LOGGING`` and ``ENABLE_FILE_LOGGING``.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any

from flask import Flask, has_request_context, request
from flask.logging import default_handler

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_STDLIB_KEYS: frozenset[str] = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()) | {
    "message",
    "taskName",
}


class JSONFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def __init__(self, *, app_name: str, app_version: str) -> None:
        super().__init__()
        self.app_name = app_name
        self.app_version = app_version

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": self.app_name,
            "version": self.app_version,
        }
        if has_request_context():
            payload["method"] = request.method
            payload["path"] = request.path

        # Structured extra= fields
        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload["exc_type"] = type(record.exc_info[1]).__name__
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_formatter(app: Flask) -> logging.Formatter:
    if str(app.config.get("LOG_FORMAT", "text")).lower() == "json":
        return JSONFormatter(
            app_name=app.config.get("APP_NAME", "Personnel Registry"),
            app_version=app.config.get("APP_VERSION", "0.1.0"),
        )
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(app: Flask) -> None:
    """Attach console/file handlers to ``app.logger`` according to config."""

    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    formatter = _build_formatter(app)

    package_logger = logging.getLogger("personnel_app")
    # Re-running setup (tests, reloader) must not stack handlers
    for target in (app.logger, package_logger):
        for handler in list(target.handlers):
            if getattr(handler, "_personnel_handler", False):
                target.removeHandler(handler)
                handler.close()

    handlers: list[logging.Handler] = []
    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        app.logger.removeHandler(default_handler)
        handlers.append(logging.StreamHandler())

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        try:
            os.makedirs(log_dir, exist_ok=True)
            handlers.append(
                RotatingFileHandler(
                    os.path.join(log_dir, "personnel.log"),
                    maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10485760)),
                    backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 10)),
                    encoding="utf-8",
                )
            )
        except OSError as exc:
            app.logger.warning("File logging disabled, cannot use %s: %s", log_dir, exc)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        handler._personnel_handler = True  # type: ignore[attr-defined]
        app.logger.addHandler(handler)

    app.logger.setLevel(level)
    # Pipeline modules log under the package namespace outside an app context
    package_logger.setLevel(level)
    for handler in handlers:
        package_logger.addHandler(handler)
