"""
Accessors for the employee importer's feature flag and per-app state.

Both work with an explicit ``app`` or the current application context.
"""

from __future__ import annotations

from typing import Optional

from flask import Flask, current_app

IMPORTER_EXTENSION_KEY = "employee_importer"


def _resolve(app: Optional[Flask]) -> Flask:
    return app if app is not None else current_app


def is_importer_enabled(app: Optional[Flask] = None) -> bool:
    return bool(_resolve(app).config.get("IMPORTER_ENABLED", False))


def get_importer_state(app: Optional[Flask] = None) -> dict:
    """State dict written by ``init_importer``; empty before registration."""
    return _resolve(app).extensions.get(IMPORTER_EXTENSION_KEY, {})

