"""
Employee import feature package.

Mounts the import API blueprint and the ``employees`` CLI group when
``IMPORTER_ENABLED`` is set, and records whether the importer is enabled in
``app.extensions``.
"""

from __future__ import annotations

from flask import Flask

from personnel_app.utils.importer import IMPORTER_EXTENSION_KEY, is_importer_enabled

from .cli import employees_cli, get_disabled_employees_group
from .views import employee_import_blueprint

__all__ = ["init_importer", "IMPORTER_EXTENSION_KEY"]


def _swap_cli_group(app: Flask, group) -> None:
    # init_importer runs again whenever tests flip the flag
    app.cli.commands.pop(group.name, None)
    app.cli.add_command(group)


def init_importer(app: Flask) -> None:
    """
    Mount the import blueprint and CLI, or a stub CLI group when disabled.

    Safe to call repeatedly on the same app.
    """
    enabled = is_importer_enabled(app)
    state = app.extensions.setdefault(IMPORTER_EXTENSION_KEY, {"enabled": False})
    state["enabled"] = enabled

    if not enabled:
        _swap_cli_group(app, get_disabled_employees_group())
        app.logger.info("Employee importer disabled (IMPORTER_ENABLED=false)")
        return

    if employee_import_blueprint.name not in app.blueprints:
        app.register_blueprint(employee_import_blueprint)
    _swap_cli_group(app, employees_cli)

    app.logger.info(
        "Employee importer enabled (max_records=%s, batch_size=%s)",
        app.config.get("IMPORTER_MAX_RECORDS"),
        app.config.get("IMPORTER_BATCH_SIZE"),
    )
