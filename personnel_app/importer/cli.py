"""
``flask employees`` commands.

``import`` drives one controller session end to end: read the workbook,
validate, apply conflict decisions from the command line, confirm and
execute. ``--remote`` runs the same flow against another instance's API.
``recalc-card-status`` re-applies the card completeness rule to stored
employees after reference data changes.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Sequence

import click
from flask import current_app
from flask.cli import AppGroup
from sqlalchemy import select

from personnel_app.models import Employee, EmployeeCardStatus, db

from .adapters.xlsx_employees import write_template
from .backend import HttpImportBackend, ImportBackend, LocalImportBackend
from .contracts import FULL_NAME_HEADERS, get_employee_field_specs
from .controller import ConflictsState, ImportController, PreviewState, ReadyState, ReportedState, UploadState
from .errors import ImporterError
from .pipeline.records import ImportOutcome, ImportPlan, Resolution, ValidationReport

employees_cli = AppGroup("employees", help="Employee bulk import commands.")

RESOLUTION_CHOICES = [resolution.value for resolution in Resolution]


def get_disabled_employees_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the importer is disabled.
    """

    @click.group(name="employees", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Employee import commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _parse_resolution_options(values: Sequence[str]) -> dict[str, Resolution]:
    decisions: dict[str, Resolution] = {}
    for value in values:
        tax_id, separator, decision = value.partition("=")
        if not separator or not tax_id.strip():
            raise click.BadParameter(f"Expected TAX_ID=update|skip, got {value!r}.", param_hint="--resolve")
        try:
            decisions[tax_id.strip()] = Resolution.parse(decision)
        except ImporterError as exc:
            raise click.BadParameter(str(exc), param_hint="--resolve") from exc
    return decisions


def _build_backend(counterparty_id: int, remote: Optional[str]) -> ImportBackend:
    config = current_app.config
    if remote:
        return HttpImportBackend(
            remote,
            caller_counterparty_id=counterparty_id,
            timeout=float(config.get("IMPORTER_HTTP_TIMEOUT_SECONDS", 300)),
            token=config.get("IMPORTER_API_TOKEN"),
            counterparty_header=config.get("IMPORTER_COUNTERPARTY_HEADER", "X-Counterparty-Id"),
            logger=current_app.logger,
        )
    return LocalImportBackend.from_config(
        config,
        counterparty_id,
        logger=current_app.logger,
    )


def _format_report(report: ValidationReport) -> str:
    lines = [
        "Validation:",
        f"  valid rows: {len(report.valid_records)}",
        f"  rows with errors: {len(report.validation_errors)}",
        f"  conflicts: {len(report.conflicts)}",
    ]
    for error in report.validation_errors:
        name = error.last_name or "-"
        lines.append(f"  row {error.row_index} ({name}): " + "; ".join(error.messages))
    for conflict in report.conflicts:
        lines.append(
            f"  conflict {conflict.tax_id} (row {conflict.incoming.row_index}): "
            f"differs in {', '.join(conflict.differing_fields)}"
        )
    return "\n".join(lines)


def _format_plan(plan: ImportPlan) -> str:
    return (
        f"Plan: create={plan.to_create} update={plan.to_update} skip={plan.to_skip} "
        f"unchanged={plan.unchanged} excluded={plan.excluded}"
    )


def _format_outcome(outcome: ImportOutcome) -> str:
    lines = [
        "Import finished:",
        f"  created: {outcome.created}",
        f"  updated: {outcome.updated}",
        f"  skipped: {outcome.skipped}",
        f"  failed: {outcome.failed}",
        f"  warned: {outcome.warned}",
    ]
    for error in outcome.errors:
        label = "error" if error.fatal else "warning"
        lines.append(f"  row {error.row_index} ({error.last_name or '-'}) {label}: {error.error}")
    return "\n".join(lines)


def _summary_payload(
    report: ValidationReport,
    plan: ImportPlan,
    outcome: Optional[ImportOutcome],
    *,
    status: str,
) -> dict:
    return {
        "status": status,
        "validation": {
            "valid": len(report.valid_records),
            "validation_errors": [error.as_dict() for error in report.validation_errors],
            "conflicts": [conflict.as_dict() for conflict in report.conflicts],
        },
        "plan": plan.as_dict(),
        "outcome": outcome.as_dict() if outcome is not None else None,
    }


@employees_cli.command("import")
@click.argument("file_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--counterparty-id", required=True, type=int, help="Caller's own counterparty id.")
@click.option(
    "--resolve-all",
    type=click.Choice(RESOLUTION_CHOICES),
    help="Apply one decision to every conflict before individual --resolve options.",
)
@click.option(
    "--resolve",
    "resolve_options",
    multiple=True,
    metavar="TAX_ID=update|skip",
    help="Decision for a single conflicting tax id. Repeatable.",
)
@click.option("--remote", metavar="URL", help="Run against a remote instance's import API.")
@click.option("--yes", is_flag=True, help="Execute without asking for confirmation.")
@click.option("--json", "as_json", is_flag=True, help="Emit a machine-readable summary.")
def import_employees(
    file_path: Path,
    counterparty_id: int,
    resolve_all: Optional[str],
    resolve_options: Sequence[str],
    remote: Optional[str],
    yes: bool,
    as_json: bool,
):
    """Import employees from an .xlsx workbook."""
    if as_json and not yes:
        raise click.UsageError("--json requires --yes.")
    decisions = _parse_resolution_options(resolve_options)
    remote = remote or current_app.config.get("IMPORTER_API_BASE_URL") or None

    controller = ImportController(_build_backend(counterparty_id, remote), logger=current_app.logger)

    state = controller.load_workbook(file_path)
    if isinstance(state, UploadState):
        raise click.ClickException(state.last_error or "Workbook could not be read.")

    state = controller.validate()
    if isinstance(state, PreviewState):
        raise click.ClickException(f"Validation failed: {state.last_error}")

    if isinstance(state, ConflictsState):
        if resolve_all:
            controller.resolve_all(resolve_all)
        for tax_id, decision in decisions.items():
            try:
                controller.set_resolution(tax_id, decision)
            except KeyError as exc:
                raise click.BadParameter(f"No conflict for tax id {tax_id}.", param_hint="--resolve") from exc
        state = controller.proceed()
    elif decisions:
        raise click.BadParameter("The workbook produced no conflicts.", param_hint="--resolve")

    report = state.report
    plan = controller.plan()
    if not as_json:
        click.echo(_format_report(report))
        click.echo(_format_plan(plan))

    if not report.valid_records:
        if as_json:
            click.echo(json.dumps(_summary_payload(report, plan, None, status="nothing_to_import"), indent=2))
        raise click.ClickException("No valid rows to import.")

    if not yes and not click.confirm("Apply these changes?", default=False):
        click.echo("Import cancelled.")
        return

    state = controller.execute()
    if isinstance(state, ReadyState):
        raise click.ClickException(f"Import failed: {state.last_error}")
    if not isinstance(state, ReportedState):
        raise click.ClickException("Import did not complete.")

    outcome = state.outcome
    current_app.logger.info(
        "Employee import via CLI finished (created=%s updated=%s skipped=%s failed=%s warned=%s)",
        outcome.created,
        outcome.updated,
        outcome.skipped,
        outcome.failed,
        outcome.warned,
    )
    if as_json:
        click.echo(json.dumps(_summary_payload(report, plan, outcome, status="completed"), indent=2))
    else:
        click.echo(_format_outcome(outcome))


@employees_cli.command("template")
@click.option(
    "--output",
    "output_path",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Write an empty .xlsx workbook with the canonical header row.",
)
def employees_template(output_path: Optional[Path]):
    """Print the import header contract."""
    if output_path is not None:
        write_template(output_path)
        click.echo(f"Template written to {output_path}")
        return
    for spec in get_employee_field_specs():
        marker = "*" if spec.required else " "
        aliases = ", ".join(spec.aliases)
        click.echo(f"{marker} {spec.header:<20} {spec.name:<22} aliases: {aliases}")
    click.echo(f"  combined name headers: {', '.join(FULL_NAME_HEADERS)}")


@employees_cli.command("recalc-card-status")
@click.option("--batch-size", type=click.IntRange(min=1), help="Employees per commit (default IMPORTER_BATCH_SIZE).")
@click.option("--dry-run", is_flag=True, help="Report status changes without saving them.")
def recalc_card_status(batch_size: Optional[int], dry_run: bool):
    """Recompute draft/complete card status for every stored employee."""
    size = batch_size or int(current_app.config.get("IMPORTER_BATCH_SIZE", 100))
    completed = drafted = 0
    last_id = 0
    while True:
        employees = db.session.scalars(
            select(Employee).where(Employee.id > last_id).order_by(Employee.id).limit(size)
        ).all()
        if not employees:
            break
        for employee in employees:
            status = employee.expected_card_status()
            if employee.card_status is status:
                continue
            click.echo(f"  employee {employee.id}: {employee.card_status.value} -> {status.value}")
            if status is EmployeeCardStatus.COMPLETE:
                completed += 1
            else:
                drafted += 1
            if not dry_run:
                employee.card_status = status
        last_id = employees[-1].id
        if not dry_run:
            db.session.commit()

    suffix = " (dry run, nothing saved)" if dry_run else ""
    click.echo(f"Card statuses changed: complete={completed} draft={drafted}{suffix}")
    current_app.logger.info(
        "Employee card statuses recalculated (complete=%s draft=%s dry_run=%s)", completed, drafted, dry_run
    )
