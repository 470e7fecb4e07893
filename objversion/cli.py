"""Command line interface for the version lifecycle."""

from __future__ import annotations

import asyncio
import logging
from typing import NoReturn, Optional

import typer

from objversion import (
    ObjversionError,
    VersionService,
    get_preservation_registry,
    get_repository,
    get_workflow_engine,
)
from objversion.config import load_config
from objversion.events import get_event_log
from objversion.persistence.models import VersionSignificance
from objversion.workflows.models import StepStatus

app = typer.Typer(help="CLI for object version lifecycles")

# Command groups
object_app = typer.Typer(help="Commands for registering and inspecting objects")
version_app = typer.Typer(help="Commands for opening and closing versions")
workflow_app = typer.Typer(help="Commands for inspecting workflow steps")

app.add_typer(object_app, name="object")
app.add_typer(version_app, name="version")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main() -> None:
    """Objversion CLI entry point."""
    config = load_config()
    logging.basicConfig(level=config.log_level.upper())


def _service() -> VersionService:
    config = load_config()
    return VersionService(
        repository=get_repository(),
        workflow_engine=get_workflow_engine(),
        preservation=get_preservation_registry(),
        event_log=get_event_log(),
        sync_with_preservation=config.version_service.sync_with_preservation,
    )


def _fail(exc: Exception) -> NoReturn:
    typer.secho(f"Error: {exc}", fg=typer.colors.RED)
    raise typer.Exit(code=1)


@object_app.command("register")
def object_register(
    external_identifier: str,
    label: Optional[str] = None,
    workflow: Optional[str] = typer.Option(None, help="Workflow to start at version 1"),
) -> None:
    """Register a new object at version 1."""
    try:
        asyncio.run(_service().register(external_identifier, label=label, initial_workflow=workflow))
    except ObjversionError as exc:
        _fail(exc)
    typer.echo(f"Registered {external_identifier}")


@object_app.command("show")
def object_show(external_identifier: str) -> None:
    """
    Show the version history of an object and its current lock.

    Example:
        objversion object show druid:bc123df4567
        # Output: druid:bc123df4567 (lock druid:bc123df4567=2=3)
        #         v1 [closed] Initial version
        #         v2 [open] Fix the title
    """
    try:
        snapshot, lock = asyncio.run(get_repository().load(external_identifier))
    except ObjversionError as exc:
        _fail(exc)
    typer.echo(f"{snapshot.external_identifier} (lock {lock})")
    for record in snapshot.versions:
        state = "closed" if record.closed else "open"
        typer.echo(f"v{record.version} [{state}] {record.description}")


@version_app.command("open")
def version_open(
    external_identifier: str,
    description: str = typer.Option(..., help="Description of the version change"),
    who: Optional[str] = typer.Option(None, help="User opening the version"),
    significance: Optional[VersionSignificance] = None,
    assume_accessioned: bool = typer.Option(
        False, help="Do not require the object to have been accessioned"
    ),
) -> None:
    """Open a new version of an object."""
    try:
        version = asyncio.run(
            _service().open(
                external_identifier,
                description,
                who,
                significance=significance,
                assume_accessioned=assume_accessioned,
            )
        )
    except (ObjversionError, ValueError) as exc:
        _fail(exc)
    typer.echo(f"Opened version {version} of {external_identifier}")


@version_app.command("close")
def version_close(
    external_identifier: str,
    version: int,
    description: Optional[str] = None,
    who: Optional[str] = None,
    significance: Optional[VersionSignificance] = None,
    start_accession: bool = typer.Option(True, help="Start accessionWF after closing"),
) -> None:
    """Close an open version, starting accessioning by default."""
    try:
        asyncio.run(
            _service().close(
                external_identifier,
                version,
                description,
                who,
                significance=significance,
                start_accession=start_accession,
            )
        )
    except ObjversionError as exc:
        _fail(exc)
    typer.echo(f"Closed version {version} of {external_identifier}")


@version_app.command("status")
def version_status(external_identifiers: list[str]) -> None:
    """
    Show version status for one or more objects.

    Unknown identifiers are reported as not found.

    Example:
        objversion version status druid:bc123df4567
        # Output: druid:bc123df4567  version=2 open=True openable=False closeable=True ...
    """
    statuses = asyncio.run(_service().statuses(external_identifiers))
    for external_identifier in external_identifiers:
        status = statuses.get(external_identifier)
        if status is None:
            typer.echo(f"{external_identifier}\tnot found")
            continue
        typer.echo(
            f"{external_identifier}\tversion={status.version} open={status.open} "
            f"openable={status.openable} closeable={status.closeable} "
            f"accessioned={status.accessioned} accessioning={status.accessioning} "
            f"assembling={status.assembling}"
        )


@workflow_app.command("show")
def workflow_show(external_identifier: str, workflow_name: Optional[str] = None) -> None:
    """Show workflow steps for an object, one workflow or all of them."""
    engine = get_workflow_engine()
    try:
        if workflow_name:
            workflows = [asyncio.run(engine.fetch_instance(external_identifier, workflow_name))]
        else:
            workflows = asyncio.run(engine.list_workflows(external_identifier))
    except ObjversionError as exc:
        _fail(exc)
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.workflow_name} (active version: {wf.active_version})")
        for step in sorted(wf.steps, key=lambda s: (s.version, s.position)):
            marker = "*" if step.active_version else " "
            typer.echo(f" {marker} v{step.version} {step.name}: {step.status.value}")


@workflow_app.command("set-step")
def workflow_set_step(
    external_identifier: str,
    workflow_name: str,
    step_name: str,
    status: StepStatus,
    version: Optional[int] = None,
) -> None:
    """Set the status of a workflow step (active instance unless --version is given)."""
    try:
        asyncio.run(
            get_workflow_engine().set_step_status(
                external_identifier, workflow_name, step_name, status, version=version
            )
        )
    except (ObjversionError, ValueError) as exc:
        _fail(exc)
    typer.echo(f"{workflow_name}:{step_name} is now {status.value}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
