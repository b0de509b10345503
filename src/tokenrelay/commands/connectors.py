"""Connector commands -- manage the endpoints measured by ``tokenrelay probe``."""

from __future__ import annotations

from typing import Optional

import typer

from tokenrelay.commands._common import guarded
from tokenrelay.output import get_output, info, success, suggest

connectors_app = typer.Typer(no_args_is_help=True)


def _registry():
    from tokenrelay.probe.registry import ConnectorRegistry, ResultLog

    return ConnectorRegistry.default(ResultLog.default())


@connectors_app.command("list")
def connectors_list() -> None:
    """List configured connectors."""
    connectors = _registry().list()
    if not connectors:
        info("No connectors configured.")
        suggest("Add one: tokenrelay connectors add NAME URL")
        return
    rows = [[c.id, c.name, c.url, c.description or ""] for c in connectors]
    get_output().print_table(["ID", "Name", "URL", "Description"], rows, title="Connectors")


@connectors_app.command("add")
def connectors_add(
    name: str = typer.Argument(help="Display name."),
    url: str = typer.Argument(help="Resource URL to fetch."),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
) -> None:
    """Register a connector.

    Example::

        tokenrelay connectors add "Profile API" https://api.example.com/me
    """
    connector = _registry().add(name, url, description)
    success(f"Added connector {connector.id} ({connector.name}).")
    suggest(f"Probe it: tokenrelay probe run {connector.id}")


@connectors_app.command("update")
def connectors_update(
    connector_id: str = typer.Argument(help="Connector id."),
    name: Optional[str] = typer.Option(None, "--name"),
    url: Optional[str] = typer.Option(None, "--url"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
) -> None:
    """Change a connector's name, URL, or description."""
    connector = guarded(lambda: _registry().update(connector_id, name, url, description))
    success(f"Updated connector {connector.id} ({connector.name}).")


@connectors_app.command("remove")
def connectors_remove(
    ctx: typer.Context,
    connector_id: str = typer.Argument(help="Connector id."),
) -> None:
    """Delete a connector together with its probe results."""
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm(f"Remove connector {connector_id} and its results?"):
        info("Cancelled.")
        raise typer.Exit()

    if _registry().delete(connector_id):
        success(f"Removed connector {connector_id}.")
    else:
        info(f"No connector with id {connector_id}.")
        raise typer.Exit(code=2)
