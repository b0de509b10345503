"""Probe commands -- time relayed fetches of configured connectors."""

from __future__ import annotations

from typing import Optional

import typer

from tokenrelay.commands._common import run_in_session
from tokenrelay.models import PerformanceResult
from tokenrelay.output import error, get_output, info, success
from tokenrelay.session import OAuthSession

probe_app = typer.Typer(no_args_is_help=True)


def _stores():
    from tokenrelay.probe.registry import ConnectorRegistry, ResultLog

    results = ResultLog.default()
    return ConnectorRegistry.default(results), results


def _print_results(results: list[PerformanceResult], title: str) -> None:
    rows = [
        [
            r.timestamp.isoformat(timespec="seconds"),
            r.connector_id,
            f"{r.duration_ms:.1f}",
            "ok" if r.success else "fail",
            str(r.status_code) if r.status_code is not None else "-",
            r.error or "",
        ]
        for r in results
    ]
    get_output().print_table(
        ["Timestamp", "Connector", "Duration (ms)", "Result", "Status", "Error"],
        rows,
        title=title,
    )


@probe_app.command("run")
def probe_run(
    ctx: typer.Context,
    connector_id: Optional[str] = typer.Argument(None, help="Connector id to probe."),
    all_connectors: bool = typer.Option(False, "--all", "-a", help="Probe every connector."),
) -> None:
    """Probe one connector, or all of them with ``--all``.

    Example::

        tokenrelay probe run 3f2a9c0d1e4b5a6f
        tokenrelay probe run --all
    """
    if not all_connectors and connector_id is None:
        error("Pass a connector id or --all.")
        raise typer.Exit(code=2)

    registry, results = _stores()

    async def _probe(session: OAuthSession) -> list[PerformanceResult]:
        probe = session.probe(registry, results)
        if all_connectors:
            return await probe.test_all()
        assert connector_id is not None
        return [await probe.test(connector_id)]

    collected = run_in_session(ctx, _probe)
    if not collected:
        info("No connectors configured.")
        return
    _print_results(collected, "Probe results")
    failures = sum(1 for r in collected if not r.success)
    if failures:
        error(f"{failures} of {len(collected)} probe(s) failed.")
        raise typer.Exit(code=1)
    success(f"{len(collected)} probe(s) succeeded.")


@probe_app.command("results")
def probe_results(
    connector_id: Optional[str] = typer.Option(None, "--connector", "-c"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1),
) -> None:
    """Show recorded results, newest first."""
    _, results = _stores()
    entries = results.query(connector_id=connector_id, limit=limit)
    if not entries:
        info("No results recorded.")
        return
    _print_results(entries, "Recorded results")


@probe_app.command("clear")
def probe_clear(
    connector_id: Optional[str] = typer.Option(None, "--connector", "-c"),
) -> None:
    """Delete recorded results, for one connector or all."""
    _, results = _stores()
    removed = results.clear(connector_id)
    success(f"Removed {removed} result(s).")
