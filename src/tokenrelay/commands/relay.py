"""Relay commands -- run the token/proxy relay server."""

from __future__ import annotations

from typing import Optional

import typer

from tokenrelay.commands._common import ctx_settings
from tokenrelay.output import info

relay_app = typer.Typer(no_args_is_help=True)


@relay_app.command("serve")
def relay_serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Bind address."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port."),
) -> None:
    """Serve ``POST /api/oauth/token`` and ``POST /api/proxy``.

    Example::

        tokenrelay relay serve --port 8080
    """
    from tokenrelay.relay.server import run_relay_server

    settings = ctx_settings(ctx)
    info(
        f"Relay listening on {host or settings.relay.host}:{port or settings.relay.port}"
    )
    run_relay_server(settings, host=host, port=port)
