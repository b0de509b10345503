"""Fetch command -- call a protected resource with the stored token."""

from __future__ import annotations

from typing import Optional

import typer

from tokenrelay.commands._common import run_in_session
from tokenrelay.models import ResponseEnvelope
from tokenrelay.output import info, print_envelope
from tokenrelay.session import OAuthSession


def fetch_command(
    ctx: typer.Context,
    url: Optional[str] = typer.Argument(
        None, help="Resource URL. Defaults to the configured protected resource."
    ),
    include_headers: bool = typer.Option(
        False, "--include", "-i", help="Print response headers to stderr."
    ),
) -> None:
    """Fetch a protected resource, refreshing the token once on 401.

    The body is written to stdout unchanged; status and headers go to
    stderr.

    Example::

        tokenrelay fetch
        tokenrelay fetch https://api.example.com/me --include
    """

    async def _fetch(session: OAuthSession) -> ResponseEnvelope:
        return await session.fetch_resource(url, raise_for_status=True)

    envelope = run_in_session(ctx, _fetch)
    info(f"HTTP {envelope.status} {envelope.reason}".rstrip())
    if include_headers:
        for name, value in envelope.headers.items():
            info(f"{name}: {value}")
    print_envelope(envelope)
