"""Helpers shared by the command modules."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from tokenrelay.auth.session_store import FileSessionStore
from tokenrelay.exceptions import TokenRelayError
from tokenrelay.models import Settings
from tokenrelay.output import error
from tokenrelay.session import OAuthSession

T = TypeVar("T")


def ctx_settings(ctx: Optional[typer.Context]) -> Settings:
    """Resolve settings, honouring the root ``--relay-url`` flag."""
    from tokenrelay.config import resolve_settings

    relay_url = ctx.obj.get("relay_url") if ctx is not None and ctx.obj else None
    return resolve_settings(cli_relay_url=relay_url)


def run_in_session(
    ctx: Optional[typer.Context],
    action: Callable[[OAuthSession], Awaitable[T]],
) -> T:
    """Open an :class:`OAuthSession` on the file store and run *action* in it.

    A :class:`TokenRelayError` is reported on stderr and turned into
    ``typer.Exit`` with the error's exit code.
    """

    async def _runner() -> T:
        async with OAuthSession(ctx_settings(ctx), FileSessionStore()) as session:
            return await action(session)

    return guarded(lambda: asyncio.run(_runner()))


def guarded(call: Callable[[], T]) -> T:
    try:
        return call()
    except TokenRelayError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def ctx_flag(ctx: Optional[typer.Context], name: str) -> Any:
    return ctx.obj.get(name, False) if ctx is not None and ctx.obj else False
