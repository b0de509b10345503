"""Auth commands -- run OAuth flows and manage the stored token set.

Provides the ``tokenrelay auth`` sub-command group:

    tokenrelay auth login              # authorization code + PKCE
    tokenrelay auth callback URL       # finish a flow after a restart
    tokenrelay auth client-credentials # machine-to-machine token
    tokenrelay auth refresh            # rotate the access token
    tokenrelay auth status             # what is stored
    tokenrelay auth logout             # forget everything
"""

from __future__ import annotations

import asyncio
import threading
import webbrowser
from datetime import datetime, timezone
from typing import Optional

import typer

from tokenrelay.commands._common import ctx_flag, run_in_session
from tokenrelay.output import format_response, info, success, suggest, warning
from tokenrelay.session import OAuthSession

auth_app = typer.Typer(no_args_is_help=True)


def _describe_tokens(session: OAuthSession) -> None:
    tokens = session.store.get_tokens()
    if tokens is None:
        return
    expires = tokens.expires_at.isoformat() if tokens.expires_at else "unknown"
    success(f"Access token stored ({tokens.token_type}, expires {expires}).")
    if tokens.refresh_token:
        info("Refresh token available.")


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the authorization URL instead of opening it."
    ),
    listen: bool = typer.Option(
        True,
        "--listen/--no-listen",
        help="Receive the callback on a loopback redirect URI.",
    ),
    timeout: float = typer.Option(120.0, "--timeout", help="Seconds to wait for the callback."),
) -> None:
    """Run the Authorization Code flow with PKCE.

    The pending verifier and state are persisted before the browser opens,
    so if this process dies the flow can still be completed with
    ``tokenrelay auth callback``. With a loopback redirect URI
    (``http://127.0.0.1:<port>/...``) the callback is received
    automatically; otherwise paste the URL the browser was redirected to.

    Example::

        tokenrelay auth login
        tokenrelay auth login --no-browser --no-listen
    """
    from tokenrelay.auth.loopback import is_loopback_redirect, wait_for_callback

    no_input = ctx_flag(ctx, "no_input")

    async def _login(session: OAuthSession) -> None:
        request = session.start_authorization()
        info("Open this URL to authorize:")
        info(request.redirect_url)
        if not no_browser:
            threading.Thread(target=webbrowser.open, args=(request.redirect_url,), daemon=True).start()

        redirect_uri = session.config.redirect_uri
        try:
            if listen and is_loopback_redirect(redirect_uri):
                info(f"Waiting for the callback on {redirect_uri} ...")
                callback = await asyncio.to_thread(wait_for_callback, redirect_uri, timeout)
            elif no_input:
                suggest("Finish later: tokenrelay auth callback '<redirected URL>'")
                return
            else:
                callback = await asyncio.to_thread(typer.prompt, "Paste the redirected URL")
        except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
            session.cancel_authorization()
            raise

        await session.complete_authorization(callback)
        _describe_tokens(session)

    run_in_session(ctx, _login)


@auth_app.command("callback")
def auth_callback(
    ctx: typer.Context,
    url: str = typer.Argument(help="Redirected URL (or its query string)."),
) -> None:
    """Complete a pending authorization with the redirected callback URL.

    Example::

        tokenrelay auth callback "http://localhost:3000/callback?code=abc&state=xyz"
    """

    async def _complete(session: OAuthSession) -> None:
        await session.complete_authorization(url)
        _describe_tokens(session)

    run_in_session(ctx, _complete)


@auth_app.command("cancel")
def auth_cancel(ctx: typer.Context) -> None:
    """Discard a pending authorization flow."""

    async def _cancel(session: OAuthSession) -> bool:
        had_pending = session.store.get_pending() is not None
        session.cancel_authorization()
        return had_pending

    if run_in_session(ctx, _cancel):
        success("Pending authorization discarded.")
    else:
        info("No pending authorization.")


@auth_app.command("client-credentials")
def auth_client_credentials(ctx: typer.Context) -> None:
    """Obtain a token with the Client Credentials grant."""

    async def _grant(session: OAuthSession) -> None:
        if not session.config.client_secret:
            warning("No client secret configured; the server may reject the request.")
        await session.client_credentials()
        _describe_tokens(session)

    run_in_session(ctx, _grant)


@auth_app.command("refresh")
def auth_refresh(ctx: typer.Context) -> None:
    """Refresh the access token with the stored refresh token."""

    async def _refresh(session: OAuthSession) -> None:
        await session.refresh()
        _describe_tokens(session)

    run_in_session(ctx, _refresh)


@auth_app.command("status")
def auth_status(
    ctx: typer.Context,
    show_tokens: bool = typer.Option(False, "--show-tokens", help="Print raw token values."),
) -> None:
    """Show the stored token set and any pending authorization."""

    async def _status(session: OAuthSession) -> dict[str, Optional[str]]:
        state = session.store.get()
        tokens = state.tokens
        report: dict[str, Optional[str]] = {
            "authenticated": "yes" if tokens else "no",
            "pending_authorization": "yes" if state.pending else "no",
        }
        if tokens is not None:
            report["token_type"] = tokens.token_type
            report["scope"] = tokens.scope or "-"
            report["expires_at"] = tokens.expires_at.isoformat() if tokens.expires_at else "unknown"
            report["expired"] = "yes" if tokens.is_expired(margin_seconds=0) else "no"
            report["refresh_token"] = "yes" if tokens.refresh_token else "no"
            if show_tokens:
                report["access_token"] = tokens.access_token
                report["refresh_token_value"] = tokens.refresh_token
        if state.pending is not None:
            age = datetime.now(timezone.utc) - state.pending.created_at
            report["pending_age_seconds"] = str(int(age.total_seconds()))
        return report

    format_response(run_in_session(ctx, _status))


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Clear stored tokens and any pending authorization."""

    async def _logout(session: OAuthSession) -> None:
        session.logout()

    run_in_session(ctx, _logout)
    success("Logged out.")
