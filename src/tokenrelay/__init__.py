"""tokenrelay -- OAuth 2.1 client flows, token lifecycle, and a credential relay.

This package drives the client side of OAuth 2.1: the Authorization Code
grant with PKCE, the Client Credentials grant, and refresh-token rotation.
Tokens live in a durable :class:`~tokenrelay.auth.session_store.SessionStore`
and are attached to outgoing requests by a
:class:`~tokenrelay.relay.resource.ResourceRelay`, which refreshes once on
``401`` and sanitises forwarded responses.

Typical workflow::

    tokenrelay config set client.client_id my-client
    tokenrelay auth login              # browser redirect + code exchange
    tokenrelay fetch                   # call the protected resource
    tokenrelay relay serve             # run the same-origin relay server

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware settings resolution and persistence.
    session: :class:`~tokenrelay.session.OAuthSession` context object.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.1.0"
