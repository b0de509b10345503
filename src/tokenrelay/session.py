"""Explicit OAuth session context.

:class:`OAuthSession` wires one client configuration, one session store,
and one shared :class:`httpx.AsyncClient` into the flow components. It is
constructed explicitly and passed where needed, so tests and callers can
run several independent sessions side by side.

Typical use::

    async with OAuthSession(settings, FileSessionStore()) as session:
        request = session.start_authorization()
        webbrowser.open(request.redirect_url)
        ...
        await session.complete_authorization(callback_url)
        envelope = await session.fetch_resource()
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Union

import httpx

from tokenrelay.auth.authorization import AuthorizationRequestBuilder
from tokenrelay.auth.callback import CallbackValidator, parse_callback_url
from tokenrelay.auth.session_store import SessionStore
from tokenrelay.auth.token_client import (
    CancellationToken,
    DirectTokenTransport,
    RelayTokenTransport,
    TokenExchangeClient,
    TokenTransport,
)
from tokenrelay.models import (
    AuthorizationRequest,
    CallbackQuery,
    ClientConfiguration,
    ResponseEnvelope,
    Settings,
    TokenSet,
)
from tokenrelay.probe.probe import ConnectorProbe
from tokenrelay.probe.registry import ConnectorRegistry, ResultLog
from tokenrelay.relay.resource import ResourceRelay

logger = logging.getLogger(__name__)

CallbackInput = Union[str, CallbackQuery, Mapping[str, Optional[str]]]


class OAuthSession:
    """One client's flow state, components, and HTTP connection pool.

    Must be used as an async context manager. On entry the store is bound
    to the configuration's fingerprint; if the configuration changed since
    the store was last used, stored tokens and any pending session are
    discarded.

    Args:
        settings: Effective settings (client config, HTTP, relay origin).
        store: Session store shared by all components.
        transport: Optional :mod:`httpx` transport, used by tests.
    """

    def __init__(
        self,
        settings: Settings,
        store: SessionStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self._cancellation: Optional[CancellationToken] = None

        self.builder = AuthorizationRequestBuilder(store)
        self.validator = CallbackValidator(store)
        self._token_client: Optional[TokenExchangeClient] = None
        self._relay: Optional[ResourceRelay] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> OAuthSession:
        request = self._settings.request
        self._http = httpx.AsyncClient(
            timeout=request.timeout,
            verify=request.verify_ssl,
            transport=self._transport,
        )
        token_transport: TokenTransport
        if self._settings.relay_url:
            token_transport = RelayTokenTransport(self._http, self._settings.relay_url)
        else:
            token_transport = DirectTokenTransport(self._http)
        self._token_client = TokenExchangeClient(self._store, token_transport)
        self._relay = ResourceRelay(
            self._store,
            self._token_client,
            self.config,
            self._http,
            self._settings.relay_url,
        )
        self._store.bind_configuration(self.config.fingerprint())
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> ClientConfiguration:
        return self._settings.client

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def token_client(self) -> TokenExchangeClient:
        assert self._token_client is not None, "Session not open -- use as async context manager"
        return self._token_client

    @property
    def relay(self) -> ResourceRelay:
        assert self._relay is not None, "Session not open -- use as async context manager"
        return self._relay

    def probe(self, registry: ConnectorRegistry, results: ResultLog) -> ConnectorProbe:
        return ConnectorProbe(registry, results, self.relay)

    # ------------------------------------------------------------------ #
    # Flow operations
    # ------------------------------------------------------------------ #

    def start_authorization(self) -> AuthorizationRequest:
        """Build the redirect URL and persist a fresh pending session."""
        self._cancellation = CancellationToken()
        return self.builder.build(self.config)

    async def complete_authorization(self, callback: CallbackInput) -> TokenSet:
        """Validate a callback and exchange its code.

        Args:
            callback: The full redirect URL, a query string, or parsed
                parameters.
        """
        query = parse_callback_url(callback) if isinstance(callback, str) else callback
        exchange = self.validator.validate(query)
        return await self.token_client.exchange_authorization_code(
            exchange, self.config, cancellation=self._cancellation
        )

    def cancel_authorization(self) -> None:
        """Abandon the current flow: fire its token and drop the pending session."""
        if self._cancellation is not None:
            self._cancellation.cancel()
        self._store.clear_pending_session()
        logger.info("Authorization flow cancelled")

    async def client_credentials(self) -> TokenSet:
        return await self.token_client.exchange_client_credentials(self.config)

    async def refresh(self) -> TokenSet:
        return await self.token_client.refresh(self.config)

    async def fetch_resource(
        self, url: Optional[str] = None, raise_for_status: bool = False
    ) -> ResponseEnvelope:
        return await self.relay.fetch_resource(url, raise_for_status=raise_for_status)

    def logout(self) -> None:
        self._store.clear()
        logger.info("Session cleared")
