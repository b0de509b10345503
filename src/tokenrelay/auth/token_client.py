"""Token endpoint client for the three supported grants.

:class:`TokenExchangeClient` runs the ``authorization_code``,
``client_credentials``, and ``refresh_token`` grants, normalises each
response into a :class:`~tokenrelay.models.TokenSet`, and writes it to the
session store. The HTTP leg is delegated to a transport:

* :class:`DirectTokenTransport` -- form-urlencoded POST to the token endpoint.
* :class:`RelayTokenTransport` -- camelCase JSON POST to a relay server's
  ``/api/oauth/token``, which performs the same form encoding server-side.

Both transports return the token endpoint's JSON unchanged, so both yield
the same ``TokenSet``.

Refreshes are single-flight: while one refresh is on the wire, further
``refresh()`` calls await its outcome instead of starting their own.

See Also:
    :class:`~tokenrelay.relay.resource.ResourceRelay` -- calls
    :meth:`TokenExchangeClient.refresh` after a ``401``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from tokenrelay.auth.session_store import SessionStore
from tokenrelay.exceptions import (
    FlowCancelledError,
    HttpError,
    NetworkError,
    NoRefreshTokenError,
    ProtocolError,
)
from tokenrelay.models import ClientConfiguration, ExchangeRequest, TokenSet
from tokenrelay.wire import TokenRelayRequest

logger = logging.getLogger(__name__)


def _response_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text."""
    try:
        return response.json()
    except ValueError:
        return response.text


class CancellationToken:
    """Cooperative cancellation flag for one authorization flow.

    The token exchange checks it before and after the token request; a
    cancelled flow commits nothing and leaves the store untouched. Dropping
    the pending session is up to whoever cancels, see
    :meth:`~tokenrelay.session.OAuthSession.cancel_authorization`.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise FlowCancelledError()


# ------------------------------------------------------------------ #
# Transports
# ------------------------------------------------------------------ #


class TokenTransport(ABC):
    """Sends one token request and returns the decoded JSON response."""

    @abstractmethod
    async def request_token(self, token_url: str, form: dict[str, str]) -> Any:
        """POST the grant *form* for *token_url*.

        Raises:
            HttpError: On a non-2xx response.
            NetworkError: On transport failure.
            ProtocolError: If a 2xx body is not JSON.
        """
        ...


class DirectTokenTransport(TokenTransport):
    """Form-urlencoded POST straight to the token endpoint."""

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def request_token(self, token_url: str, form: dict[str, str]) -> Any:
        try:
            response = await self._http.post(
                token_url,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise NetworkError(f"Token request to {token_url} failed: {exc}") from exc
        return _decode_token_response(response)


class RelayTokenTransport(TokenTransport):
    """JSON POST to a relay server, which forwards the grant server-side.

    Args:
        http: Shared async HTTP client.
        relay_url: Relay origin, e.g. ``http://localhost:8080``.
    """

    def __init__(self, http: httpx.AsyncClient, relay_url: str) -> None:
        self._http = http
        self._endpoint = f"{relay_url.rstrip('/')}/api/oauth/token"

    async def request_token(self, token_url: str, form: dict[str, str]) -> Any:
        body = TokenRelayRequest.from_form(token_url, form).to_json()
        try:
            response = await self._http.post(self._endpoint, json=body)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Relay request to {self._endpoint} failed: {exc}") from exc
        return _decode_token_response(response, relayed=True)


def _decode_token_response(response: httpx.Response, relayed: bool = False) -> Any:
    if not response.is_success:
        body = _response_body(response)
        # The relay wraps upstream failures as {"error", "details"}.
        if relayed and isinstance(body, dict) and body.get("details") is not None:
            body = body["details"]
        raise HttpError(response.status_code, body, response.reason_phrase)
    try:
        return response.json()
    except ValueError as exc:
        raise ProtocolError(f"Token endpoint returned a non-JSON body: {exc}") from exc


# ------------------------------------------------------------------ #
# Client
# ------------------------------------------------------------------ #


class TokenExchangeClient:
    """Runs grant exchanges and keeps the session store current.

    Args:
        store: Session store that receives token sets.
        transport: Direct or relay transport for the token request.

    Example::

        async with httpx.AsyncClient() as http:
            client = TokenExchangeClient(store, DirectTokenTransport(http))
            tokens = await client.exchange_client_credentials(config)
    """

    def __init__(self, store: SessionStore, transport: TokenTransport) -> None:
        self._store = store
        self._transport = transport
        self._inflight_refresh: Optional[asyncio.Future[TokenSet]] = None

    @property
    def refresh_in_progress(self) -> bool:
        return self._inflight_refresh is not None

    async def exchange_authorization_code(
        self,
        request: ExchangeRequest,
        config: ClientConfiguration,
        cancellation: Optional[CancellationToken] = None,
    ) -> TokenSet:
        """Exchange an authorization code for tokens.

        On success the token set is stored and the pending session is
        cleared in the same replacement, so the ``(code, state)`` pair can
        never be replayed. On failure the pending session is kept.

        Raises:
            HttpError: Non-2xx token response.
            NetworkError: Transport failure.
            ProtocolError: Response lacks ``access_token``.
            FlowCancelledError: *cancellation* fired before commit.
        """
        if cancellation is not None:
            cancellation.raise_if_cancelled()

        form: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": request.code,
            "redirect_uri": config.redirect_uri,
            "client_id": config.client_id,
        }
        if config.client_secret:
            form["client_secret"] = config.client_secret
        form["code_verifier"] = request.code_verifier

        tokens = _normalise(await self._transport.request_token(config.token_url, form))

        # The canceller owns the pending session; a newer flow may already hold it.
        if cancellation is not None:
            cancellation.raise_if_cancelled()

        self._store.commit_exchange(tokens)
        logger.info("Authorization code exchanged (refresh_token=%s)", tokens.refresh_token is not None)
        return tokens

    async def exchange_client_credentials(self, config: ClientConfiguration) -> TokenSet:
        """Obtain tokens with the ``client_credentials`` grant. No PKCE is involved."""
        form: dict[str, str] = {
            "grant_type": "client_credentials",
            "client_id": config.client_id,
        }
        if config.client_secret:
            form["client_secret"] = config.client_secret
        form["scope"] = config.scope

        tokens = _normalise(await self._transport.request_token(config.token_url, form))
        self._store.set_tokens(tokens)
        logger.info("Client credentials token obtained")
        return tokens

    async def refresh(self, config: ClientConfiguration) -> TokenSet:
        """Refresh the access token, joining an in-flight refresh if there is one.

        A response without ``refresh_token`` keeps the stored one. On any
        failure the stored tokens are left untouched.

        Raises:
            NoRefreshTokenError: Nothing to refresh with.
            HttpError: Non-2xx token response.
            NetworkError: Transport failure.
        """
        if self._inflight_refresh is not None:
            logger.debug("Joining in-flight token refresh")
            return await asyncio.shield(self._inflight_refresh)

        future: asyncio.Future[TokenSet] = asyncio.get_running_loop().create_future()
        self._inflight_refresh = future
        try:
            tokens = await self._do_refresh(config)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            future.exception()  # mark retrieved when nobody joined
            raise
        else:
            future.set_result(tokens)
            return tokens
        finally:
            self._inflight_refresh = None

    async def _do_refresh(self, config: ClientConfiguration) -> TokenSet:
        current = self._store.get_tokens()
        if current is None or not current.refresh_token:
            raise NoRefreshTokenError()

        form: dict[str, str] = {
            "grant_type": "refresh_token",
            "refresh_token": current.refresh_token,
            "client_id": config.client_id,
        }
        if config.client_secret:
            form["client_secret"] = config.client_secret

        tokens = _normalise(await self._transport.request_token(config.token_url, form))
        if tokens.refresh_token is None:
            tokens = tokens.model_copy(update={"refresh_token": current.refresh_token})
        self._store.set_tokens(tokens)
        logger.info("Access token refreshed")
        return tokens


def _normalise(data: Any) -> TokenSet:
    if not isinstance(data, dict) or not data.get("access_token"):
        raise ProtocolError("Token response missing 'access_token' field")
    try:
        return TokenSet.from_token_response(data)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"Malformed token response: {exc}") from exc
