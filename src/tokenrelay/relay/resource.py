"""Client-side relay for bearer-authenticated resource requests.

:class:`ResourceRelay` attaches the stored access token to a request for an
arbitrary upstream URL and sends it either through a relay server
(``POST /api/proxy``) or directly. On a ``401`` it refreshes once through
:meth:`~tokenrelay.auth.token_client.TokenExchangeClient.refresh` and
retries exactly once; a second ``401`` is surfaced, never looped on.

Responses come back as :class:`~tokenrelay.models.ResponseEnvelope` with
hop-by-hop headers removed and body bytes untouched.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from tokenrelay.auth.session_store import SessionStore
from tokenrelay.auth.token_client import TokenExchangeClient
from tokenrelay.exceptions import HttpError, NetworkError, TokenMissingError
from tokenrelay.models import ClientConfiguration, ResponseEnvelope
from tokenrelay.relay.headers import sanitize_headers

logger = logging.getLogger(__name__)


def _error_body(envelope: ResponseEnvelope) -> object:
    try:
        return envelope.json()
    except ValueError:
        return envelope.text


class ResourceRelay:
    """Fetches protected resources with the current access token.

    Args:
        store: Session store holding the token set.
        token_client: Used for the refresh-and-retry path.
        config: Client configuration (refresh parameters and default URL).
        http: Shared async HTTP client.
        relay_url: Relay server origin. When ``None``, requests go straight
            to the upstream URL.

    Example::

        relay = ResourceRelay(store, token_client, config, http, "http://localhost:8080")
        envelope = await relay.fetch_resource("https://api.example.com/me")
        print(envelope.status, envelope.text)
    """

    def __init__(
        self,
        store: SessionStore,
        token_client: TokenExchangeClient,
        config: ClientConfiguration,
        http: httpx.AsyncClient,
        relay_url: Optional[str] = None,
    ) -> None:
        self._store = store
        self._token_client = token_client
        self._config = config
        self._http = http
        self._relay_url = relay_url.rstrip("/") if relay_url else None

    async def fetch_resource(
        self,
        url: Optional[str] = None,
        raise_for_status: bool = False,
    ) -> ResponseEnvelope:
        """Fetch *url* (default: the configured protected resource).

        Args:
            url: Upstream resource URL.
            raise_for_status: Raise :class:`HttpError` for any non-2xx
                answer instead of returning it.

        Returns:
            The sanitised response envelope.

        Raises:
            TokenMissingError: No access token is stored.
            HttpError: ``401`` that survived one refresh, ``401`` with no
                refresh token, or any non-2xx when *raise_for_status*.
            NetworkError: Transport failure.
        """
        target = url or self._config.protected_resource_url
        tokens = self._store.get_tokens()
        if tokens is None or not tokens.access_token:
            raise TokenMissingError()

        envelope = await self._send(target, tokens.access_token)

        if envelope.status == 401:
            current = self._store.get_tokens()
            if current is None or not current.refresh_token:
                raise HttpError(401, _error_body(envelope), envelope.reason)
            logger.info("Resource returned 401; refreshing token and retrying once")
            refreshed = await self._token_client.refresh(self._config)
            envelope = await self._send(target, refreshed.access_token)
            if envelope.status == 401:
                raise HttpError(401, _error_body(envelope), envelope.reason)

        if raise_for_status and not envelope.ok:
            raise HttpError(envelope.status, _error_body(envelope), envelope.reason)
        return envelope

    async def _send(self, url: str, access_token: str) -> ResponseEnvelope:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            if self._relay_url is not None:
                response = await self._http.post(
                    f"{self._relay_url}/api/proxy",
                    json={"url": url},
                    headers=headers,
                )
            else:
                response = await self._http.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Request to {url} failed: {exc}") from exc

        logger.debug("Fetched %s -> %d", url, response.status_code)
        return ResponseEnvelope(
            status=response.status_code,
            headers=sanitize_headers(response.headers.multi_items()),
            body=response.content,
            reason=response.reason_phrase,
        )
