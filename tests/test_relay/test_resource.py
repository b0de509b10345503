"""Tests for ResourceRelay fetches, including the refresh-and-retry path."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from tokenrelay.auth.session_store import MemorySessionStore
from tokenrelay.auth.token_client import DirectTokenTransport, TokenExchangeClient
from tokenrelay.exceptions import HttpError, NetworkError, TokenMissingError
from tokenrelay.models import ClientConfiguration, TokenSet
from tokenrelay.relay.resource import ResourceRelay

TOKEN_PATH = "/connect/token"


def _relay(
    store: MemorySessionStore,
    config: ClientConfiguration,
    handler: Callable[[httpx.Request], httpx.Response],
    relay_url: str | None = None,
) -> tuple[ResourceRelay, httpx.AsyncClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    token_client = TokenExchangeClient(store, DirectTokenTransport(http))
    return ResourceRelay(store, token_client, config, http, relay_url), http


@pytest.fixture
def authed_store() -> MemorySessionStore:
    store = MemorySessionStore()
    store.set_tokens(TokenSet(access_token="a1", refresh_token="r1"))
    return store


class TestFetchResource:
    async def test_success_uses_bearer_and_default_url(
        self, authed_store: MemorySessionStore, client_config: ClientConfiguration
    ) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"sub": "u1"},
                headers={"Content-Encoding": "identity", "X-Trace": "t"},
            )

        relay, http = _relay(authed_store, client_config, handler)
        async with http:
            envelope = await relay.fetch_resource()

        assert str(seen[0].url) == "https://api.test/me"
        assert seen[0].method == "GET"
        assert seen[0].headers["authorization"] == "Bearer a1"
        assert envelope.status == 200
        assert envelope.json() == {"sub": "u1"}
        lowered = {k.lower() for k in envelope.headers}
        assert "x-trace" in lowered
        assert "content-encoding" not in lowered
        assert "content-length" not in lowered

    async def test_binary_body_unchanged(
        self, authed_store: MemorySessionStore, client_config: ClientConfiguration
    ) -> None:
        payload = bytes(range(256)) * 4
        relay, http = _relay(
            authed_store,
            client_config,
            lambda request: httpx.Response(
                200, content=payload, headers={"Content-Type": "application/octet-stream"}
            ),
        )
        async with http:
            envelope = await relay.fetch_resource("https://api.test/blob")
        assert envelope.body == payload
        assert envelope.content_type == "application/octet-stream"

    async def test_no_token(self, client_config: ClientConfiguration) -> None:
        calls: list[httpx.Request] = []
        relay, http = _relay(
            MemorySessionStore(),
            client_config,
            lambda request: calls.append(request) or httpx.Response(200),
        )
        async with http:
            with pytest.raises(TokenMissingError, match="Please authenticate first"):
                await relay.fetch_resource()
        assert calls == []

    async def test_401_refreshes_and_retries_once(
        self, authed_store: MemorySessionStore, client_config: ClientConfiguration
    ) -> None:
        resource_auth: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == TOKEN_PATH:
                return httpx.Response(200, json={"access_token": "a2", "expires_in": 60})
            resource_auth.append(request.headers["authorization"])
            if request.headers["authorization"] == "Bearer a1":
                return httpx.Response(401)
            return httpx.Response(200, text="fresh")

        relay, http = _relay(authed_store, client_config, handler)
        async with http:
            envelope = await relay.fetch_resource()

        assert envelope.text == "fresh"
        assert resource_auth == ["Bearer a1", "Bearer a2"]
        assert authed_store.get_tokens().access_token == "a2"
        assert authed_store.get_tokens().refresh_token == "r1"

    async def test_double_401_raises_after_one_refresh(
        self, authed_store: MemorySessionStore, client_config: ClientConfiguration
    ) -> None:
        counts = {"resource": 0, "token": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == TOKEN_PATH:
                counts["token"] += 1
                return httpx.Response(200, json={"access_token": f"a{counts['token'] + 1}"})
            counts["resource"] += 1
            return httpx.Response(401, json={"error": "invalid_token"})

        relay, http = _relay(authed_store, client_config, handler)
        async with http:
            with pytest.raises(HttpError) as exc_info:
                await relay.fetch_resource()

        assert exc_info.value.status == 401
        assert counts == {"resource": 2, "token": 1}

    async def test_401_without_refresh_token(self, client_config: ClientConfiguration) -> None:
        store = MemorySessionStore()
        store.set_tokens(TokenSet(access_token="a1"))
        token_calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == TOKEN_PATH:
                token_calls.append(request)
            return httpx.Response(401)

        relay, http = _relay(store, client_config, handler)
        async with http:
            with pytest.raises(HttpError) as exc_info:
                await relay.fetch_resource()
        assert exc_info.value.status == 401
        assert token_calls == []

    async def test_other_errors_returned_unless_raise_for_status(
        self, authed_store: MemorySessionStore, client_config: ClientConfiguration
    ) -> None:
        relay, http = _relay(
            authed_store,
            client_config,
            lambda request: httpx.Response(503, text="down"),
        )
        async with http:
            envelope = await relay.fetch_resource()
            assert envelope.status == 503
            assert not envelope.ok
            with pytest.raises(HttpError) as exc_info:
                await relay.fetch_resource(raise_for_status=True)
        assert exc_info.value.status == 503

    async def test_transport_failure(
        self, authed_store: MemorySessionStore, client_config: ClientConfiguration
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        relay, http = _relay(authed_store, client_config, handler)
        async with http:
            with pytest.raises(NetworkError):
                await relay.fetch_resource()


class TestRelayedFetch:
    async def test_posts_to_relay_proxy(
        self, authed_store: MemorySessionStore, client_config: ClientConfiguration
    ) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        relay, http = _relay(authed_store, client_config, handler, relay_url="http://relay.test/")
        async with http:
            envelope = await relay.fetch_resource("https://api.test/items")

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "http://relay.test/api/proxy"
        assert request.headers["authorization"] == "Bearer a1"
        body: dict[str, Any] = json.loads(request.content)
        assert body == {"url": "https://api.test/items"}
        assert envelope.json() == {"ok": True}
