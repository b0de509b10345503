"""Tests for OAuthSession: the full flow over one shared HTTP client."""

from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from tokenrelay.auth.session_store import MemorySessionStore
from tokenrelay.exceptions import FlowCancelledError, SessionExpiredError
from tokenrelay.models import ClientConfiguration, Settings, TokenSet
from tokenrelay.session import OAuthSession


def _idp(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/connect/token":
        return httpx.Response(200, json={"access_token": "at-1", "refresh_token": "rt-1"})
    if request.headers.get("authorization") == "Bearer at-1":
        return httpx.Response(200, json={"sub": "u1"})
    return httpx.Response(401)


class TestOAuthSession:
    async def test_full_authorization_code_flow(self, settings: Settings) -> None:
        store = MemorySessionStore()
        async with OAuthSession(settings, store, transport=httpx.MockTransport(_idp)) as session:
            request = session.start_authorization()
            state = parse_qs(urlparse(request.redirect_url).query)["state"][0]

            tokens = await session.complete_authorization(
                f"https://app.test/callback?code=xyz&state={state}"
            )
            envelope = await session.fetch_resource()

        assert tokens.access_token == "at-1"
        assert envelope.json() == {"sub": "u1"}
        assert store.get_pending() is None

    async def test_replay_after_success(self, settings: Settings) -> None:
        async with OAuthSession(
            settings, MemorySessionStore(), transport=httpx.MockTransport(_idp)
        ) as session:
            request = session.start_authorization()
            callback = f"https://app.test/callback?code=xyz&state={request.state}"
            await session.complete_authorization(callback)
            with pytest.raises(SessionExpiredError):
                await session.complete_authorization(callback)

    async def test_cancelled_flow(self, settings: Settings) -> None:
        store = MemorySessionStore()
        async with OAuthSession(settings, store, transport=httpx.MockTransport(_idp)) as session:
            request = session.start_authorization()
            session.cancel_authorization()
            with pytest.raises(SessionExpiredError):
                await session.complete_authorization(
                    {"code": "xyz", "state": request.state}
                )
        assert store.get_tokens() is None

    async def test_late_cancelled_exchange_spares_next_flow(self, settings: Settings) -> None:
        store = MemorySessionStore()
        arrived = asyncio.Event()
        release = asyncio.Event()

        async def slow_idp(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/connect/token" and not release.is_set():
                arrived.set()
                await release.wait()
            return _idp(request)

        async with OAuthSession(settings, store, transport=httpx.MockTransport(slow_idp)) as session:
            first = session.start_authorization()
            stale = asyncio.create_task(
                session.complete_authorization({"code": "a", "state": first.state})
            )
            await arrived.wait()
            session.cancel_authorization()
            second = session.start_authorization()
            release.set()

            with pytest.raises(FlowCancelledError):
                await stale
            assert store.get_tokens() is None
            assert store.get_pending().state == second.state

            tokens = await session.complete_authorization({"code": "b", "state": second.state})
        assert tokens.access_token == "at-1"
        assert store.get_pending() is None

    async def test_configuration_change_invalidates_store(self, settings: Settings) -> None:
        store = MemorySessionStore()
        async with OAuthSession(settings, store) as session:
            session.store.set_tokens(TokenSet(access_token="old"))

        changed = Settings(client=ClientConfiguration(base_url="https://other.test"))
        async with OAuthSession(changed, store):
            pass
        assert store.get_tokens() is None

    async def test_relay_mode_routes_through_relay(self, client_config: ClientConfiguration) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"access_token": "cc"})

        settings = Settings(client=client_config, relay_url="http://relay.test")
        async with OAuthSession(
            settings, MemorySessionStore(), transport=httpx.MockTransport(handler)
        ) as session:
            await session.client_credentials()
            await session.fetch_resource()

        assert seen == ["http://relay.test/api/oauth/token", "http://relay.test/api/proxy"]

    async def test_logout(self, settings: Settings) -> None:
        store = MemorySessionStore()
        store.set_tokens(TokenSet(access_token="a"))
        async with OAuthSession(settings, store) as session:
            session.logout()
        assert store.get_tokens() is None
