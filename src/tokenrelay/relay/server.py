"""Same-origin relay server.

A small FastAPI application that performs the two operations a browser
or other constrained client should not do itself:

* ``POST /api/oauth/token`` -- takes a camelCase JSON grant
  (:class:`~tokenrelay.wire.TokenRelayRequest`), form-encodes it, posts it
  to the real token endpoint, and returns the upstream JSON verbatim. On
  failure it answers ``{"error", "details"}`` with the upstream status.
* ``POST /api/proxy`` -- issues ``GET url`` upstream with the caller's
  ``Authorization`` header and answers with the upstream status, the
  sanitised headers, and the raw body bytes.

Start it with ``tokenrelay relay serve`` or :func:`run_relay_server`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from tokenrelay import __version__
from tokenrelay.models import Settings
from tokenrelay.relay.headers import strip_hop_by_hop
from tokenrelay.wire import ErrorEnvelope, ProxyRequest, TokenRelayRequest

logger = logging.getLogger(__name__)


def _upstream_body(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _error(status: int, message: str, details: object = None) -> JSONResponse:
    envelope = ErrorEnvelope(error=message, details=details)
    return JSONResponse(status_code=status, content=envelope.model_dump(exclude_none=True))


def create_relay_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the relay application.

    Args:
        settings: Supplies HTTP timeout, TLS verification, and CORS origins.
        transport: Optional upstream transport (tests inject
            :class:`httpx.MockTransport`).

    Returns:
        A configured :class:`fastapi.FastAPI` instance.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.http = httpx.AsyncClient(
            timeout=settings.request.timeout,
            verify=settings.request.verify_ssl,
            transport=transport,
        )
        try:
            yield
        finally:
            await app.state.http.aclose()

    app = FastAPI(
        title="tokenrelay",
        description="OAuth token exchange and resource forwarding relay.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.relay.cors_origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    @app.post("/api/oauth/token")
    async def exchange_token(body: TokenRelayRequest, request: Request) -> Response:
        http: httpx.AsyncClient = request.app.state.http
        logger.info("Relaying %s grant to %s", body.grant_type, body.token_url)
        try:
            upstream = await http.post(
                body.token_url,
                data=body.to_form(),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.error("Token relay transport error: %s", exc)
            return _error(502, str(exc) or exc.__class__.__name__)

        details = _upstream_body(upstream)
        if not upstream.is_success:
            logger.warning("Token endpoint answered %d", upstream.status_code)
            return _error(
                upstream.status_code,
                f"Request failed with status code {upstream.status_code}",
                details,
            )
        if not isinstance(details, (dict, list)):
            return _error(502, "Token endpoint returned a non-JSON body", details)
        return JSONResponse(status_code=upstream.status_code, content=details)

    @app.post("/api/proxy")
    async def proxy(body: ProxyRequest, request: Request) -> Response:
        http: httpx.AsyncClient = request.app.state.http
        auth_header = request.headers.get("authorization")
        logger.info("Proxying connector call to %s", body.url)
        try:
            upstream = await http.get(
                body.url,
                headers={"Authorization": auth_header} if auth_header else {},
            )
        except httpx.HTTPError as exc:
            logger.error("Proxy transport error for %s: %s", body.url, exc)
            return _error(502, str(exc) or exc.__class__.__name__)

        response = Response(content=upstream.content, status_code=upstream.status_code)
        for name, value in strip_hop_by_hop(upstream.headers.multi_items()):
            response.headers.append(name, value)
        return response

    return app


def run_relay_server(settings: Settings, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Serve the relay with uvicorn until interrupted."""
    import uvicorn

    app = create_relay_app(settings)
    uvicorn.run(
        app,
        host=host or settings.relay.host,
        port=port or settings.relay.port,
        log_level="info",
    )
