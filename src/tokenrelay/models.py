"""Canonical Pydantic models shared across all tokenrelay modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ClientConfiguration`, :class:`RequestConfig`,
    :class:`RelayServerConfig`, and :class:`Settings`.

**Protocol models** -- produced and consumed by the OAuth flow:
    :class:`PKCEMaterial`, :class:`PendingAuthorizationSession`,
    :class:`AuthorizationRequest`, :class:`CallbackQuery`,
    :class:`ExchangeRequest`, :class:`TokenSet`, :class:`SessionState`, and
    :class:`ResponseEnvelope`.

**Probe models** -- persisted by the connector probe:
    :class:`Connector` and :class:`PerformanceResult`.
"""

from __future__ import annotations

import hashlib
import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Configuration ---


class ClientConfiguration(BaseModel):
    """OAuth client settings for one authorization server.

    Immutable for the duration of a flow. Changing any field invalidates
    stored tokens and the pending session (see
    :meth:`~tokenrelay.session.OAuthSession.__aenter__`).

    Example::

        ClientConfiguration(
            base_url="https://idp.test",
            client_id="abc",
            redirect_uri="https://app.test/callback",
            scope="openid",
        )
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = Field(
        default="https://your-oauth-server.com",
        description="Authorization server origin, e.g. https://idp.example.com",
    )
    client_id: str = Field(default="your_client_id")
    client_secret: Optional[str] = Field(
        default=None,
        description="Confidential client secret; leave unset for a public PKCE client",
    )
    redirect_uri: str = Field(default="http://localhost:3000/callback")
    protected_resource_url: str = Field(
        default="https://your-oauth-server.com/api/resource"
    )
    scope: str = Field(default="openid profile email")
    authorize_endpoint_path: str = Field(default="/connect/authorize")
    token_endpoint_path: str = Field(default="/connect/token")

    @property
    def authorize_url(self) -> str:
        return f"{self.base_url}{self.authorize_endpoint_path}"

    @property
    def token_url(self) -> str:
        return f"{self.base_url}{self.token_endpoint_path}"

    def fingerprint(self) -> str:
        """Stable digest of every field, used to detect configuration changes."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class RequestConfig(BaseModel):
    """HTTP settings applied to token and resource calls."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")


class RelayServerConfig(BaseModel):
    """Settings for the relay HTTP server."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class Settings(BaseModel):
    """Everything persisted in ``settings.json``.

    Loaded by :func:`~tokenrelay.config.load_settings` and layered under
    environment variables by :func:`~tokenrelay.config.resolve_settings`.
    When ``relay_url`` is set, token exchanges and resource fetches go
    through the relay server at that origin instead of hitting the
    endpoints directly.
    """

    client: ClientConfiguration = Field(default_factory=ClientConfiguration)
    request: RequestConfig = Field(default_factory=RequestConfig)
    relay: RelayServerConfig = Field(default_factory=RelayServerConfig)
    relay_url: Optional[str] = Field(
        default=None, description="Origin of a relay server, e.g. http://localhost:8080"
    )


# --- Protocol ---


class PKCEMaterial(BaseModel):
    """A ``code_verifier`` and its S256 ``code_challenge``."""

    model_config = ConfigDict(frozen=True)

    code_verifier: str
    code_challenge: str


class PendingAuthorizationSession(BaseModel):
    """Material that must survive the browser redirect."""

    model_config = ConfigDict(frozen=True)

    code_verifier: str
    state: str
    created_at: datetime = Field(default_factory=_utcnow)


class AuthorizationRequest(BaseModel):
    """Result of building an authorization redirect."""

    model_config = ConfigDict(frozen=True)

    redirect_url: str
    state: str


class CallbackQuery(BaseModel):
    """Query parameters received on the redirect URI."""

    model_config = ConfigDict(frozen=True)

    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None


class ExchangeRequest(BaseModel):
    """A validated callback ready to be exchanged for tokens."""

    model_config = ConfigDict(frozen=True)

    code: str
    code_verifier: str


class TokenSet(BaseModel):
    """Normalised token endpoint response.

    ``refresh_token`` is "last known good": a refresh response that omits
    it keeps the previous value (see
    :meth:`~tokenrelay.auth.token_client.TokenExchangeClient.refresh`).
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    scope: str = ""
    obtained_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_token_response(cls, data: dict[str, Any]) -> TokenSet:
        """Build a token set from token endpoint JSON.

        Raises:
            KeyError: If ``access_token`` is absent.
        """
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            token_type=data.get("token_type") or "Bearer",
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=data.get("scope") or "",
        )

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.expires_in is None:
            return None
        return self.obtained_at + timedelta(seconds=self.expires_in)

    def is_expired(self, margin_seconds: int = 30) -> bool:
        expires = self.expires_at
        if expires is None:
            return False
        return _utcnow() >= expires - timedelta(seconds=margin_seconds)


class SessionState(BaseModel):
    """The whole record held by a session store.

    Stores replace this record wholesale on every write, so readers never
    observe a token set from one exchange paired with a refresh token from
    another.
    """

    model_config = ConfigDict(frozen=True)

    tokens: Optional[TokenSet] = None
    pending: Optional[PendingAuthorizationSession] = None
    config_fingerprint: Optional[str] = None


class ResponseEnvelope(BaseModel):
    """A relayed response: status, sanitised headers, and raw body bytes."""

    model_config = ConfigDict(frozen=True)

    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    reason: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


# --- Probe ---


def _connector_id() -> str:
    return secrets.token_hex(8)


class Connector(BaseModel):
    """A named endpoint measured by the connector probe.

    ``id`` is generated once and never changes; updates go through
    :meth:`~tokenrelay.probe.registry.ConnectorRegistry.update`.
    """

    id: str = Field(default_factory=_connector_id)
    name: str
    url: str
    description: Optional[str] = None


class PerformanceResult(BaseModel):
    """One timed probe of a connector. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    connector_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    duration_ms: float = 0.0
    success: bool = False
    error: Optional[str] = None
    status_code: Optional[int] = None
