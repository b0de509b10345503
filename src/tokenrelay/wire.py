"""Wire formats shared by the relay client transports and the relay server.

The relay endpoints speak camelCase JSON. These models translate between
that shape and the form-urlencoded fields of an :rfc:`6749` token request,
so the client transport and the server agree on one definition.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TokenRelayRequest(BaseModel):
    """Body of ``POST /api/oauth/token``.

    Example::

        {"tokenUrl": "https://idp.test/connect/token", "clientId": "abc",
         "grantType": "authorization_code", "code": "xyz",
         "redirectUri": "https://app.test/callback", "codeVerifier": "..."}
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    token_url: str
    client_id: str
    grant_type: str
    client_secret: Optional[str] = None
    code: Optional[str] = None
    redirect_uri: Optional[str] = None
    code_verifier: Optional[str] = None
    scope: Optional[str] = None
    refresh_token: Optional[str] = None

    @classmethod
    def from_form(cls, token_url: str, form: dict[str, str]) -> TokenRelayRequest:
        return cls(token_url=token_url, **form)

    def to_form(self) -> dict[str, str]:
        """Return the form fields the relay posts to the real token endpoint."""
        form: dict[str, str] = {"client_id": self.client_id}
        if self.client_secret:
            form["client_secret"] = self.client_secret
        form["grant_type"] = self.grant_type

        if self.grant_type == "authorization_code":
            form["code"] = self.code or ""
            form["redirect_uri"] = self.redirect_uri or ""
            if self.code_verifier:
                form["code_verifier"] = self.code_verifier
        elif self.grant_type == "client_credentials":
            if self.scope:
                form["scope"] = self.scope
        elif self.grant_type == "refresh_token":
            form["refresh_token"] = self.refresh_token or ""
            if self.scope:
                form["scope"] = self.scope
        return form

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ProxyRequest(BaseModel):
    """Body of ``POST /api/proxy``."""

    url: str


class ErrorEnvelope(BaseModel):
    """Relay failure body: a message plus the upstream body, if any."""

    error: str
    details: Optional[Any] = None
