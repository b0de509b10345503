"""Exception hierarchy for tokenrelay.

All exceptions inherit from :class:`TokenRelayError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`tokenrelay.exit_codes`.
The CLI entry point in :func:`tokenrelay.app.main` catches ``TokenRelayError``
and exits with the matching code. Library callers catch the specific
subclasses to decide whether a flow must restart.

Subclass hierarchy::

    TokenRelayError (exit 1)
    +-- ConfigError               (exit 2)
    +-- ProtocolError             (exit 7)
    +-- SecurityError             (exit 4)
    +-- SessionExpiredError       (exit 3)
    +-- AuthorizationDeniedError  (exit 3)
    +-- NoRefreshTokenError       (exit 3)
    +-- TokenMissingError         (exit 3)
    +-- HttpError                 (exit 5)
    +-- NetworkError              (exit 6)
    +-- FlowCancelledError        (exit 130)
    +-- ConnectorNotFoundError    (exit 2)
"""

from __future__ import annotations

from typing import Any

from tokenrelay.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_HTTP_ERROR,
    EXIT_INVALID_USAGE,
    EXIT_PROTOCOL_ERROR,
    EXIT_SECURITY_ERROR,
)


class TokenRelayError(Exception):
    """Base exception for all tokenrelay errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(TokenRelayError):
    """Raised for invalid or incomplete client configuration."""

    exit_code = EXIT_INVALID_USAGE


class ProtocolError(TokenRelayError):
    """Raised when a callback or token response does not follow the protocol."""

    exit_code = EXIT_PROTOCOL_ERROR


class SecurityError(TokenRelayError):
    """Raised when the callback ``state`` differs from the pending session."""

    exit_code = EXIT_SECURITY_ERROR


class SessionExpiredError(TokenRelayError):
    """Raised when no pending authorization exists (missing or already consumed).

    The flow must restart from
    :meth:`~tokenrelay.auth.authorization.AuthorizationRequestBuilder.build`.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str = "no pending authorization session; restart the flow"):
        super().__init__(message)


class AuthorizationDeniedError(TokenRelayError):
    """Raised when the authorization server redirects back with an ``error``.

    Args:
        error: The OAuth error code (e.g. ``access_denied``).
        description: Optional ``error_description`` from the redirect.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, error: str, description: str | None = None):
        message = f"Authorization denied: {error}"
        if description:
            message += f" - {description}"
        super().__init__(message)
        self.error = error
        self.description = description


class NoRefreshTokenError(TokenRelayError):
    """Raised when a refresh is requested but no refresh token is stored."""

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str = "No refresh token available"):
        super().__init__(message)


class TokenMissingError(TokenRelayError):
    """Raised when a resource fetch is attempted without an access token."""

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str = "No access token available. Please authenticate first."):
        super().__init__(message)


class HttpError(TokenRelayError):
    """Raised for a non-2xx answer from a token or resource endpoint.

    Args:
        status: HTTP status code of the failing response.
        body: Response body, decoded JSON when possible, raw text otherwise.
        reason: Optional HTTP reason phrase.
    """

    exit_code = EXIT_HTTP_ERROR

    def __init__(self, status: int, body: Any = None, reason: str = ""):
        message = f"HTTP {status}"
        if reason:
            message += f" {reason}"
        if body:
            message += f": {_preview(body)}"
        super().__init__(message)
        self.status = status
        self.body = body
        self.reason = reason


class NetworkError(TokenRelayError):
    """Raised on transport failures (timeout, DNS, refused connection)."""

    exit_code = EXIT_CONNECTION_ERROR


class FlowCancelledError(TokenRelayError):
    """Raised when an authorization flow was cancelled before tokens were committed."""

    exit_code = EXIT_CANCELLED

    def __init__(self, message: str = "Authorization flow was cancelled"):
        super().__init__(message)


class ConnectorNotFoundError(TokenRelayError):
    """Raised when a connector id does not exist in the registry."""

    exit_code = EXIT_INVALID_USAGE

    def __init__(self, connector_id: str):
        super().__init__(f"Connector with id {connector_id} not found")
        self.connector_id = connector_id


def _preview(body: Any, limit: int = 200) -> str:
    text = body if isinstance(body, str) else repr(body)
    return text if len(text) <= limit else text[:limit] + "..."
