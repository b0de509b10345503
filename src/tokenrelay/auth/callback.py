"""Redirect callback validation.

:class:`CallbackValidator` is the gate between the browser redirect and
the token exchange. It has one entry point and four failure outcomes,
checked in this order:

1. ``error`` present -- :class:`~tokenrelay.exceptions.AuthorizationDeniedError`.
2. ``code`` or ``state`` missing -- :class:`~tokenrelay.exceptions.ProtocolError`.
3. no pending session -- :class:`~tokenrelay.exceptions.SessionExpiredError`.
4. ``state`` differs from the pending one -- :class:`~tokenrelay.exceptions.SecurityError`.

On success the pending session stays in the store. It is cleared only by
a successful exchange, so a failed exchange can be retried without
another browser round trip.
"""

from __future__ import annotations

import logging
import secrets
from typing import Mapping, Union
from urllib.parse import parse_qs, urlparse

from tokenrelay.auth.session_store import SessionStore
from tokenrelay.exceptions import (
    AuthorizationDeniedError,
    ProtocolError,
    SecurityError,
    SessionExpiredError,
)
from tokenrelay.models import CallbackQuery, ExchangeRequest

logger = logging.getLogger(__name__)


def parse_callback_url(url: str) -> CallbackQuery:
    """Extract callback parameters from a redirect URL or bare query string.

    Example::

        parse_callback_url("https://app.test/callback?code=xyz&state=abc")
        # CallbackQuery(code='xyz', state='abc', error=None, ...)
    """
    query = urlparse(url).query if "?" in url or "://" in url else url.lstrip("?")
    params = parse_qs(query, keep_blank_values=True)

    def first(name: str) -> str | None:
        values = params.get(name)
        return values[0] if values else None

    return CallbackQuery(
        code=first("code"),
        state=first("state"),
        error=first("error"),
        error_description=first("error_description"),
    )


class CallbackValidator:
    """Checks callback parameters against the pending session."""

    def __init__(self, store: SessionStore) -> None:
        self._store = store

    def validate(
        self, query: Union[CallbackQuery, Mapping[str, str | None]]
    ) -> ExchangeRequest:
        """Validate a callback and return the exchange request.

        Args:
            query: Parsed callback parameters, as a model or a plain mapping.

        Returns:
            An :class:`~tokenrelay.models.ExchangeRequest` carrying the code
            and the stored ``code_verifier``.

        Raises:
            AuthorizationDeniedError: The server returned an ``error``.
            ProtocolError: ``code`` or ``state`` is absent.
            SessionExpiredError: No pending session exists.
            SecurityError: ``state`` does not match (possible CSRF).
        """
        if not isinstance(query, CallbackQuery):
            query = CallbackQuery.model_validate(dict(query))

        if query.error:
            logger.warning("Authorization server returned error=%s", query.error)
            raise AuthorizationDeniedError(query.error, query.error_description)

        if not query.code or not query.state:
            raise ProtocolError("missing code or state")

        pending = self._store.get_pending()
        if pending is None:
            raise SessionExpiredError()

        if not secrets.compare_digest(query.state.encode("utf-8"), pending.state.encode("utf-8")):
            logger.warning("Rejected callback: state mismatch")
            raise SecurityError("state mismatch")

        return ExchangeRequest(code=query.code, code_verifier=pending.code_verifier)
