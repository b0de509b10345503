"""Authorization redirect construction.

:class:`AuthorizationRequestBuilder` turns a
:class:`~tokenrelay.models.ClientConfiguration` into the URL the user's
browser must visit. The pending ``{code_verifier, state}`` pair is written
to the session store *before* the URL is returned: the redirect is an
external event that may reload or restart the client, and the callback can
only be validated against what was persisted.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional
from urllib.parse import urlencode

from tokenrelay.auth.pkce import PKCEChallengeGenerator, generate_state
from tokenrelay.auth.session_store import SessionStore
from tokenrelay.models import (
    AuthorizationRequest,
    ClientConfiguration,
    PendingAuthorizationSession,
)

logger = logging.getLogger(__name__)


class AuthorizationRequestBuilder:
    """Builds authorization URLs and commits the pending session.

    Args:
        store: Session store that receives the pending session.
        generator: PKCE generator. A default instance is used when omitted.
        state_factory: Callable returning a fresh ``state`` nonce.

    Example::

        builder = AuthorizationRequestBuilder(MemorySessionStore())
        request = builder.build(config)
        webbrowser.open(request.redirect_url)
    """

    def __init__(
        self,
        store: SessionStore,
        generator: Optional[PKCEChallengeGenerator] = None,
        state_factory: Callable[[], str] = generate_state,
    ) -> None:
        self._store = store
        self._generator = generator or PKCEChallengeGenerator()
        self._state_factory = state_factory

    def build(self, config: ClientConfiguration) -> AuthorizationRequest:
        """Start a new authorization attempt.

        Any earlier pending session is overwritten; only the most recent
        attempt can complete.

        Args:
            config: The client configuration for this flow.

        Returns:
            The redirect URL and the ``state`` it carries.
        """
        state = self._state_factory()
        pkce = self._generator.generate()

        self._store.set_pending_session(
            PendingAuthorizationSession(code_verifier=pkce.code_verifier, state=state)
        )

        params = {
            "response_type": "code",
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri,
            "scope": config.scope,
            "state": state,
            "code_challenge": pkce.code_challenge,
            "code_challenge_method": "S256",
        }
        redirect_url = f"{config.authorize_url}?{urlencode(params)}"
        logger.debug("Built authorization request for client_id=%s", config.client_id)
        return AuthorizationRequest(redirect_url=redirect_url, state=state)
