"""OAuth flow components.

* :mod:`~tokenrelay.auth.session_store` -- durable pending-session and token storage.
* :mod:`~tokenrelay.auth.pkce` -- verifier, challenge, and state generation.
* :mod:`~tokenrelay.auth.authorization` -- authorization redirect construction.
* :mod:`~tokenrelay.auth.callback` -- redirect callback validation.
* :mod:`~tokenrelay.auth.token_client` -- grant exchanges and refresh.
"""

from tokenrelay.auth.authorization import AuthorizationRequestBuilder
from tokenrelay.auth.callback import CallbackValidator, parse_callback_url
from tokenrelay.auth.pkce import PKCEChallengeGenerator, compute_challenge, generate_state
from tokenrelay.auth.session_store import FileSessionStore, MemorySessionStore, SessionStore
from tokenrelay.auth.token_client import (
    CancellationToken,
    DirectTokenTransport,
    RelayTokenTransport,
    TokenExchangeClient,
)

__all__ = [
    "AuthorizationRequestBuilder",
    "CallbackValidator",
    "CancellationToken",
    "DirectTokenTransport",
    "FileSessionStore",
    "MemorySessionStore",
    "PKCEChallengeGenerator",
    "RelayTokenTransport",
    "SessionStore",
    "TokenExchangeClient",
    "compute_challenge",
    "generate_state",
    "parse_callback_url",
]
