"""PKCE (Proof Key for Code Exchange) utilities.

Implements :rfc:`7636` with the S256 method:

- ``code_verifier``: 43-128 characters of unreserved URI characters
- ``code_challenge``: ``BASE64URL(SHA256(code_verifier))`` without padding

The ``state`` nonce is drawn from the same cryptographically secure source
as the verifier, independently of it.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from tokenrelay.models import PKCEMaterial

VERIFIER_BYTES = 32
STATE_BYTES = 32


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def compute_challenge(code_verifier: str) -> str:
    """Compute the S256 ``code_challenge`` for *code_verifier*.

    Example:
        >>> compute_challenge("dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk")
        'E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM'
    """
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return _b64url(digest)


def generate_state() -> str:
    """Return an unguessable ``state`` nonce (32 random bytes, base64url)."""
    return _b64url(secrets.token_bytes(STATE_BYTES))


class PKCEChallengeGenerator:
    """Produces fresh :class:`~tokenrelay.models.PKCEMaterial`.

    Each call draws 32 bytes from :mod:`secrets`, which yields a
    43-character verifier. The generator holds no state.
    """

    def generate(self) -> PKCEMaterial:
        code_verifier = _b64url(secrets.token_bytes(VERIFIER_BYTES))
        return PKCEMaterial(
            code_verifier=code_verifier,
            code_challenge=compute_challenge(code_verifier),
        )
