"""Durable storage for the pending authorization and the issued token set.

The store holds exactly one :class:`~tokenrelay.models.SessionState`
record. Every mutation builds a new record and replaces the old one
wholesale; there is no partial field update, so a reader never sees an
access token from one exchange next to a refresh token from another.

Two implementations are provided:

* :class:`MemorySessionStore` -- process-local, for tests and one-shot use.
* :class:`FileSessionStore` -- JSON on disk (``0o600``, atomic rename), so a
  pending session survives the process restart that a browser redirect can
  cause.

See Also:
    :class:`~tokenrelay.session.OAuthSession` -- binds a store to a
    client configuration.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from tokenrelay.config import atomic_write, get_session_path
from tokenrelay.models import PendingAuthorizationSession, SessionState, TokenSet

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Abstract whole-record store for :class:`~tokenrelay.models.SessionState`.

    Subclasses implement :meth:`load` and :meth:`save`; every other
    operation is a read-modify-replace built on those two.
    """

    @abstractmethod
    def load(self) -> SessionState:
        """Return the current record (an empty one if nothing is stored)."""
        ...

    @abstractmethod
    def save(self, state: SessionState) -> None:
        """Replace the stored record with *state*."""
        ...

    def get(self) -> SessionState:
        return self.load()

    def get_tokens(self) -> Optional[TokenSet]:
        return self.load().tokens

    def get_pending(self) -> Optional[PendingAuthorizationSession]:
        return self.load().pending

    def set_tokens(self, tokens: TokenSet) -> None:
        self.save(self.load().model_copy(update={"tokens": tokens}))

    def set_pending_session(self, pending: PendingAuthorizationSession) -> None:
        """Store *pending*, overwriting any stale pending session."""
        self.save(self.load().model_copy(update={"pending": pending}))

    def clear_pending_session(self) -> None:
        self.save(self.load().model_copy(update={"pending": None}))

    def commit_exchange(self, tokens: TokenSet) -> None:
        """Store *tokens* and drop the pending session in one replacement."""
        self.save(self.load().model_copy(update={"tokens": tokens, "pending": None}))

    def clear(self) -> None:
        """Forget tokens and any pending session (logout)."""
        fingerprint = self.load().config_fingerprint
        self.save(SessionState(config_fingerprint=fingerprint))

    def bind_configuration(self, fingerprint: str) -> bool:
        """Associate the store with a client configuration.

        If a different configuration was bound before, tokens and the
        pending session are discarded.

        Returns:
            ``True`` if stored state was invalidated.
        """
        state = self.load()
        if state.config_fingerprint == fingerprint:
            return False
        invalidated = state.config_fingerprint is not None and (
            state.tokens is not None or state.pending is not None
        )
        if invalidated:
            logger.info("Client configuration changed; clearing stored session")
            self.save(SessionState(config_fingerprint=fingerprint))
        else:
            self.save(state.model_copy(update={"config_fingerprint": fingerprint}))
        return invalidated


class MemorySessionStore(SessionStore):
    """In-process store. State is lost when the process exits."""

    def __init__(self, state: Optional[SessionState] = None) -> None:
        self._state = state or SessionState()

    def load(self) -> SessionState:
        return self._state

    def save(self, state: SessionState) -> None:
        self._state = state


class FileSessionStore(SessionStore):
    """JSON-file store with atomic ``0o600`` writes.

    Args:
        path: File location. Defaults to ``<data_dir>/session.json``.

    Example::

        store = FileSessionStore()
        store.set_tokens(TokenSet(access_token="tok"))
        assert FileSessionStore().get_tokens().access_token == "tok"
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or get_session_path()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SessionState:
        """Hydrate the record from disk.

        A missing file is an empty session. An unreadable or invalid file
        is logged and treated as empty so that a corrupt store forces a
        fresh login rather than a crash.
        """
        if not self._path.is_file():
            return SessionState()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return SessionState.model_validate(data)
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self._path, exc)
            return SessionState()

    def save(self, state: SessionState) -> None:
        text = json.dumps(state.model_dump(mode="json"), indent=2) + "\n"
        atomic_write(self._path, text, mode=0o600)
