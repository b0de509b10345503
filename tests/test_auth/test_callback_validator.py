"""Tests for callback parsing and validation."""

from __future__ import annotations

import pytest

from tokenrelay.auth.callback import CallbackValidator, parse_callback_url
from tokenrelay.auth.session_store import MemorySessionStore
from tokenrelay.exceptions import (
    AuthorizationDeniedError,
    ProtocolError,
    SecurityError,
    SessionExpiredError,
)
from tokenrelay.models import CallbackQuery, PendingAuthorizationSession


@pytest.fixture
def pending_store() -> MemorySessionStore:
    store = MemorySessionStore()
    store.set_pending_session(PendingAuthorizationSession(code_verifier="v" * 43, state="s1"))
    return store


class TestParseCallbackUrl:
    def test_full_url(self) -> None:
        query = parse_callback_url("https://app.test/callback?code=xyz&state=s1")
        assert query.code == "xyz"
        assert query.state == "s1"
        assert query.error is None

    def test_bare_query_string(self) -> None:
        query = parse_callback_url("?code=xyz&state=s1")
        assert query.code == "xyz"
        assert parse_callback_url("code=a&state=b").state == "b"

    def test_error_parameters(self) -> None:
        query = parse_callback_url(
            "https://app.test/callback?error=access_denied&error_description=User+said+no"
        )
        assert query.error == "access_denied"
        assert query.error_description == "User said no"


class TestCallbackValidator:
    def test_valid_callback(self, pending_store: MemorySessionStore) -> None:
        exchange = CallbackValidator(pending_store).validate(
            CallbackQuery(code="xyz", state="s1")
        )
        assert exchange.code == "xyz"
        assert exchange.code_verifier == "v" * 43
        # Pending stays until the exchange succeeds.
        assert pending_store.get_pending() is not None

    def test_accepts_plain_mapping(self, pending_store: MemorySessionStore) -> None:
        exchange = CallbackValidator(pending_store).validate({"code": "xyz", "state": "s1"})
        assert exchange.code == "xyz"

    def test_error_takes_precedence(self, pending_store: MemorySessionStore) -> None:
        with pytest.raises(AuthorizationDeniedError) as exc_info:
            CallbackValidator(pending_store).validate(
                CallbackQuery(code="xyz", state="wrong", error="access_denied", error_description="nope")
            )
        assert exc_info.value.error == "access_denied"
        assert exc_info.value.description == "nope"

    @pytest.mark.parametrize(
        "query",
        [CallbackQuery(state="s1"), CallbackQuery(code="xyz"), CallbackQuery(code="", state="s1")],
    )
    def test_missing_code_or_state(self, pending_store: MemorySessionStore, query: CallbackQuery) -> None:
        with pytest.raises(ProtocolError, match="missing code or state"):
            CallbackValidator(pending_store).validate(query)

    def test_no_pending_session(self) -> None:
        with pytest.raises(SessionExpiredError):
            CallbackValidator(MemorySessionStore()).validate(CallbackQuery(code="xyz", state="s1"))

    def test_state_mismatch(self, pending_store: MemorySessionStore) -> None:
        with pytest.raises(SecurityError, match="state mismatch"):
            CallbackValidator(pending_store).validate(CallbackQuery(code="xyz", state="s2"))

    def test_single_character_alteration_rejected(self) -> None:
        from tokenrelay.auth.pkce import generate_state

        state = generate_state()
        store = MemorySessionStore()
        store.set_pending_session(PendingAuthorizationSession(code_verifier="v" * 43, state=state))
        altered = ("A" if state[0] != "A" else "B") + state[1:]
        altered_tail = state[:-1] + ("A" if state[-1] != "A" else "B")

        validator = CallbackValidator(store)
        for candidate in (altered, altered_tail, state[:-1], state + "x"):
            with pytest.raises(SecurityError):
                validator.validate(CallbackQuery(code="xyz", state=candidate))
