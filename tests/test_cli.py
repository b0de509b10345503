"""End-to-end CLI tests through Typer's CliRunner."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

import httpx
import pytest

from tokenrelay.app import app
from tokenrelay.auth.session_store import FileSessionStore
from tokenrelay.config import load_settings, save_settings
from tokenrelay.models import ClientConfiguration, PendingAuthorizationSession, Settings, TokenSet
from tokenrelay.session import OAuthSession


@pytest.fixture
def mock_upstream(monkeypatch: pytest.MonkeyPatch) -> Callable[[Callable[[httpx.Request], httpx.Response]], None]:
    """Route every session opened by a command through an httpx.MockTransport."""

    def install(handler: Callable[[httpx.Request], httpx.Response]) -> None:
        transport = httpx.MockTransport(handler)
        monkeypatch.setattr(
            "tokenrelay.commands._common.OAuthSession",
            lambda settings, store: OAuthSession(settings, store, transport=transport),
        )

    return install


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "tokenrelay" in result.output


class TestConfigCommands:
    def test_show_masks_secret(self, cli_runner, isolated_config: Path) -> None:
        save_settings(Settings(client=ClientConfiguration(client_secret="hunter2")))
        result = cli_runner.invoke(app, ["--json", "config", "show"])
        assert result.exit_code == 0
        assert "hunter2" not in result.output

    def test_set_nested_key(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "client.client_id", "new-id"])
        assert result.exit_code == 0
        assert load_settings().client.client_id == "new-id"

    def test_set_coerces_types(self, cli_runner, isolated_config: Path) -> None:
        assert cli_runner.invoke(app, ["config", "set", "request.verify_ssl", "false"]).exit_code == 0
        assert cli_runner.invoke(app, ["config", "set", "relay.port", "9090"]).exit_code == 0
        assert cli_runner.invoke(app, ["config", "set", "relay_url", "http://localhost:8080"]).exit_code == 0
        settings = load_settings()
        assert settings.request.verify_ssl is False
        assert settings.relay.port == 9090
        assert settings.relay_url == "http://localhost:8080"

    def test_set_unknown_key(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "client.nope", "x"])
        assert result.exit_code == 2

    def test_set_bad_number(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "request.timeout", "slow"])
        assert result.exit_code == 2

    def test_set_clears_session(self, cli_runner, isolated_config: Path) -> None:
        FileSessionStore().set_tokens(TokenSet(access_token="stale"))
        cli_runner.invoke(app, ["config", "set", "client.base_url", "https://other.test"])
        assert FileSessionStore().get_tokens() is None

    def test_reset_with_force(self, cli_runner, isolated_config: Path) -> None:
        save_settings(Settings(client=ClientConfiguration(client_id="mine")))
        result = cli_runner.invoke(app, ["--force", "config", "reset"])
        assert result.exit_code == 0
        assert load_settings().client.client_id == "your_client_id"

    def test_reset_declined(self, cli_runner, isolated_config: Path) -> None:
        save_settings(Settings(client=ClientConfiguration(client_id="mine")))
        result = cli_runner.invoke(app, ["config", "reset"], input="n\n")
        assert result.exit_code == 0
        assert load_settings().client.client_id == "mine"


class TestAuthCommands:
    def test_status_unauthenticated(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "auth", "status"])
        assert result.exit_code == 0
        assert '"authenticated": "no"' in result.output

    def test_callback_state_mismatch(self, cli_runner, isolated_config: Path) -> None:
        FileSessionStore().set_pending_session(
            PendingAuthorizationSession(code_verifier="v" * 43, state="good")
        )
        result = cli_runner.invoke(
            app,
            ["--no-color", "auth", "callback", "http://localhost:3000/callback?code=x&state=evil"],
        )
        assert result.exit_code == 4
        assert "state mismatch" in result.output
        assert FileSessionStore().get_tokens() is None

    def test_callback_without_pending(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["auth", "callback", "code=x&state=y"])
        assert result.exit_code == 3

    def test_callback_exchanges_code(self, cli_runner, isolated_config: Path, mock_upstream) -> None:
        FileSessionStore().set_pending_session(
            PendingAuthorizationSession(code_verifier="v" * 43, state="good")
        )
        mock_upstream(
            lambda request: httpx.Response(200, json={"access_token": "at", "refresh_token": "rt"})
        )
        result = cli_runner.invoke(
            app, ["auth", "callback", "http://localhost:3000/callback?code=x&state=good"]
        )
        assert result.exit_code == 0
        state = FileSessionStore().get()
        assert state.tokens.access_token == "at"
        assert state.pending is None

    def test_login_without_input_leaves_pending(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["--no-input", "--no-color", "auth", "login", "--no-browser", "--no-listen"]
        )
        assert result.exit_code == 0
        assert "/connect/authorize?" in result.output
        assert FileSessionStore().get_pending() is not None

    def test_login_interrupted_at_prompt_discards_pending(
        self, cli_runner, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        import typer

        def interrupted(*args: object, **kwargs: object) -> str:
            raise SystemExit(130)

        monkeypatch.setattr(typer, "prompt", interrupted)
        result = cli_runner.invoke(app, ["auth", "login", "--no-browser", "--no-listen"])
        assert result.exit_code == 130
        assert FileSessionStore().get_pending() is None

    def test_cancel_discards_pending(self, cli_runner, isolated_config: Path) -> None:
        FileSessionStore().set_pending_session(
            PendingAuthorizationSession(code_verifier="v" * 43, state="s")
        )
        result = cli_runner.invoke(app, ["auth", "cancel"])
        assert result.exit_code == 0
        assert FileSessionStore().get_pending() is None

    def test_refresh_without_refresh_token(self, cli_runner, isolated_config: Path) -> None:
        FileSessionStore().set_tokens(TokenSet(access_token="a"))
        result = cli_runner.invoke(app, ["auth", "refresh"])
        assert result.exit_code == 3

    def test_logout(self, cli_runner, isolated_config: Path) -> None:
        FileSessionStore().set_tokens(TokenSet(access_token="a"))
        result = cli_runner.invoke(app, ["auth", "logout"])
        assert result.exit_code == 0
        assert FileSessionStore().get_tokens() is None


class TestFetchCommand:
    def test_no_token(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "fetch"])
        assert result.exit_code == 3
        assert "Please authenticate first" in result.output

    def test_prints_body(self, cli_runner, isolated_config: Path, mock_upstream) -> None:
        FileSessionStore().set_tokens(TokenSet(access_token="a"))
        mock_upstream(lambda request: httpx.Response(200, text="hello", headers={"Content-Type": "text/plain"}))
        result = cli_runner.invoke(app, ["fetch", "https://api.test/greeting"])
        assert result.exit_code == 0
        assert "hello" in result.stdout

    def test_http_error_exit_code(self, cli_runner, isolated_config: Path, mock_upstream) -> None:
        FileSessionStore().set_tokens(TokenSet(access_token="a"))
        mock_upstream(lambda request: httpx.Response(404, text="missing"))
        result = cli_runner.invoke(app, ["fetch", "https://api.test/missing"])
        assert result.exit_code == 5


class TestConnectorAndProbeCommands:
    def test_add_list_remove(self, cli_runner, isolated_config: Path) -> None:
        assert cli_runner.invoke(app, ["connectors", "add", "Profile", "https://api.test/me"]).exit_code == 0

        listed = cli_runner.invoke(app, ["--json", "connectors", "list"])
        assert listed.exit_code == 0
        records = json.loads(listed.stdout)
        assert records[0]["Name"] == "Profile"
        connector_id = records[0]["ID"]

        removed = cli_runner.invoke(app, ["--force", "connectors", "remove", connector_id])
        assert removed.exit_code == 0
        assert "No connectors" in cli_runner.invoke(app, ["connectors", "list"]).output

    def test_update_unknown(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["connectors", "update", "missing", "--name", "x"])
        assert result.exit_code == 2

    def test_probe_requires_target(self, cli_runner, isolated_config: Path) -> None:
        assert cli_runner.invoke(app, ["probe", "run"]).exit_code == 2

    def test_probe_all_and_results(self, cli_runner, isolated_config: Path, mock_upstream) -> None:
        FileSessionStore().set_tokens(TokenSet(access_token="a"))
        mock_upstream(lambda request: httpx.Response(200, json={"ok": True}))
        cli_runner.invoke(app, ["connectors", "add", "A", "https://api.test/a"])

        run = cli_runner.invoke(app, ["probe", "run", "--all"])
        assert run.exit_code == 0

        results = cli_runner.invoke(app, ["--json", "probe", "results"])
        records = json.loads(results.stdout)
        assert len(records) == 1
        assert records[0]["Result"] == "ok"

        cleared = cli_runner.invoke(app, ["probe", "clear"])
        assert cleared.exit_code == 0
        assert "No results" in cli_runner.invoke(app, ["probe", "results"]).output
