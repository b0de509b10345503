"""Shared test fixtures for tokenrelay.

Provides config isolation, output reset, a sample client configuration,
and a CLI runner. These fixtures are discovered automatically by pytest.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tokenrelay.models import ClientConfiguration, Settings
from tokenrelay.output import reset_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and package logger after every test.

    The OutputManager and the RichHandler installed by the root callback
    cache references to sys.stdout/sys.stderr at creation time. CliRunner
    swaps those streams, so neither may leak into the next test.
    """
    yield
    reset_output()
    logger = logging.getLogger("tokenrelay")
    logger.handlers.clear()
    logger.propagate = True


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and data to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME under tmp_path, clears all
    TOKENRELAY_* environment variables, and changes into tmp_path.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("tokenrelay.config._is_xdg_platform", lambda: True)

    for var in [
        "TOKENRELAY_BASE_URL",
        "TOKENRELAY_CLIENT_ID",
        "TOKENRELAY_CLIENT_SECRET",
        "TOKENRELAY_REDIRECT_URI",
        "TOKENRELAY_PROTECTED_RESOURCE_URL",
        "TOKENRELAY_SCOPE",
        "TOKENRELAY_AUTHORIZE_PATH",
        "TOKENRELAY_TOKEN_PATH",
        "TOKENRELAY_RELAY_URL",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Client configuration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client_config() -> ClientConfiguration:
    """Configuration matching the documented example flow."""
    return ClientConfiguration(
        base_url="https://idp.test",
        client_id="abc",
        redirect_uri="https://app.test/callback",
        protected_resource_url="https://api.test/me",
        scope="openid profile",
    )


@pytest.fixture
def settings(client_config: ClientConfiguration) -> Settings:
    return Settings(client=client_config)


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
