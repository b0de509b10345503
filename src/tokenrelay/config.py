"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent state locations for tokenrelay:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.tokenrelay/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Settings** -- A single :class:`~tokenrelay.models.Settings` JSON file
  holding the OAuth client configuration, HTTP settings, and relay origin.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  ``TOKENRELAY_*`` environment variables, the settings file, and defaults.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so a crash mid-write never leaves a half-written
token set or settings file behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from tokenrelay.exceptions import ConfigError
from tokenrelay.models import Settings

_APP_NAME = "tokenrelay"
_SETTINGS_FILENAME = "settings.json"

# Environment variable -> field in ``Settings.client``.
_CLIENT_ENV_VARS: dict[str, str] = {
    "TOKENRELAY_BASE_URL": "base_url",
    "TOKENRELAY_CLIENT_ID": "client_id",
    "TOKENRELAY_CLIENT_SECRET": "client_secret",
    "TOKENRELAY_REDIRECT_URI": "redirect_uri",
    "TOKENRELAY_PROTECTED_RESOURCE_URL": "protected_resource_url",
    "TOKENRELAY_SCOPE": "scope",
    "TOKENRELAY_AUTHORIZE_PATH": "authorize_endpoint_path",
    "TOKENRELAY_TOKEN_PATH": "token_endpoint_path",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform follows the XDG Base Directory layout (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/tokenrelay/`` (default ``~/.config/tokenrelay/``).
    On macOS/Windows: ``~/.tokenrelay/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (session, connectors, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/tokenrelay/`` (default ``~/.local/share/tokenrelay/``).
    On macOS/Windows: ``~/.tokenrelay/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_session_path() -> Path:
    return get_data_dir() / "session.json"


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. When *mode* is
    given, permissions are set on the temp file before any content is
    written, so secrets are never readable by others even momentarily.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


def read_json(path: Path) -> Optional[Any]:
    """Read a JSON file, returning ``None`` when it does not exist.

    Raises:
        ConfigError: If the file exists but is not valid JSON.
    """
    if not path.is_file():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid JSON at {path}: {exc}") from exc


# --- Settings ---


def _settings_path() -> Path:
    return get_config_dir() / _SETTINGS_FILENAME


def load_settings() -> Settings:
    """Load settings from the config directory.

    Returns:
        The deserialised :class:`~tokenrelay.models.Settings`, or a default
        instance if the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _settings_path()
    data = read_json(path)
    if data is None:
        return Settings()
    try:
        return Settings.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid settings at {path}: {exc}") from exc


def save_settings(settings: Settings) -> None:
    """Persist settings atomically. The file may hold a client secret, so it is ``0o600``."""
    data = settings.model_dump(mode="json")
    atomic_write(_settings_path(), json.dumps(data, indent=2) + "\n", mode=0o600)


def reset_settings() -> None:
    path = _settings_path()
    if path.is_file():
        path.unlink()


# --- Precedence resolution ---


def resolve_settings(
    cli_relay_url: Optional[str] = None,
    cli_overrides: Optional[dict[str, str]] = None,
) -> Settings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_relay_url``, ``cli_overrides`` for client fields)
        2. Environment variables (``TOKENRELAY_*``)
        3. Settings file (``~/.config/tokenrelay/settings.json``)
        4. Defaults

    Returns:
        The effective :class:`~tokenrelay.models.Settings`.

    Raises:
        ConfigError: If the merged result fails validation.
    """
    settings = load_settings()
    data = settings.model_dump(mode="json")

    for env_var, field in _CLIENT_ENV_VARS.items():
        value = os.environ.get(env_var)
        if value:
            data["client"][field] = value
    env_relay = os.environ.get("TOKENRELAY_RELAY_URL")
    if env_relay:
        data["relay_url"] = env_relay

    for field, value in (cli_overrides or {}).items():
        if value is not None:
            data["client"][field] = value
    if cli_relay_url is not None:
        data["relay_url"] = cli_relay_url or None

    try:
        return Settings.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
