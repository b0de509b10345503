"""Config commands -- view and modify the OAuth client settings.

Settings are persisted in ``settings.json`` under the tokenrelay config
directory. Any change clears the stored session: tokens issued for one
client configuration are never reused with another.
"""

from __future__ import annotations

import typer

from tokenrelay.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)

_MASK = "••••••••"


def _invalidate_session() -> None:
    from tokenrelay.auth.session_store import FileSessionStore

    FileSessionStore().clear()


@config_app.command("show")
def config_show(
    effective: bool = typer.Option(
        False, "--effective", help="Include environment variable overrides."
    ),
) -> None:
    """Show the current settings. The client secret is masked.

    Example::

        tokenrelay config show
        tokenrelay config show --effective --json
    """
    from tokenrelay.config import get_config_dir, load_settings, resolve_settings

    settings = resolve_settings() if effective else load_settings()
    data = settings.model_dump(mode="json")
    if data["client"].get("client_secret"):
        data["client"]["client_secret"] = _MASK
    info(f"Config directory: {get_config_dir()}")
    format_response(data)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Setting key (dot notation, e.g. 'client.client_id')."
    ),
    value: str = typer.Argument(help="Value to set. Use an empty string to unset optional keys."),
) -> None:
    """Set a configuration value and clear the stored session.

    Values are coerced to the type of the existing field (bool, int,
    float, or str). The result is validated against
    :class:`~tokenrelay.models.Settings` before saving.

    Example::

        tokenrelay config set client.base_url https://idp.example.com
        tokenrelay config set client.scope "openid offline_access"
        tokenrelay config set request.verify_ssl false
        tokenrelay config set relay_url http://localhost:8080
    """
    from tokenrelay.config import load_settings, save_settings
    from tokenrelay.models import Settings

    settings = load_settings()
    data = settings.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = target[final_key]
    coerced: object
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, int):
        try:
            coerced = int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    elif isinstance(current, float):
        try:
            coerced = float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    elif isinstance(current, list):
        coerced = [item.strip() for item in value.split(",") if item.strip()]
    elif current is None and value == "":
        coerced = None
    else:
        coerced = value

    target[final_key] = coerced

    try:
        new_settings = Settings.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_settings(new_settings)
    _invalidate_session()
    shown = _MASK if final_key == "client_secret" and coerced else coerced
    success(f"Set {key} = {shown}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset settings to defaults and clear the stored session.

    Asks for confirmation unless ``--force`` is active.
    """
    from tokenrelay.config import reset_settings

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all settings to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    reset_settings()
    _invalidate_session()
    success("Settings reset to defaults.")
