"""Typer application and CLI entry point for tokenrelay.

This module wires the top-level Typer application together and registers
the built-in sub-commands (``auth``, ``config``, ``connectors``, ``probe``,
``relay``, ``fetch``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers, registers commands, and
invokes the Typer app. Unhandled exceptions are written to a crash log
under the data directory.

See Also:
    :mod:`tokenrelay.config`: Settings resolution.
    :mod:`tokenrelay.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from tokenrelay import __version__
from tokenrelay.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="tokenrelay",
    help="OAuth 2.1 PKCE client with a token-exchange and resource relay.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"tokenrelay {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
    no_input: bool = typer.Option(
        False, "--no-input", help="Disable interactive prompts."
    ),
    relay_url: Optional[str] = typer.Option(
        None,
        "--relay-url",
        envvar="TOKENRELAY_RELAY_URL",
        help="Route token and resource calls through this relay origin.",
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~tokenrelay.output.OutputManager` and the
    ``tokenrelay`` logger from CLI flags, and stores shared options in
    ``ctx.obj`` for sub-commands.
    """
    from tokenrelay.output import OutputFormat, OutputManager, configure_logging, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    configure_logging(verbose=verbose, no_color=no_color)

    ctx.ensure_object(dict)
    ctx.obj["force"] = force
    ctx.obj["no_input"] = no_input
    ctx.obj["verbose"] = verbose
    ctx.obj["relay_url"] = relay_url


def _register_commands() -> None:
    from tokenrelay.commands.auth import auth_app
    from tokenrelay.commands.config import config_app
    from tokenrelay.commands.connectors import connectors_app
    from tokenrelay.commands.fetch import fetch_command
    from tokenrelay.commands.probe import probe_app
    from tokenrelay.commands.relay import relay_app

    app.add_typer(auth_app, name="auth", help="Authorization and token management.")
    app.add_typer(config_app, name="config", help="Client configuration.")
    app.add_typer(connectors_app, name="connectors", help="Manage probe connectors.")
    app.add_typer(probe_app, name="probe", help="Measure relayed fetch latency.")
    app.add_typer(relay_app, name="relay", help="Run the relay server.")
    app.command("fetch")(fetch_command)


_register_commands()


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from tokenrelay.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``tokenrelay`` console script.

    Unhandled :class:`~tokenrelay.exceptions.TokenRelayError` instances
    cause a clean exit with the error's ``exit_code``. All other exceptions
    produce a crash log and a generic failure exit.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from tokenrelay.exceptions import TokenRelayError
        from tokenrelay.output import error

        if isinstance(exc, TokenRelayError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
