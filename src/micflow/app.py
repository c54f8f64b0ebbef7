"""Typer application and CLI entry point for micflow.

This module wires together the top-level Typer application and registers
the built-in commands (``login``, ``logout``, ``whoami`` and the ``config``
group).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers, registers commands and
invokes the Typer app. :class:`~micflow.exceptions.MicflowError` exits with
its own exit code; any other exception is written to a crash log under the
data directory.

See Also:
    :mod:`micflow.config`: Settings resolution.
    :mod:`micflow.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from micflow import __version__
from micflow.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="micflow",
    help="Log in with Mobile Identity Connect (OAuth2 authorization code).",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"micflow {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Route library log records to stderr through Rich."""
    from rich.console import Console
    from rich.logging import RichHandler

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=False,
    )
    logger = logging.getLogger("micflow")
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


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
        False, "--verbose", "-v", help="Enable debug output, including request traces."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
    no_input: bool = typer.Option(
        False, "--no-input", help="Disable interactive prompts."
    ),
) -> None:
    """Root callback executed before every command.

    Installs the global :class:`~micflow.output.OutputManager` and stores
    shared flags in ``ctx.obj`` for the commands to read.
    """
    from micflow.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["force"] = force
    ctx.obj["no_input"] = no_input
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under ``<data dir>/logs`` and return its path."""
    from micflow.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(f"{type(exc).__name__}: {exc}\n\n{traceback.format_exc()}")
    return str(log_path)


def register_commands() -> None:
    """Attach the built-in commands to :data:`app`.  Safe to call twice."""
    from micflow.commands.auth import login_command, logout_command, whoami_command
    from micflow.commands.config import config_app

    if getattr(app, "_micflow_registered", False):
        return
    app.command("login")(login_command)
    app.command("logout")(logout_command)
    app.command("whoami")(whoami_command)
    app.add_typer(config_app, name="config", help="Configuration management.")
    app._micflow_registered = True  # type: ignore[attr-defined]


def main() -> None:
    """CLI entry point invoked by the ``micflow`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        register_commands()
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from micflow.exceptions import MicflowError
        from micflow.output import error

        if isinstance(exc, MicflowError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
