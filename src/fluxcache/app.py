"""Typer application and CLI entry point for fluxcache.

This module wires together the top-level Typer application and registers the
built-in sub-commands (``serve``, ``cache``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~fluxcache.exceptions.FluxcacheError` instances escaping a command
(a port already in use, an unwritable cache directory, invalid config) exit
with their ``exit_code``; anything else is written to a crash log under the
data directory.

See Also:
    :mod:`fluxcache.config`: Configuration resolution.
    :mod:`fluxcache.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from fluxcache import __version__
from fluxcache.commands.cache import cache_app
from fluxcache.commands.config import config_app
from fluxcache.commands.serve import serve_command
from fluxcache.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="fluxcache",
    help="Caching reverse proxy for module registries.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("serve")(serve_command)
app.add_typer(cache_app, name="cache", help="Inspect the artifact cache.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"fluxcache {__version__}")
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
        False, "--verbose", "-v", help="Log every cache hit and miss."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~fluxcache.output.OutputManager` from
    CLI flags and stores shared options in the Typer context so that
    sub-commands can read them via ``ctx.obj``.
    """
    from fluxcache.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install SIGINT/SIGTERM handlers so the proxy exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nShutting down.\n")
        sys.exit(130 if signum == signal.SIGINT else 0)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from fluxcache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``fluxcache`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nShutting down.\n")
        sys.exit(130)
    except Exception as exc:
        from fluxcache.exceptions import FluxcacheError
        from fluxcache.output import error

        if isinstance(exc, FluxcacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
