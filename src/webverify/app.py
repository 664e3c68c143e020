"""Typer application and CLI entry point for webverify.

This module builds the root Typer application, registers the built-in
commands (``configure``, ``verify``, ``token``, ``profile``, ``status``,
``logout``) and installs output and logging preferences in
:func:`main_callback`.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. A :class:`~webverify.exceptions.WebVerifyError` ends the
process with its ``exit_code``; any other exception is written to a crash
log under the data directory.

See Also:
    :mod:`webverify.output`: Output formatting initialised in
    :func:`main_callback`.
    :mod:`webverify.client`: The library the commands drive.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from webverify import __version__
from webverify.commands.configure import configure_command
from webverify.commands.session import logout_command, verify_command
from webverify.commands.tokens import profile_command, status_command, token_command
from webverify.exit_codes import EXIT_CANCELED, EXIT_GENERIC_FAILURE, EXIT_INVALID_USAGE

app = typer.Typer(
    name="webverify",
    help="Verify users in the browser with OAuth2 + PKCE and manage their tokens.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("configure")(configure_command)
app.command("verify")(verify_command)
app.command("token")(token_command)
app.command("profile")(profile_command)
app.command("status")(status_command)
app.command("logout")(logout_command)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"webverify {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route the ``webverify`` loggers to stderr through Rich.

    DEBUG and above with ``--verbose``, WARNING and above otherwise. Calling
    it again replaces the previous handler.
    """
    package_logger = logging.getLogger("webverify")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.propagate = False


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
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Install output and logging preferences before every command.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        json_output: Force JSON output format.
        plain_output: Force plain-text output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress informational messages.
        verbose: Show debug messages and DEBUG log records.
    """
    from webverify.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log() -> str:
    """Write the current traceback under ``<data_dir>/logs`` and return its path."""
    from webverify.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``webverify`` console script.

    :class:`~webverify.exceptions.WebVerifyError` exits with the error's
    ``exit_code`` (in ``--json`` mode the error is printed as a JSON
    object). API misuse exits with :data:`EXIT_INVALID_USAGE`. Anything else
    produces a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELED)
    except Exception as exc:
        from webverify.exceptions import UsageError, WebVerifyError
        from webverify.output import error

        if isinstance(exc, WebVerifyError):
            error(exc.message, payload=exc.to_payload())
            sys.exit(exc.exit_code)
        elif isinstance(exc, UsageError):
            error(str(exc))
            sys.exit(EXIT_INVALID_USAGE)
        else:
            log_path = _write_crash_log()
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
