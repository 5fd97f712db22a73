"""Typer application behind the ``cosignload`` command."""

from __future__ import annotations

import ssl

import typer

from cosignload import __version__
from cosignload._internal.config import DEFAULT_COMMAND, DEFAULT_HOST, DEFAULT_PORT
from cosignload.cli.run import run_cmd

_ENV_HELP = (
    f"Environment: COSIGNLOAD_HOST (default {DEFAULT_HOST}), "
    f"COSIGNLOAD_PORT (default {DEFAULT_PORT}), "
    f"COSIGNLOAD_COMMAND (default {DEFAULT_COMMAND}), "
    "COSIGNLOAD_TIMEOUT (default: none). Command-line options take precedence."
)

app = typer.Typer(
    name="cosignload",
    help="Concurrent latency tester for STARTTLS line-protocol authentication daemons.",
    epilog=_ENV_HELP,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command(
    "run",
    help="Open --threads TLS sessions and send --iterations commands on each.",
    epilog=_ENV_HELP,
)(run_cmd)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"cosignload {__version__} ({ssl.OPENSSL_VERSION})")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and TLS library, then exit.",
        callback=_show_version,
        is_eager=True,
    ),
) -> None:
    """cosignload: load generator for CoSign-style daemons."""
