"""``cosignload run``: drive concurrent STARTTLS sessions and print the report."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from cosignload._internal.config import RunConfig, load_config
from cosignload._internal.errors import CosignLoadError
from cosignload.cli.report import format_text_report, print_report, write_json_report
from cosignload.engine.runner import LoadTestRunner

console = Console(stderr=True)
report_console = Console()


def run_cmd(
    key_file: Path = typer.Option(
        ...,
        "--key-file",
        "-k",
        help="Client private key (PEM).",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    cert_file: Path = typer.Option(
        ...,
        "--cert-file",
        "-c",
        help="Client certificate (PEM).",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    iterations: int = typer.Option(
        ...,
        "--iterations",
        "-i",
        help="Number of commands to issue per thread.",
        min=1,
    ),
    threads: int = typer.Option(
        ...,
        "--threads",
        "-t",
        help="Number of threads/clients to create.",
        min=1,
    ),
    hostname: str | None = typer.Option(
        None,
        "--hostname",
        "-H",
        help="Server host, also used as the TLS server name [default: localhost].",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        "-P",
        help="Server port [default: 6663].",
    ),
    command: str | None = typer.Option(
        None,
        "--command",
        "-C",
        help="Command to issue on each iteration [default: NOOP].",
    ),
    ssl_skip_verify: bool = typer.Option(
        False,
        "--ssl-skip-verify",
        help="Disable SSL verification when doing STARTTLS.",
    ),
    ca_file: Path | None = typer.Option(
        None,
        "--ca-file",
        help="CA bundle used to verify the server certificate.",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Optional deadline in seconds for each socket operation.",
    ),
    json_output: Path | None = typer.Option(
        None,
        "--json",
        help="Also write the report as JSON to this path.",
    ),
    plain: bool = typer.Option(
        False,
        "--plain",
        help="Print the report as plain text instead of tables.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging, one line per result.",
    ),
    log_json: bool = typer.Option(
        False,
        "--log-json",
        help="Emit log lines as JSON.",
    ),
) -> None:
    """Run a load test against a STARTTLS authentication server."""
    try:
        env = load_config()
        config = RunConfig(
            threads=threads,
            iterations=iterations,
            cert_file=cert_file,
            key_file=key_file,
            host=hostname if hostname is not None else env.host,
            port=port if port is not None else env.port,
            command=command if command is not None else env.command,
            verify=not ssl_skip_verify,
            ca_file=ca_file,
            timeout=timeout if timeout is not None else env.timeout,
        )
    except CosignLoadError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    log_level = logging.DEBUG if verbose else logging.INFO

    console.print(
        Panel(
            f"[bold]Target:[/bold]   {config.host}:{config.port}\n"
            f"[bold]Command:[/bold]  {escape(config.command)}\n"
            f"[bold]Threads:[/bold]  {config.threads}\n"
            f"[bold]Commands:[/bold] {config.iterations} per thread\n"
            f"[bold]Verify:[/bold]   {'yes' if config.verify else 'no'}",
            title="cosignload",
            border_style="cyan",
        )
    )

    progress = Progress(
        TextColumn("[bold]Commands"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
        disable=verbose,
    )
    task_id = progress.add_task("commands", total=config.expected_results)

    try:
        runner = LoadTestRunner(
            config,
            on_record=lambda _record: progress.advance(task_id),
            log_level=log_level,
            json_logs=log_json,
        )
    except CosignLoadError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    try:
        with progress:
            report = runner.run()
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted before all results were collected.[/yellow]")
        raise typer.Exit(code=130) from None

    if plain:
        typer.echo(format_text_report(report))
    else:
        print_report(report, report_console)

    if json_output is not None:
        write_json_report(report, json_output)
        console.print(f"Report written to {json_output}")
