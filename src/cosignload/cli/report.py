"""Rendering of the final run report: rich tables, plain text and JSON."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console

    from cosignload.metrics.models import DurationStats, RunReport


def _ms(value: float) -> str:
    return f"{value:.3f}ms"


def _stats_line(stats: DurationStats) -> str:
    return (
        f"avg: {_ms(stats.mean)}, max: {_ms(stats.max)}, min: {_ms(stats.min)}, "
        f"99pct: {_ms(stats.p99)}, 95pct: {_ms(stats.p95)}"
    )


def format_text_report(report: RunReport) -> str:
    """Render the report as a plain-text block.

    Error lines are ``<count>\\t<status>``, most frequent first.
    """
    error_lines = "".join(
        f"{count}\t{status or '<empty>'}\n"
        for status, count in sorted(
            report.errors.by_status.items(), key=lambda item: (-item[1], item[0])
        )
    )
    return (
        "\n===========\n"
        f"Total elapsed time: {report.elapsed_seconds:.6f}s\n"
        f"Average req/s: {report.requests_per_second:.2f}\n"
        f"Threads: {report.threads}, Commands/thread: {report.iterations}, "
        f"SUCCESS/FAIL: {report.success_count}/{report.failure_count}\n"
        f"SUCCESS: {_stats_line(report.success)}\n"
        f"FAIL: {_stats_line(report.failure)}\n"
        f"Errors:\n{error_lines}"
    )


def _latency_table(report: RunReport) -> Table:
    table = Table(title="Latency", show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Outcome", style="bold")
    table.add_column("Count", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Min", justify="right")
    table.add_column("p99", justify="right")
    table.add_column("p95", justify="right")

    for label, stats, style in (
        ("SUCCESS", report.success, "green"),
        ("FAIL", report.failure, "red"),
    ):
        table.add_row(
            f"[{style}]{label}[/{style}]",
            str(stats.count),
            _ms(stats.mean),
            _ms(stats.max),
            _ms(stats.min),
            _ms(stats.p99),
            _ms(stats.p95),
        )
    return table


def _errors_table(report: RunReport) -> Table:
    table = Table(title="Errors", show_header=True, header_style="bold red", expand=True)
    table.add_column("Kind", style="bold")
    table.add_column("Count", justify="right")
    table.add_column("Example messages")

    for kind, count in sorted(report.errors.by_kind.items(), key=lambda item: -item[1]):
        examples = "\n".join(
            f"{n}x {escape(message) if message else '<empty>'}" for message, n in report.errors.top_messages(kind)
        )
        table.add_row(kind.label, str(count), examples)
    return table


def print_report(report: RunReport, console: Console) -> None:
    """Print the summary, latency and error tables."""
    summary = Table(
        title="Run Complete",
        show_header=True,
        header_style="bold green",
        expand=True,
    )
    summary.add_column("Metric", style="bold")
    summary.add_column("Value", justify="right")
    summary.add_row("Total elapsed time", f"{report.elapsed_seconds:.3f}s")
    summary.add_row("Average req/s", f"{report.requests_per_second:.2f}")
    summary.add_row("Threads", str(report.threads))
    summary.add_row("Commands/thread", str(report.iterations))
    summary.add_row("SUCCESS/FAIL", f"{report.success_count}/{report.failure_count}")

    console.print(summary)
    console.print(_latency_table(report))
    if report.errors.total:
        console.print(_errors_table(report))


def write_json_report(report: RunReport, path: Path) -> None:
    """Write the report as indented JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_dict(), indent=2))
