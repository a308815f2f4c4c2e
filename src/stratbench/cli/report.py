# Copyright (c) Syntropy Systems
"""stratbench report command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from stratbench.config import load_config
from stratbench.errors import ConfigurationError
from stratbench.ledger import read_outcomes
from stratbench.summary import SummaryReport, summarize

console = Console()


def format_ms(value: float | None) -> str:
    """Format milliseconds to human readable."""
    if value is None:
        return "-"
    if value < 1000:
        return f"{value:.1f}ms"
    return f"{value / 1000:.2f}s"


def _format_tokens(prompt: float | None, completion: float | None) -> str:
    if prompt is None or completion is None:
        return "-"
    return f"{prompt:.0f} / {completion:.0f}"


def render_summary(report: SummaryReport, title: str | None = None) -> None:
    """Print a summary report as a table."""
    if not report.rows:
        console.print("[dim]No results[/dim]")
        return

    table = Table(show_header=True, header_style="bold", title=title)
    table.add_column("Strategy", style="cyan")
    table.add_column("Scenario")
    table.add_column("Trials", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Mean latency", justify="right")
    table.add_column("Mean TTFT", justify="right")
    table.add_column("Tokens (in / out)", justify="right")
    table.add_column("Errors", style="dim")

    for row in report.rows:
        accuracy_style = "green" if row.accuracy >= 0.9 else "yellow" if row.accuracy >= 0.5 else "red"  # noqa: PLR2004
        errors = ", ".join(f"{kind}={count}" for kind, count in row.errors.items()) or "-"
        table.add_row(
            row.strategy,
            row.scenario.value,
            str(row.total),
            f"[{accuracy_style}]{row.accuracy:.1%}[/{accuracy_style}]",
            format_ms(row.mean_latency_ms),
            format_ms(row.mean_ttft_ms),
            _format_tokens(row.mean_prompt_tokens, row.mean_completion_tokens),
            errors,
        )

    console.print(table)


def report(
    ledger: Optional[Path] = typer.Argument(
        None,
        help="Ledger file (default: output_file from the project config)",
    ),
) -> None:
    """Summarize every trial recorded in a ledger."""
    if ledger is None:
        try:
            ledger = load_config().output_path
        except ConfigurationError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from e

    if not ledger.is_file():
        console.print(f"[red]Error:[/red] Ledger not found: {ledger}")
        raise typer.Exit(1)

    outcomes = read_outcomes(ledger)
    render_summary(summarize(outcomes), title=f"{ledger.name} ({len(outcomes)} trials)")
