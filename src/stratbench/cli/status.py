# Copyright (c) Syntropy Systems
"""stratbench status command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from stratbench.config import load_config
from stratbench.errors import ConfigurationError
from stratbench.ledger import load_completed_counts
from stratbench.models.outcome import SCENARIO_ORDER, LedgerKey

console = Console()


def _progress(count: int, budget: int) -> str:
    style = "green" if count >= budget else "yellow" if count else "dim"
    return f"[{style}]{count}/{budget}[/{style}]"


def status(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Config file (default: nearest .stratbench/config.yaml)",
    ),
    iterations: Optional[int] = typer.Option(
        None,
        "--iterations", "-n",
        min=0,
        help="Override every strategy's iteration budget",
    ),
) -> None:
    """Show how far each strategy has progressed in the ledger."""
    try:
        config = load_config(config_file)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    ledger_path = config.output_path
    counts = load_completed_counts(ledger_path)
    budgets = config.planned_budgets(iterations)

    console.print(f"[bold]Ledger:[/bold] {ledger_path}")
    if not ledger_path.exists():
        console.print("[dim]No results yet[/dim]")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Strategy", style="cyan")
    for kind in SCENARIO_ORDER:
        table.add_column(kind.value, justify="right")
    table.add_column("State")

    for label, budget in budgets:
        done = [counts.get(LedgerKey.of(label, kind), 0) for kind in SCENARIO_ORDER]
        if all(count >= budget for count in done):
            state = "[green]complete[/green]"
        elif any(done):
            state = "[yellow]partial[/yellow]"
        else:
            state = "[dim]pending[/dim]"
        table.add_row(label, *[_progress(count, budget) for count in done], state)

    planned = {label for label, _ in budgets}
    for label in sorted({key.strategy for key in counts} - planned):
        done = [counts.get(LedgerKey.of(label, kind), 0) for kind in SCENARIO_ORDER]
        table.add_row(label, *[str(count) for count in done], "[dim]not configured[/dim]")

    console.print(table)
