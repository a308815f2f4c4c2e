# Copyright (c) Syntropy Systems
"""stratbench run command."""
from __future__ import annotations

import logging
import signal
from pathlib import Path
from threading import Event
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console

from stratbench.adapters.chat import ChatModelAdapter
from stratbench.cli.report import render_summary
from stratbench.config import build_strategies, load_config
from stratbench.engine import ExecutionEngine, TargetState
from stratbench.errors import ConfigurationError, LedgerFormatError, RunInterrupted
from stratbench.plan import build_run_plan
from stratbench.summary import summarize
from stratbench.system_metrics import SystemMetricsCollector

if TYPE_CHECKING:
    from types import FrameType

    from stratbench.engine import TargetReport
    from stratbench.plan import RunTarget

console = Console()

EXIT_INTERRUPTED = 130

_STATE_STYLE: dict[TargetState, str] = {
    TargetState.DONE: "green",
    TargetState.SKIPPED_COMPLETE: "dim",
    TargetState.SKIPPED_UNAVAILABLE: "red",
}


def configure_logging(verbose: bool) -> None:  # noqa: FBT001
    """Route library logging to stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Request lines from httpx drown out the per-trial log at DEBUG.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _close_adapters(plan: list[RunTarget]) -> None:
    for target in plan:
        if isinstance(target.adapter, ChatModelAdapter):
            target.adapter.close()


def _print_targets(reports: list[TargetReport]) -> None:
    for report in reports:
        style = _STATE_STYLE.get(report.state, "yellow")
        line = f"  [{style}]{report.state.value}[/{style}] {report.label}"
        if report.appended:
            line += f" [dim](+{report.appended} rows)[/dim]"
        if report.early_stopped:
            stopped = ", ".join(kind.value for kind in report.early_stopped)
            line += f" [yellow]early-stopped: {stopped}[/yellow]"
        console.print(line)


def run(
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
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Ledger file (default: output_file from the config)",
    ),
    system_metrics: bool = typer.Option(
        False,
        "--system-metrics",
        help="Sample CPU and memory to <ledger>.system.jsonl while running",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Log every trial",
    ),
) -> None:
    """
    Run the benchmark, resuming from whatever the ledger already holds.

    Ctrl+C stops at the next call boundary; completed trials are kept and the
    next run picks up from there.

    Examples:

        stratbench run

        stratbench run --iterations 10 --output smoke.csv
    """
    configure_logging(verbose)

    try:
        config = load_config(config_file)
        plan = build_run_plan(build_strategies(config, iterations))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1) from e

    ledger_path = output.resolve() if output is not None else config.output_path
    stop_event = Event()
    engine = ExecutionEngine(
        plan,
        ledger_path,
        call_timeout=config.call_timeout,
        probe_timeout=config.probe_timeout,
        early_stop_threshold=config.early_stop_threshold,
        seed=config.seed,
        stop_event=stop_event,
    )

    def _signal_handler(signum: int, frame: FrameType | None) -> None:  # noqa: ARG001
        """Handle SIGINT/SIGTERM by stopping at the next suspension point."""
        console.print("\n[yellow]Stop requested, finishing current call...[/yellow]")
        stop_event.set()

    previous_sigint = signal.signal(signal.SIGINT, _signal_handler)
    previous_sigterm = signal.signal(signal.SIGTERM, _signal_handler)

    collector = SystemMetricsCollector(ledger_path) if system_metrics else None
    if collector is not None:
        collector.start()
        console.print(f"[dim]System metrics:[/dim] {collector.path}")

    console.print(f"[bold]Ledger:[/bold] {ledger_path}")
    exit_code = 0
    try:
        reports = engine.run()
        _print_targets(reports)
    except (RunInterrupted, KeyboardInterrupt):
        console.print("[yellow]Interrupted; progress is saved in the ledger.[/yellow]")
        exit_code = EXIT_INTERRUPTED
    except LedgerFormatError as e:
        console.print(f"[red]Ledger error:[/red] {e}")
        exit_code = 1
    except OSError as e:
        console.print(f"[red]Ledger I/O error:[/red] {e}")
        exit_code = 1
    finally:
        if collector is not None:
            collector.stop()
        _ = signal.signal(signal.SIGINT, previous_sigint)
        _ = signal.signal(signal.SIGTERM, previous_sigterm)
        _close_adapters(engine.plan)
        render_summary(
            summarize(engine.outcomes),
            title=f"This session ({len(engine.outcomes)} trials)",
        )

    if exit_code:
        raise typer.Exit(exit_code)
