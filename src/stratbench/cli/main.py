# Copyright (c) Syntropy Systems
"""Main CLI entry point for stratbench."""

import typer

from stratbench.cli.init_cmd import init
from stratbench.cli.report import report
from stratbench.cli.run_cmd import run
from stratbench.cli.status import status

app = typer.Typer(
    name="stratbench",
    help=(
        "Resumable strategy benchmarking. Run every strategy against the same "
        "scenarios, keep every trial, pick up where you left off."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(init)
_ = app.command()(run)
_ = app.command()(report)
_ = app.command()(status)


if __name__ == "__main__":
    app()
