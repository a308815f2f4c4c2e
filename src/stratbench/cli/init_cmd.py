# Copyright (c) Syntropy Systems
"""stratbench init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from stratbench.config import CONFIG_FILE_NAME, PROJECT_DIR_NAME, default_config_dict

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new stratbench project.

    Creates a .stratbench directory with a default configuration.
    """
    target = path.resolve()
    project_dir = target / PROJECT_DIR_NAME

    if project_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {project_dir}")
        return

    project_dir.mkdir(parents=True)

    config = default_config_dict()
    config_path = project_dir / CONFIG_FILE_NAME
    with config_path.open("w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    console.print(f"[green]Initialized stratbench project:[/green] {project_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]ledger:[/dim] {target / str(config['output_file'])}")
