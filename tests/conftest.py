# Copyright (c) Syntropy Systems
"""Pytest fixtures for stratbench tests."""

import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
import yaml

# Store original cwd at module load time
_original_cwd = Path.cwd()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def ledger_path(temp_dir: Path) -> Path:
    """Ledger location inside the temporary directory (not yet created)."""
    return temp_dir / "results" / "benchmark_results.csv"


@pytest.fixture
def stratbench_project(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary stratbench project that only runs the reference strategy."""
    project_dir = temp_dir / ".stratbench"
    project_dir.mkdir()

    config = {
        "output_file": "benchmark_results.csv",
        "iterations": 2,
        "reference": True,
        "strategies": [],
    }
    with (project_dir / "config.yaml").open("w") as f:
        yaml.dump(config, f)

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)
