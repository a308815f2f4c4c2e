# Copyright (c) Syntropy Systems
"""Configuration management for stratbench."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, cast

import yaml
from pydantic import Field, ValidationError, field_validator

from stratbench.adapters.chat import ChatModelAdapter, ChatProvider
from stratbench.adapters.directory import MeetingStore, UserDirectory
from stratbench.adapters.reference import REFERENCE_LABEL, ReferenceAdapter
from stratbench.catalog import DEFAULT_SEED
from stratbench.engine import (
    DEFAULT_CALL_TIMEOUT,
    DEFAULT_PROBE_TIMEOUT,
    EARLY_STOP_THRESHOLD,
)
from stratbench.errors import ConfigurationError
from stratbench.models.base import BenchBaseModel
from stratbench.plan import StrategySpec

if TYPE_CHECKING:
    from stratbench.adapters.base import StrategyAdapter

logger = logging.getLogger(__name__)

PROJECT_DIR_NAME = ".stratbench"
CONFIG_FILE_NAME = "config.yaml"
DEFAULT_OUTPUT_FILE = "benchmark_results.csv"
DEFAULT_ITERATIONS = 100

DEFAULT_BASE_URLS: dict[ChatProvider, str] = {
    ChatProvider.OLLAMA: "http://localhost:11434",
    ChatProvider.OPENAI: "https://api.openai.com/v1",
}


class StrategyConfig(BenchBaseModel):
    """One model-backed strategy entry under ``strategies:``."""

    label: str
    provider: ChatProvider = ChatProvider.OLLAMA
    model: str
    base_url: str | None = None
    api_key_env: str | None = None
    iterations: int | None = Field(default=None, ge=0)
    delay_ms: int = Field(default=0, ge=0)
    temperature: float = Field(default=0.0, ge=0.0)
    enabled: bool = True

    @field_validator("label", "model")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "must not be blank"
            raise ValueError(msg)
        return value.strip()

    def resolved_base_url(self) -> str:
        """Configured base URL, or the provider's default."""
        return self.base_url or DEFAULT_BASE_URLS[self.provider]


@dataclass
class BenchConfig:
    """Configuration for stratbench."""

    # Ledger path, relative to the project root
    output_file: str = DEFAULT_OUTPUT_FILE

    # Default iteration budget per strategy
    iterations: int = DEFAULT_ITERATIONS

    # Scenario catalog seed
    seed: int = DEFAULT_SEED

    # Per-call timeout (seconds)
    call_timeout: float = DEFAULT_CALL_TIMEOUT

    # Availability probe timeout (seconds)
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT

    # Consecutive failures before a scenario kind is stopped
    early_stop_threshold: int = EARLY_STOP_THRESHOLD

    # Include the deterministic reference strategy
    reference: bool = True

    strategies: list[StrategyConfig] = field(default_factory=list)

    # Directory relative paths resolve against
    root: Path = field(default_factory=Path.cwd)

    @property
    def output_path(self) -> Path:
        """Absolute ledger path."""
        path = Path(self.output_file).expanduser()
        return path if path.is_absolute() else self.root / path

    def budget_for(
        self,
        entry: StrategyConfig | None = None,
        override: int | None = None,
    ) -> int:
        """Iteration budget of a strategy (``None`` is the reference strategy)."""
        if override is not None:
            return override
        if entry is not None and entry.iterations is not None:
            return entry.iterations
        return self.iterations

    def planned_budgets(self, override: int | None = None) -> list[tuple[str, int]]:
        """(label, budget) for every strategy that would run, in plan order."""
        budgets: list[tuple[str, int]] = []
        if self.reference:
            budgets.append((REFERENCE_LABEL, self.budget_for(None, override)))
        budgets.extend(
            (entry.label, self.budget_for(entry, override))
            for entry in self.strategies
            if entry.enabled
        )
        return budgets


def default_config_dict() -> dict[str, object]:
    """Config written by ``stratbench init``."""
    return {
        "output_file": DEFAULT_OUTPUT_FILE,
        "iterations": DEFAULT_ITERATIONS,
        "seed": DEFAULT_SEED,
        "call_timeout": DEFAULT_CALL_TIMEOUT,
        "probe_timeout": DEFAULT_PROBE_TIMEOUT,
        "early_stop_threshold": EARLY_STOP_THRESHOLD,
        "reference": True,
        "strategies": [
            {
                "label": "Llama3.2",
                "provider": ChatProvider.OLLAMA.value,
                "model": "llama3.2",
                "base_url": DEFAULT_BASE_URLS[ChatProvider.OLLAMA],
                "delay_ms": 0,
            },
        ],
    }


def find_stratbench_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .stratbench directory by walking up from start_path.

    Returns None if no .stratbench directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        project_dir = current / PROJECT_DIR_NAME
        if project_dir.is_dir():
            return project_dir
        current = current.parent

    # Check root
    project_dir = current / PROJECT_DIR_NAME
    if project_dir.is_dir():
        return project_dir

    return None


def _number(data: dict[str, object], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"{key} must be a number, got {value!r}"
        raise ConfigurationError(msg)
    return float(value)


def config_from_dict(data: dict[str, object], root: Path) -> BenchConfig:
    """Build a config from parsed YAML.

    Raises:
        ConfigurationError: A key has the wrong type or an invalid value

    """
    config = BenchConfig(root=root)

    output_file = data.get("output_file")
    if output_file is not None:
        if not isinstance(output_file, str) or not output_file.strip():
            msg = f"output_file must be a non-empty string, got {output_file!r}"
            raise ConfigurationError(msg)
        config.output_file = output_file

    config.iterations = int(_number(data, "iterations", config.iterations))
    config.seed = int(_number(data, "seed", config.seed))
    config.call_timeout = _number(data, "call_timeout", config.call_timeout)
    config.probe_timeout = _number(data, "probe_timeout", config.probe_timeout)
    config.early_stop_threshold = int(
        _number(data, "early_stop_threshold", config.early_stop_threshold),
    )

    if config.iterations < 0:
        msg = f"iterations must be >= 0, got {config.iterations}"
        raise ConfigurationError(msg)
    if config.call_timeout <= 0 or config.probe_timeout <= 0:
        msg = "call_timeout and probe_timeout must be positive"
        raise ConfigurationError(msg)
    if config.early_stop_threshold < 1:
        msg = f"early_stop_threshold must be >= 1, got {config.early_stop_threshold}"
        raise ConfigurationError(msg)

    reference = data.get("reference", True)
    if not isinstance(reference, bool):
        msg = f"reference must be true or false, got {reference!r}"
        raise ConfigurationError(msg)
    config.reference = reference

    raw_strategies = data.get("strategies") or []
    if not isinstance(raw_strategies, list):
        msg = "strategies must be a list"
        raise ConfigurationError(msg)
    for index, entry in enumerate(cast("list[object]", raw_strategies)):
        try:
            config.strategies.append(StrategyConfig.model_validate(entry))
        except ValidationError as e:
            msg = f"strategies[{index}]: {e}"
            raise ConfigurationError(msg) from e

    return config


def load_config(
    config_path: Path | None = None,
    stratbench_dir: Path | None = None,
) -> BenchConfig:
    """Load configuration from a file, the nearest .stratbench directory, or defaults.

    Looks for config in:
    1. Provided config_path (must exist)
    2. Provided stratbench_dir
    3. Nearest .stratbench directory walking up
    4. Defaults, rooted at the current directory

    Raises:
        ConfigurationError: Missing explicit file, unreadable YAML or invalid values

    """
    if config_path is not None:
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise ConfigurationError(msg)
        root = config_path.resolve().parent
        if root.name == PROJECT_DIR_NAME:
            root = root.parent
    else:
        if stratbench_dir is None:
            stratbench_dir = find_stratbench_dir()
        if stratbench_dir is None:
            return BenchConfig()
        root = stratbench_dir.resolve().parent
        config_path = stratbench_dir / CONFIG_FILE_NAME
        if not config_path.exists():
            return BenchConfig(root=root)

    try:
        with config_path.open(encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in {config_path}: {e}"
        raise ConfigurationError(msg) from e

    if not isinstance(loaded, dict):
        msg = f"{config_path} must contain a mapping"
        raise ConfigurationError(msg)

    logger.debug("Loaded config from %s", config_path)
    return config_from_dict(cast("dict[str, object]", loaded), root)


def _api_key(entry: StrategyConfig) -> str | None:
    if entry.api_key_env is None:
        return None
    key = os.environ.get(entry.api_key_env)
    if not key:
        logger.warning("%s: environment variable %s is not set", entry.label, entry.api_key_env)
    return key or None


def build_strategies(
    config: BenchConfig,
    iterations: int | None = None,
) -> list[StrategySpec]:
    """Instantiate the configured strategies.

    All strategies share one user directory and one meeting store.
    ``iterations`` overrides every budget when given.
    """
    directory = UserDirectory()
    meetings = MeetingStore()

    specs: list[StrategySpec] = []
    if config.reference:
        reference: StrategyAdapter = ReferenceAdapter(REFERENCE_LABEL, directory, meetings)
        specs.append(StrategySpec(reference, config.budget_for(None, iterations)))

    for entry in config.strategies:
        if not entry.enabled:
            logger.info("%s: disabled in config", entry.label)
            continue
        adapter = ChatModelAdapter(
            entry.label,
            entry.provider,
            entry.model,
            entry.resolved_base_url(),
            api_key=_api_key(entry),
            temperature=entry.temperature,
            request_timeout=config.call_timeout,
            probe_timeout=config.probe_timeout,
            directory=directory,
            meetings=meetings,
        )
        specs.append(
            StrategySpec(adapter, config.budget_for(entry, iterations), entry.delay_ms / 1000.0),
        )

    return specs
