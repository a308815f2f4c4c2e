# Copyright (c) Syntropy Systems
"""Run-plan construction."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from stratbench.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from stratbench.adapters.base import StrategyAdapter


@dataclass(frozen=True)
class StrategySpec:
    """A configured strategy before it is placed in the plan."""

    adapter: StrategyAdapter
    iterations: int
    delay_seconds: float = 0.0


@dataclass(frozen=True)
class RunTarget:
    """One strategy with its iteration budget and inter-call delay."""

    adapter: StrategyAdapter
    iterations: int
    delay_seconds: float

    @property
    def label(self) -> str:
        """Stable identity, used as the ledger key prefix."""
        return self.adapter.label

    @property
    def deterministic(self) -> bool:
        """Whether the strategy has no external dependency."""
        return self.adapter.deterministic


def _check_label(label: str) -> None:
    if not label or not label.strip():
        msg = "Strategy label must not be empty"
        raise ConfigurationError(msg)
    if "," in label or "\n" in label or "\r" in label:
        msg = f"Strategy label must not contain commas or newlines: {label!r}"
        raise ConfigurationError(msg)


def build_run_plan(strategies: Sequence[StrategySpec]) -> list[RunTarget]:
    """Order configured strategies into run targets.

    Deterministic strategies run first, since they need nothing external and
    validate the harness itself; they always get zero delay. The rest keep
    their configuration order.

    Raises:
        ConfigurationError: Duplicate or malformed label, negative budget or delay

    """
    seen: set[str] = set()
    for spec in strategies:
        label = spec.adapter.label
        _check_label(label)
        if label in seen:
            msg = f"Duplicate strategy label: {label}"
            raise ConfigurationError(msg)
        seen.add(label)
        if spec.iterations < 0:
            msg = f"{label}: iteration budget must be >= 0, got {spec.iterations}"
            raise ConfigurationError(msg)
        if spec.delay_seconds < 0:
            msg = f"{label}: delay must be >= 0, got {spec.delay_seconds}"
            raise ConfigurationError(msg)

    deterministic = [
        RunTarget(spec.adapter, spec.iterations, 0.0)
        for spec in strategies
        if spec.adapter.deterministic
    ]
    external = [
        RunTarget(spec.adapter, spec.iterations, spec.delay_seconds)
        for spec in strategies
        if not spec.adapter.deterministic
    ]
    return deterministic + external
