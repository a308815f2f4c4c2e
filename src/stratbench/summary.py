# Copyright (c) Syntropy Systems
"""Aggregate statistics over trial outcomes."""
from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from pydantic import Field

from stratbench.models.base import BenchBaseModel
from stratbench.models.outcome import LedgerKey, ScenarioKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from stratbench.models.outcome import TrialOutcome


class SummaryRow(BenchBaseModel):
    """Statistics for one (strategy, scenario) group."""

    strategy: str
    scenario: ScenarioKind
    total: int
    accurate: int
    mean_latency_ms: float
    mean_ttft_ms: float | None = None
    mean_prompt_tokens: float | None = None
    mean_completion_tokens: float | None = None
    errors: dict[str, int] = Field(default_factory=dict)

    @property
    def accuracy(self) -> float:
        """Accurate / total, 0.0 for an empty group."""
        return self.accurate / self.total if self.total else 0.0


class SummaryReport(BenchBaseModel):
    """Per-group statistics, in first-seen order."""

    rows: list[SummaryRow] = Field(default_factory=list)

    @property
    def total_trials(self) -> int:
        """Number of outcomes summarized."""
        return sum(row.total for row in self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def get(self, strategy: str, scenario: ScenarioKind) -> SummaryRow | None:
        """Return the row for a group, if any outcomes fell into it."""
        for row in self.rows:
            if row.strategy == strategy and row.scenario is scenario:
                return row
        return None


def _mean(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


def summarize(outcomes: Iterable[TrialOutcome]) -> SummaryReport:
    """Group outcomes by (strategy, scenario) and compute their statistics.

    Token means only cover outcomes that reported usage, and the first-token
    mean only those where it was measured.
    """
    groups: dict[LedgerKey, list[TrialOutcome]] = {}
    for outcome in outcomes:
        groups.setdefault(outcome.key, []).append(outcome)

    rows: list[SummaryRow] = []
    for group in groups.values():
        first = group[0]
        with_usage = [o for o in group if o.prompt_tokens or o.completion_tokens]
        errors = Counter(o.error_kind for o in group if o.error_kind)
        rows.append(
            SummaryRow(
                strategy=first.strategy,
                scenario=first.scenario,
                total=len(group),
                accurate=sum(1 for o in group if o.accurate),
                mean_latency_ms=sum(o.latency_ms for o in group) / len(group),
                mean_ttft_ms=_mean([o.ttft_ms for o in group if o.ttft_ms >= 0]),
                mean_prompt_tokens=_mean([float(o.prompt_tokens) for o in with_usage]),
                mean_completion_tokens=_mean([float(o.completion_tokens) for o in with_usage]),
                errors=dict(errors.most_common()),
            ),
        )
    return SummaryReport(rows=rows)
