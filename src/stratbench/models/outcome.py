# Copyright (c) Syntropy Systems
"""Trial outcomes, scenario kinds and ledger keys."""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple

from pydantic import Field, model_validator
from typing_extensions import Self

from .base import FrozenModel

UNMEASURED_MS = -1.0


class ScenarioKind(str, Enum):
    """The three fixed task categories every strategy is measured on."""

    RETRIEVAL = "Retrieval"
    NORMALIZATION = "Normalization"
    COMMAND = "Command"

    def __str__(self) -> str:
        return self.value


# Iteration order inside one engine iteration; also the catalog draw order.
SCENARIO_ORDER: tuple[ScenarioKind, ...] = (
    ScenarioKind.RETRIEVAL,
    ScenarioKind.NORMALIZATION,
    ScenarioKind.COMMAND,
)


class LedgerKey(NamedTuple):
    """(strategy label, scenario) pair; the unit of resumability."""

    strategy: str
    scenario: str

    def __str__(self) -> str:
        return f"{self.strategy},{self.scenario}"

    @classmethod
    def of(cls, strategy: str, scenario: ScenarioKind | str) -> LedgerKey:
        """Build a key from a label and a kind (or raw scenario string)."""
        return cls(strategy, str(scenario))


class TrialOutcome(FrozenModel):
    """Result of one (strategy, scenario, iteration) execution."""

    strategy: str
    scenario: ScenarioKind
    accurate: bool
    latency_ms: float = Field(ge=0)
    ttft_ms: float = UNMEASURED_MS
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    error_kind: str = ""

    @model_validator(mode="after")
    def _check_error_implies_failure(self) -> Self:
        if self.error_kind and self.accurate:
            msg = "an outcome with an error kind cannot be accurate"
            raise ValueError(msg)
        if "," in self.error_kind or "\n" in self.error_kind:
            msg = f"error kind must not contain commas or newlines: {self.error_kind!r}"
            raise ValueError(msg)
        return self

    @property
    def key(self) -> LedgerKey:
        """Ledger key this outcome counts towards."""
        return LedgerKey.of(self.strategy, self.scenario)

    @classmethod
    def success(  # noqa: PLR0913
        cls,
        strategy: str,
        scenario: ScenarioKind,
        latency_ms: float,
        *,
        ttft_ms: float = UNMEASURED_MS,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> TrialOutcome:
        """Build an accurate outcome."""
        return cls(
            strategy=strategy,
            scenario=scenario,
            accurate=True,
            latency_ms=latency_ms,
            ttft_ms=ttft_ms,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )

    @classmethod
    def failure(  # noqa: PLR0913
        cls,
        strategy: str,
        scenario: ScenarioKind,
        latency_ms: float,
        error_kind: str,
        *,
        ttft_ms: float = UNMEASURED_MS,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> TrialOutcome:
        """Build a failed outcome; ``error_kind`` may be empty for a wrong answer."""
        return cls(
            strategy=strategy,
            scenario=scenario,
            accurate=False,
            latency_ms=latency_ms,
            ttft_ms=ttft_ms,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            error_kind=error_kind,
        )
