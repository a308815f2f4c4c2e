# Copyright (c) Syntropy Systems
"""The contract every benchmarked strategy implements."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from stratbench.models.outcome import UNMEASURED_MS

if TYPE_CHECKING:
    from stratbench.models.outcome import ScenarioKind
    from stratbench.models.scenario import ScenarioCase, ScenarioResult


@dataclass(frozen=True)
class InvocationResult:
    """Structured payload produced by one adapter call, plus usage counters."""

    payload: ScenarioResult
    prompt_tokens: int = 0
    completion_tokens: int = 0
    ttft_ms: float = UNMEASURED_MS


class StrategyAdapter(Protocol):
    """One strategy behind a uniform "execute scenario" call.

    ``invoke`` may be slow or raise anything; the engine bounds it with a
    timeout and turns failures into recorded outcomes. ``probe`` is only
    consulted for non-deterministic strategies. ``cancel`` is a best-effort
    request to abandon the call currently in flight.
    """

    label: str
    deterministic: bool

    def invoke(self, kind: ScenarioKind, case: ScenarioCase) -> InvocationResult:
        ...

    def probe(self) -> bool:
        ...

    def cancel(self) -> None:
        ...
