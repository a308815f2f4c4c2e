# Copyright (c) Syntropy Systems
"""Benchmark execution engine.

Drives every run target through its iterations serially, one adapter call at
a time, persisting each trial to the ledger before moving on.

Per target:

    PENDING -> SKIPPED_COMPLETE
    PENDING -> CHECKING_AVAILABILITY -> SKIPPED_UNAVAILABLE
    PENDING [-> CHECKING_AVAILABILITY] -> RUNNING -> DONE

Inside RUNNING each scenario kind is independently ACTIVE or EARLY_STOPPED.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from threading import Event, Thread
from typing import TYPE_CHECKING, Callable, cast

from stratbench.catalog import DEFAULT_SEED, ScenarioCatalog
from stratbench.errors import (
    AvailabilityError,
    InvocationTimeoutError,
    RunInterrupted,
    TrialError,
    classify_error,
)
from stratbench.ledger import ResultLedger, load_completed_counts
from stratbench.models.outcome import (
    SCENARIO_ORDER,
    UNMEASURED_MS,
    LedgerKey,
    ScenarioKind,
    TrialOutcome,
)
from stratbench.validation import validate_result, verify_expected

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from stratbench.adapters.base import InvocationResult, StrategyAdapter
    from stratbench.models.scenario import ScenarioCase
    from stratbench.plan import RunTarget

logger = logging.getLogger(__name__)

EARLY_STOP_THRESHOLD = 20
DEFAULT_CALL_TIMEOUT = 30.0
DEFAULT_PROBE_TIMEOUT = 10.0
PROGRESS_EVERY = 10

# Granularity at which blocking waits re-check the stop event.
_WAIT_SLICE = 0.1


class TargetState(str, Enum):
    """Lifecycle of one run target."""

    PENDING = "pending"
    CHECKING_AVAILABILITY = "checking_availability"
    SKIPPED_COMPLETE = "skipped_complete"
    SKIPPED_UNAVAILABLE = "skipped_unavailable"
    RUNNING = "running"
    DONE = "done"


class KindState(str, Enum):
    """Per-scenario state while a target is running."""

    ACTIVE = "active"
    EARLY_STOPPED = "early_stopped"


@dataclass
class TargetReport:
    """What happened to one run target during this session."""

    label: str
    iterations: int
    state: TargetState = TargetState.PENDING
    start_from: int | None = None
    appended: int = 0
    early_stopped: list[ScenarioKind] = field(default_factory=list)
    stopped_at: int | None = None


class _InFlightCall:
    """One adapter call running on a daemon worker thread.

    The coordinator waits on ``done`` with a deadline; an abandoned call keeps
    its thread until the adapter returns, but nothing waits for it.
    """

    def __init__(self, fn: Callable[[], object], name: str) -> None:
        self.done = Event()
        self.result: object = None
        self.error: BaseException | None = None
        self._fn = fn
        self._thread = Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        try:
            self.result = self._fn()
        except BaseException as exc:  # noqa: BLE001 - handed to the coordinator
            self.error = exc
        finally:
            self.done.set()


class ExecutionEngine:
    """Runs a plan against a ledger, resuming from what the ledger holds.

    The engine owns the ledger's append handle for the duration of ``run``.
    Outcomes produced in this session accumulate in ``outcomes`` even if the
    run is interrupted, so a summary can always be produced.
    """

    plan: list[RunTarget]
    ledger_path: Path
    call_timeout: float
    probe_timeout: float
    early_stop_threshold: int
    seed: int
    outcomes: list[TrialOutcome]
    reports: dict[str, TargetReport]

    def __init__(  # noqa: PLR0913
        self,
        plan: Sequence[RunTarget],
        ledger_path: Path,
        *,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        early_stop_threshold: int = EARLY_STOP_THRESHOLD,
        seed: int = DEFAULT_SEED,
        stop_event: Event | None = None,
        catalog_factory: Callable[[int], ScenarioCatalog] = ScenarioCatalog,
    ) -> None:
        """Initialize the engine.

        Args:
            plan: Ordered run targets, as built by ``build_run_plan``
            ledger_path: Ledger file to recover from and append to
            call_timeout: Wall-clock bound on each adapter call (seconds)
            probe_timeout: Wall-clock bound on each availability probe (seconds)
            early_stop_threshold: Consecutive failures that stop a scenario kind
            seed: Catalog seed; every target replays the same draw sequence
            stop_event: Set from outside (e.g. a signal handler) to stop at the
                next suspension point
            catalog_factory: Builds a fresh catalog from a seed

        """
        if call_timeout <= 0:
            msg = "call_timeout must be positive"
            raise ValueError(msg)
        if early_stop_threshold < 1:
            msg = "early_stop_threshold must be at least 1"
            raise ValueError(msg)

        self.plan = list(plan)
        self.ledger_path = ledger_path
        self.call_timeout = call_timeout
        self.probe_timeout = probe_timeout
        self.early_stop_threshold = early_stop_threshold
        self.seed = seed
        self._stop_event = stop_event or Event()
        self._catalog_factory = catalog_factory
        self._completed: dict[LedgerKey, int] = {}
        self.outcomes = []
        self.reports = {
            target.label: TargetReport(target.label, target.iterations)
            for target in self.plan
        }

    # --- Public API ---

    def request_stop(self) -> None:
        """Ask the engine to stop at the next suspension point."""
        self._stop_event.set()

    @property
    def completed_counts(self) -> dict[LedgerKey, int]:
        """Counts recovered from the ledger when ``run`` started."""
        return dict(self._completed)

    def run(self) -> list[TargetReport]:
        """Recover progress, then run every target in plan order.

        Raises:
            RunInterrupted: A stop was requested while waiting
            OSError: Ledger I/O failed; no data is silently dropped

        """
        self._completed = load_completed_counts(self.ledger_path)
        if self._completed:
            logger.info("Resume detected:")
            for key, count in sorted(self._completed.items()):
                logger.info("  %s -> %d", key, count)

        logger.info(
            "Benchmark starting: %d target(s), ledger %s",
            len(self.plan),
            self.ledger_path,
        )

        with ResultLedger.open(self.ledger_path) as ledger:
            for target in self.plan:
                self._run_target(target, ledger)

        logger.info("Benchmark complete: %d result(s) this session", len(self.outcomes))
        return list(self.reports.values())

    # --- Per-target state machine ---

    def _recovered(self, label: str, kind: ScenarioKind) -> int:
        return self._completed.get(LedgerKey.of(label, kind), 0)

    def _run_target(self, target: RunTarget, ledger: ResultLedger) -> None:
        report = self.reports[target.label]
        recovered = {kind: self._recovered(target.label, kind) for kind in SCENARIO_ORDER}

        if all(count >= target.iterations for count in recovered.values()):
            report.state = TargetState.SKIPPED_COMPLETE
            logger.info("--- %s : SKIPPED (already complete) ---", target.label)
            return

        if not target.deterministic:
            report.state = TargetState.CHECKING_AVAILABILITY
            try:
                self._ensure_available(target.adapter)
            except AvailabilityError as e:
                report.state = TargetState.SKIPPED_UNAVAILABLE
                logger.error("--- %s : unavailable, SKIPPING (%s) ---", target.label, e)  # noqa: TRY400
                return

        start_from = min(recovered.values())
        report.start_from = start_from
        report.state = TargetState.RUNNING
        logger.info(
            "--- %s : running %d iterations (from %d) ---",
            target.label,
            target.iterations,
            start_from + 1,
        )

        # Replay the draws for the iterations already on disk so that
        # iteration i sees the same cases no matter where the run resumed.
        catalog = self._catalog_factory(self.seed)
        catalog.skip_iterations(start_from)

        failures: dict[LedgerKey, int] = {
            LedgerKey.of(target.label, kind): 0 for kind in SCENARIO_ORDER
        }
        kind_states: dict[ScenarioKind, KindState] = dict.fromkeys(
            SCENARIO_ORDER, KindState.ACTIVE
        )

        for i in range(start_from, target.iterations):
            cases = catalog.draw_iteration()

            for kind in SCENARIO_ORDER:
                if kind_states[kind] is KindState.EARLY_STOPPED:
                    continue
                if i < recovered[kind]:
                    # Already persisted by an earlier session.
                    continue

                outcome = self._execute_trial(target, kind, cases.for_kind(kind), i)
                ledger.append(outcome)
                self.outcomes.append(outcome)
                report.appended += 1

                key = outcome.key
                failures[key] = 0 if outcome.accurate else failures[key] + 1
                if failures[key] >= self.early_stop_threshold:
                    kind_states[kind] = KindState.EARLY_STOPPED
                    report.early_stopped.append(kind)
                    logger.warning(
                        "  %s %s early-stopped after %d consecutive failures",
                        target.label,
                        kind.value,
                        failures[key],
                    )

                self._pause(target.delay_seconds)

            if all(state is KindState.EARLY_STOPPED for state in kind_states.values()):
                report.stopped_at = i
                logger.warning(
                    "  %s all scenarios early-stopped at iter %d",
                    target.label,
                    i + 1,
                )
                break

            if (i + 1) % PROGRESS_EVERY == 0:
                logger.info("  %s progress: %d/%d", target.label, i + 1, target.iterations)

        report.state = TargetState.DONE

    def _ensure_available(self, adapter: StrategyAdapter) -> None:
        """Run the adapter's probe under the probe timeout.

        Raises:
            AvailabilityError: Probe returned False, raised, or timed out

        """
        logger.info("Probing %s ...", adapter.label)
        call = _InFlightCall(
            adapter.probe,
            name=f"probe-{adapter.label}",
        )
        call.start()
        if not self._wait(call, self.probe_timeout, adapter):
            msg = f"probe timed out after {self.probe_timeout}s"
            raise AvailabilityError(msg)
        if call.error is not None:
            msg = f"probe failed: {call.error}"
            raise AvailabilityError(msg) from call.error
        if call.result is not True:
            msg = "probe reported the strategy as unavailable"
            raise AvailabilityError(msg)
        logger.info("Probe %s: OK", adapter.label)

    # --- Trials ---

    def _execute_trial(
        self,
        target: RunTarget,
        kind: ScenarioKind,
        case: ScenarioCase,
        iteration: int,
    ) -> TrialOutcome:
        """Run and classify one trial. Only interrupts escape."""
        label = target.label
        logger.debug("  [%s] iter %d %s (%s)", label, iteration + 1, kind.value, case)

        started = time.perf_counter()
        result: InvocationResult | None = None
        latency_ms: float | None = None
        try:
            result = self._invoke(target.adapter, kind, case)
            latency_ms = (time.perf_counter() - started) * 1000.0
            validate_result(kind, result.payload)
            verify_expected(case, result.payload)
        except RunInterrupted:
            raise
        except InvocationTimeoutError as e:
            logger.warning("  [%s] %s TIMEOUT after %ss", label, kind.value, self.call_timeout)
            return TrialOutcome.failure(label, kind, self.call_timeout * 1000.0, e.error_kind)
        except Exception as e:  # noqa: BLE001 - every trial failure is a recorded outcome
            if latency_ms is None:
                latency_ms = (time.perf_counter() - started) * 1000.0
            error_kind = classify_error(e)
            logger.warning("  [%s] %s %s: %s", label, kind.value, error_kind, e)
            if result is not None:
                usage = (result.prompt_tokens, result.completion_tokens, result.ttft_ms)
            elif isinstance(e, TrialError):
                usage = (e.prompt_tokens, e.completion_tokens, UNMEASURED_MS)
            else:
                usage = (0, 0, UNMEASURED_MS)
            return TrialOutcome.failure(
                label,
                kind,
                latency_ms,
                error_kind,
                prompt_tokens=usage[0],
                completion_tokens=usage[1],
                ttft_ms=usage[2],
            )

        logger.debug(
            "  [%s] iter %d %s -> OK %.0fms",
            label,
            iteration + 1,
            kind.value,
            latency_ms,
        )
        return TrialOutcome.success(
            label,
            kind,
            latency_ms,
            ttft_ms=result.ttft_ms,
            prompt_tokens=result.prompt_tokens,
            completion_tokens=result.completion_tokens,
        )

    def _invoke(
        self,
        adapter: StrategyAdapter,
        kind: ScenarioKind,
        case: ScenarioCase,
    ) -> InvocationResult:
        """Call the adapter on a worker thread, bounded by ``call_timeout``.

        Raises:
            InvocationTimeoutError: The call did not finish in time
            RunInterrupted: A stop was requested while waiting

        """
        call = _InFlightCall(
            lambda: adapter.invoke(kind, case),
            name=f"invoke-{adapter.label}-{kind.value}",
        )
        call.start()
        if not self._wait(call, self.call_timeout, adapter):
            msg = f"{adapter.label} {kind.value} exceeded {self.call_timeout}s"
            raise InvocationTimeoutError(msg)
        if call.error is not None:
            raise call.error
        if call.result is None:
            msg = f"{adapter.label} returned no result"
            raise RuntimeError(msg)
        return cast("InvocationResult", call.result)

    def _wait(self, call: _InFlightCall, timeout: float, adapter: StrategyAdapter) -> bool:
        """Wait for ``call`` to finish; False on timeout.

        On timeout or interruption the adapter is asked to cancel.
        """
        deadline = time.monotonic() + timeout
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    adapter.cancel()
                    return False
                if call.done.wait(timeout=min(_WAIT_SLICE, remaining)):
                    return True
                if self._stop_event.is_set():
                    msg = "stop requested while waiting for a strategy call"
                    raise RunInterrupted(msg)
        except BaseException:
            adapter.cancel()
            raise

    def _pause(self, seconds: float) -> None:
        """Inter-call delay; a stop request during it is re-raised."""
        if self._stop_event.is_set():
            msg = "stop requested"
            raise RunInterrupted(msg)
        if seconds <= 0:
            return
        if self._stop_event.wait(timeout=seconds):
            msg = "stop requested during rate-limit delay"
            raise RunInterrupted(msg)
