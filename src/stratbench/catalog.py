# Copyright (c) Syntropy Systems
"""Seed-deterministic scenario catalog."""

from __future__ import annotations

import random
from typing import NamedTuple, cast

from stratbench.models.outcome import SCENARIO_ORDER, ScenarioKind
from stratbench.models.scenario import (
    CommandCase,
    MeetingBookingRequest,
    NormalizationCase,
    NormalizationRequest,
    RetrievalCase,
    ScenarioCase,
)

DEFAULT_SEED = 42

RETRIEVAL_CASES: tuple[RetrievalCase, ...] = (
    RetrievalCase(email="alice.johnson@example.com"),
    RetrievalCase(email="bob.smith@example.com"),
    RetrievalCase(email="carol.williams@example.com"),
    RetrievalCase(email="david.brown@example.com"),
    RetrievalCase(email="eve.davis@example.com"),
)


def _norm(raw_date: str, raw_address: str, expected_date: str) -> NormalizationCase:
    return NormalizationCase(
        request=NormalizationRequest(raw_date=raw_date, raw_address=raw_address),
        expected_date=expected_date,
    )


NORMALIZATION_CASES: tuple[NormalizationCase, ...] = (
    _norm("2024-01-05", "123 main st, apt 4, new york, ny 10001", "2024-01-05"),
    _norm("12/25/2022", "789 pine blvd, chicago, il 60601", "2022-12-25"),
    _norm("01/15/2024", "350 fifth ave, new york, ny 10118", "2024-01-15"),
    _norm("03-22-2023", "1 infinite loop, cupertino, ca 95014", "2023-03-22"),
    _norm("March 15 2023", "1600 pennsylvania ave, washington, dc 20500", "2023-03-15"),
    _norm("Jan 5th, 2024", "456 oak ave, ste 200, los angeles, ca 90001", "2024-01-05"),
    _norm("Nov 11th 2023", "77 massachusetts ave, cambridge, ma 02139", "2023-11-11"),
    _norm("2024-02-29", "42 elm dr, san francisco, ca 94102", "2024-02-29"),
)


def _meeting(  # noqa: PLR0913
    title: str,
    organizer: str,
    participants: tuple[str, ...],
    date: str,
    start: str,
    end: str,
    location: str,
) -> CommandCase:
    return CommandCase(
        request=MeetingBookingRequest(
            title=title,
            organizer_email=organizer,
            participants=participants,
            date=date,
            start_time=start,
            end_time=end,
            location=location,
        ),
    )


COMMAND_CASES: tuple[CommandCase, ...] = (
    _meeting(
        "Weekly Standup",
        "alice.johnson@example.com",
        ("bob.smith@example.com", "carol.williams@example.com"),
        "2024-06-15", "09:00", "09:30", "Conference Room A",
    ),
    _meeting(
        "Sprint Planning",
        "bob.smith@example.com",
        ("alice.johnson@example.com", "david.brown@example.com"),
        "2024-06-17", "10:00", "11:00", "Board Room B",
    ),
    _meeting(
        "Design Review",
        "carol.williams@example.com",
        ("eve.davis@example.com",),
        "2024-06-18", "14:00", "15:30", "Room 301",
    ),
    _meeting(
        "1:1 Check-in",
        "david.brown@example.com",
        ("alice.johnson@example.com",),
        "2024-06-19", "11:00", "11:30", "Office 204",
    ),
    _meeting(
        "Team Retrospective",
        "eve.davis@example.com",
        (
            "bob.smith@example.com",
            "carol.williams@example.com",
            "david.brown@example.com",
        ),
        "2024-06-20", "15:00", "16:00", "Main Hall",
    ),
)

_POOLS: dict[ScenarioKind, tuple[ScenarioCase, ...]] = {
    ScenarioKind.RETRIEVAL: RETRIEVAL_CASES,
    ScenarioKind.NORMALIZATION: NORMALIZATION_CASES,
    ScenarioKind.COMMAND: COMMAND_CASES,
}


class IterationCases(NamedTuple):
    """One case per scenario kind, drawn together for a single iteration."""

    retrieval: RetrievalCase
    normalization: NormalizationCase
    command: CommandCase

    def for_kind(self, kind: ScenarioKind) -> ScenarioCase:
        """Return the case drawn for ``kind``."""
        if kind is ScenarioKind.RETRIEVAL:
            return self.retrieval
        if kind is ScenarioKind.NORMALIZATION:
            return self.normalization
        return self.command


class ScenarioCatalog:
    """Fixed case pools sampled by a single seeded generator.

    All kinds share one generator, so the sequence of returned cases depends
    only on the seed and the sequence of calls. Nothing here reads the clock.
    """

    seed: int
    _rng: random.Random

    def __init__(self, seed: int = DEFAULT_SEED) -> None:
        self.seed = seed
        self._rng = random.Random(seed)  # noqa: S311

    def random_case(self, kind: ScenarioKind) -> ScenarioCase:
        """Draw one case of ``kind`` uniformly from its pool."""
        pool = _POOLS[kind]
        return pool[self._rng.randrange(len(pool))]

    def draw_iteration(self) -> IterationCases:
        """Draw one case for every kind, in the fixed scenario order."""
        drawn = [self.random_case(kind) for kind in SCENARIO_ORDER]
        return IterationCases(
            retrieval=cast("RetrievalCase", drawn[0]),
            normalization=cast("NormalizationCase", drawn[1]),
            command=cast("CommandCase", drawn[2]),
        )

    def skip_iterations(self, count: int) -> None:
        """Advance the generator past ``count`` iterations' worth of draws."""
        for _ in range(count):
            _ = self.draw_iteration()

    @staticmethod
    def pool(kind: ScenarioKind) -> tuple[ScenarioCase, ...]:
        """Return the full fixture pool for ``kind``."""
        return _POOLS[kind]
