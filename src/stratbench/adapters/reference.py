# Copyright (c) Syntropy Systems
"""Deterministic reference strategy."""
from __future__ import annotations

from typing import TYPE_CHECKING

from stratbench.adapters.base import InvocationResult
from stratbench.adapters.directory import MeetingStore, UserDirectory
from stratbench.adapters.normalize import normalize_address, normalize_date
from stratbench.models.outcome import ScenarioKind
from stratbench.models.scenario import (
    CommandCase,
    NormalizationCase,
    NormalizedDataResult,
    RetrievalCase,
    UserProfileResult,
)

if TYPE_CHECKING:
    from stratbench.models.scenario import ScenarioCase

REFERENCE_LABEL = "Traditional"


class ReferenceAdapter:
    """Plain algorithmic implementation of all three scenarios.

    Needs nothing external, so it is always available and always runs first.
    """

    deterministic: bool = True

    def __init__(
        self,
        label: str = REFERENCE_LABEL,
        directory: UserDirectory | None = None,
        meetings: MeetingStore | None = None,
    ) -> None:
        self.label = label
        self.directory = directory or UserDirectory()
        self.meetings = meetings or MeetingStore()

    def invoke(self, kind: ScenarioKind, case: ScenarioCase) -> InvocationResult:
        """Execute one scenario.

        Raises:
            LookupError: Unknown user for a Retrieval case
            ValueError: Unparseable Normalization input
            TypeError: ``case`` does not belong to ``kind``

        """
        if kind is ScenarioKind.RETRIEVAL and isinstance(case, RetrievalCase):
            profile = self.directory.find_by_email(case.email)
            if profile is None:
                msg = f"User not found: {case.email}"
                raise LookupError(msg)
            return InvocationResult(
                UserProfileResult(
                    email=profile.email,
                    first_name=profile.first_name,
                    last_name=profile.last_name,
                    phone=profile.phone,
                    address=profile.address,
                ),
            )

        if kind is ScenarioKind.NORMALIZATION and isinstance(case, NormalizationCase):
            return InvocationResult(
                NormalizedDataResult(
                    normalized_date=normalize_date(case.request.raw_date),
                    normalized_address=normalize_address(case.request.raw_address),
                ),
            )

        if kind is ScenarioKind.COMMAND and isinstance(case, CommandCase):
            return InvocationResult(self.meetings.book(case.request))

        msg = f"{type(case).__name__} is not a {kind.value} case"
        raise TypeError(msg)

    def probe(self) -> bool:
        """Always available."""
        return True

    def cancel(self) -> None:
        """Calls are synchronous and short; nothing to cancel."""
