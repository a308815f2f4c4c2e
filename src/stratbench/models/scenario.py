# Copyright (c) Syntropy Systems
"""Scenario fixtures and the structured results strategies return."""

from __future__ import annotations

from typing import Union

from pydantic import Field
from typing_extensions import TypeAlias

from .base import BenchBaseModel, FrozenModel

# --- Fixtures ---


class RetrievalCase(FrozenModel):
    """Look up one user profile by email."""

    email: str


class NormalizationRequest(FrozenModel):
    """Free-form date and address to canonicalize."""

    raw_date: str
    raw_address: str


class NormalizationCase(FrozenModel):
    """Normalization input plus the canonical date it must produce."""

    request: NormalizationRequest
    expected_date: str


class MeetingBookingRequest(FrozenModel):
    """Structured meeting-booking command."""

    title: str
    organizer_email: str
    participants: tuple[str, ...]
    date: str
    start_time: str
    end_time: str
    location: str


class CommandCase(FrozenModel):
    """Booking command plus whether it should succeed."""

    request: MeetingBookingRequest
    expected_success: bool = True


ScenarioCase: TypeAlias = Union[RetrievalCase, NormalizationCase, CommandCase]


# --- Results ---
#
# Fields are optional so that a missing value reaches the validator and is
# classified there, instead of failing inside JSON parsing.


class UserProfileResult(BenchBaseModel):
    """Profile returned by a Retrieval trial."""

    email: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    phone: str | None = None
    address: str | None = None


class NormalizedDataResult(BenchBaseModel):
    """Canonical date and address returned by a Normalization trial."""

    normalized_date: str | None = Field(default=None, alias="normalizedDate")
    normalized_address: str | None = Field(default=None, alias="normalizedAddress")


class MeetingBookingResult(BenchBaseModel):
    """Booking confirmation returned by a Command trial."""

    success: bool | None = None
    meeting_id: int | None = Field(default=None, alias="meetingId")
    message: str | None = None


ScenarioResult: TypeAlias = Union[
    UserProfileResult,
    NormalizedDataResult,
    MeetingBookingResult,
]
