# Copyright (c) Syntropy Systems
"""Structural and semantic checks applied to every trial's result."""
from __future__ import annotations

import re
from datetime import date

from stratbench.errors import (
    ParameterMismatchError,
    SchemaValidationError,
    SemanticMismatchError,
)
from stratbench.models.outcome import ScenarioKind
from stratbench.models.scenario import (
    CommandCase,
    MeetingBookingResult,
    NormalizationCase,
    NormalizedDataResult,
    ScenarioCase,
    ScenarioResult,
    UserProfileResult,
)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_EXPECTED_TYPES: dict[ScenarioKind, type[ScenarioResult]] = {
    ScenarioKind.RETRIEVAL: UserProfileResult,
    ScenarioKind.NORMALIZATION: NormalizedDataResult,
    ScenarioKind.COMMAND: MeetingBookingResult,
}


def result_type(kind: ScenarioKind) -> type[ScenarioResult]:
    """Return the result model a strategy must produce for ``kind``."""
    return _EXPECTED_TYPES[kind]


def _require_field(name: str, value: str | None) -> str:
    if value is None or not value.strip():
        msg = f"Missing or blank required field: {name}"
        raise SchemaValidationError(msg)
    return value


def validate_profile(result: UserProfileResult) -> None:
    """Check a Retrieval result."""
    email = _require_field("email", result.email)
    _ = _require_field("firstName", result.first_name)
    _ = _require_field("lastName", result.last_name)

    if not EMAIL_PATTERN.match(email):
        msg = f"Invalid email format in result: {email}"
        raise ParameterMismatchError(msg)


def validate_normalized(result: NormalizedDataResult) -> None:
    """Check a Normalization result."""
    normalized_date = _require_field("normalizedDate", result.normalized_date)
    if result.normalized_address is None:
        msg = "Missing or blank required field: normalizedAddress"
        raise SchemaValidationError(msg)

    if not ISO_DATE_PATTERN.match(normalized_date):
        msg = f"normalizedDate is not in ISO-8601 format (yyyy-mm-dd): {normalized_date}"
        raise ParameterMismatchError(msg)
    try:
        _ = date.fromisoformat(normalized_date)
    except ValueError as e:
        msg = f"normalizedDate is not a valid date: {normalized_date}"
        raise ParameterMismatchError(msg) from e

    if not result.normalized_address.strip():
        msg = "normalizedAddress is blank"
        raise ParameterMismatchError(msg)


def validate_booking(result: MeetingBookingResult) -> None:
    """Check a Command result."""
    if result.success is None:
        msg = "Missing required field: success"
        raise SchemaValidationError(msg)
    if result.success and result.meeting_id is None:
        msg = "Successful booking must include a non-null meetingId"
        raise ParameterMismatchError(msg)
    if not result.success and not (result.message or "").strip():
        msg = "Failed booking must include an error message"
        raise ParameterMismatchError(msg)


def validate_result(kind: ScenarioKind, payload: object) -> None:
    """Validate ``payload`` as the structured result for ``kind``.

    Raises:
        SchemaValidationError: Wrong payload type or a required field missing
        ParameterMismatchError: A field present with an unacceptable value

    """
    expected = _EXPECTED_TYPES[kind]
    if not isinstance(payload, expected):
        msg = f"{kind.value} expects {expected.__name__}, got {type(payload).__name__}"
        raise SchemaValidationError(msg)

    if isinstance(payload, UserProfileResult):
        validate_profile(payload)
    elif isinstance(payload, NormalizedDataResult):
        validate_normalized(payload)
    elif isinstance(payload, MeetingBookingResult):
        validate_booking(payload)


def verify_expected(case: ScenarioCase, payload: object) -> None:
    """Compare a validated result with the fixture's expected answer.

    Normalization fixtures carry an expected canonical date; Command fixtures
    say whether the booking should go through.

    Raises:
        SemanticMismatchError: The result disagrees with the fixture

    """
    if isinstance(case, NormalizationCase) and isinstance(payload, NormalizedDataResult):
        if payload.normalized_date != case.expected_date:
            msg = f"expected {case.expected_date} got {payload.normalized_date}"
            raise SemanticMismatchError(msg)
    elif isinstance(case, CommandCase) and isinstance(payload, MeetingBookingResult):
        if payload.success != case.expected_success:
            msg = f"expected success={case.expected_success} got success={payload.success}"
            raise SemanticMismatchError(msg)
