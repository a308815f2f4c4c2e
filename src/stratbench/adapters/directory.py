# Copyright (c) Syntropy Systems
"""In-memory user directory and meeting store backing every strategy.

Both stores are shared by the reference strategy and by the tools exposed to
chat models, so every strategy answers against the same data.
"""
from __future__ import annotations

import itertools
import re
from dataclasses import dataclass
from datetime import date, time
from threading import Lock

from stratbench.models.scenario import MeetingBookingRequest, MeetingBookingResult

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


@dataclass(frozen=True)
class UserProfile:
    """One row of the user directory."""

    email: str
    first_name: str
    last_name: str
    phone: str
    address: str


SEED_PROFILES: tuple[UserProfile, ...] = (
    UserProfile(
        "alice.johnson@example.com", "Alice", "Johnson",
        "+1-555-0101", "742 Evergreen Terrace, Springfield, IL 62704",
    ),
    UserProfile(
        "bob.smith@example.com", "Bob", "Smith",
        "+1-555-0102", "221B Baker Street, London, UK NW1 6XE",
    ),
    UserProfile(
        "carol.williams@example.com", "Carol", "Williams",
        "+1-555-0103", "350 Fifth Avenue, New York, NY 10118",
    ),
    UserProfile(
        "david.brown@example.com", "David", "Brown",
        "+1-555-0104", "1600 Pennsylvania Ave, Washington, DC 20500",
    ),
    UserProfile(
        "eve.davis@example.com", "Eve", "Davis",
        "+1-555-0105", "1 Infinite Loop, Cupertino, CA 95014",
    ),
)


class UserDirectory:
    """Read-only profile lookup keyed by email."""

    def __init__(self, profiles: tuple[UserProfile, ...] = SEED_PROFILES) -> None:
        self._by_email = {p.email.lower(): p for p in profiles}

    def find_by_email(self, email: str) -> UserProfile | None:
        """Return the profile for ``email`` (case-insensitive), if any."""
        return self._by_email.get(email.strip().lower())

    def __len__(self) -> int:
        return len(self._by_email)


@dataclass(frozen=True)
class Meeting:
    """A booked meeting."""

    id: int
    title: str
    organizer_email: str
    participants: tuple[str, ...]
    date: date
    start_time: time
    end_time: time
    location: str


def _parse_hhmm(value: str) -> time | None:
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError):
        return None


class MeetingStore:
    """Thread-safe meeting store that validates before inserting.

    Calls abandoned after a timeout may still land here from their worker
    thread, hence the lock.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._ids = itertools.count(1)
        self._meetings: dict[int, Meeting] = {}

    def book(self, request: MeetingBookingRequest) -> MeetingBookingResult:
        """Validate and store a meeting; validation problems are reported, not raised."""
        errors: list[str] = []

        if not request.title.strip():
            errors.append("Title is required")
        if not EMAIL_PATTERN.match(request.organizer_email):
            errors.append("Valid organizer email is required")
        if not request.participants:
            errors.append("At least one participant is required")
        errors.extend(
            f"Invalid participant email: {p}"
            for p in request.participants
            if not EMAIL_PATTERN.match(p.strip())
        )

        meeting_date: date | None
        try:
            meeting_date = date.fromisoformat(request.date)
        except ValueError:
            meeting_date = None
            errors.append("Valid date in yyyy-mm-dd format is required")

        start = _parse_hhmm(request.start_time)
        if start is None:
            errors.append("Valid start time in HH:mm format is required")
        end = _parse_hhmm(request.end_time)
        if end is None:
            errors.append("Valid end time in HH:mm format is required")
        if start is not None and end is not None and end <= start:
            errors.append("End time must be after start time")

        if errors or meeting_date is None or start is None or end is None:
            return MeetingBookingResult(success=False, meeting_id=None, message="; ".join(errors))

        with self._lock:
            meeting_id = next(self._ids)
            self._meetings[meeting_id] = Meeting(
                id=meeting_id,
                title=request.title,
                organizer_email=request.organizer_email,
                participants=tuple(p.strip() for p in request.participants),
                date=meeting_date,
                start_time=start,
                end_time=end,
                location=request.location,
            )
        return MeetingBookingResult(
            success=True,
            meeting_id=meeting_id,
            message="Meeting booked successfully",
        )

    def get(self, meeting_id: int) -> Meeting | None:
        """Return a stored meeting by id."""
        with self._lock:
            return self._meetings.get(meeting_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._meetings)
