# Copyright (c) Syntropy Systems
"""Tests for the reference strategy and its stores."""

import pytest

from stratbench.adapters.directory import SEED_PROFILES, MeetingStore, UserDirectory
from stratbench.adapters.normalize import normalize_address, normalize_date
from stratbench.adapters.reference import REFERENCE_LABEL, ReferenceAdapter
from stratbench.catalog import COMMAND_CASES, NORMALIZATION_CASES, RETRIEVAL_CASES
from stratbench.models.outcome import ScenarioKind
from stratbench.models.scenario import (
    MeetingBookingRequest,
    MeetingBookingResult,
    NormalizedDataResult,
    RetrievalCase,
    UserProfileResult,
)
from stratbench.validation import validate_result, verify_expected


def _request(**overrides: object) -> MeetingBookingRequest:
    fields: dict[str, object] = {
        "title": "Sync",
        "organizer_email": "alice.johnson@example.com",
        "participants": ("bob.smith@example.com",),
        "date": "2024-06-15",
        "start_time": "09:00",
        "end_time": "09:30",
        "location": "Room A",
    }
    fields.update(overrides)
    return MeetingBookingRequest.model_validate(fields)


class TestNormalizeDate:
    """Tests for normalize_date."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("2024-01-05", "2024-01-05"),
            ("01/05/2024", "2024-01-05"),
            ("8/15/23", "2023-08-15"),
            ("2024.01.05", "2024-01-05"),
            ("January 5, 2024", "2024-01-05"),
            ("Jan 5th, 2024", "2024-01-05"),
            ("5 January 2024", "2024-01-05"),
            ("6-Jan-2024", "2024-01-06"),
            ("the 21st of August 2024", "2024-08-21"),
            ("twenty-first August 2024", "2024-08-21"),
            ("August 1st, 2024", "2024-08-01"),
        ],
    )
    def test_formats(self, raw: str, expected: str) -> None:
        """Test the supported input formats."""
        assert normalize_date(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "someday", "2023-02-30"])
    def test_unparseable(self, raw: str) -> None:
        """Test that unparseable dates raise."""
        with pytest.raises(ValueError):
            _ = normalize_date(raw)


class TestNormalizeAddress:
    """Tests for normalize_address."""

    def test_expands_and_capitalizes(self) -> None:
        """Test abbreviation expansion, title case and state codes."""
        assert (
            normalize_address("123 main st, apt 4, new york, ny 10001")
            == "123 Main Street, Apartment 4, New York, NY 10001"
        )

    def test_state_code_not_expanded(self) -> None:
        """Test that a state code that looks like an abbreviation is kept."""
        assert normalize_address("9 oak ct, hartford, ct 06103") == "9 Oak Court, Hartford, CT 06103"

    def test_trailing_periods(self) -> None:
        """Test abbreviations written with a period."""
        assert normalize_address("42 elm dr., san francisco") == "42 Elm Drive, San Francisco"

    def test_empty(self) -> None:
        """Test that an empty address raises."""
        with pytest.raises(ValueError):
            _ = normalize_address("  ")


class TestStores:
    """Tests for the user directory and meeting store."""

    def test_directory_lookup(self) -> None:
        """Test case-insensitive lookup by email."""
        directory = UserDirectory()

        assert len(directory) == len(SEED_PROFILES)
        profile = directory.find_by_email(" Alice.Johnson@Example.com ")
        assert profile is not None
        assert profile.first_name == "Alice"
        assert directory.find_by_email("nobody@example.com") is None

    def test_booking_assigns_ids(self) -> None:
        """Test that successful bookings get increasing ids."""
        store = MeetingStore()

        first = store.book(_request())
        second = store.book(_request(title="Other"))

        assert (first.success, first.meeting_id) == (True, 1)
        assert (second.success, second.meeting_id) == (True, 2)
        assert len(store) == 2
        meeting = store.get(2)
        assert meeting is not None
        assert meeting.title == "Other"

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"title": " "}, "Title is required"),
            ({"organizer_email": "alice"}, "organizer email"),
            ({"participants": ()}, "At least one participant"),
            ({"participants": ("bob@",)}, "Invalid participant email"),
            ({"date": "06/15/2024"}, "yyyy-mm-dd"),
            ({"start_time": "9am"}, "start time"),
            ({"end_time": "08:00"}, "End time must be after start time"),
        ],
    )
    def test_booking_rejections(self, overrides: dict[str, object], message: str) -> None:
        """Test that invalid requests are reported, not stored."""
        store = MeetingStore()

        result = store.book(_request(**overrides))

        assert result.success is False
        assert result.meeting_id is None
        assert message in (result.message or "")
        assert len(store) == 0


class TestReferenceAdapter:
    """Tests for ReferenceAdapter."""

    def test_identity(self) -> None:
        """Test label, determinism and availability."""
        adapter = ReferenceAdapter()

        assert adapter.label == REFERENCE_LABEL
        assert adapter.deterministic is True
        assert adapter.probe() is True

    @pytest.mark.parametrize("case", RETRIEVAL_CASES)
    def test_retrieval_cases_pass(self, case: RetrievalCase) -> None:
        """Test every Retrieval fixture."""
        result = ReferenceAdapter().invoke(ScenarioKind.RETRIEVAL, case)

        assert isinstance(result.payload, UserProfileResult)
        assert result.payload.email == case.email
        validate_result(ScenarioKind.RETRIEVAL, result.payload)

    def test_normalization_cases_pass(self) -> None:
        """Test that the reference strategy gets every Normalization fixture right."""
        adapter = ReferenceAdapter()
        for case in NORMALIZATION_CASES:
            payload = adapter.invoke(ScenarioKind.NORMALIZATION, case).payload
            assert isinstance(payload, NormalizedDataResult)
            validate_result(ScenarioKind.NORMALIZATION, payload)
            verify_expected(case, payload)

    def test_command_cases_pass(self) -> None:
        """Test that every Command fixture books successfully."""
        adapter = ReferenceAdapter()
        for case in COMMAND_CASES:
            payload = adapter.invoke(ScenarioKind.COMMAND, case).payload
            assert isinstance(payload, MeetingBookingResult)
            assert payload.success is True
            validate_result(ScenarioKind.COMMAND, payload)
        assert len(adapter.meetings) == len(COMMAND_CASES)

    def test_unknown_user(self) -> None:
        """Test that an unknown email raises LookupError."""
        with pytest.raises(LookupError, match="User not found"):
            _ = ReferenceAdapter().invoke(
                ScenarioKind.RETRIEVAL,
                RetrievalCase(email="ghost@example.com"),
            )

    def test_kind_case_mismatch(self) -> None:
        """Test that a case of the wrong kind is refused."""
        with pytest.raises(TypeError):
            _ = ReferenceAdapter().invoke(ScenarioKind.COMMAND, RETRIEVAL_CASES[0])
