# Copyright (c) Syntropy Systems
"""Tests for the durable result ledger."""

from __future__ import annotations

from pathlib import Path

import pytest

from stratbench.errors import LedgerFormatError
from stratbench.ledger import (
    HEADER,
    ResultLedger,
    format_row,
    load_completed_counts,
    parse_row,
    read_outcomes,
)
from stratbench.models.outcome import LedgerKey, ScenarioKind, TrialOutcome


def _outcomes() -> list[TrialOutcome]:
    return [
        TrialOutcome.success("Traditional", ScenarioKind.RETRIEVAL, 0.412),
        TrialOutcome.success(
            "Llama3.2",
            ScenarioKind.NORMALIZATION,
            1834.5,
            prompt_tokens=210,
            completion_tokens=38,
        ),
        TrialOutcome.failure("Llama3.2", ScenarioKind.COMMAND, 30000.0, "Timeout"),
        TrialOutcome.failure("Llama3.2", ScenarioKind.COMMAND, 912.25, "SchemaValidation"),
    ]


class TestRowFormat:
    """Tests for row serialization."""

    def test_format_row(self) -> None:
        """Test the exact row layout."""
        outcome = TrialOutcome.success("Traditional", ScenarioKind.RETRIEVAL, 1.5)
        assert format_row(outcome) == "Traditional,Retrieval,true,1.500,-1.000,0,0,"

    def test_format_failure_row(self) -> None:
        """Test that failures carry their error kind in the last column."""
        outcome = TrialOutcome.failure("M", ScenarioKind.COMMAND, 30000.0, "Timeout")
        assert format_row(outcome) == "M,Command,false,30000.000,-1.000,0,0,Timeout"

    def test_parse_row(self) -> None:
        """Test parsing a row written by format_row."""
        outcome = _outcomes()[1]
        assert parse_row(format_row(outcome)) == outcome

    def test_parse_row_rejects_short_rows(self) -> None:
        """Test that truncated rows are rejected."""
        with pytest.raises(ValueError, match="expected 8 fields"):
            _ = parse_row("M,Command,false")


class TestLedgerFile:
    """Tests for opening and appending."""

    def test_new_ledger_has_header(self, ledger_path: Path) -> None:
        """Test that a new ledger is created with the header, parents included."""
        with ResultLedger.open(ledger_path) as ledger:
            assert ledger.rows_written == 0

        assert ledger_path.read_text() == HEADER + "\n"

    def test_empty_file_gets_header(self, ledger_path: Path) -> None:
        """Test that an empty existing file is treated as new."""
        ledger_path.parent.mkdir(parents=True)
        ledger_path.touch()

        with ResultLedger.open(ledger_path):
            pass

        assert ledger_path.read_text() == HEADER + "\n"

    def test_round_trip(self, ledger_path: Path) -> None:
        """Test that appended outcomes read back unchanged."""
        with ResultLedger.open(ledger_path) as ledger:
            for outcome in _outcomes():
                ledger.append(outcome)
            assert ledger.session_rows == 4

        assert read_outcomes(ledger_path) == _outcomes()

    def test_counts_sum_to_rows(self, ledger_path: Path) -> None:
        """Test that recovered counts group rows by strategy and scenario."""
        with ResultLedger.open(ledger_path) as ledger:
            for outcome in _outcomes():
                ledger.append(outcome)

        counts = load_completed_counts(ledger_path)

        assert sum(counts.values()) == 4
        assert counts == {
            LedgerKey("Traditional", "Retrieval"): 1,
            LedgerKey("Llama3.2", "Normalization"): 1,
            LedgerKey("Llama3.2", "Command"): 2,
        }

    def test_reopen_appends(self, ledger_path: Path) -> None:
        """Test that reopening never truncates existing rows."""
        with ResultLedger.open(ledger_path) as ledger:
            ledger.append(_outcomes()[0])
        with ResultLedger.open(ledger_path) as ledger:
            assert ledger.rows_written == 1
            ledger.append(_outcomes()[1])
            assert ledger.rows_written == 2

        lines = ledger_path.read_text().splitlines()
        assert lines.count(HEADER) == 1
        assert len(lines) == 3

    def test_wrong_header_rejected(self, ledger_path: Path) -> None:
        """Test that an unrelated CSV is not appended to."""
        ledger_path.parent.mkdir(parents=True)
        _ = ledger_path.write_text("a,b,c\n1,2,3\n")

        with pytest.raises(LedgerFormatError, match="unexpected header"):
            _ = ResultLedger.open(ledger_path)

    def test_append_after_close(self, ledger_path: Path) -> None:
        """Test that a closed ledger refuses writes."""
        ledger = ResultLedger.open(ledger_path)
        ledger.close()
        ledger.close()

        assert ledger.closed
        with pytest.raises(RuntimeError, match="closed"):
            ledger.append(_outcomes()[0])


class TestRecovery:
    """Tests for recovering progress from damaged or unusual files."""

    def test_missing_file(self, temp_dir: Path) -> None:
        """Test that a missing ledger means no progress."""
        assert load_completed_counts(temp_dir / "nope.csv") == {}
        assert read_outcomes(temp_dir / "nope.csv") == []

    def test_torn_final_line_ignored(self, ledger_path: Path) -> None:
        """Test that an unterminated last line does not count."""
        ledger_path.parent.mkdir(parents=True)
        _ = ledger_path.write_text(
            HEADER + "\n"
            "Traditional,Retrieval,true,0.500,-1.000,0,0,\n"
            "Traditional,Normalization,tr",
        )

        assert load_completed_counts(ledger_path) == {LedgerKey("Traditional", "Retrieval"): 1}

    def test_torn_final_line_repaired_on_open(self, ledger_path: Path) -> None:
        """Test that opening drops only the torn line before appending."""
        ledger_path.parent.mkdir(parents=True)
        complete = "Traditional,Retrieval,true,0.500,-1.000,0,0,\n"
        _ = ledger_path.write_text(HEADER + "\n" + complete + "Traditional,Norm")

        with ResultLedger.open(ledger_path) as ledger:
            ledger.append(_outcomes()[0])

        lines = ledger_path.read_text().splitlines()
        assert lines == [HEADER, complete.rstrip("\n"), format_row(_outcomes()[0])]

    def test_unterminated_complete_row_counts(self, ledger_path: Path) -> None:
        """Test that a whole row missing only its newline is still counted."""
        ledger_path.parent.mkdir(parents=True)
        row = "Traditional,Retrieval,true,0.500,-1.000,0,0,"
        _ = ledger_path.write_text(HEADER + "\n" + row + "\n" + row)

        assert load_completed_counts(ledger_path) == {LedgerKey("Traditional", "Retrieval"): 2}
        assert len(read_outcomes(ledger_path)) == 2

    def test_unterminated_complete_row_kept_on_open(self, ledger_path: Path) -> None:
        """Test that opening terminates a whole final row instead of dropping it."""
        ledger_path.parent.mkdir(parents=True)
        row = "Traditional,Retrieval,true,0.500,-1.000,0,0,"
        _ = ledger_path.write_text(HEADER + "\n" + row + "\n" + row)

        with ResultLedger.open(ledger_path) as ledger:
            assert ledger.rows_written == 2
            ledger.append(_outcomes()[0])

        lines = ledger_path.read_text().splitlines()
        assert lines == [HEADER, row, row, format_row(_outcomes()[0])]

    def test_unterminated_header_kept_on_open(self, ledger_path: Path) -> None:
        """Test that a header-only file without a newline is reused."""
        ledger_path.parent.mkdir(parents=True)
        _ = ledger_path.write_text(HEADER)

        with ResultLedger.open(ledger_path) as ledger:
            assert ledger.rows_written == 0
            ledger.append(_outcomes()[0])

        assert ledger_path.read_text().splitlines() == [HEADER, format_row(_outcomes()[0])]

    def test_blank_and_short_lines_skipped(self, ledger_path: Path) -> None:
        """Test that recovery skips lines it cannot key."""
        ledger_path.parent.mkdir(parents=True)
        _ = ledger_path.write_text(
            HEADER + "\n"
            "\n"
            "garbage\n"
            "Only,One\n"
            "Traditional,Command,true,0.100,-1.000,0,0,\n",
        )

        assert load_completed_counts(ledger_path) == {LedgerKey("Traditional", "Command"): 1}

    def test_malformed_rows_skipped_when_reading(self, ledger_path: Path) -> None:
        """Test that unparseable rows are skipped by read_outcomes."""
        ledger_path.parent.mkdir(parents=True)
        _ = ledger_path.write_text(
            HEADER + "\n"
            "Traditional,Command,maybe,0.100,-1.000,0,0,\n"
            "Traditional,Command,true,0.100,-1.000,0,0,\n",
        )

        outcomes = read_outcomes(ledger_path)

        assert len(outcomes) == 1
        assert outcomes[0].accurate is True
