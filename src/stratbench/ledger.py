# Copyright (c) Syntropy Systems
"""Durable, append-only trial ledger.

The ledger is a plain CSV file, one header line and one line per trial. It is
also the only record of progress: on startup the completed-trial counts are
re-derived by scanning it. Rows are flushed and fsynced before ``append``
returns. A final line without a trailing newline counts only when it
parses as a complete row; otherwise it is a torn append and is ignored.
"""
from __future__ import annotations

import logging
import os
from collections import Counter
from typing import IO, TYPE_CHECKING

from typing_extensions import Self

from stratbench.errors import LedgerFormatError
from stratbench.models.outcome import LedgerKey, ScenarioKind, TrialOutcome

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path
    from types import TracebackType

logger = logging.getLogger(__name__)

HEADER = "Model,Scenario,Accuracy,Latency_ms,TTFT_ms,Prompt_Tokens,Completion_Tokens,Error_Type"
FIELD_COUNT = 8


def format_row(outcome: TrialOutcome) -> str:
    """Serialize one outcome as a ledger row (without the newline)."""
    return (
        f"{outcome.strategy},{outcome.scenario.value},"
        f"{'true' if outcome.accurate else 'false'},"
        f"{outcome.latency_ms:.3f},{outcome.ttft_ms:.3f},"
        f"{outcome.prompt_tokens},{outcome.completion_tokens},"
        f"{outcome.error_kind}"
    )


def parse_row(line: str) -> TrialOutcome:
    """Parse a full ledger row back into an outcome.

    Raises:
        ValueError: If the row does not have exactly eight well-formed fields.

    """
    fields = line.rstrip("\r\n").split(",")
    if len(fields) != FIELD_COUNT:
        msg = f"expected {FIELD_COUNT} fields, got {len(fields)}"
        raise ValueError(msg)

    strategy, scenario, accuracy, latency, ttft, prompt, completion, error_kind = fields
    if accuracy not in ("true", "false"):
        msg = f"bad accuracy value: {accuracy!r}"
        raise ValueError(msg)

    return TrialOutcome(
        strategy=strategy,
        scenario=ScenarioKind(scenario),
        accurate=accuracy == "true",
        latency_ms=float(latency),
        ttft_ms=float(ttft),
        prompt_tokens=int(prompt),
        completion_tokens=int(completion),
        error_kind=error_kind,
    )


def _is_complete_row(line: str) -> bool:
    """Return whether an unterminated line still holds a whole row."""
    try:
        _ = parse_row(line)
    except ValueError:
        return False
    return True


def _data_lines(path: Path) -> Iterator[str]:
    """Yield data lines, skipping the header and a torn final line.

    A final line without a newline is kept when it parses as a full row;
    editors and other tools strip trailing newlines.
    """
    if not path.exists():
        return

    with path.open(encoding="utf-8", newline="") as f:
        first = True
        for raw_line in f:
            terminated = raw_line.endswith("\n")
            if first:
                first = False
                if terminated or raw_line == HEADER:
                    continue
            if not terminated:
                # Only the last line can lack a terminator.
                if _is_complete_row(raw_line):
                    yield raw_line
                else:
                    logger.warning("Ignoring torn final line in %s", path)
                break
            yield raw_line


def load_completed_counts(path: Path) -> dict[LedgerKey, int]:
    """Count completed trials per (strategy, scenario) in an existing ledger.

    Only the first two fields of each row are read. Blank lines, lines with
    fewer than two commas and a torn final line are skipped. Safe to call
    before the ledger is opened for writing.

    Args:
        path: Ledger file path; a missing file yields an empty mapping

    Returns:
        Mapping of ledger key to number of recorded trials

    """
    counts: Counter[LedgerKey] = Counter()
    for raw_line in _data_lines(path):
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split(",", 2)
        if len(parts) < 3:  # noqa: PLR2004
            continue
        counts[LedgerKey(parts[0], parts[1])] += 1
    return dict(counts)


def read_outcomes(path: Path) -> list[TrialOutcome]:
    """Read every parseable row of a ledger as outcomes.

    Malformed rows are skipped with a warning; they still count towards
    resume progress in ``load_completed_counts``.
    """
    outcomes: list[TrialOutcome] = []
    for lineno, raw_line in enumerate(_data_lines(path), start=2):
        line = raw_line.strip()
        if not line:
            continue
        try:
            outcomes.append(parse_row(line))
        except ValueError as e:
            logger.warning("Skipping malformed ledger row %d in %s: %s", lineno, path, e)
    return outcomes


def _repair_torn_tail(path: Path) -> None:
    """Make sure the file ends on a line boundary before appending.

    A complete unterminated row (or a bare header) gets its newline back; a
    partial line left by a crash mid-append is dropped.
    """
    with path.open("rb+") as f:
        _ = f.seek(0, os.SEEK_END)
        size = f.tell()
        _ = f.seek(size - 1)
        if f.read(1) == b"\n":
            return
        _ = f.seek(0)
        keep = f.read().rfind(b"\n") + 1
        _ = f.seek(keep)
        tail = f.read().decode("utf-8", errors="replace")
        if (keep == 0 and tail == HEADER) or (keep > 0 and _is_complete_row(tail)):
            logger.warning("Terminating unterminated final row in %s", path)
            _ = f.seek(0, os.SEEK_END)
            _ = f.write(b"\n")
        else:
            logger.warning(
                "Discarding %d bytes of torn final line in %s",
                size - keep,
                path,
            )
            _ = f.truncate(keep)
        f.flush()
        os.fsync(f.fileno())


class ResultLedger:
    """Exclusive append handle on a ledger file.

    Use ``ResultLedger.open`` rather than the constructor.
    """

    path: Path
    _file: IO[str] | None
    _rows_written: int
    _session_rows: int

    def __init__(self, path: Path, handle: IO[str], existing_rows: int) -> None:
        self.path = path
        self._file = handle
        self._rows_written = existing_rows
        self._session_rows = 0

    @classmethod
    def open(cls, path: Path) -> ResultLedger:
        """Open a ledger for appending, creating it with a header if needed.

        An existing, non-empty file is never truncated; only a torn final
        line left by a crash mid-append is dropped.

        Raises:
            LedgerFormatError: If an existing file does not start with the header
            OSError: On any filesystem error

        """
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.exists() and path.stat().st_size > 0:
            _repair_torn_tail(path)

        if path.exists() and path.stat().st_size > 0:
            with path.open(encoding="utf-8", newline="") as f:
                first_line = f.readline().rstrip("\r\n")
            if first_line != HEADER:
                msg = f"{path} is not a stratbench ledger (unexpected header: {first_line!r})"
                raise LedgerFormatError(msg)

            existing = sum(load_completed_counts(path).values())
            logger.info("Resuming: found %d existing rows in %s", existing, path)
            handle = path.open("a", encoding="utf-8", newline="")
            return cls(path, handle, existing)

        handle = path.open("a", encoding="utf-8", newline="")
        try:
            _ = handle.write(HEADER + "\n")
            handle.flush()
            os.fsync(handle.fileno())
        except OSError:
            handle.close()
            raise
        logger.info("Created new ledger: %s", path)
        return cls(path, handle, 0)

    def append(self, outcome: TrialOutcome) -> None:
        """Write one row and make it durable before returning."""
        if self._file is None:
            msg = "Cannot append to a closed ledger"
            raise RuntimeError(msg)

        _ = self._file.write(format_row(outcome) + "\n")
        self._file.flush()
        os.fsync(self._file.fileno())
        self._rows_written += 1
        self._session_rows += 1

    def close(self) -> None:
        """Release the file handle. Errors propagate."""
        if self._file is None:
            return
        handle = self._file
        self._file = None
        handle.close()
        logger.info(
            "Ledger closed: %d rows this session, %d total",
            self._session_rows,
            self._rows_written,
        )

    @property
    def closed(self) -> bool:
        """Return whether the handle has been released."""
        return self._file is None

    @property
    def rows_written(self) -> int:
        """Rows in the file, prior sessions included."""
        return self._rows_written

    @property
    def session_rows(self) -> int:
        """Rows appended through this handle."""
        return self._session_rows

    def __enter__(self) -> Self:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit - close the handle."""
        self.close()
