# Copyright (c) Syntropy Systems
"""Exception taxonomy for stratbench.

Trial-level errors (subclasses of ``TrialError``) are caught at the trial
boundary and recorded as failed outcomes. ``ConfigurationError`` is fatal and
raised before any trial runs. ``AvailabilityError`` only skips one target.
"""

from __future__ import annotations

from typing import ClassVar


class StratbenchError(Exception):
    """Base class for all stratbench errors."""


class ConfigurationError(StratbenchError):
    """Invalid configuration or run plan."""


class AvailabilityError(StratbenchError):
    """A strategy's availability probe failed."""


class LedgerFormatError(StratbenchError):
    """Existing ledger file does not start with the expected header."""


class RunInterrupted(StratbenchError):
    """A stop was requested while the engine was waiting."""


class TrialError(StratbenchError):
    """Failure of a single trial.

    ``error_kind`` is the short token written to the ledger's Error_Type
    column; it must never contain a comma.
    """

    error_kind: ClassVar[str] = "TrialError"

    def __init__(
        self,
        message: str,
        *,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> None:
        """Initialize with optional usage counters spent before the failure."""
        super().__init__(message)
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens


class InvocationTimeoutError(TrialError, TimeoutError):
    """Adapter call exceeded the per-call timeout."""

    error_kind: ClassVar[str] = "Timeout"


class TransportError(TrialError):
    """Network or protocol failure talking to a strategy backend."""

    error_kind: ClassVar[str] = "Transport"


class MalformedResponseError(TrialError):
    """Backend answered, but not with a parseable payload."""

    error_kind: ClassVar[str] = "MalformedResponse"


class ResultValidationError(TrialError):
    """Structured result failed validation."""

    error_kind: ClassVar[str] = "ValidationError"


class SchemaValidationError(ResultValidationError):
    """Required field missing, blank, or of the wrong shape."""

    error_kind: ClassVar[str] = "SchemaValidation"


class ParameterMismatchError(ResultValidationError):
    """Field present but its value is not acceptable."""

    error_kind: ClassVar[str] = "ParameterMismatch"


class SemanticMismatchError(TrialError):
    """Well-formed result that disagrees with the expected answer."""

    error_kind: ClassVar[str] = "SemanticMismatch"


def classify_error(exc: BaseException) -> str:
    """Return the ledger error token for an exception.

    Known trial errors use their ``error_kind``; anything else falls back to
    the exception's class name. Commas and whitespace are stripped so the
    token is safe for the unquoted row format.
    """
    kind = exc.error_kind if isinstance(exc, TrialError) else type(exc).__name__
    return "".join(ch for ch in kind if ch != "," and not ch.isspace()) or "Error"
