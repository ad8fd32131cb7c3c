"""Exception hierarchy for the staking ledger package."""
from __future__ import annotations


class StakingLedgerError(Exception):
    """Base class for all errors raised by the staking ledger."""


class ConfigurationError(StakingLedgerError):
    """Raised when thresholds or settings are missing or nonsensical."""


class UnknownStakeStateError(StakingLedgerError, ValueError):
    """Raised when a lifecycle tag has no canonical mapping."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Unknown stake state: {value!r}")
        self.value = value


class VarianceBreakdownError(StakingLedgerError, ValueError):
    """Raised when a variance breakdown explains more than the variance itself."""


class ParseError(StakingLedgerError, ValueError):
    """Raised when an input file row cannot be turned into a domain record."""

    def __init__(self, message: str, row: int | None = None) -> None:
        if row is not None:
            message = f"{message} (row={row})"
        super().__init__(message)
        self.row = row
