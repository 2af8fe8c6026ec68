"""Error taxonomy for the lending risk engine."""
from __future__ import annotations


class LendingRiskError(Exception):
    """Base class for all engine errors."""


class DataUnavailable(LendingRiskError):
    """A fetch failed, returned malformed data, or is too old to trust.

    Recoverable: the next poll cycle retries. Callers must treat the affected
    figures as unknown, never as zero.
    """


class PriceUnavailable(DataUnavailable):
    """No usable price quote exists for a symbol."""

    def __init__(self, symbol: str, reason: str = "no price quote") -> None:
        super().__init__(f"Price for {symbol} unavailable: {reason}")
        self.symbol = symbol


class StalePriceError(DataUnavailable):
    """A price quote is older than the configured max staleness."""

    def __init__(self, symbol: str, age_seconds: float, max_age_seconds: float) -> None:
        super().__init__(
            f"Price for {symbol} is {age_seconds:.0f}s old (max {max_age_seconds:.0f}s)"
        )
        self.symbol = symbol
        self.age_seconds = age_seconds
        self.max_age_seconds = max_age_seconds


class InvalidInput(LendingRiskError, ValueError):
    """Caller passed a negative, NaN or unknown value. Not retried."""


class ConsistencyViolation(LendingRiskError, AssertionError):
    """An internal invariant failed. Indicates a bug; never swallowed."""
