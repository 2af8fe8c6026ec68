"""Price oracle protocol — price feed abstraction."""
from typing import Protocol

from ..models import PriceQuote


class PriceOracle(Protocol):
    """Abstract interface for fetching timestamped USD prices."""

    async def fetch_quotes(
        self, symbols: list[str] | None = None
    ) -> dict[str, PriceQuote]: ...
