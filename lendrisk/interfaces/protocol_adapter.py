"""Protocol adapter — per-protocol market and position fetching."""
from typing import Protocol

from ..models import FetchResult, LendingProtocol, MarketParams, Position


class ProtocolAdapter(Protocol):
    """Abstract interface for translating one lending protocol into the common schema."""

    @property
    def protocol(self) -> LendingProtocol: ...

    async def fetch_markets(self) -> FetchResult[MarketParams]: ...

    async def fetch_positions(self, owner: str) -> FetchResult[Position]: ...
