"""Chain data source protocol — read-only on-chain/indexer access."""
from typing import Any, Protocol


class ChainDataSource(Protocol):
    """Abstract interface for raw market and account reads."""

    async def call(self, method: str, params: list[Any]) -> Any: ...
