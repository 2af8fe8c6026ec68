"""Shared adapter plumbing — data-source calls and per-entry isolation."""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, TypeVar

from ..config import ProtocolConfig
from ..errors import ConsistencyViolation, DataUnavailable
from ..interfaces.chain import ChainDataSource
from ..models import FetchError, FetchResult, LendingProtocol, MarketParams, Position

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseLendingAdapter:
    """Fetch raw protocol data and translate it entry by entry.

    Subclasses set ``protocol``, ``markets_key`` / ``positions_key`` (the list
    field in the raw result) and implement the three ``_parse``/``_entry_id``
    hooks. A bad entry becomes a :class:`FetchError`; a bad envelope raises
    :class:`DataUnavailable`.
    """

    protocol: LendingProtocol
    markets_key: str = "markets"
    positions_key: str = "positions"

    def __init__(self, data_source: ChainDataSource, config: ProtocolConfig) -> None:
        self._source = data_source
        self._config = config
        self._contracts = dict(config.contracts)
        self._platform_fee = config.platform_fee

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _entry_id(self, entry: dict[str, Any]) -> str:
        raise NotImplementedError

    def _parse_market(self, entry: dict[str, Any]) -> list[MarketParams]:
        raise NotImplementedError

    def _parse_position(self, entry: dict[str, Any], owner: str) -> list[Position]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _fetch_entries(self, method: str, params: list[Any], key: str) -> list[Any]:
        result = await self._source.call(method, params)
        if not isinstance(result, dict) or not isinstance(result.get(key), list):
            raise DataUnavailable(
                f"{self.protocol.value}: malformed {method} response (missing '{key}' list)"
            )
        return result[key]

    def _translate(
        self, entries: Iterable[Any], parse: Callable[[dict[str, Any]], list[T]]
    ) -> FetchResult[T]:
        items: list[T] = []
        errors: list[FetchError] = []
        for entry in entries:
            entry_id = "?"
            try:
                if not isinstance(entry, dict):
                    raise ValueError(f"entry is {type(entry).__name__}, not an object")
                entry_id = self._entry_id(entry)
                items.extend(parse(entry))
            except ConsistencyViolation:
                raise
            except Exception as e:
                logger.warning(
                    "%s entry %s skipped: %s", self.protocol.display_name, entry_id, e
                )
                errors.append(FetchError(self.protocol, entry_id, str(e)))
        return FetchResult(tuple(items), tuple(errors))

    async def fetch_markets(self) -> FetchResult[MarketParams]:
        """Fetch every market of the protocol as protocol-agnostic MarketParams."""
        entries = await self._fetch_entries(
            self._config.methods.markets, [self._contracts], self.markets_key
        )
        result = self._translate(entries, self._parse_market)
        logger.debug(
            "%s: %d markets (%d failed)",
            self.protocol.display_name, len(result.items), len(result.errors),
        )
        return result

    async def fetch_positions(self, owner: str) -> FetchResult[Position]:
        """Fetch an owner's raw positions; health factors are left to the normalizer."""
        entries = await self._fetch_entries(
            self._config.methods.positions, [owner, self._contracts], self.positions_key
        )
        result = self._translate(entries, lambda e: self._parse_position(e, owner))
        logger.debug(
            "%s: %d positions for %s (%d failed)",
            self.protocol.display_name, len(result.items), owner, len(result.errors),
        )
        return result
