"""Price snapshot with staleness enforcement and base-unit → USD conversion."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Mapping

from ..errors import PriceUnavailable, StalePriceError
from ..models import Asset, PriceQuote


class PriceLookup:
    """Immutable view over one batch of price quotes.

    ``now`` is fixed when the lookup is built so every figure derived from the
    same snapshot agrees on which quotes are stale.
    """

    def __init__(
        self,
        quotes: Mapping[str, PriceQuote],
        max_staleness_seconds: float,
        now: datetime | None = None,
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        self._quotes = {symbol.upper(): quote for symbol, quote in quotes.items()}
        self._max_staleness = max_staleness_seconds
        self._now = now or datetime.now(timezone.utc)
        self._aliases = {k.upper(): v.upper() for k, v in (aliases or {}).items()}

    @property
    def now(self) -> datetime:
        return self._now

    def symbols(self) -> tuple[str, ...]:
        return tuple(sorted(self._quotes))

    def _resolve(self, symbol: str) -> str:
        """Return the priced symbol, falling back to aliases."""
        key = symbol.upper()
        if key not in self._quotes and key in self._aliases:
            return self._aliases[key]
        return key

    def get_quote(self, symbol: str) -> PriceQuote:
        """Return a fresh, positive quote or raise."""
        quote = self._quotes.get(self._resolve(symbol))
        if quote is None:
            raise PriceUnavailable(symbol)
        if quote.price <= 0:
            raise PriceUnavailable(symbol, f"non-positive price {quote.price}")

        age = (self._now - quote.as_of).total_seconds()
        if self._max_staleness > 0 and age > self._max_staleness:
            raise StalePriceError(symbol, age, self._max_staleness)
        return quote

    def get_price(self, symbol: str) -> float:
        return self.get_quote(symbol).price

    def usd_value(self, amount: int, asset: Asset) -> float:
        """Convert integer base units of *asset* into USD."""
        price = self.get_price(asset.symbol)
        tokens = Decimal(amount) / (Decimal(10) ** asset.decimals)
        return float(tokens * Decimal(str(price)))
