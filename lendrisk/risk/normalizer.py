"""Position normalizer — merges raw adapter positions into the canonical set.

Margin modes:

* cross-margin (Aave, Moonwell): one account per ``(owner, protocol)``.
* cross-margin per comet (Compound III): collateral markets are keyed
  ``"{comet}:{asset}"`` and share the account of their comet.
* isolated (Morpho Blue): every market is its own account, collateral is held
  in the market's collateral asset.

Every position of an account carries the account health factor.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Optional, Tuple

from ..errors import PriceUnavailable
from ..models import LendingProtocol, MarketParams, Position, PositionKey
from .health import health_factor
from .pricing import PriceLookup

logger = logging.getLogger(__name__)

AccountKey = Tuple[str, LendingProtocol, str]
MarketIndex = Mapping[Tuple[LendingProtocol, str], MarketParams]


@dataclass(frozen=True)
class RiskBasis:
    """USD inputs of one margin account's health factor."""

    collateral_usd: float
    debt_usd: float
    liquidation_threshold: float
    max_ltv: float = 0.0

    @property
    def health_factor(self) -> float:
        return health_factor(
            self.collateral_usd, self.debt_usd, self.liquidation_threshold
        )


def account_id(protocol: LendingProtocol, market_id: str) -> str:
    """Identifier of the margin account a market belongs to."""
    if protocol.is_isolated:
        return market_id
    if protocol is LendingProtocol.COMPOUND:
        return market_id.partition(":")[0]
    return ""


def account_key(position: Position) -> AccountKey:
    return (position.owner, position.protocol, account_id(position.protocol, position.market_id))


def index_markets(markets: Iterable[MarketParams]) -> dict[Tuple[LendingProtocol, str], MarketParams]:
    return {m.key: m for m in markets}


def _sort_key(key: PositionKey) -> tuple[str, str, str]:
    owner, protocol, market_id = key
    return (owner, protocol.value, market_id)


def merge_positions(positions: Iterable[Position]) -> list[Position]:
    """Drop empty positions and merge duplicates by summing balances."""
    merged: dict[PositionKey, Position] = {}
    for pos in positions:
        if pos.is_empty:
            continue
        existing = merged.get(pos.key)
        if existing is None:
            merged[pos.key] = pos
            continue
        merged[pos.key] = replace(
            existing,
            supply_balance=existing.supply_balance + pos.supply_balance,
            borrow_balance=existing.borrow_balance + pos.borrow_balance,
            collateral_balance=existing.collateral_balance + pos.collateral_balance,
            is_collateral_enabled=existing.is_collateral_enabled or pos.is_collateral_enabled,
        )
    return [merged[k] for k in sorted(merged, key=_sort_key)]


def _enrich(position: Position, market: Optional[MarketParams]) -> Position:
    if market is None:
        return position
    return replace(
        position,
        asset=market.asset,
        collateral_asset=market.collateral_asset,
        current_supply_apy=market.net_supply_apy,
        current_borrow_apy=market.net_borrow_apy,
    )


def _basis(
    members: list[Position], markets: MarketIndex, prices: PriceLookup
) -> RiskBasis:
    """Sum one account's USD figures; raises PriceUnavailable or KeyError."""
    collateral_usd = 0.0
    weighted_lt = 0.0
    weighted_ltv = 0.0
    debt_usd = 0.0

    for pos in members:
        market = markets[(pos.protocol, pos.market_id)]

        if pos.protocol.is_isolated:
            if pos.collateral_balance:
                if market.collateral_asset is None:
                    raise KeyError(f"{pos.market_id} has no collateral asset")
                value = prices.usd_value(pos.collateral_balance, market.collateral_asset)
                collateral_usd += value
                weighted_lt += value * market.liquidation_threshold
                weighted_ltv += value * market.max_ltv
        elif pos.supply_balance and pos.is_collateral_enabled and market.can_use_as_collateral:
            value = prices.usd_value(pos.supply_balance, market.asset)
            collateral_usd += value
            weighted_lt += value * market.liquidation_threshold
            weighted_ltv += value * market.max_ltv

        if pos.borrow_balance:
            debt_usd += prices.usd_value(pos.borrow_balance, market.asset)

    if collateral_usd > 0:
        lt = min(1.0, weighted_lt / collateral_usd)
        ltv = min(1.0, weighted_ltv / collateral_usd)
    else:
        lt = ltv = 0.0
    return RiskBasis(collateral_usd, debt_usd, lt, ltv)


def risk_bases(
    positions: Iterable[Position],
    markets: Iterable[MarketParams] | MarketIndex,
    prices: PriceLookup,
) -> dict[AccountKey, Optional[RiskBasis]]:
    """USD risk basis per margin account, ``None`` where it is unknown.

    A stale price raises :class:`~lendrisk.errors.StalePriceError`.
    """
    index = markets if isinstance(markets, Mapping) else index_markets(markets)

    accounts: dict[AccountKey, list[Position]] = {}
    for pos in merge_positions(positions):
        accounts.setdefault(account_key(pos), []).append(pos)

    bases: dict[AccountKey, Optional[RiskBasis]] = {}
    for key, members in accounts.items():
        try:
            bases[key] = _basis(members, index, prices)
        except KeyError as e:
            logger.warning("Account %s/%s/%s: market missing (%s)", key[0], key[1].value, key[2], e)
            bases[key] = None
        except PriceUnavailable as e:
            logger.warning("Account %s/%s/%s: %s", key[0], key[1].value, key[2], e)
            bases[key] = None
    return bases


def normalize(
    positions: Iterable[Position],
    markets: Iterable[MarketParams],
    prices: PriceLookup,
) -> tuple[Position, ...]:
    """Build the canonical, health-factor-annotated position set sorted by key."""
    index = index_markets(markets)
    merged = merge_positions(positions)
    bases = risk_bases(merged, index, prices)

    result: list[Position] = []
    for pos in merged:
        basis = bases.get(account_key(pos))
        hf = basis.health_factor if basis is not None else None
        result.append(
            replace(_enrich(pos, index.get((pos.protocol, pos.market_id))), health_factor=hf)
        )
    return tuple(result)
