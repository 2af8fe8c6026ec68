"""Portfolio aggregator — reduces a position set into PortfolioStats."""
from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

from ..errors import DataUnavailable, PriceUnavailable
from ..models import PortfolioStats, Position, PositionKey
from .pricing import PriceLookup

logger = logging.getLogger(__name__)


def _position_usd(position: Position, prices: PriceLookup) -> tuple[float, float, float]:
    """Return (supply_usd, collateral_usd, borrow_usd) for one position."""
    if position.asset is None:
        raise PriceUnavailable(position.market_id, "position asset unknown")

    supply_usd = prices.usd_value(position.supply_balance, position.asset)
    borrow_usd = prices.usd_value(position.borrow_balance, position.asset)
    collateral_usd = 0.0
    if position.collateral_balance:
        if position.collateral_asset is None:
            raise PriceUnavailable(position.market_id, "collateral asset unknown")
        collateral_usd = prices.usd_value(
            position.collateral_balance, position.collateral_asset
        )
    return supply_usd, collateral_usd, borrow_usd


def aggregate(
    positions: Iterable[Position], prices: PriceLookup, allow_unknown: bool = False
) -> PortfolioStats:
    """Reduce normalized positions into portfolio statistics.

    Positions without a usable price are skipped and counted, never valued at
    zero; a stale price propagates as :class:`~lendrisk.errors.StalePriceError`.
    ``lowest_health_factor`` is the exact minimum over positions carrying debt.
    A debt position with an unknown health factor raises
    :class:`~lendrisk.errors.DataUnavailable` unless *allow_unknown*, in which
    case it is excluded from the minimum and counted.
    """
    ordered = sorted(
        (p for p in positions if not p.is_empty),
        key=lambda p: (p.owner, p.protocol.value, p.market_id),
    )

    total_supply = 0.0
    total_borrow = 0.0
    supply_weight = 0.0
    supply_apy_sum = 0.0
    borrow_weight = 0.0
    borrow_apy_sum = 0.0
    lowest = math.inf
    riskiest: Optional[PositionKey] = None
    skipped = 0
    unknown = 0

    for pos in ordered:
        if pos.has_debt:
            if pos.health_factor is None:
                if not allow_unknown:
                    raise DataUnavailable(
                        f"Health factor unknown for {pos.owner}/{pos.protocol.value}/"
                        f"{pos.market_id}; lowest health factor cannot be stated"
                    )
                logger.warning(
                    "Health factor unknown for %s/%s/%s; excluded from lowest HF",
                    pos.owner, pos.protocol.value, pos.market_id,
                )
                unknown += 1
            elif pos.health_factor < lowest or riskiest is None:
                lowest = min(lowest, pos.health_factor)
                riskiest = pos.key

        try:
            supply_usd, collateral_usd, borrow_usd = _position_usd(pos, prices)
        except PriceUnavailable as e:
            logger.warning(
                "Skipping %s/%s/%s in totals: %s",
                pos.owner, pos.protocol.value, pos.market_id, e,
            )
            skipped += 1
            continue

        total_supply += supply_usd + collateral_usd
        total_borrow += borrow_usd
        if pos.supply_balance > 0:
            supply_weight += supply_usd
            supply_apy_sum += supply_usd * pos.current_supply_apy
        if pos.borrow_balance > 0:
            borrow_weight += borrow_usd
            borrow_apy_sum += borrow_usd * pos.current_borrow_apy

    return PortfolioStats(
        total_supply_usd=total_supply,
        total_borrow_usd=total_borrow,
        net_worth_usd=total_supply - total_borrow,
        weighted_avg_supply_apy=supply_apy_sum / supply_weight if supply_weight > 0 else 0.0,
        weighted_avg_borrow_apy=borrow_apy_sum / borrow_weight if borrow_weight > 0 else 0.0,
        lowest_health_factor=lowest,
        riskiest_position=riskiest,
        position_count=len(ordered),
        skipped_positions=skipped,
        unknown_health_factors=unknown,
    )
