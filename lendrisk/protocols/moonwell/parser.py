"""Pure parsing functions for Moonwell (Compound V2 style) data — no I/O."""
from __future__ import annotations

from typing import Any

from ...models import LendingProtocol, MarketParams, Position
from ...risk.rates import WAD, per_second_to_apy
from ..encoding import optional_float, parse_asset, scaled_fraction, to_uint


def mtoken_id(entry: dict[str, Any]) -> str:
    value = entry.get("mToken")
    if not value:
        raise ValueError("entry has no mToken address")
    return str(value).lower()


def parse_market(entry: dict[str, Any], platform_fee: float = 0.0) -> MarketParams:
    """``collateralFactorMantissa`` is both the liquidation threshold and max LTV."""
    collateral_factor = scaled_fraction(
        entry.get("collateralFactorMantissa"), WAD, "collateralFactorMantissa"
    )
    listed = bool(entry.get("isListed", False))
    return MarketParams(
        protocol=LendingProtocol.MOONWELL,
        market_id=mtoken_id(entry),
        asset=parse_asset(entry.get("underlying"), "underlying"),
        liquidation_threshold=collateral_factor,
        max_ltv=collateral_factor,
        supply_apy=per_second_to_apy(
            to_uint(entry.get("supplyRatePerTimestamp", 0), "supplyRatePerTimestamp") / WAD
        ),
        borrow_apy=per_second_to_apy(
            to_uint(entry.get("borrowRatePerTimestamp", 0), "borrowRatePerTimestamp") / WAD
        ),
        available_liquidity=to_uint(entry.get("cash", 0), "cash"),
        can_supply=listed and not bool(entry.get("mintPaused", False)),
        can_borrow=listed and not bool(entry.get("borrowPaused", False)),
        reward_apy=optional_float(entry, "rewardAPY"),
        platform_fee=platform_fee,
        can_use_as_collateral=collateral_factor > 0,
    )


def parse_account(entry: dict[str, Any], owner: str) -> Position:
    """Supply balance in underlying units = mTokenBalance * exchangeRate / 1e18."""
    mtokens = to_uint(entry.get("mTokenBalance", 0), "mTokenBalance")
    exchange_rate = to_uint(entry.get("exchangeRate", 0), "exchangeRate")
    return Position(
        owner=owner,
        protocol=LendingProtocol.MOONWELL,
        market_id=mtoken_id(entry),
        supply_balance=mtokens * exchange_rate // WAD,
        borrow_balance=to_uint(entry.get("borrowBalance", 0), "borrowBalance"),
        is_collateral_enabled=bool(entry.get("isCollateral", False)),
    )
