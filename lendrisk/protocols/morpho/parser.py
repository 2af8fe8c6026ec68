"""Pure parsing functions for Morpho Blue markets and positions — no I/O.

Each market is isolated: the loan token is supplied and borrowed, the
collateral token only secures borrows. ``lltv`` serves as both the
liquidation threshold and the max LTV.
"""
from __future__ import annotations

from typing import Any

from ...models import LendingProtocol, MarketParams, Position
from ...risk.rates import WAD, per_second_to_apy
from ..encoding import optional_float, parse_asset, scaled_fraction, to_uint


def market_id(entry: dict[str, Any]) -> str:
    value = entry.get("id") or entry.get("marketId")
    if not value:
        raise ValueError("market has no id")
    return str(value).lower()


def parse_market(entry: dict[str, Any], platform_fee: float = 0.0) -> MarketParams:
    lltv = scaled_fraction(entry.get("lltv"), WAD, "lltv")
    fee = scaled_fraction(entry.get("fee", 0), WAD, "fee")
    total_supply = to_uint(entry.get("totalSupplyAssets", 0), "totalSupplyAssets")
    total_borrow = to_uint(entry.get("totalBorrowAssets", 0), "totalBorrowAssets")

    borrow_apy = per_second_to_apy(to_uint(entry.get("borrowRate", 0), "borrowRate") / WAD)
    utilization = total_borrow / total_supply if total_supply > 0 else 0.0
    supply_apy = borrow_apy * min(utilization, 1.0) * (1 - fee)

    collateral_raw = entry.get("collateralToken")
    collateral = parse_asset(collateral_raw, "collateralToken") if collateral_raw else None

    return MarketParams(
        protocol=LendingProtocol.MORPHO,
        market_id=market_id(entry),
        asset=parse_asset(entry.get("loanToken"), "loanToken"),
        collateral_asset=collateral,
        liquidation_threshold=lltv,
        max_ltv=lltv,
        supply_apy=supply_apy,
        borrow_apy=borrow_apy,
        available_liquidity=max(0, total_supply - total_borrow),
        can_supply=True,
        can_borrow=collateral is not None and lltv > 0,
        reward_apy=optional_float(entry, "rewardAPY"),
        platform_fee=platform_fee,
        can_use_as_collateral=False,
    )


def parse_position(entry: dict[str, Any], owner: str) -> Position:
    return Position(
        owner=owner,
        protocol=LendingProtocol.MORPHO,
        market_id=market_id(entry),
        supply_balance=to_uint(entry.get("supplyAssets", 0), "supplyAssets"),
        borrow_balance=to_uint(entry.get("borrowAssets", 0), "borrowAssets"),
        collateral_balance=to_uint(entry.get("collateral", 0), "collateral"),
        is_collateral_enabled=True,
    )
