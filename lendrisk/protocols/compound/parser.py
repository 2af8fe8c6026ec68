"""Pure parsing functions for Compound III (Comet) data — no I/O.

A comet lends a single base asset against several collateral assets. The base
asset is reported as a market keyed by the comet address; every collateral
asset becomes a supply-only, non-borrowable market keyed
``"{comet}:{asset_address}"`` so collateral balances can be valued separately.
"""
from __future__ import annotations

from typing import Any

from ...models import LendingProtocol, MarketParams, Position
from ...risk.rates import WAD, per_second_to_apy
from ..encoding import optional_float, parse_asset, scaled_fraction, to_uint


def comet_id(entry: dict[str, Any]) -> str:
    value = entry.get("comet")
    if not value:
        raise ValueError("entry has no comet address")
    return str(value).lower()


def collateral_market_id(comet: str, asset_address: str) -> str:
    return f"{comet}:{asset_address.lower()}"


def parse_comet(entry: dict[str, Any], platform_fee: float = 0.0) -> list[MarketParams]:
    comet = comet_id(entry)
    base = parse_asset(entry.get("baseToken"), "baseToken")
    supply_paused = bool(entry.get("isSupplyPaused", False))
    borrow_paused = bool(entry.get("isBorrowPaused", False))

    collateral_markets: list[MarketParams] = []
    for raw in entry.get("collaterals", []):
        asset = parse_asset(raw.get("asset"), "collateral.asset")
        if not asset.address:
            raise ValueError(f"collateral {asset.symbol} has no address")
        collateral_markets.append(
            MarketParams(
                protocol=LendingProtocol.COMPOUND,
                market_id=collateral_market_id(comet, asset.address),
                asset=asset,
                liquidation_threshold=scaled_fraction(
                    raw.get("liquidateCollateralFactor"), WAD, "liquidateCollateralFactor"
                ),
                max_ltv=scaled_fraction(
                    raw.get("borrowCollateralFactor"), WAD, "borrowCollateralFactor"
                ),
                supply_apy=0.0,
                borrow_apy=0.0,
                available_liquidity=0,
                can_supply=not supply_paused,
                can_borrow=False,
            )
        )

    base_market = MarketParams(
        protocol=LendingProtocol.COMPOUND,
        market_id=comet,
        asset=base,
        liquidation_threshold=max((m.liquidation_threshold for m in collateral_markets), default=0.0),
        max_ltv=max((m.max_ltv for m in collateral_markets), default=0.0),
        supply_apy=per_second_to_apy(to_uint(entry.get("supplyRate", 0), "supplyRate") / WAD),
        borrow_apy=per_second_to_apy(to_uint(entry.get("borrowRate", 0), "borrowRate") / WAD),
        available_liquidity=to_uint(entry.get("baseBalance", 0), "baseBalance"),
        can_supply=not supply_paused,
        can_borrow=not borrow_paused,
        reward_apy=optional_float(entry, "rewardAPY"),
        platform_fee=platform_fee,
        can_use_as_collateral=False,
    )
    return [base_market, *collateral_markets]


def parse_account(entry: dict[str, Any], owner: str) -> list[Position]:
    comet = comet_id(entry)
    positions = [
        Position(
            owner=owner,
            protocol=LendingProtocol.COMPOUND,
            market_id=comet,
            supply_balance=to_uint(entry.get("baseSupplied", 0), "baseSupplied"),
            borrow_balance=to_uint(entry.get("baseBorrowed", 0), "baseBorrowed"),
            is_collateral_enabled=False,
        )
    ]
    for raw in entry.get("collaterals", []):
        address = raw.get("asset")
        if not address:
            raise ValueError("collateral balance has no asset address")
        positions.append(
            Position(
                owner=owner,
                protocol=LendingProtocol.COMPOUND,
                market_id=collateral_market_id(comet, str(address)),
                supply_balance=to_uint(raw.get("balance", 0), "collateral.balance"),
                is_collateral_enabled=True,
            )
        )
    return positions
