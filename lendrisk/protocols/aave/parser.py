"""Pure parsing functions for Aave V3 reserve and user data — no I/O."""
from __future__ import annotations

from typing import Any

from ...models import Asset, LendingProtocol, MarketParams, Position
from ...risk.rates import RAY, apr_to_apy
from ..encoding import BPS, optional_float, scaled_fraction, to_uint


def reserve_id(entry: dict[str, Any]) -> str:
    address = entry.get("underlyingAsset")
    if not address:
        raise ValueError("reserve has no underlyingAsset")
    return str(address).lower()


def ray_rate_to_apy(value: Any, name: str) -> float:
    """Aave rates are yearly APRs in RAY (1e27), compounded per second."""
    return apr_to_apy(to_uint(value, name) / RAY)


def parse_reserve(entry: dict[str, Any], platform_fee: float = 0.0) -> MarketParams:
    """Translate one ``getReservesData`` entry.

    ``reserveLiquidationThreshold`` and ``baseLTVasCollateral`` are basis points.
    """
    market_id = reserve_id(entry)
    asset = Asset(
        symbol=str(entry.get("symbol", "")).upper() or market_id,
        decimals=to_uint(entry.get("decimals"), "decimals"),
        address=market_id,
    )
    active = bool(entry.get("isActive", True))
    frozen = bool(entry.get("isFrozen", False))
    paused = bool(entry.get("isPaused", False))
    can_supply = active and not frozen and not paused

    return MarketParams(
        protocol=LendingProtocol.AAVE,
        market_id=market_id,
        asset=asset,
        liquidation_threshold=scaled_fraction(
            entry.get("reserveLiquidationThreshold"), BPS, "reserveLiquidationThreshold"
        ),
        max_ltv=scaled_fraction(entry.get("baseLTVasCollateral"), BPS, "baseLTVasCollateral"),
        supply_apy=ray_rate_to_apy(entry.get("liquidityRate"), "liquidityRate"),
        borrow_apy=ray_rate_to_apy(entry.get("variableBorrowRate"), "variableBorrowRate"),
        available_liquidity=to_uint(entry.get("availableLiquidity"), "availableLiquidity"),
        can_supply=can_supply,
        can_borrow=can_supply and bool(entry.get("borrowingEnabled", False)),
        reward_apy=optional_float(entry, "rewardAPY"),
        platform_fee=platform_fee,
        can_use_as_collateral=bool(entry.get("usageAsCollateralEnabled", True)),
    )


def parse_user_reserve(entry: dict[str, Any], owner: str) -> Position:
    """Translate one ``getUserReservesData`` entry (balances in base units)."""
    variable_debt = to_uint(entry.get("currentVariableDebt", 0), "currentVariableDebt")
    stable_debt = to_uint(entry.get("currentStableDebt", 0), "currentStableDebt")
    return Position(
        owner=owner,
        protocol=LendingProtocol.AAVE,
        market_id=reserve_id(entry),
        supply_balance=to_uint(entry.get("currentATokenBalance", 0), "currentATokenBalance"),
        borrow_balance=variable_debt + stable_debt,
        is_collateral_enabled=bool(entry.get("usageAsCollateralEnabledOnUser", False)),
    )
