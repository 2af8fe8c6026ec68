"""Health factor math and risk tiers — pure functions, no I/O."""
from __future__ import annotations

import math

from ..errors import ConsistencyViolation, InvalidInput
from ..models import Action, RiskTier

# Lower bound (inclusive) of each tier, from safest to riskiest.
TIER_THRESHOLDS: tuple[tuple[float, RiskTier], ...] = (
    (2.0, RiskTier.SAFE),
    (1.5, RiskTier.HEALTHY),
    (1.3, RiskTier.WARNING),
    (1.1, RiskTier.DANGER),
    (1.0, RiskTier.CRITICAL),
)

LIQUIDATION_HF = 1.0


def _require_amount(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    if math.isnan(value) or math.isinf(value):
        raise InvalidInput(f"{name} must be finite, got {value}")
    if value < 0:
        raise InvalidInput(f"{name} must be non-negative, got {value}")


def _require_fraction(name: str, value: float) -> None:
    _require_amount(name, value)
    if value > 1.0:
        raise InvalidInput(f"{name} must be within [0, 1], got {value}")


def health_factor(
    supply_usd: float, borrow_usd: float, liquidation_threshold: float
) -> float:
    """Calculate health factor.

    health_factor = (supply * liquidation_threshold) / borrow

    Returns ``inf`` when there is no debt, whatever the supply.
    """
    _require_amount("supply_usd", supply_usd)
    _require_amount("borrow_usd", borrow_usd)
    _require_fraction("liquidation_threshold", liquidation_threshold)

    if borrow_usd == 0:
        return math.inf
    return (supply_usd * liquidation_threshold) / borrow_usd


def simulate_health_factor(
    supply_usd: float,
    borrow_usd: float,
    liquidation_threshold: float,
    action: Action | str,
    amount_usd: float,
) -> float:
    """Project the health factor after a hypothetical action.

    Withdraw/repay beyond the current balance clamp the balance at zero; callers
    validate sufficiency separately (see :func:`lendrisk.risk.checks.validate_action`).
    """
    action = Action.parse(action)
    _require_amount("supply_usd", supply_usd)
    _require_amount("borrow_usd", borrow_usd)
    _require_fraction("liquidation_threshold", liquidation_threshold)
    _require_amount("amount_usd", amount_usd)

    new_supply = supply_usd
    new_borrow = borrow_usd
    if action is Action.SUPPLY:
        new_supply = supply_usd + amount_usd
    elif action is Action.WITHDRAW:
        new_supply = max(0.0, supply_usd - amount_usd)
    elif action is Action.BORROW:
        new_borrow = borrow_usd + amount_usd
    elif action is Action.REPAY:
        new_borrow = max(0.0, borrow_usd - amount_usd)

    if new_supply < 0 or new_borrow < 0:
        raise ConsistencyViolation(
            f"negative balance after clamping: supply={new_supply} borrow={new_borrow}"
        )

    if new_borrow <= 0:
        return math.inf
    if new_supply <= 0:
        return 0.0
    return health_factor(new_supply, new_borrow, liquidation_threshold)


def classify_tier(hf: float) -> RiskTier:
    """Map a health factor onto its risk tier; lower edges are inclusive."""
    if not isinstance(hf, (int, float)) or math.isnan(hf):
        raise InvalidInput(f"health factor must be a number, got {hf!r}")
    if hf < 0:
        raise InvalidInput(f"health factor must be non-negative, got {hf}")
    if math.isinf(hf):
        return RiskTier.NONE
    for lower, tier in TIER_THRESHOLDS:
        if hf >= lower:
            return tier
    return RiskTier.LIQUIDATABLE


def is_liquidatable(hf: float) -> bool:
    return classify_tier(hf) is RiskTier.LIQUIDATABLE


def price_drop_to_liquidation(hf: float) -> float:
    """Percentage the collateral value can fall before HF reaches 1.0."""
    if not math.isfinite(hf) or hf <= 0:
        return 0.0
    if hf >= 100:
        return 99.0
    return max(0.0, (1 - 1 / hf) * 100)


def format_health_factor(hf: float | None) -> str:
    if hf is None:
        return "unknown"
    if math.isinf(hf):
        return "∞"
    if hf > 99:
        return ">99"
    return f"{hf:.2f}"
