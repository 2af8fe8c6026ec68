"""Pre-transaction checks and borrow capacity."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..errors import InvalidInput
from ..models import Action, MarketParams, Position
from .normalizer import RiskBasis

SAFE_BORROW_RATIO = 0.8
HF_HIGH_RISK = 1.1
HF_MODERATE_RISK = 1.5


@dataclass(frozen=True)
class ActionCheck:
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class BorrowCapacity:
    max_borrow_usd: float
    current_borrow_usd: float
    available_usd: float
    utilization_pct: float
    safe_limit_usd: float


def validate_action(
    action: Action | str,
    amount: int,
    market: MarketParams,
    position: Optional[Position] = None,
    projected_hf: Optional[float] = None,
) -> ActionCheck:
    """Blocking errors and advisory warnings for a proposed action."""
    action = Action.parse(action)
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidInput(f"amount must be integer base units, got {amount!r}")
    if amount <= 0:
        raise InvalidInput(f"amount must be positive, got {amount}")

    errors: list[str] = []
    warnings: list[str] = []
    # Isolated markets take supply/withdraw on the collateral balance.
    isolated = market.protocol.is_isolated
    supplied = 0
    if position is not None:
        supplied = position.collateral_balance if isolated else position.supply_balance
    borrowed = position.borrow_balance if position else 0

    if action is Action.SUPPLY:
        if not market.can_supply and not isolated:
            errors.append("Supplying is disabled for this market")
    elif action is Action.WITHDRAW:
        if amount > supplied:
            errors.append("Insufficient supplied balance")
        if not isolated and amount > market.available_liquidity:
            errors.append("Insufficient market liquidity")
    elif action is Action.BORROW:
        if not market.can_borrow:
            errors.append("Borrowing is disabled for this market")
        if amount > market.available_liquidity:
            errors.append("Insufficient market liquidity")
    elif action is Action.REPAY:
        if borrowed == 0:
            errors.append("No outstanding borrow to repay")
        elif amount > borrowed:
            warnings.append("Repay amount exceeds debt; only the debt is repaid")

    if projected_hf is not None and action in (Action.WITHDRAW, Action.BORROW):
        if projected_hf < 1.0:
            errors.append(f"Projected health factor {projected_hf:.2f} is liquidatable")
        elif projected_hf < HF_HIGH_RISK:
            warnings.append("High liquidation risk: projected health factor below 1.1")
        elif projected_hf < HF_MODERATE_RISK:
            warnings.append("Moderate risk: projected health factor below 1.5")

    return ActionCheck(tuple(errors), tuple(warnings))


def borrow_capacity(basis: RiskBasis) -> BorrowCapacity:
    max_borrow = basis.collateral_usd * basis.max_ltv
    available = max(0.0, max_borrow - basis.debt_usd)
    utilization = basis.debt_usd / max_borrow * 100 if max_borrow > 0 else 0.0
    return BorrowCapacity(
        max_borrow_usd=max_borrow,
        current_borrow_usd=basis.debt_usd,
        available_usd=available,
        utilization_pct=utilization,
        safe_limit_usd=max_borrow * SAFE_BORROW_RATIO,
    )
