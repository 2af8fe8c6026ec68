"""Routing recommender — ranks venues for a supply or borrow action."""
from __future__ import annotations

from typing import Iterable, Optional

from ..errors import InvalidInput
from ..models import Action, MarketParams, RoutingOption

DEFAULT_APY_EPSILON = 0.0001  # 1 basis point


def _net_apy(market: MarketParams, action: Action) -> float:
    return market.net_supply_apy if action is Action.SUPPLY else market.net_borrow_apy


def _eligible(market: MarketParams, asset: str, action: Action, desired_amount: int) -> bool:
    if not market.asset.matches(asset):
        return False
    if action is Action.SUPPLY and not market.can_supply:
        return False
    if action is Action.BORROW and not market.can_borrow:
        return False
    return market.available_liquidity >= desired_amount


def _order(markets: list[MarketParams], action: Action, epsilon: float) -> list[MarketParams]:
    """Order by net APY; markets within *epsilon* of the group leader tie-break on
    liquidity (descending), then protocol name, then market id."""
    better_first = sorted(
        markets,
        key=lambda m: -_net_apy(m, action) if action is Action.SUPPLY else _net_apy(m, action),
    )
    ordered: list[MarketParams] = []
    remaining = better_first
    while remaining:
        leader_apy = _net_apy(remaining[0], action)
        group = [m for m in remaining if abs(_net_apy(m, action) - leader_apy) <= epsilon]
        rest = [m for m in remaining if abs(_net_apy(m, action) - leader_apy) > epsilon]
        group.sort(key=lambda m: (-m.available_liquidity, m.protocol.value, m.market_id))
        ordered.extend(group)
        remaining = rest
    return ordered


def _reason(best: MarketParams, market: MarketParams, action: Action, epsilon: float) -> str:
    if market is best:
        return "Best net APY" if action is Action.SUPPLY else "Lowest net borrow rate"
    diff = abs(_net_apy(best, action) - _net_apy(market, action)) * 100
    if diff <= epsilon * 100:
        return "Same APY, less liquidity"
    if action is Action.SUPPLY:
        return f"{diff:.2f}% lower APY"
    return f"{diff:.2f}% higher rate"


def rank_markets(
    asset: str,
    action: Action | str,
    markets: Iterable[MarketParams],
    desired_amount: int = 0,
    epsilon: float = DEFAULT_APY_EPSILON,
) -> list[RoutingOption]:
    """Every qualifying venue, best first.

    Markets whose available liquidity is below *desired_amount* are excluded
    from ranking rather than penalized.
    """
    action = Action.parse(action)
    if action not in (Action.SUPPLY, Action.BORROW):
        raise InvalidInput(f"Routing supports supply or borrow, not '{action.value}'")
    if not asset or not asset.strip():
        raise InvalidInput("Routing asset must not be empty")
    if isinstance(desired_amount, bool) or not isinstance(desired_amount, int) or desired_amount < 0:
        raise InvalidInput(f"desired_amount must be non-negative base units, got {desired_amount!r}")
    if epsilon < 0:
        raise InvalidInput("epsilon must be non-negative")

    candidates = [m for m in markets if _eligible(m, asset, action, desired_amount)]
    ordered = _order(candidates, action, epsilon)
    if not ordered:
        return []

    best = ordered[0]
    return [
        RoutingOption(
            protocol=m.protocol,
            market_id=m.market_id,
            apy=_net_apy(m, action),
            available_liquidity=m.available_liquidity,
            reason=_reason(best, m, action, epsilon),
            market=m,
            is_recommended=m is best,
        )
        for m in ordered
    ]


def recommend(
    asset: str,
    action: Action | str,
    markets: Iterable[MarketParams],
    desired_amount: int = 0,
    epsilon: float = DEFAULT_APY_EPSILON,
) -> Optional[RoutingOption]:
    """Best venue, or ``None`` when nothing qualifies (not an error)."""
    options = rank_markets(asset, action, markets, desired_amount, epsilon)
    return options[0] if options else None
