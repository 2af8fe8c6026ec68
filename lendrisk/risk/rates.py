"""Rate conversions and rate-change detection."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..models import LendingProtocol, MarketParams

SECONDS_PER_YEAR = 31_536_000

WAD = 10**18
RAY = 10**27


def per_second_to_apy(rate_per_second: float) -> float:
    """Compound a per-second rate over one year."""
    if rate_per_second <= 0:
        return 0.0
    return (1 + rate_per_second) ** SECONDS_PER_YEAR - 1


def apr_to_apy(apr: float) -> float:
    """Convert a yearly simple rate into a per-second compounded APY."""
    if apr <= 0:
        return 0.0
    return per_second_to_apy(apr / SECONDS_PER_YEAR)


@dataclass(frozen=True)
class RateChange:
    protocol: LendingProtocol
    market_id: str
    side: str
    previous_apy: float
    current_apy: float

    @property
    def change_pct(self) -> float:
        if self.previous_apy == 0:
            return 100.0
        return (self.current_apy - self.previous_apy) / self.previous_apy * 100


def _moved(previous: float, current: float, threshold_pct: float) -> bool:
    if previous == 0:
        return current != 0
    return abs(current - previous) / abs(previous) * 100 >= threshold_pct


def detect_rate_changes(
    previous: Iterable[MarketParams],
    current: Iterable[MarketParams],
    threshold_pct: float = 10.0,
) -> list[RateChange]:
    """Markets whose supply or borrow APY moved by at least *threshold_pct* percent.

    Markets present in only one of the two snapshots are ignored.
    """
    before = {m.key: m for m in previous}
    changes: list[RateChange] = []
    for market in sorted(current, key=lambda m: (m.protocol.value, m.market_id)):
        old = before.get(market.key)
        if old is None:
            continue
        if _moved(old.supply_apy, market.supply_apy, threshold_pct):
            changes.append(
                RateChange(
                    market.protocol, market.market_id, "supply",
                    old.supply_apy, market.supply_apy,
                )
            )
        if _moved(old.borrow_apy, market.borrow_apy, threshold_pct):
            changes.append(
                RateChange(
                    market.protocol, market.market_id, "borrow",
                    old.borrow_apy, market.borrow_apy,
                )
            )
    return changes
