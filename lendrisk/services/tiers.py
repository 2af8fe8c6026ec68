"""Risk-tier state machine — pure transition logic, no scheduling, no I/O.

Rules per ``(owner, protocol, market_id)``:

* first observation stores the tier and never alerts;
* a riskier tier, or any liquidatable observation, alerts (escalation);
* an improvement of at least ``recovery_min_tiers`` tiers alerts once (recovery);
  smaller improvements keep the stored tier;
* positions without debt sit in the NONE tier, whatever their account's health factor;
* an unknown health factor leaves the stored tier untouched;
* a key that vanished from a fully refreshed protocol is dropped silently.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Collection, Iterable, Mapping, Optional, Tuple

from ..models import AlertKind, LendingProtocol, Position, PositionKey, RiskAlert, RiskTier
from ..risk.health import classify_tier

Scope = Collection[Tuple[str, LendingProtocol]]


def transition(
    previous: Optional[RiskTier], new: RiskTier, recovery_min_tiers: int = 1
) -> Optional[AlertKind]:
    """Alert kind for moving from *previous* to *new*, or None."""
    if previous is None:
        return None
    if new is RiskTier.LIQUIDATABLE or new > previous:
        return AlertKind.ESCALATION
    if previous - new >= recovery_min_tiers:
        return AlertKind.RECOVERY
    return None


@dataclass(frozen=True)
class CycleOutcome:
    updates: dict[PositionKey, RiskTier] = field(default_factory=dict)
    removals: tuple[PositionKey, ...] = ()
    alerts: tuple[RiskAlert, ...] = ()

    def apply(self, tiers: dict[PositionKey, RiskTier]) -> None:
        """Commit this outcome to a tier map."""
        tiers.update(self.updates)
        for key in self.removals:
            tiers.pop(key, None)


def evaluate(
    previous: Mapping[PositionKey, RiskTier],
    observations: Iterable[Position],
    scope: Scope,
    now: datetime,
    recovery_min_tiers: int = 1,
) -> CycleOutcome:
    """Compute tier updates, removals and alerts for one poll, without mutating *previous*.

    *scope* lists the ``(owner, protocol)`` pairs whose position sets are complete
    this cycle; only their missing keys are treated as closed positions.
    """
    updates: dict[PositionKey, RiskTier] = {}
    alerts: list[RiskAlert] = []
    present: set[PositionKey] = set()

    for pos in sorted(observations, key=lambda p: (p.owner, p.protocol.value, p.market_id)):
        present.add(pos.key)
        if not pos.has_debt:
            hf = math.inf
        elif pos.health_factor is None:
            continue
        else:
            hf = pos.health_factor
        new_tier = classify_tier(hf)
        old_tier = previous.get(pos.key)
        if old_tier is None:
            updates[pos.key] = new_tier
            continue

        kind = transition(old_tier, new_tier, recovery_min_tiers)
        if kind is None:
            continue
        updates[pos.key] = new_tier
        alerts.append(
            RiskAlert(
                owner=pos.owner,
                protocol=pos.protocol,
                market_id=pos.market_id,
                previous_tier=old_tier,
                new_tier=new_tier,
                health_factor=hf,
                timestamp=now,
                kind=kind,
            )
        )

    scope_set = set(scope)
    removals = tuple(
        sorted(
            (k for k in previous if (k[0], k[1]) in scope_set and k not in present),
            key=lambda k: (k[0], k[1].value, k[2]),
        )
    )
    return CycleOutcome(updates, removals, tuple(alerts))
