"""Human-readable alert text shared by the sinks."""
from __future__ import annotations

from ..models import AlertKind, RiskAlert, RiskTier
from ..risk.health import format_health_factor, price_drop_to_liquidation

_TIER_ICONS = {
    RiskTier.NONE: "⚪",
    RiskTier.SAFE: "✅",
    RiskTier.HEALTHY: "🟢",
    RiskTier.WARNING: "⚠️",
    RiskTier.DANGER: "🟠",
    RiskTier.CRITICAL: "🔴",
    RiskTier.LIQUIDATABLE: "🚨",
}


def format_owner(address: str) -> str:
    if len(address) > 16:
        return f"{address[:10]}...{address[-6:]}"
    return address


def is_new_debt(alert: RiskAlert) -> bool:
    """A debt opened at a comfortable health factor, not a move towards liquidation."""
    return (
        alert.kind is AlertKind.ESCALATION
        and alert.previous_tier is RiskTier.NONE
        and alert.new_tier <= RiskTier.HEALTHY
    )


def alert_subject(alert: RiskAlert) -> str:
    icon = _TIER_ICONS[alert.new_tier]
    if alert.kind is AlertKind.RECOVERY:
        return f"{icon} RECOVERED — {alert.new_tier.label.upper()}"
    if is_new_debt(alert):
        return f"{icon} NEW DEBT — HF {format_health_factor(alert.health_factor)}"
    return f"{icon} {alert.new_tier.label.upper()} — HF {format_health_factor(alert.health_factor)}"


def format_alert(alert: RiskAlert) -> str:
    lines = [
        alert_subject(alert),
        "",
        f"{alert.protocol.display_name} · {alert.market_id}",
        f"Tier: {alert.previous_tier.label} → {alert.new_tier.label}",
        f"Health Factor: {format_health_factor(alert.health_factor)}",
    ]
    if is_new_debt(alert):
        lines += ["", "Borrow opened at a healthy level."]
    elif alert.kind is AlertKind.ESCALATION:
        if alert.new_tier is RiskTier.LIQUIDATABLE:
            lines += ["", "Position is eligible for liquidation. Repay debt or add collateral now!"]
        else:
            drop = price_drop_to_liquidation(alert.health_factor)
            lines += ["", f"Collateral can drop {drop:.1f}% before liquidation."]
    lines += [
        "",
        f"Owner: {format_owner(alert.owner)}",
        f"{alert.timestamp.strftime('%Y-%m-%d %H:%M:%S')} UTC",
    ]
    return "\n".join(lines)
