"""Alert sink protocol — where the liquidation monitor pushes alerts."""
from typing import Protocol

from ..models import RiskAlert


class AlertSink(Protocol):
    """Abstract interface for delivering risk alerts (at-least-once)."""

    async def publish(self, alert: RiskAlert) -> None: ...
