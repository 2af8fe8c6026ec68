"""In-process alert sinks."""
from __future__ import annotations

import asyncio
import logging

from ..models import RiskAlert
from .formatting import alert_subject, is_new_debt

logger = logging.getLogger(__name__)


class QueueSink:
    """Pushes alerts onto an asyncio.Queue for an in-process consumer."""

    def __init__(self, queue: asyncio.Queue[RiskAlert] | None = None) -> None:
        self.queue: asyncio.Queue[RiskAlert] = queue or asyncio.Queue()

    async def publish(self, alert: RiskAlert) -> None:
        await self.queue.put(alert)


class LoggingSink:
    """Writes each alert to the log; WARNING, or INFO for newly opened healthy debt."""

    def __init__(self, logger_name: str = "lendrisk.alerts") -> None:
        self._logger = logging.getLogger(logger_name)

    async def publish(self, alert: RiskAlert) -> None:
        level = logging.INFO if is_new_debt(alert) else logging.WARNING
        self._logger.log(
            level,
            "%s | %s %s/%s",
            alert_subject(alert), alert.owner, alert.protocol.value, alert.market_id,
        )
