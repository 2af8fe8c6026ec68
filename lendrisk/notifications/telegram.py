"""Telegram alert sink."""
from __future__ import annotations

import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig
from ..models import AlertKind, RiskAlert
from .formatting import format_alert, is_new_debt

logger = logging.getLogger(__name__)


class TelegramSink:
    """Send risk alerts via a Telegram bot."""

    def __init__(self, config: TelegramConfig) -> None:
        self.bot_token = config.bot_token
        self.chat_id = config.chat_id

    async def _send_message(self, message: str, silent: bool = False) -> bool:
        """Send a Telegram message; False when unconfigured or rejected."""
        if not self.bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": message,
            "disable_notification": silent,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(url, json=payload) as response:
                if response.status == 200:
                    return True
                logger.error("Failed to send Telegram message: %s", response.status)
                return False

    async def publish(self, alert: RiskAlert) -> None:
        # Recoveries and new healthy debt are informational.
        silent = alert.kind is AlertKind.RECOVERY or is_new_debt(alert)
        if await self._send_message(format_alert(alert), silent=silent):
            logger.info("Telegram alert sent")
