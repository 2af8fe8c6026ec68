"""Pyth Network price oracle service."""
from __future__ import annotations

import asyncio
import logging
import ssl
from datetime import datetime, timezone

import aiohttp
import certifi

from ..config import PythConfig
from ..errors import DataUnavailable
from ..models import PriceQuote

logger = logging.getLogger(__name__)


def _normalize_id(feed_id: str) -> str:
    feed_id = feed_id.lower()
    return feed_id[2:] if feed_id.startswith("0x") else feed_id


class PythOracle:
    """Fetch timestamped prices from the Pyth Hermes API."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)

    async def fetch_quotes(
        self, symbols: list[str] | None = None
    ) -> dict[str, PriceQuote]:
        """Fetch current quotes from Pyth Network.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.

        Raises:
            DataUnavailable: Hermes is unreachable or answers with an error.
        """
        quotes: dict[str, PriceQuote] = {}

        feeds = self.price_feeds
        if symbols is not None:
            wanted = {s.upper() for s in symbols}
            feeds = {k: v for k, v in self.price_feeds.items() if k.upper() in wanted}

        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return quotes

        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise DataUnavailable(
                            f"Error fetching prices from Pyth: HTTP {response.status}"
                        )
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DataUnavailable(f"Error fetching prices from Pyth: {e}") from e

        # Create reverse mapping from feed ID to asset names
        id_to_assets: dict[str, list[str]] = {}
        for asset, feed_id in feeds.items():
            id_to_assets.setdefault(_normalize_id(feed_id), []).append(asset.upper())

        for item in data.get("parsed", []):
            feed_id = _normalize_id(str(item.get("id", "")))
            if feed_id not in id_to_assets:
                continue
            price_data = item.get("price", {})
            try:
                price_raw = int(price_data.get("price", 0))
                expo = int(price_data.get("expo", 0))
                publish_time = int(price_data.get("publish_time", 0))
            except (TypeError, ValueError):
                logger.warning("Malformed Pyth price entry for feed %s", feed_id)
                continue

            as_of = datetime.fromtimestamp(publish_time, tz=timezone.utc)
            for asset in id_to_assets[feed_id]:
                quotes[asset] = PriceQuote(asset, price_raw * (10**expo), as_of)

        logger.debug("Fetched %d prices from Pyth Network", len(quotes))
        for asset, quote in sorted(quotes.items()):
            logger.debug("  %s: $%.4f (as of %s)", asset, quote.price, quote.as_of.isoformat())

        return quotes
