"""JSON-RPC chain data source with endpoint fallback."""
from __future__ import annotations

import asyncio
import logging
import ssl
import time
from typing import Any

import aiohttp
import certifi

from ..config import DataSourceConfig
from ..errors import DataUnavailable

logger = logging.getLogger(__name__)


class JsonRpcDataSource:
    """JSON-RPC client with automatic endpoint fallback and stale-block detection.

    Connectivity errors, RPC errors, malformed envelopes and results whose
    ``blockTimestamp`` is older than ``max_block_age_seconds`` all surface as
    :class:`~lendrisk.errors.DataUnavailable`.
    """

    def __init__(self, config: DataSourceConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.max_block_age = config.max_block_age_seconds
        self.current_rpc_index = 0
        self._request_id = 0

    def _check_block_age(self, method: str, result: Any) -> None:
        if self.max_block_age <= 0 or not isinstance(result, dict):
            return
        block_ts = result.get("blockTimestamp")
        if block_ts is None:
            return
        try:
            age = time.time() - float(block_ts)
        except (TypeError, ValueError):
            raise DataUnavailable(f"{method}: malformed blockTimestamp {block_ts!r}") from None
        if age > self.max_block_age:
            raise DataUnavailable(
                f"{method}: block data is {age:.0f}s old (max {self.max_block_age}s)"
            )

    async def call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        if not self.endpoints:
            raise DataUnavailable("No RPC endpoints configured")

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        if response.status != 200:
                            raise DataUnavailable(f"HTTP {response.status}")
                        body = await response.json()
                        if not isinstance(body, dict):
                            raise DataUnavailable("Malformed JSON-RPC envelope")
                        if "error" in body:
                            raise DataUnavailable(f"RPC Error: {body['error']}")
                        if "result" not in body:
                            raise DataUnavailable("JSON-RPC response has no result")

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        result = body["result"]
                        break
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, DataUnavailable) as e:
                last_error = e
                logger.warning("RPC endpoint %s failed for %s: %s", rpc_url, method, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue
        else:
            raise DataUnavailable(
                f"All RPC endpoints failed for {method}. Last error: {last_error}"
            )

        self._check_block_age(method, result)
        return result
