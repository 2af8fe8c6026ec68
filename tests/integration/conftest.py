"""Fakes and raw payloads shared by the integration tests."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from lendrisk.models import FetchResult, LendingProtocol, MarketParams, Position, PriceQuote

OWNER = "0xowner"
RAY = 10**27
WAD = 10**18
SECONDS_PER_YEAR = 31_536_000


def _ray_apr(apr: float) -> str:
    return str(int(apr * RAY))


def _wad_per_second(apr: float) -> int:
    return int(apr / SECONDS_PER_YEAR * WAD)


# ---------------------------------------------------------------------------
# Raw JSON-RPC results
# ---------------------------------------------------------------------------

AAVE_RESERVES = {
    "reserves": [
        {
            "underlyingAsset": "0xusdc",
            "symbol": "USDC",
            "decimals": 6,
            "reserveLiquidationThreshold": 7800,
            "baseLTVasCollateral": 7500,
            "liquidityRate": _ray_apr(0.04),
            "variableBorrowRate": _ray_apr(0.055),
            "availableLiquidity": str(10_000_000 * 10**6),
            "borrowingEnabled": True,
        },
        {
            "underlyingAsset": "0xweth",
            "symbol": "WETH",
            "decimals": 18,
            "reserveLiquidationThreshold": 8300,
            "baseLTVasCollateral": 8000,
            "liquidityRate": _ray_apr(0.02),
            "variableBorrowRate": _ray_apr(0.03),
            "availableLiquidity": str(1_000 * 10**18),
            "borrowingEnabled": True,
        },
    ]
}


def aave_user_reserves(weth_supply: int = 5 * 10**18, usdc_debt: int = 4_000 * 10**6) -> dict:
    return {
        "userReserves": [
            {
                "underlyingAsset": "0xweth",
                "currentATokenBalance": str(weth_supply),
                "usageAsCollateralEnabledOnUser": True,
            },
            {"underlyingAsset": "0xusdc", "currentVariableDebt": str(usdc_debt)},
        ]
    }


MORPHO_MARKETS = {
    "markets": [
        {
            "id": "0xmorpho1",
            "loanToken": {"address": "0xusdc", "symbol": "USDC", "decimals": 6},
            "collateralToken": {"address": "0xweth", "symbol": "WETH", "decimals": 18},
            "lltv": str(86 * 10**16),
            "fee": 0,
            "totalSupplyAssets": 10_000_000 * 10**6,
            "totalBorrowAssets": 8_000_000 * 10**6,
            "borrowRate": _wad_per_second(0.08),
        }
    ]
}

MORPHO_POSITIONS = {
    "positions": [
        {"marketId": "0xmorpho1", "borrowAssets": 3_000 * 10**6, "collateral": 2 * 10**18}
    ]
}


class FakeDataSource:
    """Answers JSON-RPC methods from a dict; values may be callables of params."""

    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = dict(responses)
        self.calls: list[tuple[str, list[Any]]] = []

    async def call(self, method: str, params: list[Any]) -> Any:
        self.calls.append((method, params))
        response = self.responses[method]
        if isinstance(response, Exception):
            raise response
        return response(params) if callable(response) else response


@pytest.fixture()
def fake_source() -> FakeDataSource:
    return FakeDataSource(
        {
            "aave_getReservesData": AAVE_RESERVES,
            "aave_getUserReservesData": aave_user_reserves(),
            "morpho_getMarkets": MORPHO_MARKETS,
            "morpho_getPositions": MORPHO_POSITIONS,
        }
    )


# ---------------------------------------------------------------------------
# Adapter / oracle fakes
# ---------------------------------------------------------------------------


class FakeOracle:
    def __init__(self, prices: Optional[dict[str, float]] = None) -> None:
        self.prices = dict(prices or {"USDC": 1.0, "WETH": 2000.0})
        self.error: Optional[Exception] = None
        self.calls = 0

    async def fetch_quotes(self, symbols: list[str] | None = None) -> dict[str, PriceQuote]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        now = datetime.now(timezone.utc)
        return {s: PriceQuote(s, p, now) for s, p in self.prices.items()}


class FakeAdapter:
    """Scripted adapter; tests mutate ``markets`` / ``positions`` between polls."""

    def __init__(self, protocol: LendingProtocol, markets: list[MarketParams]) -> None:
        self.protocol = protocol
        self.markets = FetchResult(tuple(markets))
        self.positions: dict[str, FetchResult[Position]] = {}
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.market_calls = 0
        self.position_calls = 0
        self.active = 0
        self.max_active = 0

    async def _enter(self) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
        finally:
            self.active -= 1

    async def fetch_markets(self) -> FetchResult[MarketParams]:
        self.market_calls += 1
        await self._enter()
        return self.markets

    async def fetch_positions(self, owner: str) -> FetchResult[Position]:
        self.position_calls += 1
        await self._enter()
        return self.positions.get(owner, FetchResult())

    def set_positions(self, owner: str, positions: list[Position]) -> None:
        self.positions[owner] = FetchResult(tuple(positions))


@pytest.fixture()
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture()
def aave_adapter(aave_usdc: MarketParams, aave_weth: MarketParams) -> FakeAdapter:
    adapter = FakeAdapter(LendingProtocol.AAVE, [aave_usdc, aave_weth])
    adapter.set_positions(OWNER, aave_positions())
    return adapter


@pytest.fixture()
def morpho_adapter(morpho_usdc_weth: MarketParams) -> FakeAdapter:
    adapter = FakeAdapter(LendingProtocol.MORPHO, [morpho_usdc_weth])
    adapter.set_positions(
        OWNER,
        [
            Position(
                OWNER, LendingProtocol.MORPHO, "0xmorpho1",
                borrow_balance=3_000 * 10**6, collateral_balance=2 * 10**18,
            )
        ],
    )
    return adapter


def aave_positions(usdc_debt: float = 4_000, weth_supply: int = 5) -> list[Position]:
    """Aave account: *weth_supply* WETH collateral against *usdc_debt* USDC.

    With WETH at $2,000 and a 0.83 threshold the health factor is
    ``weth_supply * 2000 * 0.83 / usdc_debt``.
    """
    return [
        Position(OWNER, LendingProtocol.AAVE, "0xweth", supply_balance=weth_supply * 10**18),
        Position(
            OWNER, LendingProtocol.AAVE, "0xusdc", borrow_balance=int(usdc_debt * 10**6)
        ),
    ]


@pytest.fixture()
def make_aave_positions():
    return aave_positions


@pytest.fixture()
def adapter_factory():
    return FakeAdapter


@pytest.fixture()
def source_factory():
    return FakeDataSource


@pytest.fixture()
def raw_payloads() -> dict[str, Any]:
    return {
        "aave_reserves": AAVE_RESERVES,
        "aave_user_reserves": aave_user_reserves,
        "morpho_markets": MORPHO_MARKETS,
        "morpho_positions": MORPHO_POSITIONS,
    }
