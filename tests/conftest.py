"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from datetime import datetime, timezone
from pathlib import Path

import pytest

from lendrisk.config import (
    AppConfig,
    DataSourceConfig,
    MonitorConfig,
    NotificationsConfig,
    OwnerConfig,
    PriceOracleConfig,
    ProtocolConfig,
    ProtocolMethodsConfig,
    PythConfig,
    RoutingConfig,
    TelegramConfig,
)
from lendrisk.models import Asset, LendingProtocol, MarketParams, Position, PriceQuote
from lendrisk.risk.pricing import PriceLookup

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
OWNER = "0xowner"

USDC = Asset("USDC", 6, "0xusdc")
WETH = Asset("WETH", 18, "0xweth")
WBTC = Asset("WBTC", 8, "0xwbtc")


def make_market(
    protocol: LendingProtocol = LendingProtocol.AAVE,
    market_id: str = "0xusdc",
    asset: Asset = USDC,
    **overrides,
) -> MarketParams:
    params = dict(
        protocol=protocol,
        market_id=market_id,
        asset=asset,
        liquidation_threshold=0.8,
        max_ltv=0.75,
        supply_apy=0.04,
        borrow_apy=0.06,
        available_liquidity=10_000_000 * 10**6,
        can_supply=True,
        can_borrow=True,
    )
    params.update(overrides)
    return MarketParams(**params)


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def owner() -> str:
    return OWNER


@pytest.fixture()
def market_factory():
    return make_market


@pytest.fixture()
def assets() -> dict[str, Asset]:
    return {"USDC": USDC, "WETH": WETH, "WBTC": WBTC}


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_monitor_config() -> MonitorConfig:
    return MonitorConfig(
        poll_interval_seconds=5,
        failure_threshold=3,
        max_workers=2,
        adapter_timeout_seconds=1.0,
        recovery_min_tiers=1,
    )


@pytest.fixture()
def sample_protocol_config() -> ProtocolConfig:
    return ProtocolConfig(
        enabled=True,
        methods=ProtocolMethodsConfig(markets="test_getMarkets", positions="test_getPositions"),
        contracts={"pool": "0xpool"},
        platform_fee=0.0,
    )


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.example.com/v2/updates/price/latest",
        feeds={"USDC": "aaa111", "WETH": "bbb222", "WBTC": "ccc333"},
        max_staleness_seconds=3600,
        aliases={},
    )


@pytest.fixture()
def sample_app_config(
    sample_monitor_config: MonitorConfig,
    sample_pyth_config: PythConfig,
) -> AppConfig:
    return AppConfig(
        monitor=sample_monitor_config,
        owners=(OwnerConfig(label="test-owner", address=OWNER, protocols=("aave", "morpho")),),
        data_source=DataSourceConfig(rpc_endpoints=("https://rpc.example.com",), rpc_timeout=5),
        protocols={
            "aave": ProtocolConfig(
                methods=ProtocolMethodsConfig("aave_getReservesData", "aave_getUserReservesData")
            ),
            "morpho": ProtocolConfig(
                methods=ProtocolMethodsConfig("morpho_getMarkets", "morpho_getPositions")
            ),
        },
        price_oracle=PriceOracleConfig(provider="pyth", pyth=sample_pyth_config),
        routing=RoutingConfig(apy_epsilon=0.0001),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(enabled=False), log_alerts=False
        ),
    )


# ---------------------------------------------------------------------------
# Market / position / price fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def aave_usdc() -> MarketParams:
    return make_market(
        LendingProtocol.AAVE, "0xusdc", USDC,
        liquidation_threshold=0.78, max_ltv=0.75, supply_apy=0.042, borrow_apy=0.055,
    )


@pytest.fixture()
def aave_weth() -> MarketParams:
    return make_market(
        LendingProtocol.AAVE, "0xweth", WETH,
        liquidation_threshold=0.83, max_ltv=0.80, supply_apy=0.02, borrow_apy=0.03,
        available_liquidity=1_000 * 10**18,
    )


@pytest.fixture()
def morpho_usdc_weth() -> MarketParams:
    return make_market(
        LendingProtocol.MORPHO, "0xmorpho1", USDC,
        collateral_asset=WETH,
        liquidation_threshold=0.86, max_ltv=0.86, supply_apy=0.058, borrow_apy=0.065,
        available_liquidity=2_000_000 * 10**6,
        can_use_as_collateral=False,
    )


@pytest.fixture()
def sample_markets(
    aave_usdc: MarketParams, aave_weth: MarketParams, morpho_usdc_weth: MarketParams
) -> list[MarketParams]:
    return [aave_usdc, aave_weth, morpho_usdc_weth]


@pytest.fixture()
def sample_positions() -> list[Position]:
    """Aave: 5 WETH collateral, 4,000 USDC debt. Morpho: 2 WETH collateral, 3,000 USDC debt."""
    return [
        Position(OWNER, LendingProtocol.AAVE, "0xweth", supply_balance=5 * 10**18),
        Position(OWNER, LendingProtocol.AAVE, "0xusdc", borrow_balance=4_000 * 10**6),
        Position(
            OWNER, LendingProtocol.MORPHO, "0xmorpho1",
            borrow_balance=3_000 * 10**6, collateral_balance=2 * 10**18,
        ),
    ]


@pytest.fixture()
def sample_quotes() -> dict[str, PriceQuote]:
    return {
        "USDC": PriceQuote("USDC", 1.0, NOW),
        "WETH": PriceQuote("WETH", 2000.0, NOW),
        "WBTC": PriceQuote("WBTC", 60000.0, NOW),
    }


@pytest.fixture()
def sample_prices(sample_quotes: dict[str, PriceQuote]) -> PriceLookup:
    return PriceLookup(sample_quotes, max_staleness_seconds=3600, now=NOW)


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    monitor:
      poll_interval_seconds: 15
      failure_threshold: 2
      max_workers: 3
    owners:
      - label: test-owner
        address: "0xTEST"
        protocols: [aave, morpho]
    data_source:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
    protocols:
      aave:
        contracts:
          pool: "0xpool"
      morpho:
        platform_fee: 0.001
        methods:
          markets: custom_getMarkets
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {USDC: "aaa", WETH: "bbb"}
        aliases: {STETH: WETH}
    routing:
      apy_epsilon: 0.0002
    notifications:
      telegram:
        enabled: true
        bot_token: "tok1"
        chat_id: 999
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
