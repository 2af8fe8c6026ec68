"""Unit tests for portfolio aggregation."""
from __future__ import annotations

import math
from datetime import datetime, timedelta

import pytest

from lendrisk.errors import DataUnavailable, StalePriceError
from lendrisk.models import Asset, LendingProtocol, MarketParams, Position, PriceQuote
from lendrisk.risk.aggregator import aggregate
from lendrisk.risk.normalizer import normalize
from lendrisk.risk.pricing import PriceLookup


@pytest.fixture()
def normalized(
    sample_positions: list[Position],
    sample_markets: list[MarketParams],
    sample_prices: PriceLookup,
) -> tuple[Position, ...]:
    return normalize(sample_positions, sample_markets, sample_prices)


class TestAggregate:
    def test_totals(self, normalized: tuple[Position, ...], sample_prices: PriceLookup) -> None:
        stats = aggregate(normalized, sample_prices)
        # Aave 5 WETH + Morpho 2 WETH collateral; 4,000 + 3,000 USDC debt
        assert stats.total_supply_usd == pytest.approx(14_000)
        assert stats.total_borrow_usd == pytest.approx(7_000)
        assert stats.net_worth_usd == pytest.approx(7_000)
        assert stats.position_count == 3
        assert stats.skipped_positions == 0

    def test_weighted_apys(self, normalized: tuple[Position, ...], sample_prices: PriceLookup) -> None:
        stats = aggregate(normalized, sample_prices)
        assert stats.weighted_avg_supply_apy == pytest.approx(0.02)
        assert stats.weighted_avg_borrow_apy == pytest.approx((4_000 * 0.055 + 3_000 * 0.065) / 7_000)

    def test_lowest_health_factor_is_exact_minimum(
        self, normalized: tuple[Position, ...], sample_prices: PriceLookup
    ) -> None:
        stats = aggregate(normalized, sample_prices)
        expected = min(p.health_factor for p in normalized if p.has_debt)
        assert stats.lowest_health_factor == expected
        assert stats.riskiest_position == ("0xowner", LendingProtocol.MORPHO, "0xmorpho1")

    def test_idempotent(self, normalized: tuple[Position, ...], sample_prices: PriceLookup) -> None:
        assert aggregate(normalized, sample_prices) == aggregate(normalized, sample_prices)

    def test_order_independent(self, normalized: tuple[Position, ...], sample_prices: PriceLookup) -> None:
        assert aggregate(normalized, sample_prices) == aggregate(
            tuple(reversed(normalized)), sample_prices
        )

    def test_no_debt_is_infinite(self, owner: str, aave_weth: MarketParams, sample_prices: PriceLookup) -> None:
        positions = normalize(
            [Position(owner, LendingProtocol.AAVE, "0xweth", supply_balance=10**18)],
            [aave_weth],
            sample_prices,
        )
        stats = aggregate(positions, sample_prices)
        assert stats.lowest_health_factor == math.inf
        assert stats.riskiest_position is None
        assert stats.weighted_avg_borrow_apy == 0.0

    def test_empty_portfolio(self, sample_prices: PriceLookup) -> None:
        stats = aggregate([], sample_prices)
        assert stats.total_supply_usd == 0.0
        assert stats.weighted_avg_supply_apy == 0.0
        assert stats.weighted_avg_borrow_apy == 0.0
        assert stats.lowest_health_factor == math.inf
        assert stats.position_count == 0

    def test_unpriced_position_skipped_not_zeroed(
        self, owner: str, normalized: tuple[Position, ...], sample_prices: PriceLookup
    ) -> None:
        doge = Position(
            owner, LendingProtocol.AAVE, "0xdoge", supply_balance=10**8, asset=Asset("DOGE", 8)
        )
        stats = aggregate(normalized + (doge,), sample_prices)
        assert stats.skipped_positions == 1
        assert stats.position_count == 4
        assert stats.total_supply_usd == pytest.approx(14_000)

    def test_stale_price_propagates(self, normalized: tuple[Position, ...], now: datetime) -> None:
        stale = PriceLookup(
            {
                "USDC": PriceQuote("USDC", 1.0, now - timedelta(days=2)),
                "WETH": PriceQuote("WETH", 2000.0, now - timedelta(days=2)),
            },
            3600,
            now=now,
        )
        with pytest.raises(StalePriceError):
            aggregate(normalized, stale)

    def test_unknown_health_factor_on_debt_raises(self, owner: str, now: datetime) -> None:
        debt = Position(
            owner, LendingProtocol.AAVE, "0xusdc",
            borrow_balance=9_000 * 10**6, asset=Asset("USDC", 6, "0xusdc"), health_factor=None,
        )
        weth_only = PriceLookup({"WETH": PriceQuote("WETH", 2000.0, now)}, 3600, now=now)
        with pytest.raises(DataUnavailable, match="0xusdc"):
            aggregate([debt], weth_only)

    def test_unknown_health_factor_counted_when_allowed(self, owner: str, now: datetime) -> None:
        debt = Position(
            owner, LendingProtocol.AAVE, "0xusdc",
            borrow_balance=9_000 * 10**6, asset=Asset("USDC", 6, "0xusdc"), health_factor=None,
        )
        weth_only = PriceLookup({"WETH": PriceQuote("WETH", 2000.0, now)}, 3600, now=now)
        stats = aggregate([debt], weth_only, allow_unknown=True)
        assert stats.unknown_health_factors == 1
        assert stats.skipped_positions == 1
        assert stats.riskiest_position is None
