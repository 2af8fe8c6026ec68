"""Integration tests for the refresher — bounded fan-out, timeouts and cancellation."""
from __future__ import annotations

import asyncio

import pytest

from lendrisk.errors import ConsistencyViolation, DataUnavailable
from lendrisk.models import FetchError, FetchResult, LendingProtocol
from lendrisk.services import PositionRefresher

OWNER = "0xowner"
AAVE = LendingProtocol.AAVE
MORPHO = LendingProtocol.MORPHO


def _refresher(adapters, oracle, **kwargs) -> PositionRefresher:
    kwargs.setdefault("adapter_timeout", 1.0)
    return PositionRefresher({a.protocol: a for a in adapters}, oracle, **kwargs)


class TestRefreshOwners:
    @pytest.mark.asyncio
    async def test_snapshot_contents(self, aave_adapter, morpho_adapter, fake_oracle) -> None:
        refresher = _refresher([aave_adapter, morpho_adapter], fake_oracle)
        snapshot = await refresher.refresh_owner(OWNER)

        assert not snapshot.degraded
        assert snapshot.ok_protocols() == [AAVE, MORPHO]
        assert len(snapshot.markets) == 3
        assert len(snapshot.positions) == 3
        hfs = {p.market_id: p.health_factor for p in snapshot.normalized()}
        assert hfs["0xweth"] == pytest.approx(2.075)
        assert hfs["0xmorpho1"] == pytest.approx(4_000 * 0.86 / 3_000)

    @pytest.mark.asyncio
    async def test_markets_and_prices_fetched_once(
        self, aave_adapter, fake_oracle
    ) -> None:
        refresher = _refresher([aave_adapter], fake_oracle)
        owners = {OWNER: [AAVE], "0xother": [AAVE], "0xthird": [AAVE]}
        snapshots = await refresher.refresh_owners(owners)

        assert set(snapshots) == set(owners)
        assert aave_adapter.market_calls == 1
        assert aave_adapter.position_calls == 3
        assert fake_oracle.calls == 1

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, adapter_factory, aave_usdc, fake_oracle) -> None:
        adapter = adapter_factory(AAVE, [aave_usdc])
        adapter.delay = 0.01
        refresher = _refresher([adapter], fake_oracle, max_workers=2)
        await refresher.refresh_owners({f"0x{i}": [AAVE] for i in range(8)})
        assert adapter.max_active <= 2

    @pytest.mark.asyncio
    async def test_slow_adapter_times_out_alone(
        self, aave_adapter, morpho_adapter, fake_oracle
    ) -> None:
        morpho_adapter.delay = 1.0
        refresher = _refresher([aave_adapter, morpho_adapter], fake_oracle, adapter_timeout=0.05)
        snapshot = await refresher.refresh_owner(OWNER)

        assert snapshot.failed
        assert snapshot.ok_protocols() == [AAVE]
        assert "timed out" in snapshot.protocols[MORPHO].failure
        assert {p.protocol for p in snapshot.normalized()} == {AAVE}

    @pytest.mark.asyncio
    async def test_adapter_error_recorded(self, aave_adapter, morpho_adapter, fake_oracle) -> None:
        aave_adapter.error = DataUnavailable("rpc down")
        refresher = _refresher([aave_adapter, morpho_adapter], fake_oracle)
        snapshot = await refresher.refresh_owner(OWNER)

        assert snapshot.protocols[AAVE].failure == "rpc down"
        assert snapshot.failure_reasons() == ["aave: rpc down"]

    @pytest.mark.asyncio
    async def test_price_failure(self, aave_adapter, fake_oracle) -> None:
        fake_oracle.error = DataUnavailable("hermes down")
        refresher = _refresher([aave_adapter], fake_oracle)
        snapshot = await refresher.refresh_owner(OWNER)

        assert snapshot.failed
        assert snapshot.prices is None
        with pytest.raises(DataUnavailable):
            snapshot.normalized()

    @pytest.mark.asyncio
    async def test_entry_errors_mark_degraded_not_failed(self, aave_adapter, fake_oracle) -> None:
        aave_adapter.markets = FetchResult(
            aave_adapter.markets.items, (FetchError(AAVE, "0xbad", "bad threshold"),)
        )
        refresher = _refresher([aave_adapter], fake_oracle)
        snapshot = await refresher.refresh_owner(OWNER)

        assert snapshot.degraded
        assert not snapshot.failed
        assert snapshot.complete_protocols() == []

    @pytest.mark.asyncio
    async def test_failed_position_entry_masks_its_account(
        self, aave_adapter, morpho_adapter, fake_oracle, make_aave_positions
    ) -> None:
        aave_adapter.positions[OWNER] = FetchResult(
            tuple(make_aave_positions()[:1]), (FetchError(AAVE, "0xusdc", "bad entry"),)
        )
        refresher = _refresher([aave_adapter, morpho_adapter], fake_oracle)
        snapshot = await refresher.refresh_owner(OWNER)

        hfs = {p.market_id: p.health_factor for p in snapshot.normalized()}
        assert hfs["0xweth"] is None
        assert hfs["0xmorpho1"] == pytest.approx(4_000 * 0.86 / 3_000)
        assert snapshot.failure_reasons() == ["aave: 1 entry error(s)"]

    @pytest.mark.asyncio
    async def test_isolated_entry_error_masks_only_its_market(
        self, morpho_adapter, fake_oracle
    ) -> None:
        morpho_adapter.positions[OWNER] = FetchResult(
            morpho_adapter.positions[OWNER].items, (FetchError(MORPHO, "0xother", "bad entry"),)
        )
        refresher = _refresher([morpho_adapter], fake_oracle)
        snapshot = await refresher.refresh_owner(OWNER)

        (position,) = snapshot.normalized()
        assert position.health_factor == pytest.approx(4_000 * 0.86 / 3_000)

    @pytest.mark.asyncio
    async def test_unidentified_entry_error_masks_every_account(
        self, morpho_adapter, fake_oracle
    ) -> None:
        morpho_adapter.positions[OWNER] = FetchResult(
            morpho_adapter.positions[OWNER].items, (FetchError(MORPHO, "?", "not an object"),)
        )
        refresher = _refresher([morpho_adapter], fake_oracle)
        snapshot = await refresher.refresh_owner(OWNER)

        (position,) = snapshot.normalized()
        assert position.health_factor is None

    @pytest.mark.asyncio
    async def test_unconfigured_protocol(self, aave_adapter, fake_oracle) -> None:
        refresher = _refresher([aave_adapter], fake_oracle)
        snapshot = await refresher.refresh_owner(OWNER, [AAVE, MORPHO])
        assert snapshot.protocols[MORPHO].failure == "no adapter configured"

    @pytest.mark.asyncio
    async def test_consistency_violation_propagates(self, aave_adapter, fake_oracle) -> None:
        aave_adapter.error = ConsistencyViolation("negative balance after merge")
        refresher = _refresher([aave_adapter], fake_oracle)
        with pytest.raises(ConsistencyViolation):
            await refresher.refresh_owner(OWNER)

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, aave_adapter, fake_oracle) -> None:
        aave_adapter.delay = 0.5
        refresher = _refresher([aave_adapter], fake_oracle)
        task = asyncio.create_task(refresher.refresh_owner(OWNER))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestRefreshMarkets:
    @pytest.mark.asyncio
    async def test_only_requested_protocols(self, aave_adapter, morpho_adapter, fake_oracle) -> None:
        refresher = _refresher([aave_adapter, morpho_adapter], fake_oracle)
        snapshots = await refresher.refresh_markets([MORPHO])

        assert list(snapshots) == [MORPHO]
        assert aave_adapter.market_calls == 0
        assert fake_oracle.calls == 0
