"""Liquidation monitor — one scheduling loop over all tracked owners."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Sequence

from ..config import MonitorConfig
from ..errors import ConsistencyViolation, DataUnavailable
from ..interfaces.notifier import AlertSink
from ..models import LendingProtocol, MarketParams, PositionKey, RiskAlert, RiskTier
from ..risk.health import format_health_factor
from ..risk.rates import detect_rate_changes
from .refresh import OwnerSnapshot, PositionRefresher
from .tiers import evaluate

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LiquidationMonitor:
    """Polls owners, tracks the last risk tier per position and emits alerts.

    The tier map is the monitor's only state. It is written for an owner only
    after that owner's whole cycle has been computed, and before any of the
    owner's alerts are handed to the sinks.
    """

    def __init__(
        self,
        refresher: PositionRefresher,
        owners: Mapping[str, Sequence[LendingProtocol]],
        sinks: Sequence[AlertSink],
        settings: MonitorConfig,
        tiers: Optional[Mapping[PositionKey, RiskTier]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._refresher = refresher
        self._owners = {owner: tuple(protocols) for owner, protocols in owners.items()}
        self._sinks = list(sinks)
        self._settings = settings
        self._tiers: dict[PositionKey, RiskTier] = dict(tiers or {})
        self._clock = clock or _utcnow
        self._failures: dict[str, int] = {owner: 0 for owner in self._owners}
        self._markets: dict[tuple[LendingProtocol, str], MarketParams] = {}

    @property
    def tiers(self) -> Mapping[PositionKey, RiskTier]:
        return MappingProxyType(self._tiers)

    def consecutive_failures(self, owner: str) -> int:
        return self._failures.get(owner, 0)

    # ------------------------------------------------------------------
    # Failure tracking
    # ------------------------------------------------------------------

    def _record_failure(self, owner: str, reason: str) -> None:
        count = self._failures.get(owner, 0) + 1
        self._failures[owner] = count
        if count == self._settings.failure_threshold:
            logger.warning(
                "Owner %s degraded: %d consecutive failed polls (last error: %s)",
                owner, count, reason,
            )
        else:
            logger.debug("Poll failed for %s (%d in a row): %s", owner, count, reason)

    def _record_success(self, owner: str) -> None:
        count = self._failures.get(owner, 0)
        if count >= self._settings.failure_threshold:
            logger.info("Owner %s recovered after %d failed polls", owner, count)
        self._failures[owner] = 0

    # ------------------------------------------------------------------
    # Market rates
    # ------------------------------------------------------------------

    def _track_rates(self, snapshots: Mapping[str, OwnerSnapshot]) -> None:
        current = {m.key: m for snap in snapshots.values() for m in snap.markets}
        threshold = self._settings.rate_change_threshold_pct
        if threshold > 0 and self._markets:
            for change in detect_rate_changes(self._markets.values(), current.values(), threshold):
                logger.info(
                    "%s %s %s APY moved %.2f%% -> %.2f%% (%+.1f%%)",
                    change.protocol.display_name,
                    change.market_id,
                    change.side,
                    change.previous_apy * 100,
                    change.current_apy * 100,
                    change.change_pct,
                )
        self._markets.update(current)

    # ------------------------------------------------------------------
    # Alert dispatch
    # ------------------------------------------------------------------

    async def _emit(self, alert: RiskAlert) -> None:
        logger.info(
            "%s alert: %s %s/%s %s -> %s (HF %s)",
            alert.kind.value.capitalize(),
            alert.owner,
            alert.protocol.value,
            alert.market_id,
            alert.previous_tier.label,
            alert.new_tier.label,
            format_health_factor(alert.health_factor),
        )
        for sink in self._sinks:
            try:
                await sink.publish(alert)
            except Exception as e:
                logger.error("Alert sink %s failed: %s", type(sink).__name__, e)

    # ------------------------------------------------------------------
    # Core workflow
    # ------------------------------------------------------------------

    def _commit_owner(self, owner: str, snapshot: OwnerSnapshot) -> list[RiskAlert]:
        """Evaluate and commit one owner; raises DataUnavailable without committing."""
        positions = snapshot.normalized()
        scope = [(owner, p) for p in snapshot.complete_protocols()]
        outcome = evaluate(
            self._tiers, positions, scope, self._clock(), self._settings.recovery_min_tiers
        )
        outcome.apply(self._tiers)
        return list(outcome.alerts)

    async def poll_once(self) -> list[RiskAlert]:
        """Run a single monitoring tick and return the alerts it emitted."""
        try:
            snapshots = await self._refresher.refresh_owners(self._owners)
        except (asyncio.CancelledError, ConsistencyViolation):
            raise
        except Exception as e:
            logger.error("Refresh failed: %s", e)
            for owner in self._owners:
                self._record_failure(owner, str(e))
            return []

        self._track_rates(snapshots)
        emitted: list[RiskAlert] = []
        for owner in self._owners:
            snapshot = snapshots.get(owner)
            if snapshot is None:
                self._record_failure(owner, "no snapshot")
                continue
            try:
                alerts = self._commit_owner(owner, snapshot)
            except DataUnavailable as e:
                self._record_failure(owner, str(e))
                continue

            if snapshot.degraded:
                self._record_failure(owner, "; ".join(snapshot.failure_reasons()))
            else:
                self._record_success(owner)

            for alert in alerts:
                await self._emit(alert)
            emitted.extend(alerts)
        return emitted

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Poll until *stop_event* is set; cancellation propagates."""
        stop_event = stop_event or asyncio.Event()
        interval = self._settings.poll_interval_seconds
        logger.info(
            "Starting liquidation monitor (%d owners, polling every %.0fs)",
            len(self._owners), interval,
        )

        while not stop_event.is_set():
            await self.poll_once()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Liquidation monitor stopped")
