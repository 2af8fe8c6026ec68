"""Bounded, cancellable fan-out of adapter and oracle calls."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence

from ..errors import ConsistencyViolation, DataUnavailable
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.protocol_adapter import ProtocolAdapter
from ..models import FetchError, LendingProtocol, MarketParams, Position
from ..risk.normalizer import account_id, normalize
from ..risk.pricing import PriceLookup

logger = logging.getLogger(__name__)

OwnerProtocols = Mapping[str, Sequence[LendingProtocol]]


@dataclass(frozen=True)
class ProtocolSnapshot:
    """One protocol's markets and one owner's positions from a single refresh."""

    protocol: LendingProtocol
    markets: tuple[MarketParams, ...] = ()
    positions: tuple[Position, ...] = ()
    errors: tuple[FetchError, ...] = ()
    position_errors: tuple[FetchError, ...] = ()
    failure: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def complete(self) -> bool:
        """Refreshed with no per-entry failures; absence of a key is meaningful."""
        return self.failure is None and not self.errors

    def account_unknown(self, account: str) -> bool:
        """True when a failed position entry may belong to margin *account*."""
        for error in self.position_errors:
            entry = error.entry_id.lower()
            if entry == "?" or account_id(self.protocol, entry) == account:
                return True
        return False


@dataclass(frozen=True)
class OwnerSnapshot:
    owner: str
    protocols: Mapping[LendingProtocol, ProtocolSnapshot] = field(default_factory=dict)
    prices: Optional[PriceLookup] = None
    price_error: Optional[str] = None

    @property
    def failed(self) -> bool:
        """True when a whole call (protocol or prices) failed for this owner."""
        return self.prices is None or any(not s.ok for s in self.protocols.values())

    @property
    def degraded(self) -> bool:
        return self.failed or any(s.errors for s in self.protocols.values())

    def failure_reasons(self) -> list[str]:
        reasons = [f"{p.value}: {s.failure}" for p, s in self.protocols.items() if s.failure]
        reasons += [
            f"{p.value}: {len(s.errors)} entry error(s)"
            for p, s in self.protocols.items()
            if s.ok and s.errors
        ]
        if self.price_error:
            reasons.append(f"prices: {self.price_error}")
        return reasons

    def ok_protocols(self) -> list[LendingProtocol]:
        return [p for p, s in self.protocols.items() if s.ok]

    def complete_protocols(self) -> list[LendingProtocol]:
        return [p for p, s in self.protocols.items() if s.complete]

    @property
    def markets(self) -> list[MarketParams]:
        return [m for s in self.protocols.values() if s.ok for m in s.markets]

    @property
    def positions(self) -> list[Position]:
        return [p for s in self.protocols.values() if s.ok for p in s.positions]

    def require_prices(self) -> PriceLookup:
        if self.prices is None:
            raise DataUnavailable(f"Prices unavailable: {self.price_error}")
        return self.prices

    def normalized(self) -> tuple[Position, ...]:
        """Normalized positions of the protocols that refreshed successfully.

        Accounts touched by a failed position entry get an unknown health factor.
        """
        positions = normalize(self.positions, self.markets, self.require_prices())
        return tuple(self._mask_unknown(p) for p in positions)

    def _mask_unknown(self, position: Position) -> Position:
        snap = self.protocols.get(position.protocol)
        account = account_id(position.protocol, position.market_id)
        if snap is not None and snap.account_unknown(account):
            return replace(position, health_factor=None)
        return position


class PositionRefresher:
    """Runs adapter and oracle calls concurrently under one worker bound.

    Every call gets its own timeout so a slow adapter never blocks the others;
    a failed call is recorded, not raised. Cancellation propagates.
    """

    def __init__(
        self,
        adapters: Mapping[LendingProtocol, ProtocolAdapter],
        oracle: PriceOracle,
        max_workers: int = 4,
        adapter_timeout: float = 10.0,
        max_staleness_seconds: float = 3600,
        price_aliases: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._adapters = dict(adapters)
        self._oracle = oracle
        self._max_workers = max_workers
        self._timeout = adapter_timeout
        self._max_staleness = max_staleness_seconds
        self._aliases = dict(price_aliases or {})

    @property
    def protocols(self) -> tuple[LendingProtocol, ...]:
        return tuple(self._adapters)

    async def _guarded(
        self,
        semaphore: asyncio.Semaphore,
        label: str,
        call: Callable[[], Awaitable[Any]],
    ) -> tuple[Any, Optional[str]]:
        async with semaphore:
            try:
                return await asyncio.wait_for(call(), timeout=self._timeout), None
            except ConsistencyViolation:
                raise
            except asyncio.TimeoutError:
                logger.warning("%s timed out after %.1fs", label, self._timeout)
                return None, f"timed out after {self._timeout:.1f}s"
            except Exception as e:
                logger.warning("%s failed: %s", label, e)
                return None, str(e) or type(e).__name__

    async def _fetch_prices(
        self, semaphore: asyncio.Semaphore
    ) -> tuple[Optional[PriceLookup], Optional[str]]:
        quotes, error = await self._guarded(semaphore, "price oracle", self._oracle.fetch_quotes)
        if error is not None:
            return None, error
        return PriceLookup(quotes, self._max_staleness, aliases=self._aliases), None

    async def refresh_markets(
        self, protocols: Optional[Iterable[LendingProtocol]] = None
    ) -> dict[LendingProtocol, ProtocolSnapshot]:
        """Fetch markets only (no owner positions, no prices)."""
        wanted = [p for p in (protocols or self._adapters) if p in self._adapters]
        semaphore = asyncio.Semaphore(self._max_workers)
        results = await asyncio.gather(
            *(
                self._guarded(
                    semaphore, f"{p.display_name} markets", self._adapters[p].fetch_markets
                )
                for p in wanted
            )
        )
        snapshots: dict[LendingProtocol, ProtocolSnapshot] = {}
        for protocol, (result, error) in zip(wanted, results):
            if error is not None:
                snapshots[protocol] = ProtocolSnapshot(protocol, failure=error)
            else:
                snapshots[protocol] = ProtocolSnapshot(
                    protocol, markets=result.items, errors=result.errors
                )
        return snapshots

    async def refresh_owners(self, owners: OwnerProtocols) -> dict[str, OwnerSnapshot]:
        """Refresh every owner: markets once per protocol, positions per owner, one price batch."""
        semaphore = asyncio.Semaphore(self._max_workers)

        needed: list[LendingProtocol] = []
        for protocols in owners.values():
            for p in protocols:
                if p not in needed and p in self._adapters:
                    needed.append(p)

        pairs = [(o, p) for o, protocols in owners.items() for p in protocols if p in self._adapters]

        market_calls = [
            self._guarded(semaphore, f"{p.display_name} markets", self._adapters[p].fetch_markets)
            for p in needed
        ]
        position_calls = [
            self._guarded(
                semaphore,
                f"{p.display_name} positions for {o}",
                lambda o=o, p=p: self._adapters[p].fetch_positions(o),
            )
            for o, p in pairs
        ]

        results = await asyncio.gather(
            self._fetch_prices(semaphore), *market_calls, *position_calls
        )
        prices, price_error = results[0]
        market_results = dict(zip(needed, results[1 : 1 + len(needed)]))
        position_results = dict(zip(pairs, results[1 + len(needed) :]))

        snapshots: dict[str, OwnerSnapshot] = {}
        for owner, protocols in owners.items():
            per_protocol: dict[LendingProtocol, ProtocolSnapshot] = {}
            for p in protocols:
                if p not in self._adapters:
                    per_protocol[p] = ProtocolSnapshot(p, failure="no adapter configured")
                    continue
                markets, market_error = market_results[p]
                positions, position_error = position_results[(owner, p)]
                failure = market_error or position_error
                if failure is not None:
                    per_protocol[p] = ProtocolSnapshot(p, failure=failure)
                    continue
                per_protocol[p] = ProtocolSnapshot(
                    p,
                    markets=markets.items,
                    positions=positions.items,
                    errors=markets.errors + positions.errors,
                    position_errors=positions.errors,
                )
            snapshots[owner] = OwnerSnapshot(owner, per_protocol, prices, price_error)
        return snapshots

    async def refresh_owner(
        self, owner: str, protocols: Optional[Sequence[LendingProtocol]] = None
    ) -> OwnerSnapshot:
        protocols = list(protocols) if protocols is not None else list(self._adapters)
        snapshots = await self.refresh_owners({owner: protocols})
        return snapshots[owner]
