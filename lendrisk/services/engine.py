"""Query API — wires adapters, oracle and risk functions for on-demand requests."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Optional, Sequence

from ..chains import JsonRpcDataSource
from ..config import AppConfig, OwnerConfig, ProtocolConfig
from ..errors import DataUnavailable, InvalidInput
from ..interfaces.chain import ChainDataSource
from ..interfaces.notifier import AlertSink
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.protocol_adapter import ProtocolAdapter
from ..models import (
    Action,
    LendingProtocol,
    MarketParams,
    PortfolioStats,
    Position,
    RiskTier,
    RoutingOption,
)
from ..notifications import LoggingSink, TelegramSink
from ..oracles import PythOracle
from ..protocols import AaveAdapter, CompoundAdapter, MoonwellAdapter, MorphoAdapter
from ..risk.aggregator import aggregate
from ..risk.checks import ActionCheck, BorrowCapacity, borrow_capacity, validate_action
from ..risk.health import classify_tier, price_drop_to_liquidation
from ..risk.normalizer import AccountKey, RiskBasis, account_id, index_markets, risk_bases
from ..risk.pricing import PriceLookup
from ..risk.routing import rank_markets
from .monitor import LiquidationMonitor
from .refresh import OwnerSnapshot, PositionRefresher

logger = logging.getLogger(__name__)

# Registry of protocol adapter factories keyed by protocol.
_ADAPTER_FACTORIES: dict[LendingProtocol, Callable[[ChainDataSource, ProtocolConfig], Any]] = {
    LendingProtocol.AAVE: AaveAdapter,
    LendingProtocol.MORPHO: MorphoAdapter,
    LendingProtocol.COMPOUND: CompoundAdapter,
    LendingProtocol.MOONWELL: MoonwellAdapter,
}


@dataclass(frozen=True)
class SimulationResult:
    """Current vs projected risk of one account under a hypothetical action."""

    current_health_factor: float
    projected_health_factor: float
    current_tier: RiskTier
    projected_tier: RiskTier
    check: ActionCheck
    capacity: BorrowCapacity

    @property
    def is_liquidatable(self) -> bool:
        return self.projected_tier is RiskTier.LIQUIDATABLE

    @property
    def price_drop_to_liquidation(self) -> float:
        return price_drop_to_liquidation(self.projected_health_factor)


def _apply_action(
    position: Optional[Position],
    owner: str,
    market: MarketParams,
    action: Action,
    amount: int,
) -> Position:
    """Return the position as it would be after *action*, on integer balances.

    Isolated markets take supply/withdraw on the collateral balance, since only
    collateral secures their debt.
    """
    if position is None:
        position = Position(
            owner=owner,
            protocol=market.protocol,
            market_id=market.market_id,
            is_collateral_enabled=market.can_use_as_collateral or market.protocol.is_isolated,
        )

    if action in (Action.SUPPLY, Action.WITHDRAW):
        field_name = "collateral_balance" if market.protocol.is_isolated else "supply_balance"
        current = getattr(position, field_name)
        delta = amount if action is Action.SUPPLY else -amount
        return replace(position, **{field_name: max(0, current + delta)})

    delta = amount if action is Action.BORROW else -amount
    return replace(position, borrow_balance=max(0, position.borrow_balance + delta))


def _account_basis(
    positions: Sequence[Position],
    markets: Mapping[tuple[LendingProtocol, str], MarketParams],
    prices: PriceLookup,
    account: AccountKey,
) -> RiskBasis:
    bases = risk_bases(positions, markets, prices)
    if account not in bases:
        return RiskBasis(0.0, 0.0, 0.0)
    basis = bases[account]
    if basis is None:
        raise DataUnavailable(f"Cannot value account {account[2] or account[1].value}")
    return basis


class LendingEngine:
    """Side-effect-free queries over freshly fetched protocol data."""

    def __init__(
        self,
        config: AppConfig,
        data_source: Optional[ChainDataSource] = None,
        oracle: Optional[PriceOracle] = None,
    ) -> None:
        self._config = config
        self._source: ChainDataSource = data_source or JsonRpcDataSource(config.data_source)

        self._adapters: dict[LendingProtocol, ProtocolAdapter] = {}
        for name in config.enabled_protocols():
            protocol = LendingProtocol.parse(name)
            factory = _ADAPTER_FACTORIES.get(protocol)
            if factory:
                self._adapters[protocol] = factory(self._source, config.protocols[name])
            else:
                logger.warning("No adapter factory for protocol '%s'", name)

        pyth = config.price_oracle.pyth
        self._oracle: PriceOracle = oracle or PythOracle(pyth)
        self._refresher = PositionRefresher(
            self._adapters,
            self._oracle,
            max_workers=config.monitor.max_workers,
            adapter_timeout=config.monitor.adapter_timeout_seconds,
            max_staleness_seconds=pyth.max_staleness_seconds,
            price_aliases=pyth.aliases,
        )

    @property
    def adapters(self) -> dict[LendingProtocol, ProtocolAdapter]:
        return dict(self._adapters)

    @property
    def refresher(self) -> PositionRefresher:
        return self._refresher

    # ------------------------------------------------------------------
    # Owners
    # ------------------------------------------------------------------

    def _owner_config(self, owner: str) -> Optional[OwnerConfig]:
        for cfg in self._config.owners:
            if owner.lower() in (cfg.address.lower(), cfg.label.lower()):
                return cfg
        return None

    def resolve_owner(self, owner: str) -> tuple[str, list[LendingProtocol]]:
        """Address and protocols for an owner given by address or configured label."""
        if not owner or not owner.strip():
            raise InvalidInput("Owner must not be empty")
        cfg = self._owner_config(owner)
        if cfg is None:
            return owner, list(self._adapters)
        protocols = [LendingProtocol.parse(p) for p in cfg.protocols] or list(self._adapters)
        return cfg.address, [p for p in protocols if p in self._adapters]

    def monitored_owners(self) -> dict[str, list[LendingProtocol]]:
        return dict(self.resolve_owner(o.address) for o in self._config.owners)

    async def _snapshot(
        self, owner: str, protocols: Optional[Sequence[LendingProtocol]] = None
    ) -> OwnerSnapshot:
        address, configured = self.resolve_owner(owner)
        return await self._refresher.refresh_owner(
            address, protocols if protocols is not None else configured
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _checked_snapshot(self, owner: str, allow_partial: bool) -> OwnerSnapshot:
        snapshot = await self._snapshot(owner)
        if snapshot.degraded and not allow_partial:
            raise DataUnavailable(
                f"Incomplete data for {owner}: "
                + "; ".join(snapshot.failure_reasons())
            )
        return snapshot

    async def get_positions(self, owner: str, allow_partial: bool = False) -> tuple[Position, ...]:
        snapshot = await self._checked_snapshot(owner, allow_partial)
        return snapshot.normalized()

    async def get_portfolio_stats(self, owner: str, allow_partial: bool = False) -> PortfolioStats:
        """PortfolioStats across the owner's protocols.

        A degraded refresh, or a debt position whose health factor is unknown,
        raises :class:`DataUnavailable` unless *allow_partial*.
        """
        snapshot = await self._checked_snapshot(owner, allow_partial)
        positions = snapshot.normalized()
        return aggregate(positions, snapshot.require_prices(), allow_unknown=allow_partial)

    async def get_markets(
        self, protocols: Optional[Sequence[LendingProtocol]] = None
    ) -> list[MarketParams]:
        """Markets of every protocol that answered; raises if none did."""
        snapshots = await self._refresher.refresh_markets(protocols)
        markets: list[MarketParams] = []
        for protocol, snap in snapshots.items():
            if not snap.ok:
                logger.warning("%s markets unavailable: %s", protocol.display_name, snap.failure)
                continue
            markets.extend(snap.markets)
        if snapshots and not any(s.ok for s in snapshots.values()):
            raise DataUnavailable("No protocol returned market data")
        return markets

    async def get_routing_options(
        self, asset: str, action: Action | str, desired_amount: int = 0
    ) -> list[RoutingOption]:
        markets = await self.get_markets()
        return rank_markets(
            asset, action, markets, desired_amount, self._config.routing.apy_epsilon
        )

    async def get_recommendation(
        self, asset: str, action: Action | str, desired_amount: int = 0
    ) -> Optional[RoutingOption]:
        """Best venue, or None when no market qualifies."""
        options = await self.get_routing_options(asset, action, desired_amount)
        return options[0] if options else None

    async def simulate(
        self,
        owner: str,
        protocol: LendingProtocol | str,
        market_id: str,
        action: Action | str,
        amount: int,
    ) -> SimulationResult:
        """Project an account's health factor after *action* of *amount* base units."""
        protocol = LendingProtocol.parse(protocol)
        action = Action.parse(action)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidInput(f"amount must be positive integer base units, got {amount!r}")

        address, _ = self.resolve_owner(owner)
        snapshot = await self._snapshot(owner, [protocol])
        proto_snap = snapshot.protocols.get(protocol)
        if proto_snap is None or not proto_snap.ok:
            raise DataUnavailable(
                f"{protocol.display_name} data unavailable: "
                f"{proto_snap.failure if proto_snap else 'no adapter configured'}"
            )
        prices = snapshot.require_prices()

        markets = index_markets(proto_snap.markets)
        market = markets.get((protocol, market_id.lower()))
        if market is None:
            raise InvalidInput(f"Unknown {protocol.display_name} market '{market_id}'")

        account = (address, protocol, account_id(protocol, market.market_id))
        current_positions = [
            p for p in proto_snap.positions
            if (p.owner, p.protocol, account_id(p.protocol, p.market_id)) == account
        ]
        existing = next((p for p in current_positions if p.market_id == market.market_id), None)
        projected_positions = [p for p in current_positions if p is not existing]
        projected_positions.append(_apply_action(existing, address, market, action, amount))

        current = _account_basis(current_positions, markets, prices, account)
        projected = _account_basis(projected_positions, markets, prices, account)

        current_hf = current.health_factor
        projected_hf = projected.health_factor
        check = validate_action(action, amount, market, existing, projected_hf)
        return SimulationResult(
            current_health_factor=current_hf,
            projected_health_factor=projected_hf,
            current_tier=classify_tier(current_hf),
            projected_tier=classify_tier(projected_hf),
            check=check,
            capacity=borrow_capacity(projected),
        )

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def build_sinks(self) -> list[AlertSink]:
        sinks: list[AlertSink] = []
        notifications = self._config.notifications
        if notifications.log_alerts:
            sinks.append(LoggingSink())
        if notifications.telegram.enabled:
            sinks.append(TelegramSink(notifications.telegram))
        return sinks

    def build_monitor(self, sinks: Optional[Sequence[AlertSink]] = None) -> LiquidationMonitor:
        return LiquidationMonitor(
            self._refresher,
            self.monitored_owners(),
            sinks if sinks is not None else self.build_sinks(),
            self._config.monitor,
        )
