"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Generic, Optional, Tuple, TypeVar

from .errors import InvalidInput

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class LendingProtocol(str, Enum):
    """Closed set of supported lending protocols."""

    AAVE = "aave"
    MORPHO = "morpho"
    COMPOUND = "compound"
    MOONWELL = "moonwell"

    @property
    def is_isolated(self) -> bool:
        """Morpho Blue markets carry their own collateral; the rest are cross-margin."""
        return self is LendingProtocol.MORPHO

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: str | LendingProtocol) -> LendingProtocol:
        try:
            return cls(str(value.value if isinstance(value, cls) else value).lower())
        except ValueError:
            raise InvalidInput(f"Unknown lending protocol '{value}'") from None


_DISPLAY_NAMES = {
    LendingProtocol.AAVE: "Aave V3",
    LendingProtocol.MORPHO: "Morpho Blue",
    LendingProtocol.COMPOUND: "Compound III",
    LendingProtocol.MOONWELL: "Moonwell",
}


class Action(str, Enum):
    SUPPLY = "supply"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"

    @classmethod
    def parse(cls, value: str | Action) -> Action:
        try:
            return cls(str(value.value if isinstance(value, cls) else value).lower())
        except ValueError:
            raise InvalidInput(f"Unknown lending action '{value}'") from None


class RiskTier(IntEnum):
    """Health-factor buckets, ordered from least to most risky."""

    NONE = 0
    SAFE = 1
    HEALTHY = 2
    WARNING = 3
    DANGER = 4
    CRITICAL = 5
    LIQUIDATABLE = 6

    @property
    def label(self) -> str:
        return self.name.lower()


class AlertKind(str, Enum):
    ESCALATION = "escalation"
    RECOVERY = "recovery"


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Asset:
    """Fungible token reference data."""

    symbol: str
    decimals: int
    address: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.decimals, bool) or not isinstance(self.decimals, int):
            raise InvalidInput(f"Asset {self.symbol} decimals must be an integer")
        if self.decimals < 0:
            raise InvalidInput(f"Asset {self.symbol} has negative decimals")

    def matches(self, query: str) -> bool:
        """True when *query* names this asset by symbol or address (case-insensitive)."""
        q = query.strip().lower()
        if not q:
            return False
        return q == self.symbol.lower() or (bool(self.address) and q == self.address.lower())


@dataclass(frozen=True)
class MarketParams:
    """Protocol-agnostic lending market descriptor produced by an adapter poll."""

    protocol: LendingProtocol
    market_id: str
    asset: Asset
    liquidation_threshold: float
    max_ltv: float
    supply_apy: float
    borrow_apy: float
    available_liquidity: int
    can_supply: bool
    can_borrow: bool
    collateral_asset: Optional[Asset] = None
    reward_apy: float = 0.0
    platform_fee: float = 0.0
    can_use_as_collateral: bool = True

    def __post_init__(self) -> None:
        for name in ("liquidation_threshold", "max_ltv"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidInput(
                    f"{self.protocol.value}:{self.market_id} {name}={value} outside [0, 1]"
                )
        if isinstance(self.available_liquidity, bool) or not isinstance(
            self.available_liquidity, int
        ):
            raise InvalidInput("available_liquidity must be integer base units")
        if self.available_liquidity < 0:
            raise InvalidInput(
                f"{self.protocol.value}:{self.market_id} has negative available liquidity"
            )

    @property
    def key(self) -> Tuple[LendingProtocol, str]:
        return (self.protocol, self.market_id)

    @property
    def net_supply_apy(self) -> float:
        return self.supply_apy + self.reward_apy - self.platform_fee

    @property
    def net_borrow_apy(self) -> float:
        return self.borrow_apy - self.reward_apy + self.platform_fee


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------

PositionKey = Tuple[str, LendingProtocol, str]


def _require_base_units(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} must be integer base units, got {value!r}")
    if value < 0:
        raise InvalidInput(f"{name} must be non-negative, got {value}")


@dataclass(frozen=True)
class Position:
    """A user's stake in one market.

    Balances are integer base units of the market asset; ``collateral_balance`` is
    denominated in the market's collateral asset and only used by isolated markets.
    ``health_factor`` is filled in by the normalizer and is ``None`` when unknown.
    """

    owner: str
    protocol: LendingProtocol
    market_id: str
    supply_balance: int = 0
    borrow_balance: int = 0
    is_collateral_enabled: bool = True
    current_supply_apy: float = 0.0
    current_borrow_apy: float = 0.0
    collateral_balance: int = 0
    asset: Optional[Asset] = None
    collateral_asset: Optional[Asset] = None
    health_factor: Optional[float] = None

    def __post_init__(self) -> None:
        _require_base_units("supply_balance", self.supply_balance)
        _require_base_units("borrow_balance", self.borrow_balance)
        _require_base_units("collateral_balance", self.collateral_balance)

    @property
    def key(self) -> PositionKey:
        return (self.owner, self.protocol, self.market_id)

    @property
    def has_debt(self) -> bool:
        return self.borrow_balance > 0

    @property
    def is_empty(self) -> bool:
        return (
            self.supply_balance == 0
            and self.borrow_balance == 0
            and self.collateral_balance == 0
        )


@dataclass(frozen=True)
class PortfolioStats:
    """Portfolio-level figures derived from one position set and price snapshot."""

    total_supply_usd: float
    total_borrow_usd: float
    net_worth_usd: float
    weighted_avg_supply_apy: float
    weighted_avg_borrow_apy: float
    lowest_health_factor: float
    riskiest_position: Optional[PositionKey] = None
    position_count: int = 0
    skipped_positions: int = 0
    unknown_health_factors: int = 0


# ---------------------------------------------------------------------------
# Events & results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskAlert:
    """Tier transition emitted by the liquidation monitor."""

    owner: str
    protocol: LendingProtocol
    market_id: str
    previous_tier: RiskTier
    new_tier: RiskTier
    health_factor: float
    timestamp: datetime
    kind: AlertKind = AlertKind.ESCALATION

    @property
    def dedup_key(self) -> Tuple[str, LendingProtocol, str, RiskTier, datetime]:
        return (self.owner, self.protocol, self.market_id, self.new_tier, self.timestamp)


@dataclass(frozen=True)
class RoutingOption:
    """One ranked venue for a supply or borrow action."""

    protocol: LendingProtocol
    market_id: str
    apy: float
    available_liquidity: int
    reason: str
    market: MarketParams
    is_recommended: bool = False


@dataclass(frozen=True)
class PriceQuote:
    symbol: str
    price: float
    as_of: datetime


@dataclass(frozen=True)
class FetchError:
    """One entry that could not be fetched or translated."""

    protocol: LendingProtocol
    entry_id: str
    reason: str


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Partial adapter result: good entries plus the ones that failed."""

    items: Tuple[T, ...] = ()
    errors: Tuple[FetchError, ...] = field(default_factory=tuple)

    @property
    def degraded(self) -> bool:
        return bool(self.errors)
