"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

KNOWN_PROTOCOLS = ("aave", "morpho", "compound", "moonwell")

# JSON-RPC method names exposed by the chain data source, per protocol.
DEFAULT_METHODS: dict[str, tuple[str, str]] = {
    "aave": ("aave_getReservesData", "aave_getUserReservesData"),
    "morpho": ("morpho_getMarkets", "morpho_getPositions"),
    "compound": ("compound_getComets", "compound_getAccounts"),
    "moonwell": ("moonwell_getMarkets", "moonwell_getAccounts"),
}

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonitorConfig:
    poll_interval_seconds: float = 30.0
    failure_threshold: int = 3
    max_workers: int = 4
    adapter_timeout_seconds: float = 10.0
    recovery_min_tiers: int = 1
    rate_change_threshold_pct: float = 10.0


@dataclass(frozen=True)
class OwnerConfig:
    label: str = ""
    address: str = ""
    protocols: tuple[str, ...] = ()


@dataclass(frozen=True)
class DataSourceConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    max_block_age_seconds: int = 300


@dataclass(frozen=True)
class ProtocolMethodsConfig:
    markets: str = ""
    positions: str = ""


@dataclass(frozen=True)
class ProtocolConfig:
    enabled: bool = True
    methods: ProtocolMethodsConfig = field(default_factory=ProtocolMethodsConfig)
    contracts: dict[str, str] = field(default_factory=dict)
    platform_fee: float = 0.0


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)
    max_staleness_seconds: int = 3600
    aliases: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class RoutingConfig:
    apy_epsilon: float = 0.0001


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    log_alerts: bool = True


@dataclass(frozen=True)
class AppConfig:
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    owners: tuple[OwnerConfig, ...] = ()
    data_source: DataSourceConfig = field(default_factory=DataSourceConfig)
    protocols: dict[str, ProtocolConfig] = field(default_factory=dict)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)

    def enabled_protocols(self) -> tuple[str, ...]:
        return tuple(name for name, cfg in self.protocols.items() if cfg.enabled)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(
        poll_interval_seconds=float(raw.get("poll_interval_seconds", 30.0)),
        failure_threshold=int(raw.get("failure_threshold", 3)),
        max_workers=int(raw.get("max_workers", 4)),
        adapter_timeout_seconds=float(raw.get("adapter_timeout_seconds", 10.0)),
        recovery_min_tiers=int(raw.get("recovery_min_tiers", 1)),
        rate_change_threshold_pct=float(raw.get("rate_change_threshold_pct", 10.0)),
    )


def _build_owners(raw: list[dict[str, Any]]) -> tuple[OwnerConfig, ...]:
    owners: list[OwnerConfig] = []
    for o in raw:
        owners.append(
            OwnerConfig(
                label=o.get("label", ""),
                address=o.get("address", ""),
                protocols=tuple(str(p).lower() for p in o.get("protocols", [])),
            )
        )
    return tuple(owners)


def _build_data_source(raw: dict[str, Any]) -> DataSourceConfig:
    return DataSourceConfig(
        rpc_endpoints=tuple(raw.get("rpc_endpoints", [])),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        max_block_age_seconds=int(raw.get("max_block_age_seconds", 300)),
    )


def _build_protocols(raw: dict[str, Any]) -> dict[str, ProtocolConfig]:
    protocols: dict[str, ProtocolConfig] = {}
    for name, cfg in raw.items():
        name = str(name).lower()
        cfg = cfg or {}
        default_markets, default_positions = DEFAULT_METHODS.get(name, ("", ""))
        methods = cfg.get("methods", {})
        protocols[name] = ProtocolConfig(
            enabled=bool(cfg.get("enabled", True)),
            methods=ProtocolMethodsConfig(
                markets=methods.get("markets", default_markets),
                positions=methods.get("positions", default_positions),
            ),
            contracts=dict(cfg.get("contracts", {})),
            platform_fee=float(cfg.get("platform_fee", 0.0)),
        )
    return protocols


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
            max_staleness_seconds=int(pyth_raw.get("max_staleness_seconds", 3600)),
            aliases=dict(pyth_raw.get("aliases", {})),
        ),
    )


def _build_routing(raw: dict[str, Any]) -> RoutingConfig:
    return RoutingConfig(apy_epsilon=float(raw.get("apy_epsilon", 0.0001)))


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            bot_token=tg.get("bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
        log_alerts=bool(raw.get("log_alerts", True)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        monitor=_build_monitor(raw.get("monitor", {})),
        owners=_build_owners(raw.get("owners", [])),
        data_source=_build_data_source(raw.get("data_source", {})),
        protocols=_build_protocols(raw.get("protocols", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
        routing=_build_routing(raw.get("routing", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.owners:
        raise ValueError("At least one owner must be configured")

    for name, proto in cfg.protocols.items():
        if name not in KNOWN_PROTOCOLS:
            raise ValueError(
                f"Unknown protocol '{name}' (expected one of {', '.join(KNOWN_PROTOCOLS)})"
            )
        if not 0.0 <= proto.platform_fee < 1.0:
            raise ValueError(f"Protocol '{name}' platform_fee must be in [0, 1)")

    for owner in cfg.owners:
        if not owner.address:
            raise ValueError(f"Owner '{owner.label}' has no address")
        for proto in owner.protocols:
            if proto not in cfg.protocols:
                raise ValueError(
                    f"Owner '{owner.label}' references unknown protocol '{proto}'"
                )

    mon = cfg.monitor
    if mon.poll_interval_seconds <= 0:
        raise ValueError("monitor.poll_interval_seconds must be positive")
    if mon.failure_threshold < 1:
        raise ValueError("monitor.failure_threshold must be at least 1")
    if mon.max_workers < 1:
        raise ValueError("monitor.max_workers must be at least 1")
    if mon.adapter_timeout_seconds <= 0:
        raise ValueError("monitor.adapter_timeout_seconds must be positive")
    if mon.recovery_min_tiers < 1:
        raise ValueError("monitor.recovery_min_tiers must be at least 1")
    if cfg.routing.apy_epsilon < 0:
        raise ValueError("routing.apy_epsilon must be non-negative")
