"""Pure risk functions: health factors, normalization, aggregation, routing."""
from .aggregator import aggregate
from .health import (
    classify_tier,
    format_health_factor,
    health_factor,
    is_liquidatable,
    price_drop_to_liquidation,
    simulate_health_factor,
)
from .normalizer import RiskBasis, normalize, risk_bases
from .pricing import PriceLookup
from .routing import rank_markets, recommend

__all__ = [
    "PriceLookup",
    "RiskBasis",
    "aggregate",
    "classify_tier",
    "format_health_factor",
    "health_factor",
    "is_liquidatable",
    "normalize",
    "price_drop_to_liquidation",
    "rank_markets",
    "recommend",
    "risk_bases",
    "simulate_health_factor",
]
