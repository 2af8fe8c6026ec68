"""Protocol adapters, one per supported lending protocol."""
from .aave import AaveAdapter
from .base import BaseLendingAdapter
from .compound import CompoundAdapter
from .moonwell import MoonwellAdapter
from .morpho import MorphoAdapter

__all__ = [
    "AaveAdapter",
    "BaseLendingAdapter",
    "CompoundAdapter",
    "MoonwellAdapter",
    "MorphoAdapter",
]
