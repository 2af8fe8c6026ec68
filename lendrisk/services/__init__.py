"""Service modules"""
from .engine import LendingEngine, SimulationResult
from .monitor import LiquidationMonitor
from .refresh import OwnerSnapshot, PositionRefresher, ProtocolSnapshot

__all__ = [
    "LendingEngine",
    "LiquidationMonitor",
    "OwnerSnapshot",
    "PositionRefresher",
    "ProtocolSnapshot",
    "SimulationResult",
]
