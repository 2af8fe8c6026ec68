"""Protocol interfaces for the lending risk engine."""
from .chain import ChainDataSource
from .notifier import AlertSink
from .price_oracle import PriceOracle
from .protocol_adapter import ProtocolAdapter

__all__ = ["AlertSink", "ChainDataSource", "PriceOracle", "ProtocolAdapter"]
