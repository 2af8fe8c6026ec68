"""Chain data sources."""
from .rpc import JsonRpcDataSource

__all__ = ["JsonRpcDataSource"]
