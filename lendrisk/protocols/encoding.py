"""Helpers shared by the protocol parsers — no I/O."""
from __future__ import annotations

from typing import Any

from ..models import Asset

BPS = 10_000


def to_int(value: Any, name: str = "value") -> int:
    """Parse an integer that may arrive as a JSON number or decimal/hex string."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{name} missing or not an integer: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    if isinstance(value, float) or "." in text or "e" in text.lower():
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return int(text)


def to_uint(value: Any, name: str = "value") -> int:
    parsed = to_int(value, name)
    if parsed < 0:
        raise ValueError(f"{name} must be non-negative, got {parsed}")
    return parsed


def scaled_fraction(value: Any, scale: int, name: str) -> float:
    """Decode a fixed-point fraction and check it lies in [0, 1]."""
    fraction = to_uint(value, name) / scale
    if fraction > 1.0:
        raise ValueError(f"{name}={fraction} outside [0, 1]")
    return fraction


def parse_asset(raw: Any, name: str = "asset") -> Asset:
    """Build an Asset from ``{address, symbol, decimals}``."""
    if not isinstance(raw, dict):
        raise ValueError(f"{name} missing")
    symbol = raw.get("symbol")
    if not symbol:
        raise ValueError(f"{name} has no symbol")
    return Asset(
        symbol=str(symbol).upper(),
        decimals=to_uint(raw.get("decimals"), f"{name}.decimals"),
        address=str(raw.get("address", "")).lower(),
    )


def optional_float(raw: dict[str, Any], key: str) -> float:
    value = raw.get(key)
    return float(value) if value is not None else 0.0
