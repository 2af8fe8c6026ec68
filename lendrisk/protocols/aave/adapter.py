"""Aave V3 protocol adapter — one cross-margin account per owner."""
from __future__ import annotations

from typing import Any

from ...models import LendingProtocol, MarketParams, Position
from ..base import BaseLendingAdapter
from . import parser


class AaveAdapter(BaseLendingAdapter):
    """Fetch and parse Aave V3 reserves and user reserves."""

    protocol = LendingProtocol.AAVE
    markets_key = "reserves"
    positions_key = "userReserves"

    def _entry_id(self, entry: dict[str, Any]) -> str:
        return parser.reserve_id(entry)

    def _parse_market(self, entry: dict[str, Any]) -> list[MarketParams]:
        return [parser.parse_reserve(entry, self._platform_fee)]

    def _parse_position(self, entry: dict[str, Any], owner: str) -> list[Position]:
        return [parser.parse_user_reserve(entry, owner)]
