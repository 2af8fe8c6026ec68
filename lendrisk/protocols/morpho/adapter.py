"""Morpho Blue protocol adapter — isolated markets."""
from __future__ import annotations

from typing import Any

from ...models import LendingProtocol, MarketParams, Position
from ..base import BaseLendingAdapter
from . import parser


class MorphoAdapter(BaseLendingAdapter):
    protocol = LendingProtocol.MORPHO

    def _entry_id(self, entry: dict[str, Any]) -> str:
        return parser.market_id(entry)

    def _parse_market(self, entry: dict[str, Any]) -> list[MarketParams]:
        return [parser.parse_market(entry, self._platform_fee)]

    def _parse_position(self, entry: dict[str, Any], owner: str) -> list[Position]:
        return [parser.parse_position(entry, owner)]
