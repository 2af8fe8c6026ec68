"""Compound III protocol adapter — one cross-margin account per comet."""
from __future__ import annotations

from typing import Any

from ...models import LendingProtocol, MarketParams, Position
from ..base import BaseLendingAdapter
from . import parser


class CompoundAdapter(BaseLendingAdapter):
    protocol = LendingProtocol.COMPOUND
    markets_key = "comets"
    positions_key = "accounts"

    def _entry_id(self, entry: dict[str, Any]) -> str:
        return parser.comet_id(entry)

    def _parse_market(self, entry: dict[str, Any]) -> list[MarketParams]:
        return parser.parse_comet(entry, self._platform_fee)

    def _parse_position(self, entry: dict[str, Any], owner: str) -> list[Position]:
        return parser.parse_account(entry, owner)
