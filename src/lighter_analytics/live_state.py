from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from lighter_analytics.ingest.lighter import (
    LIVE_FEED_LIMIT,
    dedupe_and_prepend,
    extract_market_stats,
    merge_positions,
    normalize_positions,
    normalize_trades,
    normalize_user_stats,
    position_size,
)
from lighter_analytics.metrics.streaks import live_trade_records
from lighter_analytics.models import MarketStats, TradeRecord, UserStats

logger = logging.getLogger(__name__)

DEFAULT_PNL_HISTORY_THROTTLE_SECONDS = 5.0

UPDATE_PREFIX = "update/"
SUBSCRIBED_PREFIX = "subscribed/"


@dataclass(frozen=True)
class PnlPoint:
    timestamp: float
    pnl: float


class LiveAccountState:
    """In-memory view of one account, updated one stream message at a time.

    Payloads that cannot be read leave the last known values in place.
    """

    def __init__(
        self,
        account_index: int | None = None,
        *,
        trade_limit: int = LIVE_FEED_LIMIT,
        pnl_history_throttle_seconds: float = DEFAULT_PNL_HISTORY_THROTTLE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.account_index = account_index
        self.user_stats: UserStats | None = None
        self.positions: list[dict[str, Any]] = []
        self.trades: list[dict[str, Any]] = []
        self.orders: list[dict[str, Any]] = []
        self.market_stats: dict[int, MarketStats] = {}
        self.market_trades: list[dict[str, Any]] = []
        self.pnl_history: list[PnlPoint] = []
        self._trade_limit = trade_limit
        self._throttle = pnl_history_throttle_seconds
        self._clock = clock

    def apply_message(self, message: Mapping[str, Any]) -> bool:
        """Apply one decoded stream message; returns True when state changed."""
        tag = message_tag(message)
        if tag is None:
            return False
        snapshot = tag.startswith(SUBSCRIBED_PREFIX)
        if not snapshot and not tag.startswith(UPDATE_PREFIX):
            return False
        name = tag.split("/", 1)[1].split(":", 1)[0]
        handler = self._handlers().get(name)
        if handler is None:
            logger.debug("ignoring stream message: %s", tag)
            return False
        return handler(message, snapshot)

    def trade_records(self, resolve_symbol: Callable[[int], str] | None = None) -> list[TradeRecord]:
        return live_trade_records(self.trades, self.account_index, resolve_symbol)

    def _handlers(self) -> dict[str, Callable[[Mapping[str, Any], bool], bool]]:
        return {
            "user_stats": self._apply_user_stats,
            "account_all_positions": self._apply_positions,
            "account_all_trades": self._apply_trades,
            "account_all_orders": self._apply_orders,
            "market_stats": self._apply_market_stats,
            "trade": self._apply_market_trades,
        }

    def _apply_user_stats(self, message: Mapping[str, Any], snapshot: bool) -> bool:
        stats = normalize_user_stats(message.get("stats"))
        if stats is None:
            return False
        self.user_stats = stats
        self._record_pnl(stats.total_pnl)
        return True

    def _apply_positions(self, message: Mapping[str, Any], snapshot: bool) -> bool:
        if message.get("positions") is None:
            return False
        incoming = normalize_positions(message.get("positions"))
        if snapshot:
            self.positions = [position for position in incoming if position_size(position) != 0]
        else:
            self.positions = merge_positions(self.positions, incoming)
        return True

    def _apply_trades(self, message: Mapping[str, Any], snapshot: bool) -> bool:
        if message.get("trades") is None:
            return False
        incoming = normalize_trades(message.get("trades"))
        if snapshot:
            self.trades = incoming[: self._trade_limit]
        else:
            self.trades = dedupe_and_prepend(self.trades, incoming, self._trade_limit)
        return True

    def _apply_orders(self, message: Mapping[str, Any], snapshot: bool) -> bool:
        if message.get("orders") is None:
            return False
        self.orders = normalize_positions(message.get("orders"))
        return True

    def _apply_market_stats(self, message: Mapping[str, Any], snapshot: bool) -> bool:
        updates = extract_market_stats(message)
        for stats in updates:
            self.market_stats[stats.market_id] = stats
        return bool(updates)

    def _apply_market_trades(self, message: Mapping[str, Any], snapshot: bool) -> bool:
        if message.get("trades") is None:
            return False
        incoming = normalize_trades(message.get("trades"))
        self.market_trades = dedupe_and_prepend(self.market_trades, incoming, self._trade_limit)
        return True

    def _record_pnl(self, pnl: float) -> None:
        now = self._clock()
        if self.pnl_history and now - self.pnl_history[-1].timestamp < self._throttle:
            # Keep the bucket's start time so a steady stream still advances.
            self.pnl_history[-1] = PnlPoint(timestamp=self.pnl_history[-1].timestamp, pnl=pnl)
            return
        self.pnl_history.append(PnlPoint(timestamp=now, pnl=pnl))


def message_tag(message: Mapping[str, Any]) -> str | None:
    tag = message.get("type") or message.get("channel")
    if not isinstance(tag, str) or not tag:
        return None
    return tag
