from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from lighter_analytics.ingest.exchange_profiles import parse_number
from lighter_analytics.models import (
    ORDER_LIMIT,
    ORDER_MARKET,
    ROLE_MAKER,
    ROLE_TAKER,
    SIDE_LONG,
    SIDE_SHORT,
    TradeRecord,
)

STREAK_WIN = "win"
STREAK_LOSS = "loss"


@dataclass(frozen=True)
class StreakInfo:
    type: str
    count: int
    start_date: datetime
    end_date: datetime
    total_pnl: float


@dataclass(frozen=True)
class StreakSummary:
    longest_win: StreakInfo | None
    longest_loss: StreakInfo | None
    current: StreakInfo | None
    streaks: list[StreakInfo]


def find_streaks(trades: Iterable[TradeRecord]) -> list[StreakInfo]:
    """Split trades into consecutive win/loss runs, oldest first.

    A trade is a win only when its closed PnL is positive; flat trades extend
    or start a loss run.
    """
    ordered = sorted(trades, key=lambda trade: trade.date)
    streaks: list[StreakInfo] = []
    kind: str | None = None
    count = 0
    start: datetime | None = None
    end: datetime | None = None
    total = 0.0

    for trade in ordered:
        trade_kind = STREAK_WIN if trade.closed_pnl > 0 else STREAK_LOSS
        if kind == trade_kind:
            count += 1
            end = trade.date
            total += trade.closed_pnl
            continue
        if kind is not None and start is not None and end is not None:
            streaks.append(StreakInfo(kind, count, start, end, total))
        kind = trade_kind
        count = 1
        start = trade.date
        end = trade.date
        total = trade.closed_pnl

    if kind is not None and start is not None and end is not None:
        streaks.append(StreakInfo(kind, count, start, end, total))
    return streaks


def summarize_streaks(trades: Iterable[TradeRecord]) -> StreakSummary:
    streaks = find_streaks(trades)
    return StreakSummary(
        longest_win=_longest(streaks, STREAK_WIN),
        longest_loss=_longest(streaks, STREAK_LOSS),
        current=streaks[-1] if streaks else None,
        streaks=streaks,
    )


def max_consecutive(trades: Iterable[TradeRecord]) -> tuple[int, int]:
    summary = summarize_streaks(trades)
    wins = summary.longest_win.count if summary.longest_win else 0
    losses = summary.longest_loss.count if summary.longest_loss else 0
    return wins, losses


def _longest(streaks: list[StreakInfo], kind: str) -> StreakInfo | None:
    best: StreakInfo | None = None
    for streak in streaks:
        if streak.type != kind:
            continue
        # Ties keep the earliest run.
        if best is None or streak.count > best.count:
            best = streak
    return best


def calculate_trade_pnl(trade: Mapping[str, Any], account_id: int | str | None = None) -> float:
    """Estimate realized PnL of one exchange trade for the given account.

    Uses the position and entry quote recorded just before the fill; a fill
    that only adds to (or opens) a position realizes nothing but its fee.
    """
    role = _account_role(trade, account_id)
    fee = _fee_for_role(trade, role)
    position_before = trade.get(f"{role}_position_size_before")
    entry_quote_before = trade.get(f"{role}_entry_quote_before")
    if position_before in (None, "") or entry_quote_before in (None, ""):
        return -fee

    position = parse_number(position_before)
    if position == 0:
        return -fee
    size = abs(parse_number(trade.get("size")))
    price = parse_number(trade.get("price"))

    direction = _account_direction(trade, account_id, role)
    if direction is not None and direction * position > 0:
        return -fee

    avg_entry = parse_number(entry_quote_before) / abs(position)
    closed = min(size, abs(position))
    position_sign = 1.0 if position > 0 else -1.0
    return (price - avg_entry) * closed * position_sign - fee


def live_trade_records(
    trades: Iterable[Mapping[str, Any]],
    account_id: int | str | None = None,
    resolve_symbol: Callable[[int], str] | None = None,
) -> list[TradeRecord]:
    records: list[TradeRecord] = []
    for trade in trades:
        timestamp = _trade_time(trade.get("timestamp"))
        if timestamp is None:
            continue
        market_id = trade.get("market_id")
        if resolve_symbol is not None and market_id not in (None, ""):
            market = resolve_symbol(int(parse_number(market_id)))
        else:
            market = str(trade.get("symbol") or f"MARKET-{market_id}")
        role = _account_role(trade, account_id)
        direction = _account_direction(trade, account_id, role)
        records.append(
            TradeRecord(
                date=timestamp,
                market=market.upper(),
                side=SIDE_SHORT if direction == -1.0 else SIDE_LONG,
                size=abs(parse_number(trade.get("size"))),
                price=parse_number(trade.get("price")),
                closed_pnl=calculate_trade_pnl(trade, account_id),
                fee=_fee_for_role(trade, role),
                role=ROLE_MAKER if role == "maker" else ROLE_TAKER,
                order_type=ORDER_LIMIT if "limit" in str(trade.get("type") or "").lower() else ORDER_MARKET,
            )
        )
    return records


def _account_role(trade: Mapping[str, Any], account_id: int | str | None) -> str:
    if account_id is not None:
        account = str(account_id)
        is_maker_ask = bool(trade.get("is_maker_ask"))
        ask_account = str(trade.get("ask_account_id", ""))
        bid_account = str(trade.get("bid_account_id", ""))
        if account == ask_account:
            return "maker" if is_maker_ask else "taker"
        if account == bid_account:
            return "taker" if is_maker_ask else "maker"
    if trade.get("taker_position_size_before") not in (None, ""):
        return "taker"
    if trade.get("maker_position_size_before") not in (None, ""):
        return "maker"
    return "taker"


def _account_direction(trade: Mapping[str, Any], account_id: int | str | None, role: str) -> float | None:
    if account_id is None or "is_maker_ask" not in trade:
        return None
    maker_sells = bool(trade.get("is_maker_ask"))
    if role == "maker":
        return -1.0 if maker_sells else 1.0
    return 1.0 if maker_sells else -1.0


def _fee_for_role(trade: Mapping[str, Any], role: str) -> float:
    fee = trade.get(f"{role}_fee")
    if fee in (None, ""):
        fee = trade.get("taker_fee") or trade.get("maker_fee")
    return abs(parse_number(fee))


def _trade_time(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    numeric = parse_number(value, default=-1.0)
    if numeric < 0:
        return None
    seconds = numeric / 1000.0 if numeric > 1e12 else numeric
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
