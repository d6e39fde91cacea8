from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from lighter_analytics.models import (
    ORDER_LIMIT,
    ORDER_MARKET,
    ROLE_MAKER,
    ROLE_TAKER,
    SIDE_LONG,
    SIDE_SHORT,
    TradeRecord,
)


@dataclass(frozen=True)
class KpiMetrics:
    net_pnl: float
    total_fees: float
    gross_profit: float
    gross_loss: float
    win_rate: float
    profit_factor: float
    avg_winning_trade: float
    avg_losing_trade: float
    payoff_ratio: float
    total_trades: int
    winning_trades: int
    losing_trades: int


@dataclass(frozen=True)
class GroupMetrics:
    pnl: float
    win_rate: float
    profit_factor: float
    trades: int


@dataclass(frozen=True)
class GroupSummary:
    pnl: float
    win_rate: float
    trades: int


@dataclass(frozen=True)
class SideAnalysis:
    long: GroupMetrics
    short: GroupMetrics


@dataclass(frozen=True)
class RoleAnalysis:
    maker: GroupSummary
    taker: GroupSummary


@dataclass(frozen=True)
class TypeAnalysis:
    limit: GroupSummary
    market: GroupSummary


@dataclass(frozen=True)
class MarketBreakdown:
    market: str
    net_pnl: float
    win_rate: float
    profit_factor: float
    total_fees: float
    total_trades: int
    avg_pnl_per_trade: float


def safe_ratio(numerator: float, denominator: float) -> float:
    """Divide, mapping x/0 to inf when x is positive and to 0 otherwise."""
    if denominator > 0:
        return numerator / denominator
    if numerator > 0:
        return float("inf")
    return 0.0


def calculate_kpis(trades: Iterable[TradeRecord]) -> KpiMetrics:
    trade_list = list(trades)
    total = len(trade_list)
    if not total:
        return KpiMetrics(
            net_pnl=0.0,
            total_fees=0.0,
            gross_profit=0.0,
            gross_loss=0.0,
            win_rate=0.0,
            profit_factor=0.0,
            avg_winning_trade=0.0,
            avg_losing_trade=0.0,
            payoff_ratio=0.0,
            total_trades=0,
            winning_trades=0,
            losing_trades=0,
        )

    wins = [trade.closed_pnl for trade in trade_list if trade.closed_pnl > 0]
    losses = [trade.closed_pnl for trade in trade_list if trade.closed_pnl < 0]

    gross_profit = sum(wins)
    gross_loss = abs(sum(losses))
    avg_win = gross_profit / len(wins) if wins else 0.0
    avg_loss = gross_loss / len(losses) if losses else 0.0

    return KpiMetrics(
        net_pnl=sum(trade.closed_pnl for trade in trade_list),
        total_fees=sum(trade.fee for trade in trade_list),
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        win_rate=len(wins) / total * 100.0,
        profit_factor=safe_ratio(gross_profit, gross_loss),
        avg_winning_trade=avg_win,
        avg_losing_trade=avg_loss,
        payoff_ratio=safe_ratio(avg_win, avg_loss),
        total_trades=total,
        winning_trades=len(wins),
        losing_trades=len(losses),
    )


def analyze_by_side(trades: Iterable[TradeRecord]) -> SideAnalysis:
    trade_list = list(trades)
    return SideAnalysis(
        long=_group_metrics([trade for trade in trade_list if trade.side == SIDE_LONG]),
        short=_group_metrics([trade for trade in trade_list if trade.side == SIDE_SHORT]),
    )


def analyze_by_role(trades: Iterable[TradeRecord]) -> RoleAnalysis:
    trade_list = list(trades)
    return RoleAnalysis(
        maker=_group_summary([trade for trade in trade_list if trade.role == ROLE_MAKER]),
        taker=_group_summary([trade for trade in trade_list if trade.role == ROLE_TAKER]),
    )


def analyze_by_type(trades: Iterable[TradeRecord]) -> TypeAnalysis:
    trade_list = list(trades)
    return TypeAnalysis(
        limit=_group_summary([trade for trade in trade_list if trade.order_type == ORDER_LIMIT]),
        market=_group_summary([trade for trade in trade_list if trade.order_type == ORDER_MARKET]),
    )


def analyze_by_market(trades: Iterable[TradeRecord]) -> list[MarketBreakdown]:
    buckets: dict[str, list[TradeRecord]] = {}
    for trade in trades:
        buckets.setdefault(trade.market, []).append(trade)

    rows: list[MarketBreakdown] = []
    for market, items in buckets.items():
        kpis = calculate_kpis(items)
        rows.append(
            MarketBreakdown(
                market=market,
                net_pnl=kpis.net_pnl,
                win_rate=kpis.win_rate,
                profit_factor=kpis.profit_factor,
                total_fees=kpis.total_fees,
                total_trades=kpis.total_trades,
                avg_pnl_per_trade=kpis.net_pnl / kpis.total_trades,
            )
        )
    rows.sort(key=lambda row: row.net_pnl, reverse=True)
    return rows


def _group_metrics(group: list[TradeRecord]) -> GroupMetrics:
    if not group:
        return GroupMetrics(pnl=0.0, win_rate=0.0, profit_factor=0.0, trades=0)
    kpis = calculate_kpis(group)
    return GroupMetrics(
        pnl=kpis.net_pnl,
        win_rate=kpis.win_rate,
        profit_factor=kpis.profit_factor,
        trades=kpis.total_trades,
    )


def _group_summary(group: list[TradeRecord]) -> GroupSummary:
    if not group:
        return GroupSummary(pnl=0.0, win_rate=0.0, trades=0)
    wins = sum(1 for trade in group if trade.closed_pnl > 0)
    return GroupSummary(
        pnl=sum(trade.closed_pnl for trade in group),
        win_rate=wins / len(group) * 100.0,
        trades=len(group),
    )
