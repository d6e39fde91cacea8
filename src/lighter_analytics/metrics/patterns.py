from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable

from lighter_analytics.models import TradeRecord

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

PERIOD_DAILY = "daily"
PERIOD_WEEKLY = "weekly"


@dataclass(frozen=True)
class HourlyPattern:
    hour: int
    pnl: float
    win_rate: float
    trades: int


@dataclass(frozen=True)
class DailyPattern:
    day: str
    day_index: int
    pnl: float
    win_rate: float
    trades: int


@dataclass(frozen=True)
class CumulativePnlPoint:
    date: datetime
    pnl: float
    date_str: str


@dataclass(frozen=True)
class PeriodPnl:
    period: str
    start: date
    pnl: float


def analyze_hourly_patterns(trades: Iterable[TradeRecord]) -> list[HourlyPattern]:
    buckets: dict[int, list[float]] = {hour: [] for hour in range(24)}
    for trade in trades:
        buckets[trade.date.astimezone().hour].append(trade.closed_pnl)

    patterns: list[HourlyPattern] = []
    for hour in range(24):
        pnl, win_rate, count = _bucket_summary(buckets[hour])
        patterns.append(HourlyPattern(hour=hour, pnl=pnl, win_rate=win_rate, trades=count))
    return patterns


def analyze_daily_patterns(trades: Iterable[TradeRecord]) -> list[DailyPattern]:
    buckets: dict[int, list[float]] = {day: [] for day in range(7)}
    for trade in trades:
        buckets[day_of_week(trade.date.astimezone())].append(trade.closed_pnl)

    patterns: list[DailyPattern] = []
    for day_index in range(7):
        pnl, win_rate, count = _bucket_summary(buckets[day_index])
        patterns.append(
            DailyPattern(
                day=DAY_NAMES[day_index],
                day_index=day_index,
                pnl=pnl,
                win_rate=win_rate,
                trades=count,
            )
        )
    return patterns


def calculate_cumulative_pnl(trades: Iterable[TradeRecord]) -> list[CumulativePnlPoint]:
    ordered = sorted(trades, key=lambda trade: trade.date)
    points: list[CumulativePnlPoint] = []
    running = 0.0
    for trade in ordered:
        running += trade.closed_pnl
        points.append(
            CumulativePnlPoint(
                date=trade.date,
                pnl=running,
                date_str=format_day(trade.date.astimezone().date()),
            )
        )
    return points


def calculate_period_pnl(trades: Iterable[TradeRecord], period: str = PERIOD_DAILY) -> list[PeriodPnl]:
    # Anything other than "weekly" buckets by calendar day.
    buckets: dict[date, float] = {}
    for trade in trades:
        local_day = trade.date.astimezone().date()
        if period == PERIOD_WEEKLY:
            local_day = week_start(local_day)
        buckets[local_day] = buckets.get(local_day, 0.0) + trade.closed_pnl

    rows: list[PeriodPnl] = []
    for start in sorted(buckets):
        label = format_day(start)
        if period == PERIOD_WEEKLY:
            label = f"Week of {label}"
        rows.append(PeriodPnl(period=label, start=start, pnl=buckets[start]))
    return rows


def day_of_week(value: datetime | date) -> int:
    """Day index with Sunday as 0."""
    return (value.weekday() + 1) % 7


def week_start(value: date) -> date:
    return value - timedelta(days=day_of_week(value))


def format_day(value: date) -> str:
    return f"{value:%b} {value.day}, {value.year}"


def _bucket_summary(values: list[float]) -> tuple[float, float, int]:
    if not values:
        return 0.0, 0.0, 0
    wins = sum(1 for value in values if value > 0)
    return sum(values), wins / len(values) * 100.0, len(values)
