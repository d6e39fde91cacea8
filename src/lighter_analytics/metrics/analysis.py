from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Iterable

from lighter_analytics.metrics.patterns import (
    PERIOD_DAILY,
    CumulativePnlPoint,
    DailyPattern,
    HourlyPattern,
    PeriodPnl,
    analyze_daily_patterns,
    analyze_hourly_patterns,
    calculate_cumulative_pnl,
    calculate_period_pnl,
)
from lighter_analytics.metrics.streaks import StreakSummary, summarize_streaks
from lighter_analytics.metrics.summary import (
    KpiMetrics,
    MarketBreakdown,
    RoleAnalysis,
    SideAnalysis,
    TypeAnalysis,
    analyze_by_market,
    analyze_by_role,
    analyze_by_side,
    analyze_by_type,
    calculate_kpis,
)
from lighter_analytics.models import TradeRecord


@dataclass(frozen=True)
class AnalysisResult:
    kpis: KpiMetrics
    side_analysis: SideAnalysis
    role_analysis: RoleAnalysis
    type_analysis: TypeAnalysis
    hourly_patterns: list[HourlyPattern]
    daily_patterns: list[DailyPattern]
    market_breakdown: list[MarketBreakdown]
    cumulative_pnl: list[CumulativePnlPoint]
    period_pnl: list[PeriodPnl]
    streaks: StreakSummary


def analyze_all_trades(trades: Iterable[TradeRecord], period: str = PERIOD_DAILY) -> AnalysisResult:
    trade_list = list(trades)
    return AnalysisResult(
        kpis=calculate_kpis(trade_list),
        side_analysis=analyze_by_side(trade_list),
        role_analysis=analyze_by_role(trade_list),
        type_analysis=analyze_by_type(trade_list),
        hourly_patterns=analyze_hourly_patterns(trade_list),
        daily_patterns=analyze_daily_patterns(trade_list),
        market_breakdown=analyze_by_market(trade_list),
        cumulative_pnl=calculate_cumulative_pnl(trade_list),
        period_pnl=calculate_period_pnl(trade_list, period),
        streaks=summarize_streaks(trade_list),
    )


def analysis_payload(result: AnalysisResult) -> dict[str, Any]:
    """JSON-ready form of an analysis; infinite ratios become the string "Infinity"."""
    return _jsonable(asdict(result))


def streak_payload(summary: StreakSummary) -> dict[str, Any]:
    return _jsonable(asdict(summary))


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, float) and math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
