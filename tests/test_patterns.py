from datetime import date, datetime

from lighter_analytics.metrics.analysis import analysis_payload, analyze_all_trades
from lighter_analytics.metrics.patterns import (
    analyze_daily_patterns,
    analyze_hourly_patterns,
    calculate_cumulative_pnl,
    calculate_period_pnl,
    day_of_week,
    week_start,
)
from lighter_analytics.models import SIDE_LONG, TradeRecord


def _local(*args):
    return datetime(*args).astimezone()


def _trade(when, pnl):
    return TradeRecord(
        date=when,
        market="ETH-USD",
        side=SIDE_LONG,
        size=1.0,
        price=100.0,
        closed_pnl=pnl,
        fee=0.5,
    )


def _sample():
    # 2024-01-15 is a Monday, 2024-01-17 a Wednesday.
    return [
        _trade(_local(2024, 1, 17, 15, 0), 20.0),
        _trade(_local(2024, 1, 15, 10, 0), 100.0),
        _trade(_local(2024, 1, 15, 10, 30), -40.0),
    ]


def test_hourly_patterns_always_24_buckets():
    patterns = analyze_hourly_patterns(_sample())
    assert len(patterns) == 24
    assert [item.hour for item in patterns] == list(range(24))
    assert patterns[10].trades == 2
    assert patterns[10].pnl == 60.0
    assert patterns[10].win_rate == 50.0
    assert patterns[15].pnl == 20.0
    assert patterns[0].trades == 0
    assert len(analyze_hourly_patterns([])) == 24


def test_daily_patterns_start_on_sunday():
    patterns = analyze_daily_patterns(_sample())
    assert len(patterns) == 7
    assert patterns[0].day == "Sunday"
    assert patterns[1].day == "Monday"
    assert patterns[1].trades == 2
    assert patterns[3].trades == 1
    assert patterns[6].pnl == 0.0
    assert len(analyze_daily_patterns([])) == 7


def test_cumulative_pnl_is_chronological():
    points = calculate_cumulative_pnl(_sample())
    assert [point.pnl for point in points] == [100.0, 60.0, 80.0]
    assert points[0].date_str == "Jan 15, 2024"
    assert points[-1].date_str == "Jan 17, 2024"


def test_period_pnl_daily_and_weekly():
    daily = calculate_period_pnl(_sample(), "daily")
    assert [(row.period, row.pnl) for row in daily] == [("Jan 15, 2024", 60.0), ("Jan 17, 2024", 20.0)]

    weekly = calculate_period_pnl(_sample(), "weekly")
    assert len(weekly) == 1
    assert weekly[0].period == "Week of Jan 14, 2024"
    assert weekly[0].start == date(2024, 1, 14)
    assert weekly[0].pnl == 80.0

    assert calculate_period_pnl(_sample(), "monthly") == daily


def test_week_helpers():
    assert day_of_week(date(2024, 1, 14)) == 0
    assert day_of_week(date(2024, 1, 20)) == 6
    assert week_start(date(2024, 1, 20)) == date(2024, 1, 14)


def test_analysis_payload_is_json_safe():
    result = analyze_all_trades([_trade(_local(2024, 1, 15, 10, 0), 50.0)])
    payload = analysis_payload(result)
    assert payload["kpis"]["profit_factor"] == "Infinity"
    assert payload["kpis"]["total_trades"] == 1
    assert len(payload["hourly_patterns"]) == 24
    assert payload["streaks"]["current"]["type"] == "win"
    assert isinstance(payload["cumulative_pnl"][0]["date"], str)


def test_analyze_all_trades_empty():
    result = analyze_all_trades([])
    assert result.kpis.total_trades == 0
    assert len(result.hourly_patterns) == 24
    assert len(result.daily_patterns) == 7
    assert result.market_breakdown == []
    assert result.streaks.current is None
