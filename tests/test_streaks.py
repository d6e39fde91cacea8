from datetime import datetime, timedelta, timezone

import pytest

from lighter_analytics.markets import MarketDirectory
from lighter_analytics.metrics.streaks import (
    calculate_trade_pnl,
    find_streaks,
    live_trade_records,
    max_consecutive,
    summarize_streaks,
)
from lighter_analytics.models import ROLE_TAKER, SIDE_LONG, SIDE_SHORT, TradeRecord

START = datetime(2024, 1, 15, tzinfo=timezone.utc)


def _trades(pnls):
    return [
        TradeRecord(
            date=START + timedelta(hours=index),
            market="ETH-USD",
            side=SIDE_LONG,
            size=1.0,
            price=100.0,
            closed_pnl=pnl,
            fee=0.0,
        )
        for index, pnl in enumerate(pnls)
    ]


def test_find_streaks_sorts_and_groups_runs():
    trades = _trades([10.0, 20.0, -5.0, -5.0, -5.0, 30.0, 0.0])
    streaks = find_streaks(list(reversed(trades)))
    assert [(item.type, item.count) for item in streaks] == [("win", 2), ("loss", 3), ("win", 1), ("loss", 1)]
    assert streaks[0].total_pnl == 30.0
    assert streaks[0].start_date == START
    assert streaks[1].end_date == START + timedelta(hours=4)


def test_summary_reports_longest_and_current():
    summary = summarize_streaks(_trades([10.0, 20.0, -5.0, -5.0, -5.0, 30.0, 0.0]))
    assert summary.longest_win.count == 2
    assert summary.longest_loss.count == 3
    assert summary.current.type == "loss"
    assert summary.current.count == 1
    assert max_consecutive(_trades([10.0, 20.0, -5.0, -5.0, -5.0, 30.0])) == (2, 3)


def test_longest_tie_keeps_earliest_run():
    summary = summarize_streaks(_trades([10.0, -1.0, 10.0]))
    assert summary.longest_win.start_date == START


def test_no_trades_no_streaks():
    summary = summarize_streaks([])
    assert summary.streaks == []
    assert summary.longest_win is None
    assert summary.current is None


def _closing_trade(**overrides):
    trade = {
        "trade_id": 1,
        "market_id": 0,
        "size": "1",
        "price": "2100",
        "timestamp": 1705312800,
        "taker_position_size_before": "2",
        "taker_entry_quote_before": "4000",
        "taker_fee": "0.5",
        "is_maker_ask": False,
        "ask_account_id": 9,
        "bid_account_id": 7,
        "type": "trade",
    }
    trade.update(overrides)
    return trade


def test_trade_pnl_for_closing_fill():
    assert calculate_trade_pnl(_closing_trade(), account_id=9) == pytest.approx(99.5)
    assert calculate_trade_pnl(_closing_trade()) == pytest.approx(99.5)


def test_trade_pnl_for_short_cover():
    trade = _closing_trade(
        price="1900",
        taker_position_size_before="-2",
        taker_fee="0",
        is_maker_ask=True,
    )
    assert calculate_trade_pnl(trade, account_id=7) == pytest.approx(100.0)


def test_trade_pnl_when_adding_or_unknown():
    adding = _closing_trade(is_maker_ask=True)
    assert calculate_trade_pnl(adding, account_id=7) == pytest.approx(-0.5)
    bare = {"size": "1", "price": "100", "taker_fee": "0.25"}
    assert calculate_trade_pnl(bare) == pytest.approx(-0.25)


def test_live_trade_records():
    raw = [_closing_trade(), {"trade_id": 2, "market_id": 1, "size": "1", "price": "1"}]
    records = live_trade_records(raw, account_id=9, resolve_symbol=MarketDirectory().resolve)
    assert len(records) == 1
    record = records[0]
    assert record.market == "ETH-USD"
    assert record.side == SIDE_SHORT
    assert record.role == ROLE_TAKER
    assert record.closed_pnl == pytest.approx(99.5)
    assert record.fee == 0.5
    assert record.date == datetime(2024, 1, 15, 10, tzinfo=timezone.utc)


def test_live_trade_with_out_of_range_timestamp_is_dropped():
    raw = [_closing_trade(timestamp=10**20), _closing_trade(trade_id=2, timestamp="garbage")]
    assert live_trade_records(raw, account_id=9) == []
