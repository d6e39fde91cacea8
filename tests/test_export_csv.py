import csv
from datetime import date

from lighter_analytics.export_csv import (
    export_account_stats_csv,
    export_positions_csv,
    export_rows_csv,
    export_trades_csv,
)
from lighter_analytics.models import UserStats

TODAY = date(2024, 1, 15)


def _read(path):
    with path.open(encoding="utf-8", newline="") as handle:
        return list(csv.DictReader(handle))


def test_empty_rows_write_nothing(tmp_path):
    assert export_rows_csv([], tmp_path) is None
    assert list(tmp_path.iterdir()) == []


def test_rows_use_first_row_headers(tmp_path):
    out = export_rows_csv([{"a": 1, "b": None}, {"a": 2, "b": 3, "c": 4}], tmp_path / "rows.csv")
    assert out == tmp_path / "rows.csv"
    assert _read(out) == [{"a": "1", "b": ""}, {"a": "2", "b": "3"}]


def test_trades_export_to_dated_file(tmp_path):
    trades = [{"trade_id": 7, "market_id": 0, "size": "1", "price": "2100", "timestamp": 1705312800}]
    out = export_trades_csv(trades, tmp_path, today=TODAY)
    assert out.name == "trades_2024-01-15.csv"
    row = _read(out)[0]
    assert row["trade_id"] == "7"
    assert row["timestamp"] == "2024-01-15T10:00:00+00:00"


def test_positions_export_signed_side(tmp_path):
    positions = [{"symbol": "ETH", "position": "2", "sign": -1, "avg_entry_price": "100"}]
    row = _read(export_positions_csv(positions, tmp_path, today=TODAY))[0]
    assert row["side"] == "SHORT"
    assert row["size"] == "2.0"
    assert row["entry_price"] == "100"


def test_account_stats_export(tmp_path):
    stats = UserStats(
        collateral=10.0,
        portfolio_value=12.0,
        leverage=1.0,
        available_balance=8.0,
        margin_usage=0.2,
        buying_power=20.0,
    )
    out = export_account_stats_csv(stats, tmp_path, today=TODAY)
    assert out.name == "account_stats_2024-01-15.csv"
    assert _read(out)[0]["portfolio_value"] == "12.0"
