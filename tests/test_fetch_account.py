import json

import pytest

from lighter_analytics import fetch_account
from lighter_analytics.ingest.lighter_api import AccountSnapshot
from lighter_analytics.live_state import LiveAccountState
from lighter_analytics.markets import MarketDirectory
from lighter_analytics.models import UserStats

ADDRESS = "0x" + "cd" * 20

CLOSING_FILL = {
    "trade_id": 1,
    "market_id": 0,
    "size": "1",
    "price": "2100",
    "timestamp": 1705312800,
    "taker_position_size_before": "2",
    "taker_entry_quote_before": "4000",
    "taker_fee": "0.5",
    "is_maker_ask": False,
    "ask_account_id": 42,
    "bid_account_id": 7,
}


class FakeClient:
    error = None

    def __init__(self, config):
        self.config = config

    @property
    def ws_url(self):
        return "wss://example.test/stream"

    def fetch_account_index(self, address):
        if self.error is not None:
            raise self.error
        return 42

    def fetch_account(self, account_index):
        return {"index": account_index}

    def fetch_account_snapshot(self, account_index):
        stats = UserStats(
            collateral=100.0,
            portfolio_value=110.0,
            leverage=1.0,
            available_balance=50.0,
            margin_usage=0.5,
            buying_power=100.0,
        )
        return AccountSnapshot(account_index=account_index, positions=[], trades=[CLOSING_FILL], stats=stats)

    def fetch_markets(self):
        return {0: "ETH-USD"}


@pytest.fixture
def fake_client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(fetch_account, "LighterApiClient", FakeClient)
    monkeypatch.setattr(FakeClient, "error", None)
    return FakeClient


def test_snapshot_includes_streaks(fake_client, capsys):
    assert fetch_account.main([ADDRESS]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["account_index"] == 42
    assert payload["streaks"]["current"]["type"] == "win"
    assert payload["streaks"]["longest_win"]["count"] == 1


def test_raw_snapshot_skips_analysis(fake_client, capsys):
    assert fetch_account.main([ADDRESS, "--raw"]) == 0
    assert json.loads(capsys.readouterr().out) == {"index": 42}


def test_lookup_failure_exits_with_error(fake_client, capsys):
    fake_client.error = RuntimeError("Lighter /api/v1/accountsByL1Address request failed: timed out")
    assert fetch_account.main([ADDRESS]) == 1
    assert "Account lookup failed" in capsys.readouterr().err


def test_invalid_address(fake_client, capsys):
    assert fetch_account.main(["0x123"]) == 1
    assert "Invalid wallet address" in capsys.readouterr().err


def _state():
    return LiveAccountState(42, clock=lambda: 0.0)


def test_account_update_line_reports_marks_and_streak():
    state = _state()
    resolve = MarketDirectory().resolve
    state.apply_message({"type": "update/market_stats", "market_stats": {"market_id": 0, "mark_price": "2500"}})
    assert fetch_account.describe_update(state, {"type": "update/market_stats"}, resolve) is None

    state.apply_message(
        {"type": "update/account_all_positions", "positions": {"0": [{"market_id": 0, "position": "1", "sign": 1}]}}
    )
    message = {"type": "update/account_all_trades", "trades": {"0": [CLOSING_FILL]}}
    state.apply_message(message)
    line = fetch_account.describe_update(state, message, resolve)
    assert line.startswith("update/account_all_trades pnl")
    assert "marks ETH-USD@2500" in line
    assert line.endswith("streak 1 win")


def test_market_trade_line():
    state = _state()
    message = {"type": "update/trade", "trades": [{"trade_id": 9, "market_id": 1, "size": "0.5", "price": "42000"}]}
    state.apply_message(message)
    line = fetch_account.describe_update(state, message, MarketDirectory().resolve)
    assert line == "update/trade BTC-USD size 0.5 price 42000"
