from lighter_analytics.live_state import LiveAccountState, PnlPoint


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _stats_message(unrealized):
    return {
        "type": "update/user_stats",
        "stats": {"portfolio_value": "1000", "unrealized_pnl": str(unrealized), "realized_pnl": "5"},
    }


def test_user_stats_update_and_pnl_throttle():
    clock = FakeClock()
    state = LiveAccountState(7, clock=clock)

    assert state.apply_message(_stats_message(10))
    assert state.user_stats.portfolio_value == 1000.0
    assert state.pnl_history == [PnlPoint(timestamp=0.0, pnl=15.0)]

    clock.now = 2.0
    state.apply_message(_stats_message(20))
    assert state.pnl_history == [PnlPoint(timestamp=0.0, pnl=25.0)]

    clock.now = 6.0
    state.apply_message(_stats_message(30))
    assert len(state.pnl_history) == 2
    assert state.pnl_history[-1] == PnlPoint(timestamp=6.0, pnl=35.0)


def test_unreadable_stats_keep_last_known_values():
    state = LiveAccountState(7, clock=FakeClock())
    state.apply_message(_stats_message(10))
    assert not state.apply_message({"type": "update/user_stats", "stats": "garbage"})
    assert state.user_stats.unrealized_pnl == 10.0


def test_position_snapshot_then_update():
    state = LiveAccountState(7, clock=FakeClock())
    state.apply_message(
        {
            "type": "subscribed/account_all_positions",
            "positions": {
                "1": [{"market_id": 1, "position": "5"}],
                "2": [{"market_id": 2, "position": "0"}],
            },
        }
    )
    assert [item["market_id"] for item in state.positions] == [1]

    state.apply_message(
        {"type": "update/account_all_positions", "positions": {"3": [{"market_id": 3, "position": "1"}]}}
    )
    assert sorted(item["market_id"] for item in state.positions) == [1, 3]

    state.apply_message(
        {"type": "update/account_all_positions", "positions": {"1": [{"market_id": 1, "position": "0"}]}}
    )
    assert [item["market_id"] for item in state.positions] == [3]


def test_trades_are_deduped_and_capped():
    state = LiveAccountState(7, trade_limit=2, clock=FakeClock())
    state.apply_message(
        {
            "type": "update/account_all_trades",
            "trades": {"0": [{"trade_id": 1, "timestamp": 10}, {"trade_id": 2, "timestamp": 20}]},
        }
    )
    state.apply_message(
        {
            "type": "update/account_all_trades",
            "trades": {"0": [{"trade_id": 2, "timestamp": 20}, {"trade_id": 3, "timestamp": 30}]},
        }
    )
    assert [trade["trade_id"] for trade in state.trades] == [3, 2]


def test_orders_market_stats_and_market_trades():
    state = LiveAccountState(clock=FakeClock())
    assert state.apply_message({"type": "update/account_all_orders", "orders": {"1": [{"order_index": 5}]}})
    assert state.orders == [{"order_index": 5}]

    assert state.apply_message({"channel": "update/market_stats", "market_stats": {"market_id": 1, "mark_price": "5"}})
    assert state.market_stats[1].mark_price == 5.0

    assert state.apply_message({"type": "update/trade", "trades": [{"trade_id": 8, "timestamp": 1}]})
    assert state.market_trades[0]["trade_id"] == 8


def test_unknown_messages_are_ignored():
    state = LiveAccountState(clock=FakeClock())
    assert not state.apply_message({"type": "update/notification", "data": {}})
    assert not state.apply_message({"type": "ping"})
    assert not state.apply_message({})
