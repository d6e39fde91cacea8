from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, Mapping

from lighter_analytics.config.app_config import StreamSettings, apply_api_settings, load_app_config
from lighter_analytics.formatting import format_currency, validate_ethereum_address
from lighter_analytics.ingest.exchange_profiles import parse_number
from lighter_analytics.ingest.lighter import position_market_id
from lighter_analytics.ingest.lighter_api import LighterApiClient, LighterApiConfig, load_dotenv
from lighter_analytics.ingest.lighter_stream import (
    MARKET_STATS_CHANNEL,
    LighterStream,
    account_channels,
    trade_channel,
)
from lighter_analytics.live_state import LiveAccountState, message_tag
from lighter_analytics.markets import MarketDirectory
from lighter_analytics.metrics.analysis import streak_payload
from lighter_analytics.metrics.risk import check_alerts
from lighter_analytics.metrics.streaks import live_trade_records, summarize_streaks


def main(argv: list[str] | None = None) -> int:
    app_config = load_app_config()
    parser = argparse.ArgumentParser(description="Fetch a Lighter account snapshot by wallet address.")
    parser.add_argument("address", type=str, help="L1 wallet address (0x...).")
    parser.add_argument("--raw", action="store_true", help="Print the raw account JSON response.")
    parser.add_argument("--env", type=Path, default=app_config.app.env_path, help="Path to .env file.")
    parser.add_argument("--base-url", type=str, default=None, help="Override LIGHTER_BASE_URL.")
    parser.add_argument("--out", type=Path, default=None, help="Output file.")
    parser.add_argument("--alerts", action="store_true", help="Print margin and liquidation alerts.")
    parser.add_argument(
        "--watch",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Stream live account updates for SECONDS (0 runs until interrupted).",
    )
    parser.add_argument(
        "--market",
        dest="market_ids",
        type=int,
        action="append",
        default=[],
        metavar="MARKET_ID",
        help="While watching, also stream public trades for this market (repeatable).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=app_config.app.log_level, format="%(levelname)s %(name)s: %(message)s")

    if not validate_ethereum_address(args.address):
        print(f"Invalid wallet address: {args.address}", file=sys.stderr)
        return 1

    env = dict(os.environ)
    env.update(load_dotenv(args.env))
    env = apply_api_settings(env, app_config, base_url_override=args.base_url)
    client = LighterApiClient(LighterApiConfig.from_env(env))

    try:
        account_index = client.fetch_account_index(args.address)
    except RuntimeError as exc:
        print(f"Account lookup failed: {exc}", file=sys.stderr)
        return 1
    if account_index is None:
        print(f"No Lighter account found for {args.address}", file=sys.stderr)
        return 1

    markets = MarketDirectory()
    if not args.raw:
        markets.load(client)

    if args.watch is not None:
        try:
            asyncio.run(
                _watch(client, account_index, app_config.stream, args.watch, markets=markets, market_ids=args.market_ids)
            )
        except KeyboardInterrupt:
            pass
        return 0

    try:
        if args.raw:
            payload: Any = client.fetch_account(account_index)
            snapshot = None
        else:
            snapshot = client.fetch_account_snapshot(account_index)
            payload = snapshot.to_dict()
            records = live_trade_records(snapshot.trades, account_index, markets.resolve)
            payload["streaks"] = streak_payload(summarize_streaks(records))
    except RuntimeError as exc:
        print(f"Account fetch failed: {exc}", file=sys.stderr)
        return 1

    if args.alerts and snapshot is not None:
        for alert in check_alerts(snapshot.stats, snapshot.positions, 0.0, 0.0):
            print(f"[{alert.severity}] {alert.title}: {alert.description}", file=sys.stderr)

    text = json.dumps(payload, indent=2, sort_keys=True)
    if args.out is None:
        print(text)
        return 0

    args.out.parent.mkdir(parents=True, exist_ok=True)
    args.out.write_text(text + "\n", encoding="utf-8")
    return 0


def describe_update(
    state: LiveAccountState,
    message: Mapping[str, Any],
    resolve_symbol: Callable[[int], str],
) -> str | None:
    """One status line for a message that changed the live state."""
    tag = message_tag(message) or ""
    name = tag.split("/", 1)[-1].split(":", 1)[0]
    if name == "market_stats":
        return None
    if name == "trade":
        if not state.market_trades:
            return None
        latest = state.market_trades[0]
        return (
            f"{tag} {resolve_symbol(int(parse_number(latest.get('market_id'))))} "
            f"size {latest.get('size')} price {latest.get('price')}"
        )

    pnl = state.user_stats.total_pnl if state.user_stats is not None else 0.0
    line = f"{tag} pnl {format_currency(pnl)} positions {len(state.positions)} trades {len(state.trades)}"
    if state.positions:
        marks = []
        for position in state.positions:
            stats = state.market_stats.get(position_market_id(position))
            if stats is not None:
                marks.append(f"{resolve_symbol(stats.market_id)}@{stats.mark_price:g}")
        if marks:
            line += f" marks {' '.join(marks)}"
    current = summarize_streaks(state.trade_records(resolve_symbol)).current
    if current is not None:
        line += f" streak {current.count} {current.type}"
    return line


async def _watch(
    client: LighterApiClient,
    account_index: int,
    settings: StreamSettings,
    duration: float,
    *,
    markets: MarketDirectory,
    market_ids: list[int],
) -> None:
    state = LiveAccountState(
        account_index,
        trade_limit=settings.trade_feed_limit,
        pnl_history_throttle_seconds=settings.pnl_history_throttle_seconds,
    )

    def handle(message: Mapping[str, Any]) -> None:
        if not state.apply_message(message):
            return
        line = describe_update(state, message, markets.resolve)
        if line is not None:
            print(line)

    channels = account_channels(account_index) + [MARKET_STATS_CHANNEL]
    channels.extend(trade_channel(market_id) for market_id in market_ids)
    stream = LighterStream(
        client.ws_url,
        channels,
        handle,
        reconnect_delay=settings.reconnect_delay_seconds,
    )
    task = asyncio.create_task(stream.run())
    try:
        if duration > 0:
            await asyncio.sleep(duration)
        else:
            await task
    finally:
        await stream.close()
        await task


if __name__ == "__main__":
    raise SystemExit(main())
