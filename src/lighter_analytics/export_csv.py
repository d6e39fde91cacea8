from __future__ import annotations

import csv
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

from lighter_analytics.ingest.exchange_profiles import parse_number
from lighter_analytics.ingest.lighter import position_size
from lighter_analytics.models import TradeRecord, UserStats


def export_rows_csv(
    rows: Iterable[Mapping[str, Any]],
    path: Path,
    *,
    stem: str = "export",
    today: date | None = None,
) -> Path | None:
    """Write rows with the first row's keys as header; nothing is written for no rows.

    A directory target gets a dated file name such as ``trades_2024-01-15.csv``.
    """
    data = [dict(row) for row in rows]
    if not data:
        return None
    out_path = _resolve_path(path, stem, today)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    headers = list(data[0].keys())
    with out_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=headers, extrasaction="ignore")
        writer.writeheader()
        for row in data:
            writer.writerow({key: "" if row.get(key) is None else row.get(key) for key in headers})
    return out_path


def export_positions_csv(
    positions: Iterable[Mapping[str, Any]], path: Path, *, today: date | None = None
) -> Path | None:
    rows = []
    for position in positions:
        size = position_size(position)
        rows.append(
            {
                "symbol": position.get("symbol"),
                "side": "LONG" if size > 0 else "SHORT",
                "size": abs(size),
                "entry_price": position.get("avg_entry_price"),
                "position_value": position.get("position_value"),
                "unrealized_pnl": position.get("unrealized_pnl"),
                "realized_pnl": position.get("realized_pnl"),
                "liquidation_price": position.get("liquidation_price"),
                "initial_margin_fraction": position.get("initial_margin_fraction"),
            }
        )
    return export_rows_csv(rows, path, stem="positions", today=today)


def export_trades_csv(
    trades: Iterable[Mapping[str, Any] | TradeRecord], path: Path, *, today: date | None = None
) -> Path | None:
    rows = []
    for trade in trades:
        if isinstance(trade, TradeRecord):
            rows.append(trade.to_dict())
            continue
        rows.append(
            {
                "trade_id": trade.get("trade_id"),
                "market_id": trade.get("market_id"),
                "type": trade.get("type"),
                "size": trade.get("size"),
                "price": trade.get("price"),
                "usd_amount": trade.get("usd_amount"),
                "timestamp": _iso_timestamp(trade.get("timestamp")),
                "maker_fee": trade.get("maker_fee"),
                "taker_fee": trade.get("taker_fee"),
            }
        )
    return export_rows_csv(rows, path, stem="trades", today=today)


def export_account_stats_csv(stats: UserStats, path: Path, *, today: date | None = None) -> Path | None:
    row = {
        "collateral": stats.collateral,
        "portfolio_value": stats.portfolio_value,
        "leverage": stats.leverage,
        "available_balance": stats.available_balance,
        "margin_usage": stats.margin_usage,
        "buying_power": stats.buying_power,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return export_rows_csv([row], path, stem="account_stats", today=today)


def _resolve_path(path: Path, stem: str, today: date | None) -> Path:
    if path.suffix and not path.is_dir():
        return path
    day = today or datetime.now(timezone.utc).date()
    return path / f"{stem}_{day.isoformat()}.csv"


def _iso_timestamp(value: Any) -> str:
    if value in (None, ""):
        return ""
    seconds = parse_number(value)
    if seconds > 1e12:
        seconds /= 1000.0
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return ""
