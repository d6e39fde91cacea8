from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from lighter_analytics.models import MarketStats, UserStats

LIVE_FEED_LIMIT = 50

_MARKET_ID_KEYS = ("market_id", "marketId", "market_index", "marketIndex")


def normalize_positions(payload: Any) -> list[dict[str, Any]]:
    """Flatten a positions payload (id-keyed mapping, list, or None) into dicts."""
    return _extract_records(payload)


def normalize_trades(payload: Any) -> list[dict[str, Any]]:
    """Flatten a trades payload and order it newest first."""
    records = _extract_records(payload)
    records.sort(key=_timestamp_key, reverse=True)
    return records


def normalize_market_stats(raw: Any) -> MarketStats | None:
    if not isinstance(raw, Mapping):
        return None
    market_id = _first_value(raw, *_MARKET_ID_KEYS)
    if market_id is None:
        return None
    try:
        market_id = int(float(market_id))
    except (TypeError, ValueError):
        return None

    symbol = _first_value(raw, "symbol", "market", "ticker")
    funding_timestamp = _first_float(raw, "funding_timestamp", "fundingTimestamp")
    return MarketStats(
        market_id=market_id,
        symbol=str(symbol) if symbol is not None else None,
        index_price=_float_or_zero(raw, "index_price", "indexPrice"),
        mark_price=_float_or_zero(raw, "mark_price", "markPrice"),
        last_trade_price=_float_or_zero(raw, "last_trade_price", "lastTradePrice"),
        open_interest=_float_or_zero(raw, "open_interest", "openInterest"),
        current_funding_rate=_float_or_zero(raw, "current_funding_rate", "currentFundingRate"),
        funding_rate=_float_or_zero(raw, "funding_rate", "fundingRate"),
        funding_timestamp=int(funding_timestamp) if funding_timestamp is not None else None,
        daily_base_token_volume=_float_or_zero(raw, "daily_base_token_volume", "dailyBaseTokenVolume"),
        daily_quote_token_volume=_float_or_zero(raw, "daily_quote_token_volume", "dailyQuoteTokenVolume"),
        daily_price_low=_float_or_zero(raw, "daily_price_low", "dailyPriceLow"),
        daily_price_high=_float_or_zero(raw, "daily_price_high", "dailyPriceHigh"),
        daily_price_change=_float_or_zero(raw, "daily_price_change", "dailyPriceChange"),
    )


def extract_market_stats(message: Mapping[str, Any]) -> list[MarketStats]:
    """Collect every parseable market stats entry carried by a stream message."""
    raw = message.get("market_stats")
    if raw is None:
        raw = message.get("marketStats")
    if raw is None:
        raw = message.get("markets")
    if raw is None:
        return []
    if isinstance(raw, Mapping) and _first_value(raw, *_MARKET_ID_KEYS) is not None:
        candidates: Iterable[Any] = [raw]
    elif isinstance(raw, Mapping):
        candidates = raw.values()
    elif isinstance(raw, list):
        candidates = raw
    else:
        return []
    stats: list[MarketStats] = []
    for candidate in candidates:
        normalized = normalize_market_stats(candidate)
        if normalized is not None:
            stats.append(normalized)
    return stats


def normalize_user_stats(raw: Any) -> UserStats | None:
    if not isinstance(raw, Mapping):
        return None
    cross = raw.get("cross_stats")
    total = raw.get("total_stats")

    def pick(*keys: str) -> float:
        value = _coalesce_float(
            _first_float(raw, *keys),
            _first_float(cross, *keys),
            _first_float(total, *keys),
        )
        return value if value is not None else 0.0

    return UserStats(
        collateral=pick("collateral"),
        portfolio_value=pick("portfolio_value", "portfolioValue"),
        leverage=pick("leverage"),
        available_balance=pick("available_balance", "availableBalance"),
        margin_usage=pick("margin_usage", "marginUsage"),
        buying_power=pick("buying_power", "buyingPower"),
        unrealized_pnl=pick("unrealized_pnl", "unrealizedPnl"),
        realized_pnl=pick("realized_pnl", "realizedPnl"),
    )


def merge_positions(
    existing: Iterable[Mapping[str, Any]],
    incoming: Iterable[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """Apply incoming positions per market id; a zero size closes that market."""
    merged: dict[Any, dict[str, Any]] = {}
    for position in existing:
        merged[position_market_id(position)] = dict(position)
    for position in incoming:
        market_id = position_market_id(position)
        if position_size(position) == 0:
            merged.pop(market_id, None)
            continue
        merged[market_id] = dict(position)
    return list(merged.values())


def dedupe_and_prepend(
    existing: Iterable[Mapping[str, Any]],
    incoming: Iterable[Mapping[str, Any]],
    limit: int | None = None,
) -> list[dict[str, Any]]:
    current = [dict(trade) for trade in existing]
    seen = {_trade_id(trade) for trade in current}
    seen.discard(None)

    fresh: list[dict[str, Any]] = []
    for trade in incoming:
        trade_id = _trade_id(trade)
        if trade_id is not None:
            if trade_id in seen:
                continue
            seen.add(trade_id)
        fresh.append(dict(trade))

    combined = fresh + current
    combined.sort(key=_timestamp_key, reverse=True)
    if limit is not None:
        combined = combined[: max(0, limit)]
    return combined


def position_market_id(position: Mapping[str, Any]) -> Any:
    value = _first_value(position, *_MARKET_ID_KEYS)
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return value


def position_size(position: Mapping[str, Any]) -> float:
    """Signed position size; positive is long."""
    size = _first_float(position, "position", "size")
    if size is None:
        return 0.0
    sign = _first_float(position, "sign")
    if sign is not None and sign < 0 and size > 0:
        return -size
    return size


def _extract_records(payload: Any) -> list[dict[str, Any]]:
    if payload is None:
        return []
    if isinstance(payload, Mapping):
        values: Iterable[Any] = payload.values()
    elif isinstance(payload, (list, tuple)):
        values = payload
    else:
        return []
    records: list[dict[str, Any]] = []
    for value in values:
        if isinstance(value, Mapping):
            records.append(dict(value))
        elif isinstance(value, (list, tuple)):
            records.extend(dict(item) for item in value if isinstance(item, Mapping))
    return records


def _trade_id(trade: Mapping[str, Any]) -> Any:
    value = trade.get("trade_id", trade.get("tradeId"))
    if value is None or value == "":
        return None
    return str(value)


def _timestamp_key(record: Mapping[str, Any]) -> float:
    value = _first_float(record, "timestamp", "time")
    return value if value is not None else 0.0


def _first_value(payload: Any, *keys: str) -> Any:
    if not isinstance(payload, Mapping):
        return None
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


def _first_float(payload: Any, *keys: str) -> float | None:
    if not isinstance(payload, Mapping):
        return None
    for key in keys:
        value = payload.get(key)
        if value is None or value == "" or isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number):
            return number
    return None


def _float_or_zero(payload: Any, *keys: str) -> float:
    value = _first_float(payload, *keys)
    return value if value is not None else 0.0


def _coalesce_float(*values: float | None) -> float | None:
    for value in values:
        if value is not None:
            return value
    return None
