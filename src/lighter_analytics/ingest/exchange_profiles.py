from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Union

from lighter_analytics.models import (
    ORDER_LIMIT,
    ORDER_MARKET,
    ROLE_MAKER,
    ROLE_TAKER,
    SIDE_LONG,
    SIDE_SHORT,
    TradeRecord,
)

DEFAULT_MATCH_THRESHOLD = 0.7
UNKNOWN_EXCHANGE = "unknown"

CANONICAL_FIELDS = ("date", "market", "side", "size", "price", "closed_pnl", "fee", "role", "type")

_DATE_FORMATS = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%d.%m.%Y %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
)


@dataclass(frozen=True)
class RequiredField:
    key: str
    label: str
    required: bool
    description: str


REQUIRED_FIELDS: tuple[RequiredField, ...] = (
    RequiredField("date", "Date", True, "Trade timestamp"),
    RequiredField("market", "Market/Symbol", True, "Trading pair or asset"),
    RequiredField("side", "Side/Direction", True, "Long/Short or Buy/Sell"),
    RequiredField("size", "Size/Amount", False, "Position size"),
    RequiredField("price", "Price", False, "Entry/Exit price"),
    RequiredField("closed_pnl", "Closed PnL", True, "Realized profit/loss"),
    RequiredField("fee", "Fee", False, "Trading fees"),
    RequiredField("role", "Role", False, "Maker/Taker"),
    RequiredField("type", "Order Type", False, "Limit/Market"),
)


@dataclass(frozen=True)
class ExchangeProfile:
    name: str
    headers: tuple[str, ...]
    columns: Mapping[str, str] = field(default_factory=dict)

    def map_row(self, row: Mapping[str, Any]) -> TradeRecord | None:
        return map_row_with_columns(row, self.columns)


LIGHTER_PROFILE = ExchangeProfile(
    name="lighter",
    headers=("Market", "Side", "Date", "Trade Value", "Size", "Price", "Closed PnL", "Fee", "Role", "Type"),
    columns={
        "date": "Date",
        "market": "Market",
        "side": "Side",
        "size": "Size",
        "price": "Price",
        "closed_pnl": "Closed PnL",
        "fee": "Fee",
        "role": "Role",
        "type": "Type",
    },
)

NADO_PROFILE = ExchangeProfile(
    name="nado",
    headers=("Time", "Market", "Direction", "Amount", "Price", "Fee", "Total", "Realized PnL"),
    columns={
        "date": "Time",
        "market": "Market",
        "side": "Direction",
        "size": "Amount",
        "price": "Price",
        "closed_pnl": "Realized PnL",
        "fee": "Fee",
    },
)

HYPERLIQUID_PROFILE = ExchangeProfile(
    name="hyperliquid",
    headers=("time", "coin", "dir", "px", "sz", "ntl", "fee", "closedPnl"),
    columns={
        "date": "time",
        "market": "coin",
        "side": "dir",
        "size": "sz",
        "price": "px",
        "closed_pnl": "closedPnl",
        "fee": "fee",
    },
)

# Detection order; the first profile that matches wins.
KNOWN_PROFILES: tuple[ExchangeProfile, ...] = (LIGHTER_PROFILE, NADO_PROFILE, HYPERLIQUID_PROFILE)


@dataclass(frozen=True)
class Detected:
    profile: ExchangeProfile
    confidence: float

    @property
    def detected(self) -> bool:
        return True

    @property
    def exchange(self) -> str:
        return self.profile.name

    def map_row(self, row: Mapping[str, Any]) -> TradeRecord | None:
        return self.profile.map_row(row)


@dataclass(frozen=True)
class Unrecognized:
    best_confidence: float = 0.0

    @property
    def detected(self) -> bool:
        return False

    @property
    def exchange(self) -> str:
        return UNKNOWN_EXCHANGE


DetectionResult = Union[Detected, Unrecognized]


def header_overlap(user_headers: Iterable[str], known_headers: Iterable[str]) -> float:
    normalized_user = {_normalize_header(header) for header in user_headers}
    known = [_normalize_header(header) for header in known_headers]
    if not known:
        return 0.0
    matched = sum(1 for header in known if header in normalized_user)
    return matched / len(known)


def headers_match(
    user_headers: Iterable[str],
    known_headers: Iterable[str],
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> bool:
    user_list = list(user_headers)
    if not user_list:
        return False
    known = [_normalize_header(header) for header in known_headers]
    normalized_user = {_normalize_header(header) for header in user_list}
    matched = sum(1 for header in known if header in normalized_user)
    # Absorb float error in len * threshold.
    return matched >= math.ceil(len(known) * threshold - 1e-9)


def detect_exchange(
    headers: Iterable[str],
    profiles: Iterable[ExchangeProfile] = KNOWN_PROFILES,
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> DetectionResult:
    header_list = list(headers)
    best = 0.0
    for profile in profiles:
        confidence = header_overlap(header_list, profile.headers)
        if headers_match(header_list, profile.headers, threshold):
            return Detected(profile=profile, confidence=confidence)
        best = max(best, confidence)
    return Unrecognized(best_confidence=best)


def normalize_mapping(mapping: Mapping[str, str | None]) -> dict[str, str]:
    output: dict[str, str] = {}
    for key, column in mapping.items():
        if column in (None, ""):
            continue
        canonical = _canonical_field(key)
        if canonical is None:
            raise ValueError(f"Unknown trade field: {key!r}")
        output[canonical] = str(column)
    return output


def validate_mapping(mapping: Mapping[str, str | None], headers: Iterable[str] | None = None) -> list[str]:
    """Return human-readable problems with a manual column mapping (empty when usable)."""
    problems: list[str] = []
    try:
        normalized = normalize_mapping(mapping)
    except ValueError as exc:
        return [str(exc)]
    for item in REQUIRED_FIELDS:
        if item.required and item.key not in normalized:
            problems.append(f"Missing required field: {item.label}")
    if headers is not None:
        available = set(headers)
        for key, column in normalized.items():
            if column not in available:
                problems.append(f"Column {column!r} for {key} not found in file")
    return problems


def map_custom_row(row: Mapping[str, Any], mapping: Mapping[str, str | None]) -> TradeRecord | None:
    try:
        columns = normalize_mapping(mapping)
    except ValueError:
        return None
    return map_row_with_columns(row, columns)


def suggest_column_mapping(headers: Iterable[str]) -> dict[str, str]:
    """Guess a manual mapping from common header spellings.

    Each source column is bound to at most one trade field; fields with no
    plausible column are left out.
    """
    remaining = list(headers)
    suggestion: dict[str, str] = {}
    for key in CANONICAL_FIELDS:
        aliases = _FIELD_ALIASES[key]
        for header in remaining:
            if _normalize_header(header) in aliases:
                suggestion[key] = header
                remaining.remove(header)
                break
    return suggestion


def parse_generic_row(row: Mapping[str, Any]) -> TradeRecord | None:
    columns: dict[str, str] = {}
    for key in CANONICAL_FIELDS:
        for alias in _GENERIC_COLUMNS[key]:
            if _cell(row, alias) is not None:
                columns[key] = alias
                break
    return map_row_with_columns(row, columns)


def map_row_with_columns(row: Mapping[str, Any], columns: Mapping[str, str]) -> TradeRecord | None:
    date = parse_trade_date(_cell(row, columns.get("date")))
    if date is None:
        return None
    market = _cell(row, columns.get("market"))
    pnl_raw = _cell(row, columns.get("closed_pnl"))
    if market is None or pnl_raw is None:
        return None

    return TradeRecord(
        date=date,
        market=str(market).upper(),
        side=infer_side(_cell(row, columns.get("side"))),
        size=abs(parse_number(_cell(row, columns.get("size")))),
        price=parse_number(_cell(row, columns.get("price"))),
        closed_pnl=parse_number(pnl_raw),
        fee=abs(parse_number(_cell(row, columns.get("fee")))),
        role=infer_role(_cell(row, columns.get("role"))),
        order_type=infer_order_type(_cell(row, columns.get("type"))),
    )


def infer_side(value: Any) -> str:
    text = str(value or "").strip().lower()
    if "long" in text or "buy" in text or text == "b":
        return SIDE_LONG
    return SIDE_SHORT


def infer_role(value: Any) -> str:
    text = str(value or "").strip().lower()
    return ROLE_MAKER if "maker" in text else ROLE_TAKER


def infer_order_type(value: Any) -> str:
    text = str(value or "").strip().lower()
    return ORDER_LIMIT if "limit" in text else ORDER_MARKET


def parse_number(value: Any, default: float = 0.0) -> float:
    if value in (None, ""):
        return default
    if isinstance(value, (int, float)):
        numeric = float(value)
    else:
        text = str(value).strip().replace(",", "").replace("$", "")
        try:
            numeric = float(text)
        except ValueError:
            return default
    if math.isnan(numeric) or math.isinf(numeric):
        return default
    return numeric


def parse_trade_date(value: Any) -> datetime | None:
    """Parse an export timestamp; naive wall-clock values are read as local time."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.astimezone()
    if isinstance(value, (int, float)):
        return _timestamp_from_number(float(value))

    text = str(value).strip()
    try:
        return _timestamp_from_number(float(text))
    except ValueError:
        pass

    iso_text = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        parsed = datetime.fromisoformat(iso_text)
    except ValueError:
        parsed = None
    if parsed is None:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.astimezone()
    return parsed


def _timestamp_from_number(value: float) -> datetime | None:
    if math.isnan(value) or math.isinf(value):
        return None
    seconds = value / 1000.0 if value > 1e12 else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _cell(row: Mapping[str, Any], column: str | None) -> Any:
    if column is None:
        return None
    value = row.get(column)
    if value is None and column not in row:
        wanted = _normalize_header(column)
        for key, candidate in row.items():
            if key is not None and _normalize_header(key) == wanted:
                value = candidate
                break
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    return value


def _normalize_header(value: str) -> str:
    return str(value).strip().lower()


def _canonical_field(key: str) -> str | None:
    cleaned = str(key).strip()
    if cleaned in CANONICAL_FIELDS:
        return cleaned
    return _FIELD_KEY_ALIASES.get(cleaned.lower())


_FIELD_KEY_ALIASES = {
    "closedpnl": "closed_pnl",
    "closed_pnl": "closed_pnl",
    "pnl": "closed_pnl",
    "order_type": "type",
    "ordertype": "type",
}

_FIELD_ALIASES: dict[str, set[str]] = {
    "date": {"date", "time", "timestamp", "datetime", "date/time", "created at", "created_at", "trade time"},
    "market": {"market", "symbol", "coin", "pair", "instrument", "asset", "ticker"},
    "side": {"side", "direction", "dir", "trade side", "position side"},
    "size": {"size", "amount", "qty", "quantity", "sz", "volume"},
    "price": {"price", "px", "fill price", "avg price", "execution price"},
    "closed_pnl": {
        "closed pnl",
        "closedpnl",
        "closed_pnl",
        "realized pnl",
        "realized_pnl",
        "realised pnl",
        "pnl",
        "profit",
        "profit/loss",
    },
    "fee": {"fee", "fees", "commission", "trading fee"},
    "role": {"role", "liquidity", "maker/taker", "exec type"},
    "type": {"type", "order type", "order_type", "ordertype"},
}

_GENERIC_COLUMNS: dict[str, tuple[str, ...]] = {
    "date": ("Date", "date", "Timestamp", "timestamp"),
    "market": ("Market", "market", "Symbol", "symbol"),
    "side": ("Side", "side"),
    "size": ("Size", "size", "Quantity", "quantity"),
    "price": ("Price", "price"),
    "closed_pnl": ("Closed PnL", "closed_pnl", "PnL", "pnl", "Realized PnL"),
    "fee": ("Fee", "fee", "Fees", "fees"),
    "role": ("Role", "role"),
    "type": ("Type", "type", "Order Type"),
}
