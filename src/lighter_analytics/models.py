from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

Side = str
Role = str
OrderType = str

SIDE_LONG: Side = "Long"
SIDE_SHORT: Side = "Short"

ROLE_MAKER: Role = "Maker"
ROLE_TAKER: Role = "Taker"

ORDER_LIMIT: OrderType = "Limit"
ORDER_MARKET: OrderType = "Market"


@dataclass(frozen=True)
class TradeRecord:
    date: datetime
    market: str
    side: Side
    size: float
    price: float
    closed_pnl: float
    fee: float
    role: Role = ROLE_TAKER
    order_type: OrderType = ORDER_MARKET

    @property
    def is_win(self) -> bool:
        return self.closed_pnl > 0

    @property
    def is_loss(self) -> bool:
        return self.closed_pnl < 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "market": self.market,
            "side": self.side,
            "size": self.size,
            "price": self.price,
            "closed_pnl": self.closed_pnl,
            "fee": self.fee,
            "role": self.role,
            "type": self.order_type,
        }


@dataclass(frozen=True)
class MarketStats:
    market_id: int
    symbol: str | None
    index_price: float
    mark_price: float
    last_trade_price: float
    open_interest: float
    current_funding_rate: float
    funding_rate: float
    funding_timestamp: int | None
    daily_base_token_volume: float
    daily_quote_token_volume: float
    daily_price_low: float
    daily_price_high: float
    daily_price_change: float


@dataclass(frozen=True)
class UserStats:
    collateral: float
    portfolio_value: float
    leverage: float
    available_balance: float
    margin_usage: float
    buying_power: float
    unrealized_pnl: float = 0.0
    realized_pnl: float = 0.0

    @property
    def total_pnl(self) -> float:
        return self.unrealized_pnl + self.realized_pnl
