from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from lighter_analytics.ingest.exchange_profiles import parse_number
from lighter_analytics.models import UserStats

DEFAULT_MAINTENANCE_MARGIN_FRACTION = 0.005
LIQUIDATION_PROXIMITY = 0.1

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"


@dataclass(frozen=True)
class AlertConfig:
    low_margin_threshold: float = 0.2
    high_margin_threshold: float = 0.8
    pnl_change_threshold: float = 100.0
    notify_on_liquidation: bool = True
    notify_on_large_pnl: bool = True
    notify_on_low_margin: bool = True


DEFAULT_ALERT_CONFIG = AlertConfig()


@dataclass(frozen=True)
class Alert:
    id: str
    type: str
    severity: str
    title: str
    description: str
    timestamp: float


def calculate_initial_margin(quantity: float, entry_price: float, leverage: float) -> float:
    if leverage == 0:
        return 0.0
    return quantity * entry_price / leverage


def calculate_pnl(side: str, entry_price: float, exit_price: float, quantity: float) -> float:
    if _is_long(side):
        return (exit_price - entry_price) * quantity
    return (entry_price - exit_price) * quantity


def calculate_roe(pnl: float, initial_margin: float) -> float:
    if initial_margin == 0:
        return 0.0
    return pnl / initial_margin * 100.0


def calculate_liquidation_price(
    side: str,
    entry_price: float,
    leverage: float,
    mmf: float = DEFAULT_MAINTENANCE_MARGIN_FRACTION,
) -> float:
    if leverage == 0:
        return 0.0
    if _is_long(side):
        return entry_price * (1 - 1 / leverage + mmf)
    return entry_price * (1 + 1 / leverage - mmf)


def calculate_target_price(
    side: str,
    entry_price: float,
    quantity: float,
    leverage: float,
    roe_percent: float,
) -> float:
    """Exit price that yields the requested return on initial margin."""
    if quantity == 0:
        return 0.0
    required_pnl = roe_percent / 100.0 * calculate_initial_margin(quantity, entry_price, leverage)
    if _is_long(side):
        return entry_price + required_pnl / quantity
    return entry_price - required_pnl / quantity


def check_alerts(
    stats: UserStats | None,
    positions: Iterable[Mapping[str, Any]],
    previous_pnl: float,
    current_pnl: float,
    config: AlertConfig = DEFAULT_ALERT_CONFIG,
    *,
    now: float | None = None,
) -> list[Alert]:
    if stats is None:
        return []
    timestamp = time.time() if now is None else now
    stamp = int(timestamp * 1000)
    alerts: list[Alert] = []
    margin_usage = stats.margin_usage
    pnl_change = abs(current_pnl - previous_pnl)

    if config.notify_on_low_margin and margin_usage < config.low_margin_threshold:
        alerts.append(
            Alert(
                id=f"margin-low-{stamp}",
                type="margin",
                severity=SEVERITY_WARNING,
                title="Low Margin Usage",
                description=(
                    f"Your margin usage is at {margin_usage * 100:.1f}%, which is below the "
                    f"{config.low_margin_threshold * 100:g}% threshold."
                ),
                timestamp=timestamp,
            )
        )
    if config.notify_on_low_margin and margin_usage > config.high_margin_threshold:
        alerts.append(
            Alert(
                id=f"margin-high-{stamp}",
                type="margin",
                severity=SEVERITY_ERROR,
                title="High Margin Usage - Risk Warning",
                description=(
                    f"Your margin usage is at {margin_usage * 100:.1f}%, which is above the "
                    f"{config.high_margin_threshold * 100:g}% threshold. Consider reducing leverage."
                ),
                timestamp=timestamp,
            )
        )
    if config.notify_on_large_pnl and pnl_change > config.pnl_change_threshold:
        gained = current_pnl > previous_pnl
        alerts.append(
            Alert(
                id=f"pnl-change-{stamp}",
                type="pnl",
                severity=SEVERITY_INFO if gained else SEVERITY_WARNING,
                title="Significant PnL Change",
                description=f"Your PnL has changed by ${pnl_change:.2f} ({'gain' if gained else 'loss'}).",
                timestamp=timestamp,
            )
        )
    if config.notify_on_liquidation:
        for position in positions:
            liquidation = parse_number(position.get("liquidation_price"))
            entry = parse_number(position.get("avg_entry_price"))
            if liquidation <= 0 or entry <= 0:
                continue
            if abs((liquidation - entry) / entry) >= LIQUIDATION_PROXIMITY:
                continue
            symbol = str(position.get("symbol") or f"MARKET-{position.get('market_id')}")
            alerts.append(
                Alert(
                    id=f"liquidation-{symbol}-{stamp}",
                    type="liquidation",
                    severity=SEVERITY_ERROR,
                    title=f"{symbol} Near Liquidation",
                    description=(
                        f"Your {symbol} position is within 10% of liquidation price (${liquidation:.2f})."
                    ),
                    timestamp=timestamp,
                )
            )
    return alerts


def _is_long(side: str) -> bool:
    return side.strip().lower() in {"long", "buy", "b"}
