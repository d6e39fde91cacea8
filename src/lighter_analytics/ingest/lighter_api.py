from __future__ import annotations

import http.client
import json
import logging
import time
import urllib.parse
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from lighter_analytics.ingest.lighter import (
    normalize_positions,
    normalize_trades,
    normalize_user_stats,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://mainnet.zklighter.elliot.ai"
DEFAULT_WS_URL = "wss://mainnet.zklighter.elliot.ai/stream"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.75


@dataclass(frozen=True)
class LighterApiConfig:
    base_url: str
    ws_url: str
    timeout_seconds: float
    retry_attempts: int
    retry_backoff_seconds: float

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "LighterApiConfig":
        return cls(
            base_url=(str(env.get("LIGHTER_BASE_URL", DEFAULT_BASE_URL)).strip() or DEFAULT_BASE_URL).rstrip("/"),
            ws_url=str(env.get("LIGHTER_WS_URL", DEFAULT_WS_URL)).strip() or DEFAULT_WS_URL,
            timeout_seconds=_to_float(env.get("LIGHTER_TIMEOUT_SECONDS"), DEFAULT_TIMEOUT_SECONDS),
            retry_attempts=int(env.get("LIGHTER_RETRY_ATTEMPTS", str(DEFAULT_RETRY_ATTEMPTS))),
            retry_backoff_seconds=_to_float(
                env.get("LIGHTER_RETRY_BACKOFF_SECONDS"), DEFAULT_RETRY_BACKOFF_SECONDS
            ),
        )


@dataclass(frozen=True)
class AccountSnapshot:
    account_index: int
    positions: list[dict[str, Any]]
    trades: list[dict[str, Any]]
    stats: Any

    def to_dict(self) -> dict[str, Any]:
        stats = None
        if self.stats is not None:
            stats = {
                "collateral": self.stats.collateral,
                "portfolio_value": self.stats.portfolio_value,
                "leverage": self.stats.leverage,
                "available_balance": self.stats.available_balance,
                "margin_usage": self.stats.margin_usage,
                "buying_power": self.stats.buying_power,
                "unrealized_pnl": self.stats.unrealized_pnl,
                "realized_pnl": self.stats.realized_pnl,
            }
        return {
            "account_index": self.account_index,
            "positions": self.positions,
            "trades": self.trades,
            "stats": stats,
        }


class LighterApiClient:
    def __init__(self, config: LighterApiConfig) -> None:
        self._config = config

    @property
    def ws_url(self) -> str:
        return self._config.ws_url

    def fetch_account_index(self, l1_address: str) -> int | None:
        response = self._get("/api/v1/accountsByL1Address", {"l1_address": l1_address})
        if not isinstance(response, Mapping):
            raise RuntimeError("Unexpected accountsByL1Address response shape")
        sub_accounts = response.get("sub_accounts")
        if not isinstance(sub_accounts, list) or not sub_accounts:
            return None
        first = sub_accounts[0]
        if not isinstance(first, Mapping) or first.get("index") is None:
            return None
        return int(first["index"])

    def fetch_account(self, account_index: int) -> Mapping[str, Any]:
        response = self._get("/api/v1/account", {"by": "index", "value": str(account_index)})
        if not isinstance(response, Mapping):
            raise RuntimeError("Unexpected account response shape")
        accounts = response.get("accounts")
        if isinstance(accounts, list):
            for account in accounts:
                if isinstance(account, Mapping):
                    return account
            return {}
        return response

    def fetch_account_snapshot(self, account_index: int) -> AccountSnapshot:
        account = self.fetch_account(account_index)
        stats_raw = account.get("stats") if isinstance(account.get("stats"), Mapping) else account
        return AccountSnapshot(
            account_index=account_index,
            positions=normalize_positions(account.get("positions")),
            trades=normalize_trades(account.get("trades")),
            stats=normalize_user_stats(stats_raw),
        )

    def fetch_order_book_details(self) -> list[Mapping[str, Any]]:
        response = self._get("/api/v1/orderBookDetails", None)
        if isinstance(response, list):
            return [row for row in response if isinstance(row, Mapping)]
        if isinstance(response, Mapping):
            for key in ("order_book_details", "order_books", "data"):
                data = response.get(key)
                if isinstance(data, list):
                    return [row for row in data if isinstance(row, Mapping)]
        return []

    def fetch_markets(self) -> dict[int, str]:
        markets: dict[int, str] = {}
        for row in self.fetch_order_book_details():
            market_id = row.get("market_id", row.get("market_index"))
            symbol = row.get("symbol")
            if market_id is None or not symbol:
                continue
            try:
                markets[int(market_id)] = str(symbol)
            except (TypeError, ValueError):
                continue
        return markets

    def _get(self, path: str, params: Mapping[str, str] | None) -> Mapping[str, Any] | list[Any]:
        url = f"{self._config.base_url}{path}"
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        last_error: Exception | None = None
        attempts = max(1, self._config.retry_attempts)
        for attempt in range(attempts):
            try:
                request = urllib.request.Request(url, method="GET", headers={"Accept": "application/json"})
                with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
                    raw = response.read()
                if not raw:
                    raise RuntimeError(f"Empty response body from Lighter {path}")
                return json.loads(raw.decode("utf-8"))
            except (
                OSError,
                http.client.HTTPException,
                json.JSONDecodeError,
                UnicodeDecodeError,
                RuntimeError,
            ) as exc:
                last_error = exc
                if attempt >= attempts - 1:
                    break
                logger.warning("Lighter %s attempt %d failed: %s", path, attempt + 1, exc)
                time.sleep(self._config.retry_backoff_seconds * (2**attempt))
        raise RuntimeError(f"Lighter {path} request failed: {last_error}") from last_error


def load_dotenv(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    env: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        env[key.strip()] = value.strip().strip('"').strip("'")
    return env


def _to_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
