from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

logger = logging.getLogger(__name__)

FALLBACK_MARKETS: Mapping[int, str] = {
    0: "ETH-USD",
    1: "BTC-USD",
    7: "XRP-USD",
    24: "HYPE-USD",
    25: "BNB-USD",
    29: "ENA-USD",
}


class MarketSource(Protocol):
    def fetch_markets(self) -> dict[int, str]: ...


class MarketDirectory:
    """Market id to symbol lookup, seeded with a static table until loaded from the exchange."""

    def __init__(self, markets: Mapping[int, str] | None = None) -> None:
        self._markets: dict[int, str] = dict(FALLBACK_MARKETS if markets is None else markets)
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def resolve(self, market_id: Any) -> str:
        try:
            key = int(market_id)
        except (TypeError, ValueError):
            return f"MARKET-{market_id}"
        return self._markets.get(key, f"MARKET-{key}")

    def load(self, source: MarketSource) -> bool:
        if self._loaded:
            return True
        try:
            markets = source.fetch_markets()
        except RuntimeError as exc:
            logger.warning("market list unavailable, keeping fallback table: %s", exc)
            return False
        if not markets:
            logger.warning("market list was empty, keeping fallback table")
            return False
        self._markets = dict(markets)
        self._loaded = True
        logger.info("loaded %d markets", len(markets))
        return True

    def as_dict(self) -> dict[int, str]:
        return dict(self._markets)
