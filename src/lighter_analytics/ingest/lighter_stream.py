from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Iterable, Mapping

import websockets
from websockets.exceptions import WebSocketException

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY_SECONDS = 5.0
MARKET_STATS_CHANNEL = "market_stats/all"


def subscribe_message(channel: str) -> dict[str, str]:
    return {"type": "subscribe", "channel": channel}


def account_channels(account_index: int) -> list[str]:
    return [
        f"user_stats/{account_index}",
        f"account_all_positions/{account_index}",
        f"account_all_trades/{account_index}",
        f"account_all_orders/{account_index}",
    ]


def trade_channel(market_id: int) -> str:
    return f"trade/{market_id}"


class LighterStream:
    """Websocket subscription that feeds decoded messages to a handler.

    Runs until close() is called, reconnecting after connection errors.
    """

    def __init__(
        self,
        url: str,
        channels: Iterable[str],
        handler: Callable[[Mapping[str, Any]], Any],
        *,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY_SECONDS,
        connect: Callable[[str], Any] = websockets.connect,
    ) -> None:
        self._url = url
        self._channels = list(channels)
        self._handler = handler
        self._reconnect_delay = reconnect_delay
        self._connect = connect
        self._closed = asyncio.Event()
        self._socket: Any = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def run(self) -> None:
        while not self._closed.is_set():
            try:
                async with self._connect(self._url) as socket:
                    self._socket = socket
                    logger.info("stream connected: %s", self._url)
                    for channel in self._channels:
                        await socket.send(json.dumps(subscribe_message(channel)))
                    async for raw in socket:
                        self._dispatch(raw)
                        if self._closed.is_set():
                            break
            except (OSError, WebSocketException) as exc:
                if self._closed.is_set():
                    break
                logger.warning("stream error: %s; reconnecting in %.1fs", exc, self._reconnect_delay)
            finally:
                self._socket = None
            if self._closed.is_set():
                break
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=self._reconnect_delay)
            except asyncio.TimeoutError:
                pass

    async def close(self) -> None:
        self._closed.set()
        socket = self._socket
        if socket is not None:
            await socket.close()

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("dropping undecodable stream message: %s", exc)
            return
        if not isinstance(message, Mapping):
            return
        self._handler(message)
