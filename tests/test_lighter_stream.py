import asyncio
import json

from lighter_analytics.ingest.lighter_stream import (
    LighterStream,
    account_channels,
    subscribe_message,
    trade_channel,
)


class FakeSocket:
    def __init__(self, messages):
        self.messages = list(messages)
        self.sent = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def send(self, payload):
        self.sent.append(json.loads(payload))

    async def close(self):
        self.closed = True

    async def _iterate(self):
        for message in self.messages:
            yield message
            await asyncio.sleep(0)

    def __aiter__(self):
        return self._iterate()


def test_channel_helpers():
    assert subscribe_message("trade/0") == {"type": "subscribe", "channel": "trade/0"}
    assert account_channels(7)[0] == "user_stats/7"
    assert "account_all_trades/7" in account_channels(7)
    assert trade_channel(3) == "trade/3"


def test_stream_subscribes_and_dispatches_mappings_only():
    socket = FakeSocket(
        [
            json.dumps({"type": "update/user_stats"}),
            "not json",
            json.dumps([1, 2]),
            json.dumps({"type": "stop"}),
        ]
    )
    received = []

    async def scenario():
        stream = None

        def handler(message):
            received.append(message)
            if message.get("type") == "stop":
                asyncio.ensure_future(stream.close())

        stream = LighterStream(
            "wss://example.test/stream",
            ["user_stats/7", "trade/0"],
            handler,
            reconnect_delay=0,
            connect=lambda url: socket,
        )
        await asyncio.wait_for(stream.run(), timeout=5)
        return stream

    stream = asyncio.run(scenario())
    assert stream.closed
    assert socket.closed
    assert socket.sent == [
        {"type": "subscribe", "channel": "user_stats/7"},
        {"type": "subscribe", "channel": "trade/0"},
    ]
    assert received == [{"type": "update/user_stats"}, {"type": "stop"}]


def test_stream_reconnects_after_connection_error():
    attempts = []
    socket = FakeSocket([json.dumps({"type": "stop"})])

    async def scenario():
        stream = None

        def connect(url):
            attempts.append(url)
            if len(attempts) == 1:
                raise OSError("connection refused")
            return socket

        def handler(message):
            asyncio.ensure_future(stream.close())

        stream = LighterStream("wss://example.test/stream", ["trade/0"], handler, reconnect_delay=0, connect=connect)
        await asyncio.wait_for(stream.run(), timeout=5)

    asyncio.run(scenario())
    assert len(attempts) == 2
    assert socket.sent == [{"type": "subscribe", "channel": "trade/0"}]


def test_closed_stream_does_not_connect():
    attempts = []

    async def scenario():
        stream = LighterStream("wss://example.test/stream", [], lambda message: None, connect=attempts.append)
        await stream.close()
        await stream.run()

    asyncio.run(scenario())
    assert attempts == []
