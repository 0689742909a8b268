"""Shared fixtures: an in-memory WebSocket patched in place of websockets."""

import asyncio

import pytest
from websockets.exceptions import ConnectionClosedError

from hotcoin_client import session as session_module
from hotcoin_client.types import Credentials, StreamConfig

STREAM_URL = "wss://stream.example.com/linear-swap-ws"
CREDENTIALS = Credentials("test-access-key", "test-secret-key")


class FakeWebSocket:
    """Stands in for a websockets ClientConnection."""

    def __init__(self):
        self.sent: list[str] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.close_code = None
        self.fail_sends = False

    async def send(self, data):
        if self.fail_sends or self.closed:
            raise ConnectionClosedError(None, None)
        self.sent.append(data)

    async def recv(self):
        item = await self.incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code=1000, reason=""):
        self.closed = True
        self.close_code = code

    def feed(self, message):
        self.incoming.put_nowait(message)

    def fail(self, exc=None):
        self.incoming.put_nowait(exc or ConnectionClosedError(None, None))


class FakeConnector:
    """Replacement for ``websockets.asyncio.client.connect``."""

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.connections: list[FakeWebSocket] = []

    async def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        ws = FakeWebSocket()
        self.connections.append(ws)
        return ws

    @property
    def ws(self) -> FakeWebSocket:
        return self.connections[-1]


@pytest.fixture
def connector(monkeypatch):
    fake = FakeConnector()
    monkeypatch.setattr(session_module, "ws_connect", fake)
    return fake


@pytest.fixture
def stream_config():
    return StreamConfig(url=STREAM_URL, enable_heartbeat=False)


@pytest.fixture
def credentials():
    return CREDENTIALS
