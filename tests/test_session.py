"""Tests for StreamSession (fake WebSocket transport)."""

import asyncio
import base64
import gzip
import hashlib
import hmac

import orjson
import pytest
import pytest_asyncio
from websockets.exceptions import ConnectionClosedOK

from hotcoin_client import session as session_module
from hotcoin_client.errors import (
    AlreadyConnectedError,
    AlreadySubscribedError,
    AuthenticationError,
    AuthenticationRequiredError,
    DecompressionError,
    HandshakeTimeoutError,
    HotcoinConnectionError,
    MissingCredentialsError,
    NotConnectedError,
)
from hotcoin_client.session import StreamSession
from hotcoin_client.signature import canonical_query_string
from hotcoin_client.types import ConnectionState, StreamConfig


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def sent_messages(ws):
    return [orjson.loads(m) for m in ws.sent]


def slow_first_dial(connector, delay=5.0):
    """Wrap *connector* so the first dial hangs for *delay* seconds."""
    calls = []

    async def dial(url, **kwargs):
        calls.append(url)
        if len(calls) == 1:
            await asyncio.sleep(delay)
        return await connector(url, **kwargs)

    return dial


@pytest_asyncio.fixture
async def session(connector, stream_config, credentials):
    s = StreamSession(stream_config, credentials=credentials)
    yield s
    await s.disconnect()


@pytest_asyncio.fixture
async def connected(session, connector):
    await session.connect()
    return session


async def authenticate(session, ws):
    await session.authenticate()
    ws.feed('{"op":"auth","type":"api","err-code":0}')
    await wait_until(lambda: session.is_authenticated)


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect(self, session, connector, stream_config):
        events = []
        session.on_connected(lambda: events.append("connected"))

        await session.connect()

        assert session.state is ConnectionState.CONNECTED
        assert session.is_connected is True
        assert session.is_authenticated is False
        assert events == ["connected"]
        url, kwargs = connector.calls[0]
        assert url == stream_config.url
        assert kwargs["max_size"] == stream_config.max_message_size

    @pytest.mark.asyncio
    async def test_connect_twice_rejected(self, connected, connector):
        with pytest.raises(AlreadyConnectedError):
            await connected.connect()
        assert connected.state is ConnectionState.CONNECTED
        assert len(connector.calls) == 1

    @pytest.mark.asyncio
    async def test_dial_failure(self, monkeypatch, stream_config):
        async def refuse(url, **kwargs):
            raise OSError("connection refused")

        monkeypatch.setattr(session_module, "ws_connect", refuse)
        s = StreamSession(stream_config)

        with pytest.raises(HotcoinConnectionError):
            await s.connect()
        assert s.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_handshake_timeout(self, monkeypatch):
        async def hang(url, **kwargs):
            await asyncio.sleep(10)

        monkeypatch.setattr(session_module, "ws_connect", hang)
        s = StreamSession(
            StreamConfig(url="wss://h.com/ws", handshake_timeout=0.05, enable_heartbeat=False)
        )

        with pytest.raises(HandshakeTimeoutError):
            await s.connect()
        assert s.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_context_manager(self, connector, stream_config):
        async with StreamSession(stream_config) as s:
            assert s.is_connected
        assert s.state is ConnectionState.DISCONNECTED
        assert connector.ws.closed

    @pytest.mark.asyncio
    async def test_cancelled_connect_resets_state(self, monkeypatch, connector, stream_config):
        monkeypatch.setattr(session_module, "ws_connect", slow_first_dial(connector))
        s = StreamSession(stream_config)

        task = asyncio.create_task(s.connect())
        await wait_until(lambda: s.state is ConnectionState.CONNECTING)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert s.state is ConnectionState.DISCONNECTED
        await s.connect()
        try:
            assert s.is_connected
        finally:
            await s.disconnect()


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_when_disconnected_is_noop(self, session):
        events = []
        session.on_disconnected(lambda: events.append("disconnected"))

        await session.disconnect()

        assert session.state is ConnectionState.DISCONNECTED
        assert events == []

    @pytest.mark.asyncio
    async def test_disconnect_clears_and_closes(self, connected, connector):
        events = []
        connected.on_disconnected(lambda: events.append("disconnected"))
        await connected.subscribe_ticker("btcusdt")

        await connected.disconnect()
        await connected.disconnect()

        assert connected.state is ConnectionState.DISCONNECTED
        assert connected.subscribed_topics == set()
        assert connector.ws.closed is True
        assert connector.ws.close_code == 1000
        assert events == ["disconnected"]

    @pytest.mark.asyncio
    async def test_reconnect_after_disconnect(self, connected, connector):
        await connected.disconnect()
        await connected.connect()

        assert connected.is_connected
        assert len(connector.connections) == 2
        await connected.subscribe_ticker("btcusdt")
        assert connector.ws.sent

    @pytest.mark.asyncio
    async def test_send_after_disconnect(self, connected):
        await connected.disconnect()
        with pytest.raises(NotConnectedError):
            await connected.send({"ping": 1})

    @pytest.mark.asyncio
    async def test_disconnect_after_interrupted_connect(self, monkeypatch, connector):
        monkeypatch.setattr(session_module, "ws_connect", slow_first_dial(connector))
        s = StreamSession(
            StreamConfig(url="wss://h.com/ws", handshake_timeout=0.05, enable_heartbeat=False)
        )
        events = []
        s.on_disconnected(lambda: events.append("disconnected"))

        with pytest.raises(HandshakeTimeoutError):
            await s.connect()
        await s.disconnect()

        assert s.state is ConnectionState.DISCONNECTED
        assert s.subscribed_topics == set()
        assert events == []

        await s.connect()
        try:
            assert s.state is ConnectionState.CONNECTED
        finally:
            await s.disconnect()


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_subscribe_sends_frame(self, connected, connector):
        await connected.subscribe_kline("btcusdt", "1min")

        [msg] = sent_messages(connector.ws)
        assert msg["sub"] == "market.btcusdt.kline.1min"
        assert msg["id"].startswith("sub_")
        assert connected.subscribed_topics == {"market.btcusdt.kline.1min"}

    @pytest.mark.asyncio
    async def test_duplicate_subscribe(self, connected, connector):
        await connected.subscribe("market.btcusdt.detail")
        with pytest.raises(AlreadySubscribedError):
            await connected.subscribe("market.btcusdt.detail")
        assert len(connector.ws.sent) == 1

    @pytest.mark.asyncio
    async def test_subscribe_not_connected(self, session):
        with pytest.raises(NotConnectedError):
            await session.subscribe("market.btcusdt.detail")
        assert session.subscribed_topics == set()

    @pytest.mark.asyncio
    async def test_send_failure_rolls_back(self, connected, connector):
        connector.ws.fail_sends = True
        with pytest.raises(HotcoinConnectionError):
            await connected.subscribe_trade("btcusdt")
        assert connected.subscribed_topics == set()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, connected, connector):
        await connected.subscribe_depth("btcusdt", "step0")
        await connected.unsubscribe("market.btcusdt.depth.step0")

        msgs = sent_messages(connector.ws)
        assert msgs[-1]["unsub"] == "market.btcusdt.depth.step0"
        assert msgs[-1]["id"].startswith("unsub_")
        assert connected.subscribed_topics == set()

    @pytest.mark.asyncio
    async def test_unsubscribe_inactive_topic(self, connected, connector):
        await connected.unsubscribe("market.btcusdt.detail")
        assert sent_messages(connector.ws)[0]["unsub"] == "market.btcusdt.detail"

    @pytest.mark.asyncio
    async def test_unsubscribe_not_connected(self, session):
        with pytest.raises(NotConnectedError):
            await session.unsubscribe("market.btcusdt.detail")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method", ["subscribe_orders", "subscribe_positions", "subscribe_accounts"]
    )
    async def test_private_helpers_require_auth(self, connected, connector, method):
        with pytest.raises(AuthenticationRequiredError):
            await getattr(connected, method)("btcusdt")
        assert connector.ws.sent == []
        assert connected.subscribed_topics == set()

    @pytest.mark.asyncio
    async def test_private_topic_requires_auth(self, connected, connector):
        with pytest.raises(AuthenticationRequiredError):
            await connected.subscribe("orders.btcusdt")
        assert connector.ws.sent == []


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_not_connected(self, session):
        with pytest.raises(NotConnectedError):
            await session.authenticate()

    @pytest.mark.asyncio
    async def test_missing_credentials(self, connector, stream_config):
        s = StreamSession(stream_config)
        await s.connect()
        try:
            with pytest.raises(MissingCredentialsError):
                await s.authenticate()
            assert connector.ws.sent == []
        finally:
            await s.disconnect()

    @pytest.mark.asyncio
    async def test_auth_frame(self, connected, connector, credentials):
        await connected.authenticate()

        [msg] = sent_messages(connector.ws)
        assert msg["op"] == "auth"
        assert msg["type"] == "api"
        assert msg["AccessKeyId"] == credentials.access_key
        assert msg["SignatureMethod"] == "HmacSHA256"
        assert msg["SignatureVersion"] == "2"

        params = {
            k: msg[k]
            for k in ("AccessKeyId", "SignatureMethod", "SignatureVersion", "Timestamp")
        }
        payload = (
            "GET\nstream.example.com\n/api/v1/perpetual/notification\n"
            + canonical_query_string(params)
        )
        digest = hmac.new(
            credentials.secret_key.encode(), payload.encode(), hashlib.sha256
        ).digest()
        assert msg["Signature"] == base64.b64encode(digest).decode()
        # Not authenticated until the ack arrives
        assert connected.state is ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_auth_ack(self, connected, connector):
        await authenticate(connected, connector.ws)
        assert connected.state is ConnectionState.AUTHENTICATED

        await connected.subscribe_orders("btcusdt")
        assert sent_messages(connector.ws)[-1]["sub"] == "orders.btcusdt"

    @pytest.mark.asyncio
    async def test_auth_rejected(self, connected, connector):
        errors = []
        connected.on_error(errors.append)

        await connected.authenticate()
        connector.ws.feed('{"op":"auth","err-code":2002,"err-msg":"invalid signature"}')
        await wait_until(lambda: connected.frames_received == 1)

        assert connected.state is ConnectionState.CONNECTED
        assert len(errors) == 1
        assert isinstance(errors[0], AuthenticationError)
        assert errors[0].code == 2002

    @pytest.mark.asyncio
    async def test_repeated_ack_keeps_state(self, connected, connector):
        await authenticate(connected, connector.ws)
        connector.ws.feed('{"op":"auth","err-code":0}')
        await wait_until(lambda: connected.frames_received == 2)
        assert connected.state is ConnectionState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_disconnect_resets_auth(self, connected, connector):
        await authenticate(connected, connector.ws)
        await connected.subscribe_accounts("usdt")

        await connected.disconnect()

        assert connected.is_authenticated is False
        assert connected.subscribed_topics == set()


class TestReader:
    @pytest.mark.asyncio
    async def test_server_ping_answered(self, connected, connector):
        messages = []
        connected.on_message(messages.append)

        connector.ws.feed('{"ping":123456}')
        await wait_until(lambda: '{"pong":123456}' in connector.ws.sent)
        await asyncio.sleep(0.01)

        assert connector.ws.sent.count('{"pong":123456}') == 1
        assert messages == []

    @pytest.mark.asyncio
    async def test_data_frames_in_order(self, connected, connector):
        channels = []
        connected.on_message(lambda frame: channels.append(frame.channel))

        connector.ws.feed('{"ch":"market.a.detail","tick":{}}')
        connector.ws.feed(gzip.compress(b'{"ch":"market.b.detail","tick":{}}'))
        connector.ws.feed('{"ch":"market.c.detail","tick":{}}')
        await wait_until(lambda: len(channels) == 3)

        assert channels == ["market.a.detail", "market.b.detail", "market.c.detail"]
        assert connected.frames_received == 3

    @pytest.mark.asyncio
    async def test_subscription_ack_not_forwarded(self, connected, connector):
        messages = []
        connected.on_message(messages.append)

        connector.ws.feed('{"id":"sub_1","status":"ok","subbed":"market.a.detail"}')
        await wait_until(lambda: connected.frames_received == 1)

        assert messages == []

    @pytest.mark.asyncio
    async def test_corrupt_frame_skipped(self, connected, connector):
        errors = []
        messages = []
        connected.on_error(errors.append)
        connected.on_message(messages.append)

        connector.ws.feed(b"\x1f\x8bgarbage")
        connector.ws.feed('{"ch":"market.btcusdt.detail","tick":{"close":1}}')
        await wait_until(lambda: len(messages) == 1)

        assert len(errors) == 1
        assert isinstance(errors[0], DecompressionError)
        assert messages[0].payload == {"close": 1}
        assert connected.state is ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_read_failure_tears_down(self, connected, connector):
        errors = []
        events = []
        connected.on_error(errors.append)
        connected.on_disconnected(lambda: events.append("disconnected"))
        await connected.subscribe_ticker("btcusdt")

        connector.ws.fail()
        await wait_until(lambda: events == ["disconnected"])

        assert connected.state is ConnectionState.DISCONNECTED
        assert connected.subscribed_topics == set()
        assert len(errors) == 1
        assert isinstance(errors[0], HotcoinConnectionError)
        assert connector.ws.closed

    @pytest.mark.asyncio
    async def test_server_close_reported(self, connected, connector):
        errors = []
        events = []
        connected.on_error(errors.append)
        connected.on_disconnected(lambda: events.append("disconnected"))

        connector.ws.fail(ConnectionClosedOK(None, None))
        await wait_until(lambda: events == ["disconnected"])

        assert connected.state is ConnectionState.DISCONNECTED
        assert len(errors) == 1
        assert isinstance(errors[0], HotcoinConnectionError)

    @pytest.mark.asyncio
    async def test_disconnect_while_reading(self, connected, connector):
        connector.ws.feed('{"ch":"market.a.detail"}')
        await connected.disconnect()
        assert connected.state is ConnectionState.DISCONNECTED


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_client_pings(self, connector):
        s = StreamSession(
            StreamConfig(url="wss://h.com/ws", enable_heartbeat=True, heartbeat_interval=0.01)
        )
        await s.connect()
        try:
            await wait_until(lambda: any('"ping"' in m for m in connector.ws.sent))
        finally:
            await s.disconnect()

    @pytest.mark.asyncio
    async def test_heartbeat_disabled(self, connected, connector):
        await asyncio.sleep(0.05)
        assert connector.ws.sent == []
