# =============================================================================
# HOTCOIN Python Client -- Stream Session
# =============================================================================
#
# WebSocket lifecycle: connect, auth, subscriptions, heartbeat, teardown.
#
#   DISCONNECTED -> CONNECTING -> CONNECTED -> AUTHENTICATED
#         ^______________|______________|______________|
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import urlsplit

from websockets.asyncio.client import ClientConnection
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from ._logging import logger
from .constants import PARAM_ACCESS_KEY_ID, WS_CLOSE_NORMAL
from .dispatcher import (
    ConnectionHandler,
    ErrorHandler,
    EventDispatcher,
    MessageHandler,
)
from .errors import (
    AlreadyConnectedError,
    AuthenticationRequiredError,
    HandshakeTimeoutError,
    HotcoinConnectionError,
    HotcoinError,
    HotcoinProtocolError,
    MissingCredentialsError,
    NotConnectedError,
)
from .heartbeat import HeartbeatScheduler
from .protocol import FrameDecoder
from .signature import SignatureEngine
from .subscriptions import (
    SubscriptionRegistry,
    accounts_topic,
    depth_topic,
    is_private_topic,
    kline_topic,
    orders_topic,
    positions_topic,
    ticker_topic,
    trade_topic,
)
from .types import ConnectionState, Credentials, StreamConfig


class StreamSession:
    """One authenticated, multiplexed stream connection.

    Owns the transport, the reader and heartbeat tasks, the subscription
    registry and the dispatcher. Connect and disconnect are exclusive;
    every other call may run concurrently with them and with the reader.

    Args:
        config: Stream settings (URL, heartbeat, timeouts).
        credentials: API key pair, required only for :meth:`authenticate`.

    Example::

        async with StreamSession(credentials=Credentials(key, secret)) as ws:
            ws.on_message(lambda frame: print(frame.channel, frame.payload))
            await ws.subscribe_kline("btcusdt", "1min")
            await asyncio.sleep(60)
    """

    def __init__(
        self,
        config: StreamConfig | None = None,
        *,
        credentials: Credentials | None = None,
    ) -> None:
        self._config = config or StreamConfig()
        self._credentials = credentials or Credentials()
        self._signer = SignatureEngine(self._credentials.secret_key)

        self._codec = FrameDecoder(max_message_size=self._config.max_message_size)
        self._registry = SubscriptionRegistry()
        self._dispatcher = EventDispatcher(
            answer_ping=self._answer_ping,
            on_auth_ack=self._mark_authenticated,
        )
        self._heartbeat = HeartbeatScheduler(
            self._send_text,
            self._codec,
            on_error=self._dispatcher.emit_error,
            interval=self._config.heartbeat_interval,
        )

        # Guarded by _lock
        self._lock = asyncio.Lock()
        self._ws: ClientConnection | None = None
        self._state = ConnectionState.DISCONNECTED

        # Per-connection tasks and signals
        self._reader_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._stop: asyncio.Event | None = None
        self._reader_done: asyncio.Event | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()

        self.frames_received = 0

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> StreamSession:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

    # -- Properties -----------------------------------------------------------

    @property
    def config(self) -> StreamConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state.at_least(ConnectionState.CONNECTED)

    @property
    def is_authenticated(self) -> bool:
        return self._state is ConnectionState.AUTHENTICATED

    @property
    def subscribed_topics(self) -> set[str]:
        return self._registry.topics()

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    # -- Handler registration -------------------------------------------------

    def on_connected(self, fn: ConnectionHandler) -> ConnectionHandler:
        return self._dispatcher.on_connected(fn)

    def on_disconnected(self, fn: ConnectionHandler) -> ConnectionHandler:
        return self._dispatcher.on_disconnected(fn)

    def on_error(self, fn: ErrorHandler) -> ErrorHandler:
        return self._dispatcher.on_error(fn)

    def on_message(self, fn: MessageHandler) -> MessageHandler:
        return self._dispatcher.on_message(fn)

    # -- Connect / Disconnect -------------------------------------------------

    async def connect(self) -> None:
        """Open the WebSocket and start the reader (and heartbeat) task.

        Raises:
            AlreadyConnectedError: If the session is not disconnected.
            HandshakeTimeoutError: If the handshake exceeds the timeout.
            HotcoinConnectionError: If the dial or handshake fails.
        """
        async with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                raise AlreadyConnectedError(
                    f"Cannot connect while {self._state.value}"
                )
            self._set_state(ConnectionState.CONNECTING)

            timeout = self._config.handshake_timeout
            try:
                ws = await asyncio.wait_for(
                    ws_connect(
                        self._config.url,
                        max_size=self._config.max_message_size,
                        open_timeout=None,  # asyncio.wait_for handles timeout
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                self._set_state(ConnectionState.DISCONNECTED)
                raise HandshakeTimeoutError(
                    f"WebSocket handshake timed out after {timeout}s"
                )
            except asyncio.CancelledError:
                self._set_state(ConnectionState.DISCONNECTED)
                raise
            except Exception as exc:
                self._set_state(ConnectionState.DISCONNECTED)
                raise HotcoinConnectionError(
                    f"websocket dial failed: {exc}"
                ) from exc

            self._ws = ws
            self._stop = asyncio.Event()
            self._reader_done = asyncio.Event()
            self._set_state(ConnectionState.CONNECTED)

            self._reader_task = asyncio.create_task(self._read_loop(ws, self._stop))
            # Completion signal fires even if the task is cancelled before it runs
            done = self._reader_done
            self._reader_task.add_done_callback(lambda _task: done.set())

            if self._config.enable_heartbeat:
                self._heartbeat_task = asyncio.create_task(self._heartbeat.run())

        logger.info("Connected to %s", self._config.url)
        self._dispatcher.emit_connected()

    async def disconnect(self) -> None:
        """Stop the tasks, close the transport and clear subscriptions.

        No-op when already disconnected.
        """
        async with self._lock:
            if self._state is ConnectionState.DISCONNECTED:
                return
            await self._teardown()

        logger.info("Disconnected from %s", self._config.url)
        self._dispatcher.emit_disconnected()

    async def close(self) -> None:
        """Alias for disconnect."""
        await self.disconnect()

    async def _teardown(self) -> None:
        """Tear down the live connection. Caller holds ``_lock``."""
        if self._stop is not None:
            self._stop.set()

        tasks: list[asyncio.Task[Any]] = []
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            tasks.append(self._heartbeat_task)
        if self._reader_task is not None:
            self._reader_task.cancel()
            tasks.append(self._reader_task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._reader_done is not None:
            await self._reader_done.wait()

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                await ws.close(WS_CLOSE_NORMAL, "Client disconnect")
            except Exception as exc:
                logger.debug("Close failed: %s", exc)

        self._reader_task = None
        self._heartbeat_task = None
        self._stop = None
        self._reader_done = None
        self._registry.clear()
        self._set_state(ConnectionState.DISCONNECTED)

    # -- Authentication -------------------------------------------------------

    async def authenticate(self) -> None:
        """Send the signed auth frame.

        Returns once the frame is written; the session becomes
        ``AUTHENTICATED`` when the acknowledgment arrives.

        Raises:
            NotConnectedError: If the session is not connected.
            MissingCredentialsError: If access or secret key is missing.
        """
        if not self.is_connected:
            raise NotConnectedError("not connected")
        if not self._credentials.is_complete:
            raise MissingCredentialsError(
                "api key and secret key are required for auth"
            )

        host = urlsplit(self._config.url).netloc.rpartition("@")[2]
        signed = self._signer.sign(
            "GET",
            host,
            self._config.auth_path,
            {PARAM_ACCESS_KEY_ID: self._credentials.access_key},
        )
        await self._send_text(self._codec.encode_auth(signed))
        logger.debug("Auth request sent")

    def _mark_authenticated(self) -> None:
        if self._state is not ConnectionState.CONNECTED:
            logger.warning("Ignoring auth ack while %s", self._state.value)
            return
        self._set_state(ConnectionState.AUTHENTICATED)
        logger.info("WebSocket authentication successful")

    # -- Subscriptions --------------------------------------------------------

    async def subscribe(self, topic: str) -> None:
        """Subscribe to *topic*.

        Raises:
            NotConnectedError: If the session is not connected.
            AuthenticationRequiredError: For a private topic before auth.
            AlreadySubscribedError: If *topic* is already active.
        """
        if not self.is_connected:
            raise NotConnectedError("not connected")
        if is_private_topic(topic) and not self.is_authenticated:
            raise AuthenticationRequiredError(f"authentication required for {topic}")

        self._registry.add(topic)
        try:
            await self._send_text(self._codec.encode_subscribe(topic))
        except HotcoinError:
            self._registry.discard(topic)
            raise

    async def unsubscribe(self, topic: str) -> None:
        """Unsubscribe from *topic*. Removing an inactive topic is allowed.

        Raises:
            NotConnectedError: If the session is not connected.
        """
        if not self.is_connected:
            raise NotConnectedError("not connected")
        self._registry.discard(topic)
        await self._send_text(self._codec.encode_unsubscribe(topic))

    async def subscribe_kline(self, symbol: str, period: str) -> None:
        await self.subscribe(kline_topic(symbol, period))

    async def subscribe_depth(self, symbol: str, depth_type: str) -> None:
        await self.subscribe(depth_topic(symbol, depth_type))

    async def subscribe_trade(self, symbol: str) -> None:
        await self.subscribe(trade_topic(symbol))

    async def subscribe_ticker(self, symbol: str) -> None:
        await self.subscribe(ticker_topic(symbol))

    async def subscribe_orders(self, symbol: str) -> None:
        self._require_authenticated()
        await self.subscribe(orders_topic(symbol))

    async def subscribe_positions(self, symbol: str) -> None:
        self._require_authenticated()
        await self.subscribe(positions_topic(symbol))

    async def subscribe_accounts(self, symbol: str) -> None:
        self._require_authenticated()
        await self.subscribe(accounts_topic(symbol))

    def _require_authenticated(self) -> None:
        if not self.is_authenticated:
            raise AuthenticationRequiredError("authentication required")

    # -- Send -----------------------------------------------------------------

    async def send(self, message: dict[str, Any]) -> None:
        """Encode *message* as JSON and write it as a text frame."""
        await self._send_text(self._codec.encode(message))

    async def _send_text(self, data: str) -> None:
        async with self._lock:
            ws = self._ws
            if ws is None or not self.is_connected:
                raise NotConnectedError("connection not available")
            try:
                await ws.send(data)
            except ConnectionClosed as exc:
                raise HotcoinConnectionError(f"send failed: {exc}") from exc

    async def _answer_ping(self, ping: int) -> None:
        await self._heartbeat.answer(ping)

    # -- Internal: reader -----------------------------------------------------

    async def _read_loop(self, ws: ClientConnection, stop: asyncio.Event) -> None:
        """Read frames in arrival order until stopped or the transport fails."""
        try:
            while not stop.is_set():
                try:
                    message = await ws.recv()
                except ConnectionClosed as exc:
                    self._dispatcher.emit_error(
                        HotcoinConnectionError(f"read message failed: {exc}")
                    )
                    self._schedule_teardown(ws)
                    return

                if stop.is_set():
                    return

                try:
                    frame = self._codec.decode(message)
                except HotcoinProtocolError as exc:
                    logger.warning("Dropping undecodable frame: %s", exc)
                    self._dispatcher.emit_error(exc)
                    continue

                self.frames_received += 1
                await self._dispatcher.dispatch(frame)
        except asyncio.CancelledError:
            return
        except Exception as exc:
            logger.warning("Receive loop error: %s", exc)
            self._dispatcher.emit_error(
                HotcoinConnectionError(f"read message failed: {exc}")
            )
            self._schedule_teardown(ws)

    def _schedule_teardown(self, ws: ClientConnection) -> None:
        task = asyncio.ensure_future(self._teardown_after_read_failure(ws))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _teardown_after_read_failure(self, ws: ClientConnection) -> None:
        async with self._lock:
            if self._ws is not ws:
                return  # already torn down by disconnect()
            await self._teardown()
        logger.info("Session ended after transport failure")
        self._dispatcher.emit_disconnected()

    # -- State management -----------------------------------------------------

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        old = self._state
        self._state = new_state
        logger.debug("State: %s -> %s", old.value, new_state.value)
