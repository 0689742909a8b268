# =============================================================================
# HOTCOIN Python Client -- Synchronous Wrapper
# =============================================================================
#
# Thread-based wrapper around StreamSession for blocking usage.
# =============================================================================

from __future__ import annotations

import asyncio
import threading
from typing import Any, Coroutine, TypeVar

from ._logging import logger
from .dispatcher import ConnectionHandler, ErrorHandler, MessageHandler
from .errors import HandshakeTimeoutError, NotConnectedError
from .session import StreamSession
from .types import ConnectionState, Credentials, StreamConfig

T = TypeVar("T")


class SyncStreamSession:
    """Blocking / thread-based stream session.

    Runs a :class:`StreamSession` on a private event loop in a daemon
    thread. Public methods block until the underlying coroutine finishes
    and re-raise its exceptions in the calling thread. Handlers run on the
    loop thread.

    Args:
        config: Stream settings.
        credentials: API key pair for :meth:`authenticate`.
        call_timeout: Seconds to wait for each blocking call.

    Example::

        ws = SyncStreamSession(credentials=Credentials(key, secret))

        @ws.on_message
        def handle(frame):
            print(frame.channel, frame.payload)

        ws.connect()
        ws.subscribe_ticker("btcusdt")
        ...
        ws.close()
    """

    def __init__(
        self,
        config: StreamConfig | None = None,
        *,
        credentials: Credentials | None = None,
        call_timeout: float = 15.0,
    ) -> None:
        self._session = StreamSession(config, credentials=credentials)
        self._call_timeout = call_timeout

        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._loop_ready = threading.Event()

    # -- Lifecycle ------------------------------------------------------------

    def connect(self, timeout: float | None = None) -> None:
        """Start the loop thread (once) and connect. Blocks until connected."""
        self._ensure_loop()
        try:
            self._call(self._session.connect(), timeout)
        except TimeoutError as exc:
            raise HandshakeTimeoutError("connect() timed out") from exc

    def disconnect(self) -> None:
        """Disconnect. The loop thread keeps running for a later connect()."""
        if self._loop is None:
            return
        self._call(self._session.disconnect())

    def close(self) -> None:
        """Disconnect and stop the background thread."""
        if self._loop is None:
            return
        try:
            self._call(self._session.disconnect())
        finally:
            self._stop_loop()

    # -- Session operations ---------------------------------------------------

    def authenticate(self) -> None:
        self._call(self._session.authenticate())

    def subscribe(self, topic: str) -> None:
        self._call(self._session.subscribe(topic))

    def unsubscribe(self, topic: str) -> None:
        self._call(self._session.unsubscribe(topic))

    def subscribe_kline(self, symbol: str, period: str) -> None:
        self._call(self._session.subscribe_kline(symbol, period))

    def subscribe_depth(self, symbol: str, depth_type: str) -> None:
        self._call(self._session.subscribe_depth(symbol, depth_type))

    def subscribe_trade(self, symbol: str) -> None:
        self._call(self._session.subscribe_trade(symbol))

    def subscribe_ticker(self, symbol: str) -> None:
        self._call(self._session.subscribe_ticker(symbol))

    def subscribe_orders(self, symbol: str) -> None:
        self._call(self._session.subscribe_orders(symbol))

    def subscribe_positions(self, symbol: str) -> None:
        self._call(self._session.subscribe_positions(symbol))

    def subscribe_accounts(self, symbol: str) -> None:
        self._call(self._session.subscribe_accounts(symbol))

    def send(self, message: dict[str, Any]) -> None:
        self._call(self._session.send(message))

    # -- Handler registration -------------------------------------------------

    def on_connected(self, fn: ConnectionHandler) -> ConnectionHandler:
        return self._session.on_connected(fn)

    def on_disconnected(self, fn: ConnectionHandler) -> ConnectionHandler:
        return self._session.on_disconnected(fn)

    def on_error(self, fn: ErrorHandler) -> ErrorHandler:
        return self._session.on_error(fn)

    def on_message(self, fn: MessageHandler) -> MessageHandler:
        return self._session.on_message(fn)

    # -- Properties -----------------------------------------------------------

    @property
    def session(self) -> StreamSession:
        return self._session

    @property
    def state(self) -> ConnectionState:
        return self._session.state

    @property
    def is_connected(self) -> bool:
        return self._session.is_connected

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    @property
    def subscribed_topics(self) -> set[str]:
        return self._session.subscribed_topics

    # -- Internal -------------------------------------------------------------

    def _call(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        loop = self._loop
        if loop is None:
            coro.close()
            raise NotConnectedError("session loop is not running; call connect()")
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return future.result(timeout=timeout or self._call_timeout)
        except TimeoutError:
            future.cancel()
            raise

    def _ensure_loop(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._loop_ready.clear()
        self._thread = threading.Thread(
            target=self._run_loop, daemon=True, name="hotcoin-stream"
        )
        self._thread.start()
        self._loop_ready.wait()

    def _run_loop(self) -> None:
        """Background thread: run the event loop until stopped."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._loop_ready.set()
        try:
            loop.run_forever()
        except Exception as exc:
            logger.error("Background loop error: %s", exc)
        finally:
            loop.close()

    def _stop_loop(self) -> None:
        loop = self._loop
        self._loop = None
        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        self._thread = None
