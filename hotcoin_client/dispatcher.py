# =============================================================================
# HOTCOIN Python Client -- Event Dispatcher
# =============================================================================
#
# Single entry point for decoded frames. Priority, first match wins:
#   1. ping       -> pong, not forwarded
#   2. op=auth    -> authenticated / error callback, not forwarded
#   3. subbed     -> log, not forwarded
#   4. unsubbed   -> log, not forwarded
#   5. otherwise  -> message callback
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from ._logging import logger
from .errors import AuthenticationError, HotcoinError
from .types import FrameKind, StreamFrame

MessageHandler = Callable[[StreamFrame], Any]
ErrorHandler = Callable[[Exception], Any]
ConnectionHandler = Callable[[], Any]


def classify(frame: StreamFrame) -> FrameKind:
    """Return how *frame* is handled, per the dispatch priority order."""
    if frame.ping is not None:
        return FrameKind.PING
    if frame.op == "auth":
        return FrameKind.AUTH
    if frame.subbed:
        return FrameKind.SUBBED
    if frame.unsubbed:
        return FrameKind.UNSUBBED
    return FrameKind.DATA


class EventDispatcher:
    """Holds user callbacks and routes decoded frames to them.

    Handlers may be plain functions or coroutine functions. Coroutines are
    scheduled as tasks. A handler that raises is logged and never breaks
    the reader.

    Args:
        answer_ping: Coroutine sending ``{"pong": n}`` for a server ping.
        on_auth_ack: Called on a successful auth acknowledgment.
    """

    def __init__(
        self,
        answer_ping: Callable[[int], Awaitable[Any]],
        on_auth_ack: Callable[[], Any],
    ) -> None:
        self._answer_ping = answer_ping
        self._on_auth_ack = on_auth_ack

        self._connected_handlers: list[ConnectionHandler] = []
        self._disconnected_handlers: list[ConnectionHandler] = []
        self._error_handlers: list[ErrorHandler] = []
        self._message_handlers: list[MessageHandler] = []

        self._background_tasks: set[asyncio.Task[Any]] = set()

    # -- Registration ---------------------------------------------------------

    def on_connected(self, fn: ConnectionHandler) -> ConnectionHandler:
        self._connected_handlers.append(fn)
        return fn

    def on_disconnected(self, fn: ConnectionHandler) -> ConnectionHandler:
        self._disconnected_handlers.append(fn)
        return fn

    def on_error(self, fn: ErrorHandler) -> ErrorHandler:
        self._error_handlers.append(fn)
        return fn

    def on_message(self, fn: MessageHandler) -> MessageHandler:
        self._message_handlers.append(fn)
        return fn

    def off(self, fn: Callable[..., Any]) -> None:
        """Remove *fn* from every handler list it appears in."""
        for handlers in (
            self._connected_handlers,
            self._disconnected_handlers,
            self._error_handlers,
            self._message_handlers,
        ):
            while fn in handlers:
                handlers.remove(fn)

    # -- Dispatch -------------------------------------------------------------

    async def dispatch(self, frame: StreamFrame) -> FrameKind:
        """Handle one decoded frame exactly once."""
        kind = classify(frame)

        if kind is FrameKind.PING:
            try:
                await self._answer_ping(frame.ping)
            except HotcoinError as exc:
                self.emit_error(exc)
        elif kind is FrameKind.AUTH:
            self._handle_auth(frame)
        elif kind is FrameKind.SUBBED:
            logger.info("Subscribed to: %s", frame.subbed)
        elif kind is FrameKind.UNSUBBED:
            logger.info("Unsubscribed from: %s", frame.unsubbed)
        else:
            self._invoke(self._message_handlers, frame)

        return kind

    def _handle_auth(self, frame: StreamFrame) -> None:
        code = frame.err_code or 0
        if code == 0:
            self._on_auth_ack()
            return
        message = frame.err_msg or "unknown error"
        logger.error("Authentication failed (code %d): %s", code, message)
        self.emit_error(
            AuthenticationError(f"authentication failed: {message}", code=code)
        )

    # -- Lifecycle events -----------------------------------------------------

    def emit_connected(self) -> None:
        self._invoke(self._connected_handlers)

    def emit_disconnected(self) -> None:
        self._invoke(self._disconnected_handlers)

    def emit_error(self, exc: Exception) -> None:
        if not self._error_handlers:
            logger.warning("Unhandled stream error: %s", exc)
            return
        self._invoke(self._error_handlers, exc)

    # -- Internal -------------------------------------------------------------

    def _invoke(self, handlers: list[Callable[..., Any]], *args: Any) -> None:
        for handler in list(handlers):
            try:
                result = handler(*args)
                if asyncio.iscoroutine(result):
                    self._fire_task(result)
            except Exception as exc:
                logger.error("Handler %r failed: %s", handler, exc)

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async handler failed: %s", task.exception())

    async def drain(self) -> None:
        """Wait for scheduled async handlers to finish."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
