# =============================================================================
# HOTCOIN Python Client -- Heartbeat
# =============================================================================
#
# Server ping  {"ping": n}  -> answered at once with {"pong": n}.
# Client ping  {"ping": now_ms} every `interval` seconds when enabled.
# =============================================================================

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from ._logging import logger
from .constants import HEARTBEAT_INTERVAL
from .errors import HotcoinConnectionError, HotcoinError
from .protocol import FrameDecoder


class HeartbeatScheduler:
    """Answers server pings and drives the optional client ping timer.

    Args:
        send: Coroutine that writes one encoded frame to the transport.
        codec: Frame encoder.
        on_error: Called once with the failure when a client ping cannot
            be sent.
        interval: Seconds between client pings.
    """

    def __init__(
        self,
        send: Callable[[str], Awaitable[Any]],
        codec: FrameDecoder,
        on_error: Callable[[Exception], Any],
        interval: float = HEARTBEAT_INTERVAL,
    ) -> None:
        self._send = send
        self._codec = codec
        self._on_error = on_error
        self._interval = interval
        self.pings_sent = 0

    @property
    def interval(self) -> float:
        return self._interval

    async def answer(self, ping: int) -> None:
        """Reply to a server ping with the same value."""
        await self._send(self._codec.encode_pong(ping))

    async def run(self) -> None:
        """Send a client ping every interval until cancelled or a send fails."""
        while True:
            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                return

            try:
                await self._send(self._codec.encode_ping(int(time.time() * 1000)))
            except asyncio.CancelledError:
                return
            except HotcoinError as exc:
                logger.debug("PING send failed: %s", exc)
                self._on_error(HotcoinConnectionError(f"send ping failed: {exc}"))
                return
            self.pings_sent += 1
