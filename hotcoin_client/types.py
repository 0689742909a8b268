# =============================================================================
# HOTCOIN Python Client -- Type Definitions
# =============================================================================

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import (
    DEFAULT_BASE_URL,
    DEFAULT_WS_URL,
    HANDSHAKE_TIMEOUT,
    HEARTBEAT_INTERVAL,
    MAX_MESSAGE_SIZE,
    REST_TIMEOUT,
    WS_AUTH_PATH,
)


class ConnectionState(str, Enum):
    """Stream session lifecycle state.

    Flow: DISCONNECTED -> CONNECTING -> CONNECTED -> AUTHENTICATED.
    DISCONNECTED is reachable from every state.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"

    def at_least(self, other: ConnectionState) -> bool:
        return _STATE_RANK[self] >= _STATE_RANK[other]


_STATE_RANK = {
    ConnectionState.DISCONNECTED: 0,
    ConnectionState.CONNECTING: 1,
    ConnectionState.CONNECTED: 2,
    ConnectionState.AUTHENTICATED: 3,
}


class FrameKind(str, Enum):
    """How the dispatcher treats a decoded frame, in priority order."""

    PING = "ping"
    AUTH = "auth"
    SUBBED = "subbed"
    UNSUBBED = "unsubbed"
    DATA = "data"


@dataclass(frozen=True, slots=True)
class Credentials:
    """API key pair. Kept in memory only."""

    access_key: str = ""
    secret_key: str = field(default="", repr=False)

    @property
    def is_complete(self) -> bool:
        return bool(self.access_key) and bool(self.secret_key)


@dataclass(frozen=True, slots=True)
class SignedRequest:
    """Result of signing one outbound request.

    Attributes:
        method: Upper-case HTTP method that was signed.
        host: Lower-case host that was signed.
        path: Request path that was signed.
        query_params: Caller params plus the fixed signing entries.
        signature: Base64 HMAC-SHA256 over the canonical string.
    """

    method: str
    host: str
    path: str
    query_params: dict[str, str]
    signature: str


@dataclass(frozen=True, slots=True)
class StreamFrame:
    """Decoded inbound stream message.

    Every field is optional. Control frames carry ``ping``, ``op``,
    ``subbed`` or ``unsubbed``; data frames carry ``ch`` plus ``tick`` or
    ``data``.
    """

    id: str | None = None
    status: str | None = None
    subbed: str | None = None
    unsubbed: str | None = None
    ping: int | None = None
    pong: int | None = None
    rep: str | None = None
    ch: str | None = None
    ts: int | None = None
    tick: Any = None
    data: Any = None
    op: str | None = None
    err_code: int | None = None
    err_msg: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def channel(self) -> str | None:
        return self.ch

    @property
    def payload(self) -> Any:
        return self.tick if self.tick is not None else self.data


@dataclass
class StreamConfig:
    """Configuration for a :class:`~hotcoin_client.session.StreamSession`.

    Attributes:
        url: WebSocket endpoint.
        enable_heartbeat: Send client-initiated pings on a timer.
        heartbeat_interval: Seconds between client pings.
        handshake_timeout: Upper bound for the WebSocket handshake.
        auth_path: Path signed into the streaming auth frame.
        max_message_size: Largest accepted frame after decompression.
    """

    url: str = DEFAULT_WS_URL
    enable_heartbeat: bool = True
    heartbeat_interval: float = HEARTBEAT_INTERVAL
    handshake_timeout: float = HANDSHAKE_TIMEOUT
    auth_path: str = WS_AUTH_PATH
    max_message_size: int = MAX_MESSAGE_SIZE


@dataclass
class ClientConfig:
    """Top-level client configuration.

    Attributes:
        api_key: Access key id (empty for public-only use).
        secret_key: Signing secret.
        base_url: REST endpoint root.
        timeout: REST request timeout in seconds.
        debug: Log request/response detail at DEBUG.
        stream: Streaming session settings.
    """

    api_key: str = ""
    secret_key: str = field(default="", repr=False)
    base_url: str = DEFAULT_BASE_URL
    timeout: float = REST_TIMEOUT
    debug: bool = False
    stream: StreamConfig = field(default_factory=StreamConfig)

    @property
    def credentials(self) -> Credentials:
        return Credentials(self.api_key, self.secret_key)

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientConfig:
        """Build a config from ``HOTCOIN_*`` environment variables."""
        stream = StreamConfig(url=os.environ.get("HOTCOIN_WS_URL", DEFAULT_WS_URL))
        values: dict[str, Any] = {
            "api_key": os.environ.get("HOTCOIN_API_KEY", ""),
            "secret_key": os.environ.get("HOTCOIN_SECRET_KEY", ""),
            "base_url": os.environ.get("HOTCOIN_BASE_URL", DEFAULT_BASE_URL),
            "stream": stream,
        }
        values.update(overrides)
        return cls(**values)
