"""HOTCOIN perpetual futures client: signed REST calls and a streaming session.

Async usage::

    from hotcoin_client import Credentials, connect

    async with connect(credentials=Credentials(key, secret)) as ws:
        ws.on_message(lambda frame: print(frame.channel, frame.payload))
        await ws.authenticate()
        await ws.subscribe_ticker("btcusdt")
        await asyncio.sleep(60)

Sync usage::

    from hotcoin_client import SyncStreamSession

    ws = SyncStreamSession()
    ws.on_message(print)
    ws.connect()
    ws.subscribe_kline("btcusdt", "1min")
    ws.close()

REST::

    async with HotcoinClient(key, secret) as client:
        balance = await client.rest.get_account_balance("USDT")
"""

from typing import Any

from ._version import __version__
from .client import HotcoinClient
from .errors import (
    AlreadyConnectedError,
    AlreadySubscribedError,
    APIError,
    AuthenticationError,
    AuthenticationRequiredError,
    ConfigurationError,
    DecompressionError,
    HandshakeTimeoutError,
    HotcoinConnectionError,
    HotcoinError,
    HotcoinProtocolError,
    InvalidURLError,
    MalformedFrameError,
    MissingCredentialsError,
    NotConnectedError,
    StateError,
)
from .rest import AsyncRestClient
from .session import StreamSession
from .signature import RequestAuthorizer, SignatureEngine
from .sync_session import SyncStreamSession
from .types import (
    ClientConfig,
    ConnectionState,
    Credentials,
    FrameKind,
    SignedRequest,
    StreamConfig,
    StreamFrame,
)


def connect(url: str | None = None, **kwargs: Any) -> StreamSession:
    """Create a stream session, ready for ``async with``.

    Keyword arguments are split between :class:`StreamConfig` fields
    (``enable_heartbeat``, ``heartbeat_interval``, ``handshake_timeout``,
    ``auth_path``, ``max_message_size``) and :class:`StreamSession`
    (``credentials``).

    Args:
        url: WebSocket endpoint; defaults to the production stream URL.
        **kwargs: Config fields or ``credentials``.

    Returns:
        An unconnected :class:`StreamSession`. Entering it connects.
    """
    credentials = kwargs.pop("credentials", None)
    config = StreamConfig(**kwargs)
    if url is not None:
        config.url = url
    return StreamSession(config, credentials=credentials)


__all__ = [
    "__version__",
    "connect",
    "HotcoinClient",
    "AsyncRestClient",
    "StreamSession",
    "SyncStreamSession",
    "SignatureEngine",
    "RequestAuthorizer",
    "ClientConfig",
    "StreamConfig",
    "Credentials",
    "SignedRequest",
    "StreamFrame",
    "FrameKind",
    "ConnectionState",
    "HotcoinError",
    "ConfigurationError",
    "MissingCredentialsError",
    "InvalidURLError",
    "HotcoinConnectionError",
    "HandshakeTimeoutError",
    "HotcoinProtocolError",
    "DecompressionError",
    "MalformedFrameError",
    "AuthenticationError",
    "StateError",
    "NotConnectedError",
    "AlreadyConnectedError",
    "AlreadySubscribedError",
    "AuthenticationRequiredError",
    "APIError",
]
