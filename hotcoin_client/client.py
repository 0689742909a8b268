# =============================================================================
# HOTCOIN Python Client -- Client Facade
# =============================================================================

from __future__ import annotations

from dataclasses import replace
from typing import Any

import httpx

from ._logging import enable_debug
from .rest import AsyncRestClient
from .session import StreamSession
from .signature import RequestAuthorizer, SignatureEngine
from .types import ClientConfig


class HotcoinClient:
    """REST and streaming access sharing one configuration.

    Args:
        api_key: Access key id.
        secret_key: Signing secret.
        config: Full configuration; *api_key* / *secret_key* override it
            when given. The caller's config is copied, never modified.
        transport: Optional httpx transport for the REST client.

    Example::

        async with HotcoinClient(key, secret) as client:
            contracts = await client.rest.get_contracts()
            await client.websocket.connect()
            await client.websocket.authenticate()
    """

    def __init__(
        self,
        api_key: str = "",
        secret_key: str = "",
        *,
        config: ClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        config = replace(config) if config is not None else ClientConfig()
        if api_key:
            config.api_key = api_key
        if secret_key:
            config.secret_key = secret_key
        self._config = config
        if config.debug:
            enable_debug()

        self.signature = SignatureEngine(config.secret_key)
        self.authorizer = RequestAuthorizer(self.signature)
        self.rest = AsyncRestClient(
            config, authorizer=self.authorizer, transport=transport
        )
        self.websocket = StreamSession(config.stream, credentials=config.credentials)

    @property
    def config(self) -> ClientConfig:
        return self._config

    def set_debug(self, debug: bool) -> None:
        self._config.debug = debug
        if debug:
            enable_debug()

    async def __aenter__(self) -> HotcoinClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Disconnect the stream and close the HTTP pool."""
        try:
            await self.websocket.disconnect()
        finally:
            await self.rest.aclose()
