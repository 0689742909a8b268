# =============================================================================
# HOTCOIN Python Client -- REST Transport
# =============================================================================
#
# Thin httpx wrapper. Private calls are signed into the query string by
# RequestAuthorizer; every response uses the {"code","msg","data"} envelope.
# =============================================================================

from __future__ import annotations

from typing import Any, Mapping

import httpx
import orjson

from ._logging import enable_debug, logger
from .constants import REST_OK_CODE, USER_AGENT
from .errors import (
    APIError,
    HotcoinConnectionError,
    HotcoinProtocolError,
    InvalidURLError,
    MissingCredentialsError,
)
from .signature import RequestAuthorizer, SignatureEngine, canonical_query_string
from .types import ClientConfig


class AsyncRestClient:
    """Async REST client for public and signed endpoints.

    Args:
        config: Client configuration (keys, base URL, timeout, debug).
        authorizer: Signer for private calls, built from the secret key
            if omitted.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        authorizer: RequestAuthorizer | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._authorizer = authorizer or RequestAuthorizer(
            SignatureEngine(self._config.secret_key)
        )
        self._http = httpx.AsyncClient(
            timeout=self._config.timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
        )
        if self._config.debug:
            enable_debug()

    async def __aenter__(self) -> AsyncRestClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # -- Requests -------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        params: Mapping[str, str] | None = None,
        body: Any = None,
        *,
        auth: bool = False,
    ) -> Any:
        """Send one request and return the envelope's ``data``.

        Raises:
            MissingCredentialsError: ``auth=True`` without both keys.
            InvalidURLError: Base URL or path is not a valid URL.
            HotcoinConnectionError: Transport failure.
            HotcoinProtocolError: Body is not a JSON envelope.
            APIError: Envelope ``code`` is not 200.
        """
        method = method.upper()
        url = self._build_url(method, path, params, auth)
        content = orjson.dumps(body) if body is not None else None

        logger.debug("Request: %s %s", method, path)
        try:
            response = await self._http.request(method, url, content=content)
        except httpx.InvalidURL as exc:
            raise InvalidURLError(f"Invalid URL for {path!r}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise HotcoinConnectionError(f"send request: {exc}") from exc

        logger.debug("Response status: %d", response.status_code)
        if self._config.debug:
            logger.debug("Response body: %s", response.text)

        try:
            envelope = orjson.loads(response.content)
        except orjson.JSONDecodeError as exc:
            raise HotcoinProtocolError(
                f"unmarshal response (HTTP {response.status_code}): {exc}"
            ) from exc
        if not isinstance(envelope, dict):
            raise HotcoinProtocolError("response is not a JSON object")

        code = envelope.get("code")
        if code != REST_OK_CODE:
            raise APIError(code, envelope.get("msg") or "")
        return envelope.get("data")

    async def get(
        self, path: str, params: Mapping[str, str] | None = None, *, auth: bool = False
    ) -> Any:
        return await self.request("GET", path, params, auth=auth)

    async def post(self, path: str, body: Any = None, *, auth: bool = False) -> Any:
        return await self.request("POST", path, body=body, auth=auth)

    async def delete(
        self, path: str, params: Mapping[str, str] | None = None, *, auth: bool = False
    ) -> Any:
        return await self.request("DELETE", path, params, auth=auth)

    def _build_url(
        self,
        method: str,
        path: str,
        params: Mapping[str, str] | None,
        auth: bool,
    ) -> str:
        if auth:
            creds = self._config.credentials
            if not creds.is_complete:
                raise MissingCredentialsError(
                    "api key and secret key are required for private endpoints"
                )
            return self._authorizer.build_auth_url(
                method, self._config.base_url, path, creds.access_key, params
            )

        url = self._config.base_url + path
        if params:
            sep = "&" if "?" in url else "?"
            url = f"{url}{sep}{canonical_query_string(params)}"
        return url

    # -- Endpoints ------------------------------------------------------------

    async def get_contracts(self, symbol: str = "") -> Any:
        """List perpetual contracts, optionally for one symbol."""
        params = {"symbol": symbol} if symbol else None
        return await self.get("/api/v1/perpetual/public", params)

    async def get_account_info(self, symbol: str = "") -> Any:
        """Account info for a margin currency, e.g. ``"USDT"``."""
        params = {"symbol": symbol} if symbol else None
        data = await self.get("/api/v1/perpetual/account/info", params, auth=True)
        return _unwrap_status(data)

    async def get_account_balance(self, symbol: str = "") -> Any:
        params = {"symbol": symbol} if symbol else None
        data = await self.get("/api/v1/perpetual/account/balance", params, auth=True)
        return _unwrap_status(data)


def _unwrap_status(data: Any) -> Any:
    # Account endpoints nest {"status":"ok","data":...,"ts":...} inside data
    if isinstance(data, dict) and "status" in data:
        if data["status"] != "ok":
            raise APIError(REST_OK_CODE, f"API error: status={data['status']}")
        return data.get("data")
    return data
