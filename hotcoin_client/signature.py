# =============================================================================
# HOTCOIN Python Client -- Request Signing
# =============================================================================
#
# HmacSHA256 / SignatureVersion 2 request signing for private REST calls and
# the streaming auth frame.
#
# Canonical string:
#   METHOD \n host \n path \n k1=v1&k2=v2...   (keys sorted, form-encoded)
# =============================================================================

from __future__ import annotations

import base64
import hashlib
import hmac
from collections.abc import Mapping
from dataclasses import replace
from datetime import UTC, datetime
from urllib.parse import quote_plus, urlsplit, urlunsplit

from .constants import (
    PARAM_ACCESS_KEY_ID,
    PARAM_SIGNATURE,
    PARAM_SIGNATURE_METHOD,
    PARAM_SIGNATURE_VERSION,
    PARAM_TIMESTAMP,
    SIGNATURE_METHOD,
    SIGNATURE_VERSION,
)
from .errors import InvalidURLError
from .types import SignedRequest


def format_timestamp(dt: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.sssZ`` in UTC, millisecond precision."""
    dt = dt.astimezone(UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def _encode(value: str) -> str:
    # Form encoding: unreserved kept, space -> '+', rest %XX.
    return quote_plus(value, safe="")


def canonical_query_string(params: Mapping[str, str]) -> str:
    """Sort keys by code point and join form-encoded ``key=value`` pairs."""
    return "&".join(
        f"{_encode(key)}={_encode(str(params[key]))}" for key in sorted(params)
    )


class SignatureEngine:
    """Computes HmacSHA256 signatures with a shared secret.

    Args:
        secret_key: API secret used as the HMAC key.
    """

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def build_sign_string(
        self,
        method: str,
        host: str,
        path: str,
        params: Mapping[str, str],
    ) -> str:
        return "\n".join(
            (method.upper(), host.lower(), path, canonical_query_string(params))
        )

    def sign(
        self,
        method: str,
        host: str,
        path: str,
        params: Mapping[str, str] | None = None,
        *,
        now: datetime | None = None,
    ) -> SignedRequest:
        """Sign a request.

        The caller's *params* are copied, never mutated. The returned
        ``query_params`` holds them plus ``SignatureMethod``,
        ``SignatureVersion`` and a fresh ``Timestamp``.

        Args:
            method: HTTP method, any case.
            host: Request host (port included when non-default).
            path: Request path.
            params: Query parameters to sign.
            now: Signing instant, defaults to the current UTC time.
        """
        query = {key: str(value) for key, value in (params or {}).items()}
        query[PARAM_SIGNATURE_METHOD] = SIGNATURE_METHOD
        query[PARAM_SIGNATURE_VERSION] = SIGNATURE_VERSION
        query[PARAM_TIMESTAMP] = format_timestamp(now or datetime.now(UTC))

        payload = self.build_sign_string(method, host, path, query)
        digest = hmac.new(
            self._secret_key,
            payload.encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return SignedRequest(
            method=method.upper(),
            host=host.lower(),
            path=path,
            query_params=query,
            signature=base64.b64encode(digest).decode("ascii"),
        )


class RequestAuthorizer:
    """Builds fully authenticated request URLs for private REST calls."""

    def __init__(self, engine: SignatureEngine) -> None:
        self._engine = engine

    def authorize(
        self,
        method: str,
        base_url: str,
        path: str,
        access_key: str,
        params: Mapping[str, str] | None = None,
    ) -> SignedRequest:
        """Sign *params* for ``base_url + path`` and add ``Signature``.

        Raises:
            InvalidURLError: If ``base_url + path`` is not an absolute URL.
        """
        parts = _split_url(base_url + path)
        query = dict(params or {})
        query[PARAM_ACCESS_KEY_ID] = access_key

        signed = self._engine.sign(method, _host_of(parts.netloc), parts.path, query)
        query_params = dict(signed.query_params)
        query_params[PARAM_SIGNATURE] = signed.signature
        return replace(signed, query_params=query_params)

    def build_auth_url(
        self,
        method: str,
        base_url: str,
        path: str,
        access_key: str,
        params: Mapping[str, str] | None = None,
    ) -> str:
        """Return ``base_url + path`` with the signed query appended.

        An existing query component is kept and the signed parameters are
        appended after it.
        """
        parts = _split_url(base_url + path)
        signed = self.authorize(method, base_url, path, access_key, params)

        query = canonical_query_string(signed.query_params)
        if parts.query:
            query = f"{parts.query}&{query}"
        return urlunsplit(
            (parts.scheme, parts.netloc, parts.path, query, parts.fragment)
        )


def _split_url(url: str):
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise InvalidURLError(f"Invalid URL {url!r}: {exc}") from exc
    if not parts.scheme or not parts.netloc:
        raise InvalidURLError(f"Invalid URL {url!r}: scheme and host required")
    return parts


def _host_of(netloc: str) -> str:
    # Drop userinfo, keep an explicit port.
    return netloc.rpartition("@")[2]
