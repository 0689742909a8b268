# =============================================================================
# HOTCOIN Python Client -- Wire Protocol Codec
# =============================================================================
#
# Incoming (server -> client):
#   Binary: gzip-compressed JSON (magic 1f 8b), or plain JSON bytes
#   Text:   plain JSON
#
# Outgoing (client -> server), always JSON text:
#   {"op":"auth","type":"api","AccessKeyId":..,"Signature":..,...}
#   {"sub":"<topic>","id":"<id>"}   {"unsub":"<topic>","id":"<id>"}
#   {"ping":<ms>}                   {"pong":<ms>}
# =============================================================================

from __future__ import annotations

import threading
import time
from typing import Any

import orjson

from .compression import CompressionHandler
from .constants import (
    MAX_MESSAGE_SIZE,
    PARAM_ACCESS_KEY_ID,
    PARAM_SIGNATURE,
    PARAM_SIGNATURE_METHOD,
    PARAM_SIGNATURE_VERSION,
    PARAM_TIMESTAMP,
)
from .errors import MalformedFrameError
from .types import SignedRequest, StreamFrame

# wire key -> StreamFrame attribute
_STR_FIELDS = {
    "id": "id",
    "status": "status",
    "subbed": "subbed",
    "unsubbed": "unsubbed",
    "rep": "rep",
    "ch": "ch",
    "op": "op",
    "err-msg": "err_msg",
}
_INT_FIELDS = {
    "ping": "ping",
    "pong": "pong",
    "ts": "ts",
    "err-code": "err_code",
}


class FrameDecoder:
    """Decode inbound frames and encode outbound control frames.

    Args:
        compression: Gzip handler, created with *max_message_size* if omitted.
        max_message_size: Largest accepted frame after decompression.
    """

    def __init__(
        self,
        compression: CompressionHandler | None = None,
        max_message_size: int = MAX_MESSAGE_SIZE,
    ) -> None:
        self._compression = compression or CompressionHandler(max_message_size)
        self._max_message_size = max_message_size
        self._id_lock = threading.Lock()
        self._last_id = 0

    # -- Decoding --------------------------------------------------------------

    def decode(self, data: str | bytes) -> StreamFrame:
        """Decode one inbound message into a :class:`StreamFrame`.

        Raises:
            DecompressionError: Gzip framing present but corrupt.
            MalformedFrameError: Not a JSON object, or a known field has the
                wrong type.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        elif self._compression.is_compressed(data):
            data = self._compression.decompress(data)

        if len(data) > self._max_message_size:
            raise MalformedFrameError(
                f"Frame exceeds max size ({len(data)} bytes)"
            )

        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError as exc:
            raise MalformedFrameError(f"Invalid JSON: {exc}") from exc

        if not isinstance(parsed, dict):
            raise MalformedFrameError(
                f"Expected JSON object, got {type(parsed).__name__}"
            )
        return self._parsed_to_frame(parsed)

    def _parsed_to_frame(self, parsed: dict[str, Any]) -> StreamFrame:
        values: dict[str, Any] = {}

        for key, attr in _STR_FIELDS.items():
            value = parsed.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                raise MalformedFrameError(f"Field {key!r} must be a string")
            values[attr] = value

        for key, attr in _INT_FIELDS.items():
            value = parsed.get(key)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise MalformedFrameError(f"Field {key!r} must be an integer")
            values[attr] = value

        return StreamFrame(
            tick=parsed.get("tick"),
            data=parsed.get("data"),
            raw=parsed,
            **values,
        )

    # -- Encoding --------------------------------------------------------------

    @staticmethod
    def encode(message: dict[str, Any]) -> str:
        return orjson.dumps(message).decode()

    def encode_subscribe(self, topic: str) -> str:
        return self.encode({"sub": topic, "id": self.next_request_id("sub")})

    def encode_unsubscribe(self, topic: str) -> str:
        return self.encode({"unsub": topic, "id": self.next_request_id("unsub")})

    def encode_ping(self, timestamp_ms: int | None = None) -> str:
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        return self.encode({"ping": timestamp_ms})

    def encode_pong(self, value: int) -> str:
        return self.encode({"pong": value})

    def encode_auth(self, signed: SignedRequest) -> str:
        """Build the auth control frame from a signed ``AccessKeyId`` request."""
        params = signed.query_params
        return self.encode(
            {
                "op": "auth",
                "type": "api",
                PARAM_ACCESS_KEY_ID: params[PARAM_ACCESS_KEY_ID],
                PARAM_SIGNATURE_METHOD: params[PARAM_SIGNATURE_METHOD],
                PARAM_SIGNATURE_VERSION: params[PARAM_SIGNATURE_VERSION],
                PARAM_TIMESTAMP: params[PARAM_TIMESTAMP],
                PARAM_SIGNATURE: signed.signature,
            }
        )

    def next_request_id(self, prefix: str) -> str:
        """Return ``"<prefix>_<ns>"``, strictly increasing per decoder."""
        with self._id_lock:
            now = time.time_ns()
            if now <= self._last_id:
                now = self._last_id + 1
            self._last_id = now
        return f"{prefix}_{now}"
