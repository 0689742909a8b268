# =============================================================================
# HOTCOIN Python Client -- Error Types
# =============================================================================


class HotcoinError(Exception):
    """Base exception for all HOTCOIN client errors."""


# -- Configuration -------------------------------------------------------------


class ConfigurationError(HotcoinError):
    """Client is missing or has invalid configuration."""


class MissingCredentialsError(ConfigurationError):
    """Access key and secret key are required for this operation."""


class InvalidURLError(ConfigurationError):
    """Base URL or path could not be parsed into an absolute URL."""


# -- Transport -----------------------------------------------------------------


class HotcoinConnectionError(HotcoinError):
    """Connection-related errors (dial failure, lost connection)."""


class HandshakeTimeoutError(HotcoinConnectionError):
    """WebSocket handshake did not complete in time."""


# -- Wire protocol -------------------------------------------------------------


class HotcoinProtocolError(HotcoinError):
    """A single inbound frame or response body could not be decoded."""


class DecompressionError(HotcoinProtocolError):
    """Gzip-framed message failed to decompress."""


class MalformedFrameError(HotcoinProtocolError):
    """Message is not a valid stream frame after decompression."""


# -- Authentication ------------------------------------------------------------


class AuthenticationError(HotcoinError):
    """Server rejected the streaming auth request."""

    def __init__(self, message: str, code: int | None = None) -> None:
        self.code = code
        super().__init__(message)


# -- Session state -------------------------------------------------------------


class StateError(HotcoinError):
    """Operation is not valid for the current connection state."""


class NotConnectedError(StateError):
    """Operation requires an open connection."""


class AlreadyConnectedError(StateError):
    """``connect()`` called while not disconnected."""


class AlreadySubscribedError(StateError):
    """Topic already has an active subscription."""

    def __init__(self, topic: str) -> None:
        self.topic = topic
        super().__init__(f"Already subscribed to {topic}")


class AuthenticationRequiredError(StateError):
    """Private topic requested before the session was authenticated."""


# -- REST ----------------------------------------------------------------------


class APIError(HotcoinError):
    """Business error returned in the REST response envelope."""

    def __init__(self, code: int, msg: str) -> None:
        self.code = code
        self.msg = msg
        super().__init__(f"API error {code}: {msg}")
