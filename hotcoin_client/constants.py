# =============================================================================
# HOTCOIN Python Client -- Protocol Constants
# =============================================================================

from ._version import __version__ as CLIENT_VERSION

USER_AGENT = f"hotcoin-python-client/{CLIENT_VERSION}"

# -- Endpoints -----------------------------------------------------------------

DEFAULT_BASE_URL = "https://api-ct.hotcoin.fit"
DEFAULT_WS_URL = "wss://api-ct.hotcoin.fit/linear-swap-ws"
WS_AUTH_PATH = "/api/v1/perpetual/notification"

# -- Timing (seconds) ----------------------------------------------------------

HANDSHAKE_TIMEOUT = 10.0
HEARTBEAT_INTERVAL = 20.0
REST_TIMEOUT = 30.0

# -- Signing -------------------------------------------------------------------

SIGNATURE_METHOD = "HmacSHA256"
SIGNATURE_VERSION = "2"

PARAM_ACCESS_KEY_ID = "AccessKeyId"
PARAM_SIGNATURE_METHOD = "SignatureMethod"
PARAM_SIGNATURE_VERSION = "SignatureVersion"
PARAM_TIMESTAMP = "Timestamp"
PARAM_SIGNATURE = "Signature"

# -- Messages ------------------------------------------------------------------

MAX_MESSAGE_SIZE = 4_194_304  # 4 MB, after decompression

# -- Gzip magic bytes ----------------------------------------------------------

GZIP_MAGIC = b"\x1f\x8b"

# -- Topics --------------------------------------------------------------------

PRIVATE_TOPIC_PREFIXES = ("orders", "positions", "accounts")

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000

# -- REST ----------------------------------------------------------------------

REST_OK_CODE = 200
