# =============================================================================
# HOTCOIN Python Client -- Compression Handler
# =============================================================================

from __future__ import annotations

import gzip
import zlib

from .constants import GZIP_MAGIC, MAX_MESSAGE_SIZE
from .errors import DecompressionError, MalformedFrameError


class CompressionHandler:
    """Gzip detection and decompression for inbound stream frames.

    Args:
        max_size: Largest decompressed payload accepted, in bytes.
    """

    def __init__(self, max_size: int = MAX_MESSAGE_SIZE) -> None:
        self.max_size = max_size

    @staticmethod
    def is_compressed(data: bytes) -> bool:
        return data[:2] == GZIP_MAGIC

    def decompress(self, data: bytes) -> bytes:
        # wbits=16+MAX_WBITS: gzip header and trailer required
        decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
        try:
            out = decompressor.decompress(data, self.max_size + 1)
        except zlib.error as exc:
            raise DecompressionError(f"gzip decompress failed: {exc}") from exc
        if len(out) > self.max_size:
            raise MalformedFrameError(
                f"Decompressed frame exceeds {self.max_size} bytes"
            )
        if not decompressor.eof:
            raise DecompressionError("gzip stream truncated")
        return out

    def compress(self, data: bytes) -> bytes:
        return gzip.compress(data)
