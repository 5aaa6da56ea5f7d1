# =============================================================================
# chatgate -- Compression Handler
# =============================================================================

from __future__ import annotations

import zlib

from .constants import ZLIB_MAGIC, ZLIB_METHODS


class CompressionHandler:
    """Zlib inflate for push frames sent compressed by the gateway.

    With ``compress`` negotiated in the identify handshake the gateway
    sends large dispatch frames (typically ``READY``) as binary zlib
    streams; everything else stays text.
    """

    @staticmethod
    def is_compressed(data: bytes) -> bool:
        return len(data) >= 2 and data[0] == ZLIB_MAGIC and data[1] in ZLIB_METHODS

    def decompress(self, data: bytes) -> bytes:
        try:
            return zlib.decompress(data)
        except zlib.error:
            # Try raw deflate (no zlib header)
            return zlib.decompress(data, -zlib.MAX_WBITS)
