# =============================================================================
# chatgate -- Wire Protocol Codec
# =============================================================================
#
# Incoming (gateway -> client):
#   Text:   JSON envelope {"op", "d", "t", "s"}
#   Binary: zlib-compressed JSON (when compress was negotiated), or plain
#           UTF-8 JSON
#
# Outgoing (client -> gateway):
#   JSON envelope {"op", "d"}: identify (op 2) and heartbeat (op 1)
# =============================================================================

from __future__ import annotations

import json
import time
from typing import Any

from .compression import CompressionHandler
from .constants import (
    GATEWAY_VERSION,
    LIBRARY_NAME,
    MAX_FRAME_SIZE,
    OP_HEARTBEAT,
    OP_IDENTIFY,
)
from .errors import ChatGateProtocolError
from .types import GatewayFrame

try:
    import orjson

    def _json_loads(data: str | bytes) -> Any:
        return orjson.loads(data)

    def _json_dumps(obj: Any) -> str:
        return orjson.dumps(obj).decode()

except ImportError:

    def _json_loads(data: str | bytes) -> Any:
        return json.loads(data)

    def _json_dumps(obj: Any) -> str:
        return json.dumps(obj, separators=(",", ":"))


class FrameCodec:
    """Encode and decode gateway frames.

    Args:
        compression: Zlib handler for binary frames.  A default one is
            created when omitted.
    """

    def __init__(self, compression: CompressionHandler | None = None) -> None:
        self._compression = compression or CompressionHandler()

    # -- Decoding ----------------------------------------------------------------

    def decode(self, data: str | bytes) -> GatewayFrame:
        """Decode one incoming frame.

        Raises:
            ChatGateProtocolError: If the frame is oversized, cannot be
                inflated, or is not a JSON object envelope.
        """
        if len(data) > MAX_FRAME_SIZE:
            raise ChatGateProtocolError(f"Frame exceeds max size ({len(data)} bytes)")

        if isinstance(data, bytes):
            data = self._decode_binary(data)

        try:
            parsed = _json_loads(data)
        except (json.JSONDecodeError, ValueError) as exc:
            raise ChatGateProtocolError(f"Failed to parse JSON: {exc}") from exc

        return self._parsed_to_frame(parsed)

    def _decode_binary(self, data: bytes) -> str:
        if self._compression.is_compressed(data):
            try:
                data = self._compression.decompress(data)
            except Exception as exc:
                raise ChatGateProtocolError(
                    f"Corrupt compressed frame ({len(data)} bytes)"
                ) from exc
            if len(data) > MAX_FRAME_SIZE:
                raise ChatGateProtocolError(
                    f"Decompressed frame exceeds max size ({len(data)} bytes)"
                )
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ChatGateProtocolError(
                f"Unable to decode binary frame ({len(data)} bytes)"
            ) from exc

    @staticmethod
    def _parsed_to_frame(parsed: Any) -> GatewayFrame:
        if not isinstance(parsed, dict):
            raise ChatGateProtocolError("Frame is not a JSON object")

        op = parsed.get("op", 0)
        if not isinstance(op, int):
            raise ChatGateProtocolError(f"Invalid op code: {op!r}")

        return GatewayFrame(
            op=op,
            type=parsed.get("t"),
            payload=parsed.get("d"),
            sequence=parsed.get("s"),
            raw=parsed,
        )

    # -- Encoding ----------------------------------------------------------------

    @staticmethod
    def encode(op: int, data: Any) -> str:
        return _json_dumps({"op": op, "d": data})

    def identify(self, token: str, *, compress: bool = False) -> str:
        """The handshake frame sent as soon as the socket opens."""
        return self.encode(
            OP_IDENTIFY,
            {
                "token": token,
                "v": GATEWAY_VERSION,
                "compress": compress,
                "properties": {
                    "$os": LIBRARY_NAME,
                    "$browser": LIBRARY_NAME,
                    "$device": LIBRARY_NAME,
                    "$referrer": LIBRARY_NAME,
                    "$referring_domain": LIBRARY_NAME,
                },
            },
        )

    def heartbeat(self) -> str:
        return self.encode(OP_HEARTBEAT, int(time.time() * 1000))
