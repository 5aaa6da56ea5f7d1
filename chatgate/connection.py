# =============================================================================
# chatgate -- Connection Manager
# =============================================================================
#
# Push-connection lifecycle: open + handshake, receive loop, heartbeat,
# close.  No automatic reconnect: a dropped socket is reported through
# on_close and the embedding application decides what to do.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Callable

import websockets
import websockets.asyncio.client
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from ._logging import logger
from .constants import CONNECTION_TIMEOUT, MAX_FRAME_SIZE, WS_CLOSE_NORMAL
from .errors import ChatGateConnectionError, ChatGateTimeoutError


class ConnectionManager:
    """Owns at most one live push socket.

    Args:
        on_frame: Called with every raw frame (``str`` or ``bytes``), in
            arrival order, each one before the next is read.
        on_close: Called with ``(code, reason)`` when the socket closes
            for any reason other than :meth:`close`.
    """

    def __init__(
        self,
        *,
        on_frame: Callable[[str | bytes], Any] | None = None,
        on_close: Callable[[int | None, str], Any] | None = None,
        open_timeout: float = CONNECTION_TIMEOUT,
    ) -> None:
        self._on_frame = on_frame
        self._on_close = on_close
        self._open_timeout = open_timeout

        self._ws: websockets.asyncio.client.ClientConnection | None = None
        self._closing = False
        self._url: str | None = None

        # Tasks
        self._recv_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None

    # -- Properties -----------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    @property
    def url(self) -> str | None:
        return self._url

    # -- Open / Close -----------------------------------------------------------

    async def open(self, url: str, handshake: str | None = None) -> None:
        """Open the socket, send *handshake*, start the receive loop.

        Raises:
            ChatGateConnectionError: If a socket is already open or the
                connection fails.
            ChatGateTimeoutError: If opening takes longer than the timeout.
        """
        if self._ws is not None:
            raise ChatGateConnectionError("Push connection already open")

        try:
            self._ws = await asyncio.wait_for(
                websockets.asyncio.client.connect(
                    url,
                    max_size=MAX_FRAME_SIZE,
                    open_timeout=None,  # asyncio.wait_for handles timeout
                    ping_interval=None,  # gateway heartbeat replaces ws pings
                ),
                timeout=self._open_timeout,
            )
        except asyncio.TimeoutError:
            raise ChatGateTimeoutError(
                f"Connection timed out after {self._open_timeout}s"
            )
        except Exception as exc:
            raise ChatGateConnectionError(f"Failed to connect: {exc}") from exc

        self._url = url
        self._closing = False
        logger.debug("Push connection open: %s", url)

        if handshake is not None:
            await self.send(handshake)

        self._recv_task = asyncio.create_task(self._recv_loop())

    async def close(self) -> None:
        """Tear down the socket without reporting through on_close."""
        self._closing = True

        tasks_to_await: list[asyncio.Task[Any]] = []
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            tasks_to_await.append(self._heartbeat_task)
            self._heartbeat_task = None
        if self._recv_task and self._recv_task is not asyncio.current_task():
            self._recv_task.cancel()
            tasks_to_await.append(self._recv_task)
        self._recv_task = None
        if tasks_to_await:
            await asyncio.gather(*tasks_to_await, return_exceptions=True)

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                await ws.close(WS_CLOSE_NORMAL, "Client disconnect")
            except ConnectionClosed:
                pass
            logger.debug("Push connection closed by client")

    # -- Send -----------------------------------------------------------------

    async def send(self, data: str) -> bool:
        """Send a text frame.  Returns True on success."""
        if not self._ws:
            return False
        try:
            await self._ws.send(data)
            return True
        except ConnectionClosed:
            logger.debug("Send failed: connection closed")
            return False

    # -- Heartbeat --------------------------------------------------------------

    def start_heartbeat(self, interval: float, make_frame: Callable[[], str]) -> None:
        """Send ``make_frame()`` every *interval* seconds until closed.

        Replaces any heartbeat already running.
        """
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
        self._heartbeat_task = asyncio.ensure_future(
            self._heartbeat_loop(interval, make_frame)
        )

    async def _heartbeat_loop(self, interval: float, make_frame: Callable[[], str]) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                return

            if not self._ws:
                return

            ok = await self.send(make_frame())
            if not ok:
                logger.debug("Heartbeat send failed")

    # -- Internal: receive loop -----------------------------------------------

    async def _recv_loop(self) -> None:
        """Read frames until the socket closes."""
        ws = self._ws
        assert ws is not None
        try:
            async for frame in ws:
                if not self._on_frame:
                    continue
                try:
                    self._on_frame(frame)
                except Exception:
                    logger.exception("Frame handler failed; frame dropped")
        except ConnectionClosedOK:
            logger.debug("WebSocket closed normally")
        except ConnectionClosed:
            logger.warning(
                "WebSocket closed: code=%s reason=%s", ws.close_code, ws.close_reason
            )
        except asyncio.CancelledError:
            return

        self._handle_closed(ws.close_code, ws.close_reason or "")

    def _handle_closed(self, code: int | None, reason: str) -> None:
        self._ws = None
        self._recv_task = None
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

        if self._closing:
            return
        if self._on_close:
            self._on_close(code, reason)
