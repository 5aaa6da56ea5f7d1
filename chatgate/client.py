# =============================================================================
# chatgate -- Async Client
# =============================================================================
#
# Primary public API.  Wires the session, the push connection, the event
# dispatcher and the command layer together.  Async context manager, async
# iterator, callbacks.
# =============================================================================

from __future__ import annotations

from typing import Any, Callable

from ._logging import logger
from .cache import Cache
from .commands import CommandLayer
from .compression import CompressionHandler
from .connection import ConnectionManager
from .constants import WS_CLOSE_AUTH_FAILED
from .dispatcher import EventDispatcher
from .errors import ChatGateConnectionError
from .events import AsyncListener, EventBus, Listener, WildcardListener
from .models import Channel, Message, Server, User
from .protocol import FrameCodec
from .resolver import Resolver
from .rest import HTTPTransport, Transport
from .session import Session
from .types import ClientOptions, Notification, SessionState, Topic


class AsyncChatClient:
    """Async chat-gateway client with context manager and async iterator support.

    Args:
        options: Client configuration.  Keyword arguments override
            individual fields, e.g. ``AsyncChatClient(compress=True)``.
        transport: Outbound request transport.  Defaults to an
            :class:`~chatgate.rest.HTTPTransport` on ``options.api_base``.
        connection: Push connection manager.  One is created when omitted.

    Example::

        async with AsyncChatClient() as client:
            await client.login("bot@example.com", "hunter2")

            @client.on("message")
            async def on_message(message):
                if message.content == "ping":
                    await client.send_message(message, "pong")

            async for notification in client:
                print(notification.topic, notification.args)
    """

    def __init__(
        self,
        options: ClientOptions | None = None,
        *,
        transport: Transport | None = None,
        connection: ConnectionManager | None = None,
        **overrides: Any,
    ) -> None:
        opts = options or ClientOptions()
        for key, value in overrides.items():
            if not hasattr(opts, key):
                raise TypeError(f"Unknown client option: {key}")
            setattr(opts, key, value)
        self._options = opts

        # Services
        self._session = Session(max_cached_messages=opts.max_cached_messages)
        self._bus = EventBus(queue_size=opts.queue_size)
        self._codec = FrameCodec(CompressionHandler())
        self._transport = transport or HTTPTransport(
            opts.api_base, timeout=opts.request_timeout
        )

        self._dispatcher = EventDispatcher(
            self._session,
            self._bus,
            self._codec,
            start_heartbeat=self._start_heartbeat,
            typing_timeout=opts.typing_timeout,
        )
        self._connection = connection or ConnectionManager(
            on_frame=self._dispatcher.handle_raw,
            on_close=self._on_connection_closed,
        )
        self._commands = CommandLayer(
            self._session,
            self._transport,
            self._bus,
            open_connection=self._connection.open,
            close_connection=self._close_connection,
            codec=self._codec,
            compress=opts.compress,
            server_create_timeout=opts.server_create_timeout,
        )

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> AsyncChatClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -- Async iterator -------------------------------------------------------

    def __aiter__(self) -> AsyncChatClient:
        return self

    async def __anext__(self) -> Notification:
        notification = await self._bus.next()
        if notification is None:
            raise StopAsyncIteration
        return notification

    async def recv(self, timeout: float | None = None) -> Notification:
        """Receive a single notification (alternative to async iteration).

        Args:
            timeout: Max seconds to wait. ``None`` blocks indefinitely.

        Raises:
            ChatGateConnectionError: If the client has been closed.
            asyncio.TimeoutError: If *timeout* expires.
        """
        notification = await self._bus.next(timeout)
        if notification is None:
            raise ChatGateConnectionError("Client closed")
        return notification

    # -- Callbacks ------------------------------------------------------------

    def on(
        self, topic: Topic | str
    ) -> Callable[[Listener | AsyncListener], Listener | AsyncListener]:
        """Decorator registering a listener for a notification topic.

        Example::

            @client.on("messageDeleted")
            def gone(message, channel):
                ...
        """
        return self._bus.on(topic)

    def on_any(self, fn: WildcardListener) -> WildcardListener:
        return self._bus.on_any(fn)

    def off(self, topic: Topic | str, fn: Listener | AsyncListener) -> None:
        self._bus.off(topic, fn)

    # -- Lifecycle ------------------------------------------------------------

    async def login(self, email: str, password: str) -> str:
        """Log in and open the push connection.  Returns the session token.

        A :class:`~chatgate.types.Topic.READY` notification follows once
        the gateway delivers the full sync.
        """
        self._bus.reopen()
        return await self._commands.login(email, password)

    async def logout(self) -> None:
        await self._commands.logout()

    async def close(self) -> None:
        """Drop the connection, stop iteration and release the transport.

        Unlike :meth:`logout` this makes no request to the service.
        """
        await self._close_connection()
        if self._session.disconnect(clear_credentials=True):
            self._bus.emit(Topic.DISCONNECTED)
        self._bus.close()
        await self._transport.aclose()

    async def _close_connection(self) -> None:
        self._dispatcher.close()
        await self._connection.close()

    def _start_heartbeat(self, interval: float) -> None:
        self._connection.start_heartbeat(interval, self._codec.heartbeat)

    def _on_connection_closed(self, code: int | None, reason: str) -> None:
        logger.info("Push connection lost: code=%s reason=%s", code, reason)
        self._dispatcher.close()
        auth_failed = code == WS_CLOSE_AUTH_FAILED
        if auth_failed:
            logger.warning("Gateway rejected the session token")
        if self._session.disconnect(clear_credentials=auth_failed):
            self._bus.emit(Topic.DISCONNECTED)

    # -- Commands -------------------------------------------------------------

    async def create_server(self, name: Any, region: str = "london") -> Server:
        return await self._commands.create_server(name, region)

    async def leave_server(self, server: Any) -> None:
        await self._commands.leave_server(server)

    async def start_direct(self, user: Any) -> Channel:
        return await self._commands.start_direct(user)

    async def send_message(self, where: Any, content: Any, *, tts: bool = False) -> Message:
        return await self._commands.send_message(where, content, tts=tts)

    async def update_message(self, message: Any, content: Any, *, tts: bool = False) -> Message:
        return await self._commands.update_message(message, content, tts=tts)

    async def delete_message(self, message: Any, *, delay: float | None = None) -> None:
        await self._commands.delete_message(message, delay=delay)

    async def send_file(self, where: Any, file: Any, name: str = "image.png") -> Message:
        return await self._commands.send_file(where, file, name)

    async def get_channel_logs(
        self,
        channel: Any,
        limit: int = 500,
        *,
        before: Any = None,
        after: Any = None,
    ) -> list[Message]:
        return await self._commands.get_channel_logs(
            channel, limit, before=before, after=after
        )

    # -- Lookups --------------------------------------------------------------

    @property
    def resolver(self) -> Resolver:
        return self._commands.resolver

    def get_user(self, value: Any) -> User | None:
        return self.resolver.resolve_user(value)

    def get_server(self, value: Any) -> Server | None:
        return self.resolver.resolve_server(value)

    def get_channel(self, channel_id: Any) -> Channel | None:
        return self._session.get_channel(channel_id)

    # -- Properties -----------------------------------------------------------

    @property
    def options(self) -> ClientOptions:
        return self._options

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def is_ready(self) -> bool:
        return self._session.is_live

    @property
    def user(self) -> User | None:
        return self._session.user

    @property
    def token(self) -> str | None:
        return self._session.token

    @property
    def users(self) -> Cache[User]:
        return self._session.users

    @property
    def servers(self) -> Cache[Server]:
        return self._session.servers

    @property
    def channels(self) -> Cache[Channel]:
        return self._session.channels

    @property
    def private_channels(self) -> Cache[Channel]:
        return self._session.private_channels

    @property
    def queue_size(self) -> int:
        return self._bus.queue_size

    def get_stats(self) -> dict[str, Any]:
        return self._session.stats()
