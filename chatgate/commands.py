# =============================================================================
# chatgate -- Command Layer
# =============================================================================
#
# Outbound actions.  Each command checks the session state before touching
# the network, resolves its arguments, issues one request through the
# transport and folds the response back into the session caches.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from . import constants
from ._logging import logger
from .constants import SERVER_CREATE_POLL_INTERVAL, SERVER_CREATE_TIMEOUT
from .errors import ChatGateResolutionError
from .events import EventBus
from .models import Channel, Message, Server
from .protocol import FrameCodec
from .resolver import Resolver
from .rest import Transport
from .session import Session
from .types import Topic

OpenConnection = Callable[[str, str], Awaitable[None]]
CloseConnection = Callable[[], Awaitable[None]]


class CommandLayer:
    """Mutating and fetching actions against the remote service.

    Args:
        session: Shared session (state, credentials, caches).
        transport: Outbound request transport.
        bus: Notification bus (only ``disconnected`` is emitted here).
        open_connection: ``(url, handshake)`` coroutine opening the push
            connection once the gateway URL is known.
        close_connection: Coroutine tearing the push connection down.
        codec: Builds the identify handshake.
        compress: Ask the gateway for compressed frames.
        server_create_timeout: How long ``create_server`` waits for the
            push stream to deliver the new server.
    """

    def __init__(
        self,
        session: Session,
        transport: Transport,
        bus: EventBus,
        *,
        open_connection: OpenConnection | None = None,
        close_connection: CloseConnection | None = None,
        codec: FrameCodec | None = None,
        compress: bool = False,
        server_create_timeout: float = SERVER_CREATE_TIMEOUT,
    ) -> None:
        self._session = session
        self._transport = transport
        self._bus = bus
        self._open_connection = open_connection
        self._close_connection = close_connection
        self._codec = codec or FrameCodec()
        self._compress = compress
        self._server_create_timeout = server_create_timeout
        self.resolver = Resolver(session, start_direct=self.start_direct)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Authenticated request; re-checks the session after the response
        so a logout racing the call makes it fail as not authenticated.
        """
        token = self._session.require_authenticated()
        body = await self._transport.request(method, path, token=token, **kwargs)
        self._session.require_authenticated()
        return body

    # -- Session lifecycle --------------------------------------------------------

    async def login(self, email: str, password: str) -> str:
        """Authenticate, fetch the gateway URL and open the push connection.

        Returns:
            The session token.

        Raises:
            ChatGateStateError: If already logging in or logged in.
            ChatGateHTTPError: If the credentials are rejected.
        """
        session = self._session
        session.begin_login()

        try:
            body = await self._transport.request(
                "POST", constants.LOGIN, json={"email": email, "password": password}
            )
            token = body["token"]
        except BaseException:
            # Any failure, cancellation included, ends in DISCONNECTED
            self._fail_login()
            raise

        session.authenticated(token, email)
        logger.info("Logged in as %s", email)

        try:
            url = await self.get_gateway()
            if self._open_connection is not None:
                await self._open_connection(
                    url, self._codec.identify(token, compress=self._compress)
                )
        except BaseException:
            self._fail_login()
            if self._close_connection is not None:
                await self._close_connection()
            raise

        return token

    def _fail_login(self) -> None:
        if self._session.disconnect(clear_credentials=True):
            self._bus.emit(Topic.DISCONNECTED)

    async def logout(self) -> None:
        """Invalidate the session server-side, close the socket, clear credentials."""
        await self._request("POST", constants.LOGOUT)
        if self._close_connection is not None:
            await self._close_connection()
        if self._session.disconnect(clear_credentials=True):
            logger.info("Logged out")
            self._bus.emit(Topic.DISCONNECTED)

    async def get_gateway(self) -> str:
        body = await self._request("GET", constants.GATEWAY)
        return body["url"]

    # -- Servers ------------------------------------------------------------------

    async def create_server(self, name: Any, region: str = "london") -> Server:
        """Create a server and return it once the push stream has cached it."""
        body = await self._request(
            "POST",
            constants.SERVERS,
            json={"name": self.resolver.resolve_string(name), "region": region},
        )
        server_id = str(body["id"])
        servers = self._session.servers

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._server_create_timeout
        while (srv := servers.get("id", server_id)) is None:
            if loop.time() >= deadline:
                logger.debug("Server %s not pushed in time, caching response", server_id)
                return self._session.ingest_server(body)
            await asyncio.sleep(SERVER_CREATE_POLL_INTERVAL)
        return srv

    async def leave_server(self, server: Any) -> None:
        srv = self.resolver.resolve_server(server)
        if srv is None:
            raise ChatGateResolutionError("server did not resolve")
        await self._request("DELETE", constants.server(srv.id))
        self._session.remove_server(srv)

    # -- Direct conversations -------------------------------------------------------

    async def start_direct(self, user: Any) -> Channel:
        """Open (or fetch) the direct conversation with *user*."""
        resolved = self.resolver.resolve_user(user)
        if resolved is None:
            raise ChatGateResolutionError("Unable to resolve user")
        me = self._session.user
        body = await self._request(
            "POST",
            constants.user_channels(me.id if me else "@me"),
            json={"recipient_id": resolved.id},
        )
        session = self._session
        return session.private_channels.add(
            session.build_channel({**body, "is_private": True})
        )

    # -- Messages ---------------------------------------------------------------------

    async def _destination(self, where: Any) -> Channel:
        self._session.require_authenticated()
        try:
            channel = await self.resolver.resolve_channel(where)
        except ChatGateResolutionError as exc:
            raise ChatGateResolutionError(f"Error resolving destination - {exc}") from exc
        if channel.messages is None:
            raise ChatGateResolutionError(f"Channel {channel.id} does not take messages")
        return channel

    def _resolve_message(self, message: Any) -> Message:
        resolved = self.resolver.resolve_message(message)
        if resolved is None:
            raise ChatGateResolutionError("Supplied message did not resolve to a message")
        return resolved

    def _message_cache_of(self, message: Message) -> Channel | None:
        channel = self._session.channel_of(message)
        return channel if channel is not None and channel.messages is not None else None

    async def send_message(self, where: Any, content: Any, *, tts: bool = False) -> Message:
        destination = await self._destination(where)
        text = self.resolver.resolve_string(content)
        body = await self._request(
            "POST",
            constants.channel_messages(destination.id),
            json={
                "content": text,
                "mentions": self.resolver.resolve_mentions(text),
                "tts": tts,
            },
        )
        return destination.messages.add(
            Message.from_payload(body, destination.id, self._session.users)
        )

    async def update_message(self, message: Any, content: Any, *, tts: bool = False) -> Message:
        old = self._resolve_message(message)
        text = self.resolver.resolve_string(content)
        body = await self._request(
            "PATCH",
            constants.channel_message(old.channel_id, old.id),
            json={
                "content": text,
                "tts": tts,
                "mentions": self.resolver.resolve_mentions(text),
            },
        )
        new = Message.from_payload(body, old.channel_id, self._session.users)
        channel = self._message_cache_of(old)
        if channel is not None:
            channel.messages.update(old, new)
        return new

    async def delete_message(self, message: Any, *, delay: float | None = None) -> None:
        msg = self._resolve_message(message)
        self._session.require_authenticated()
        if delay:
            await asyncio.sleep(delay)
        await self._request("DELETE", constants.channel_message(msg.channel_id, msg.id))
        channel = self._message_cache_of(msg)
        if channel is not None:
            channel.messages.remove(msg)

    async def send_file(self, where: Any, file: Any, name: str = "image.png") -> Message:
        channel = await self._destination(where)
        data = self.resolver.resolve_file(file)
        body = await self._request(
            "POST",
            constants.channel_messages(channel.id),
            files={"file": (name, data)},
        )
        return channel.messages.add(
            Message.from_payload(body, channel.id, self._session.users)
        )

    async def get_channel_logs(
        self,
        channel: Any,
        limit: int = 500,
        *,
        before: Any = None,
        after: Any = None,
    ) -> list[Message]:
        """Fetch message history, newest first as the service returns it.

        ``before``/``after`` accept a message or a message id.
        """
        target = await self._destination(channel)
        params: dict[str, Any] = {"limit": limit}
        for key, anchor in (("before", before), ("after", after)):
            if anchor is None:
                continue
            resolved = self.resolver.resolve_message(anchor)
            params[key] = resolved.id if resolved is not None else str(anchor)

        body = await self._request(
            "GET", constants.channel_messages(target.id), params=params
        )
        users = self._session.users
        return [
            target.messages.add(Message.from_payload(data, target.id, users))
            for data in body or []
        ]
