# =============================================================================
# chatgate -- Event Dispatcher
# =============================================================================
#
# Decodes push frames and applies dispatch events to the session caches,
# then publishes the resulting notifications.  Frames are handled one at a
# time in arrival order.  A frame referencing an entity missing from the
# cache is reported with a single "warning" notification and changes
# nothing; an undecodable frame is reported the same way and dropped.
# =============================================================================

from __future__ import annotations

import asyncio
import dataclasses
import time
from typing import Any, Callable

from ._logging import logger
from .constants import (
    CHANNEL_CREATE,
    CHANNEL_DELETE,
    CHANNEL_UPDATE,
    MESSAGE_CREATE,
    MESSAGE_DELETE,
    MESSAGE_UPDATE,
    OP_DISPATCH,
    PRESENCE_UPDATE,
    READY,
    SERVER_BAN_ADD,
    SERVER_BAN_REMOVE,
    SERVER_CREATE,
    SERVER_DELETE,
    SERVER_MEMBER_ADD,
    SERVER_MEMBER_REMOVE,
    SERVER_MEMBER_UPDATE,
    SERVER_ROLE_CREATE,
    SERVER_ROLE_DELETE,
    SERVER_ROLE_UPDATE,
    SERVER_UPDATE,
    TYPING_START,
    TYPING_TIMEOUT,
)
from .errors import ChatGateProtocolError
from .events import EventBus
from .models import Channel, MemberInfo, Message, Role, Server, User, parse_timestamp
from .protocol import FrameCodec
from .session import Session
from .types import GatewayFrame, SessionState, Topic

Handler = Callable[[dict[str, Any]], None]


class EventDispatcher:
    """Apply inbound gateway events to a :class:`Session`.

    Args:
        session: Session whose caches are mutated.
        bus: Where notifications are published.
        codec: Frame decoder.
        start_heartbeat: Called with the heartbeat interval in seconds
            once the full-sync frame has been applied.
        typing_timeout: Quiet window before ``userTypingStop`` fires.
    """

    def __init__(
        self,
        session: Session,
        bus: EventBus,
        codec: FrameCodec | None = None,
        *,
        start_heartbeat: Callable[[float], Any] | None = None,
        typing_timeout: float = TYPING_TIMEOUT,
    ) -> None:
        self._session = session
        self._bus = bus
        self._codec = codec or FrameCodec()
        self._start_heartbeat = start_heartbeat
        self._typing_timeout = typing_timeout
        self._background_tasks: set[asyncio.Task[Any]] = set()

        # Dispatch table (dict lookup = O(1))
        self._handlers: dict[str, Handler] = {
            READY: self._handle_ready,
            MESSAGE_CREATE: self._handle_message_create,
            MESSAGE_DELETE: self._handle_message_delete,
            MESSAGE_UPDATE: self._handle_message_update,
            SERVER_CREATE: self._handle_server_create,
            SERVER_DELETE: self._handle_server_delete,
            SERVER_UPDATE: self._handle_server_update,
            CHANNEL_CREATE: self._handle_channel_create,
            CHANNEL_DELETE: self._handle_channel_delete,
            CHANNEL_UPDATE: self._handle_channel_update,
            SERVER_ROLE_CREATE: self._handle_role_create,
            SERVER_ROLE_DELETE: self._handle_role_delete,
            SERVER_ROLE_UPDATE: self._handle_role_update,
            SERVER_MEMBER_ADD: self._handle_member_add,
            SERVER_MEMBER_REMOVE: self._handle_member_remove,
            SERVER_MEMBER_UPDATE: self._handle_member_update,
            PRESENCE_UPDATE: self._handle_presence_update,
            TYPING_START: self._handle_typing_start,
            SERVER_BAN_ADD: self._handle_ban_add,
            SERVER_BAN_REMOVE: self._handle_ban_remove,
        }

    # -- Entry points -------------------------------------------------------------

    def handle_raw(self, data: str | bytes) -> None:
        """Decode a raw frame from the connection and dispatch it."""
        try:
            frame = self._codec.decode(data)
        except ChatGateProtocolError as exc:
            self._bus.warn(f"dropped undecodable frame: {exc}")
            return
        self.dispatch(frame)

    def dispatch(self, frame: GatewayFrame) -> None:
        self._bus.emit(Topic.RAW, frame.raw)

        if frame.sequence is not None:
            self._session.sequence = frame.sequence

        if frame.op != OP_DISPATCH:
            logger.debug("Ignoring frame with op %d", frame.op)
            return

        handler = self._handlers.get(frame.type or "")
        if handler is None:
            logger.debug("Unhandled packet type: %s", frame.type)
            return

        if not isinstance(frame.payload, dict):
            self._bus.warn(f"{frame.type} frame carried no payload object")
            return

        try:
            handler(frame.payload)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            self._bus.warn(f"malformed {frame.type} frame: {exc!r}")

    def close(self) -> None:
        """Cancel pending typing checks."""
        for task in self._background_tasks:
            task.cancel()
        self._background_tasks.clear()

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # -- Full sync ------------------------------------------------------------------

    def _handle_ready(self, d: dict[str, Any]) -> None:
        session = self._session
        if session.state not in (SessionState.AUTHENTICATED, SessionState.LIVE):
            self._bus.warn(f"ready received in state {session.state.value}")
            return

        started = time.monotonic()
        session.user = session.users.add(User.from_payload(d["user"]))
        for server_data in d.get("guilds") or []:
            session.ingest_server(server_data)
        for pm in d.get("private_channels") or []:
            session.private_channels.add(session.build_channel({**pm, "is_private": True}))

        session.go_live()

        interval = d.get("heartbeat_interval")
        if interval:
            session.heartbeat_interval = interval / 1000
            if self._start_heartbeat is not None:
                self._start_heartbeat(session.heartbeat_interval)

        logger.info(
            "Ready as %s (%d servers)",
            session.user.username or session.user.id,
            len(session.servers),
        )
        self._bus.emit(Topic.READY)
        elapsed_ms = (time.monotonic() - started) * 1000
        self._bus.debug(f"ready packet took {elapsed_ms:.0f}ms to process")
        self._bus.debug(
            f"ready with {len(session.servers)} servers, "
            f"{len(session.channels)} channels and {len(session.users)} users cached."
        )

    # -- Messages -------------------------------------------------------------------

    def _message_channel(self, d: dict[str, Any], action: str) -> Channel | None:
        channel = self._session.get_channel(d["channel_id"])
        if channel is None or channel.messages is None:
            self._bus.warn(f"message {action} but channel is not cached")
            return None
        return channel

    def _handle_message_create(self, d: dict[str, Any]) -> None:
        channel = self._message_channel(d, "created")
        if channel is None:
            return
        msg = channel.messages.add(
            Message.from_payload(d, channel.id, self._session.users)
        )
        self._bus.emit(Topic.MESSAGE, msg)

    def _handle_message_delete(self, d: dict[str, Any]) -> None:
        channel = self._message_channel(d, "deleted")
        if channel is None:
            return
        # Absent when the message was never fetched
        msg = channel.messages.get("id", str(d["id"]))
        if msg is not None:
            channel.messages.remove(msg)
        self._bus.emit(Topic.MESSAGE_DELETED, msg, channel)

    def _handle_message_update(self, d: dict[str, Any]) -> None:
        channel = self._message_channel(d, "updated")
        if channel is None:
            return
        old = channel.messages.get("id", str(d["id"]))
        if old is None:
            self._bus.warn("message updated but message is not cached")
            return
        new = old.merged(d, self._session.users)
        channel.messages.update(old, new)
        self._bus.emit(Topic.MESSAGE_UPDATED, new, old)

    # -- Servers --------------------------------------------------------------------

    def _handle_server_create(self, d: dict[str, Any]) -> None:
        if self._session.servers.get("id", str(d["id"])) is not None:
            self._bus.debug("server created but already in cache")
            return
        srv = self._session.ingest_server(d)
        self._bus.emit(Topic.SERVER_CREATED, srv)

    def _handle_server_delete(self, d: dict[str, Any]) -> None:
        srv = self._session.servers.get("id", str(d["id"]))
        if srv is None:
            self._bus.warn("server was deleted but it was not in the cache")
            return
        self._session.remove_server(srv)
        self._bus.emit(Topic.SERVER_DELETED, srv)

    def _handle_server_update(self, d: dict[str, Any]) -> None:
        session = self._session
        old = session.servers.get("id", str(d["id"]))
        if old is None:
            self._bus.warn("server was updated but it was not in the cache")
            srv = session.ingest_server(d)
            self._bus.emit(Topic.SERVER_CREATED, srv)
            return

        new = Server.from_payload(d)
        if "roles" not in d:
            new.roles = old.roles
        new.channels = old.channels
        new.members = old.members
        new.member_map = old.member_map

        if new.equals_strict(old):
            self._bus.debug("received server update but server already updated")
            return

        if new.roles is not old.roles:
            # Fresh MemberInfo values; the old server keeps its role objects
            new.member_map = {
                user_id: dataclasses.replace(
                    info, roles=new.resolve_roles([role.id for role in info.roles])
                )
                for user_id, info in old.member_map.items()
            }
        session.servers.update(old, new)
        self._bus.emit(Topic.SERVER_UPDATED, old, new)

    # -- Channels -------------------------------------------------------------------

    def _handle_channel_create(self, d: dict[str, Any]) -> None:
        session = self._session
        if session.get_channel(d["id"]) is not None:
            self._bus.warn("channel created but already in cache")
            return

        if d.get("is_private"):
            chan = session.private_channels.add(session.build_channel(d))
            self._bus.emit(Topic.CHANNEL_CREATED, chan)
            return

        srv = session.servers.get("id", str(d.get("guild_id")))
        if srv is None:
            self._bus.warn("channel created but server does not exist")
            return
        chan = session.channels.add(session.build_channel(d, srv.id))
        srv.channels.add(chan)
        self._bus.emit(Topic.CHANNEL_CREATED, chan)

    def _handle_channel_delete(self, d: dict[str, Any]) -> None:
        session = self._session
        chan = session.get_channel(d["id"])
        if chan is None:
            self._bus.warn("channel deleted but already out of cache")
            return

        if chan.is_private:
            session.private_channels.remove(chan)
        else:
            srv = session.server_of(chan)
            if srv is not None:
                srv.channels.remove(chan)
            session.channels.remove(chan)
        self._bus.emit(Topic.CHANNEL_DELETED, chan)

    def _handle_channel_update(self, d: dict[str, Any]) -> None:
        session = self._session
        old = session.get_channel(d["id"])
        if old is None:
            self._bus.warn("channel updated but not in cache")
            return

        if old.is_private:
            new = session.build_channel({**d, "is_private": True})
            new.messages = old.messages
            if new.recipient is None:
                new.recipient = old.recipient
            session.private_channels.update(old, new)
            self._bus.emit(Topic.CHANNEL_UPDATED, old, new)
            return

        srv = session.server_of(old)
        if srv is None:
            self._bus.warn("channel updated but server non-existent")
            return
        new = session.build_channel(d, srv.id)
        if new.is_textual and old.is_textual:
            new.messages = old.messages
        srv.channels.update(old, new)
        session.channels.update(old, new)
        self._bus.emit(Topic.CHANNEL_UPDATED, old, new)

    # -- Roles ----------------------------------------------------------------------

    def _role_server(self, d: dict[str, Any], action: str) -> Server | None:
        srv = self._session.servers.get("id", str(d["guild_id"]))
        if srv is None:
            self._bus.warn(f"server role {action} but server not in cache")
        return srv

    def _handle_role_create(self, d: dict[str, Any]) -> None:
        srv = self._role_server(d, "created")
        if srv is None:
            return
        role = srv.roles.add(Role.from_payload(d["role"], srv.id))
        self._bus.emit(Topic.SERVER_ROLE_CREATED, role, srv)

    def _handle_role_delete(self, d: dict[str, Any]) -> None:
        srv = self._role_server(d, "deleted")
        if srv is None:
            return
        role = srv.roles.get("id", str(d["role_id"]))
        if role is None:
            self._bus.warn("server role deleted but role not in cache")
            return
        srv.roles.remove(role)
        for info in srv.member_map.values():
            info.roles = [r for r in info.roles if r.id != role.id]
        self._bus.emit(Topic.SERVER_ROLE_DELETED, role, srv)

    def _handle_role_update(self, d: dict[str, Any]) -> None:
        srv = self._role_server(d, "updated")
        if srv is None:
            return
        old = srv.roles.get("id", str(d["role"]["id"]))
        if old is None:
            self._bus.warn("server role updated but role not in cache")
            return
        new = Role.from_payload(d["role"], srv.id)
        srv.roles.update(old, new)
        for info in srv.member_map.values():
            info.roles = [new if r.id == new.id else r for r in info.roles]
        self._bus.emit(Topic.SERVER_ROLE_UPDATED, old, new)

    # -- Members --------------------------------------------------------------------

    def _member_target(
        self, d: dict[str, Any], action: str
    ) -> tuple[Server, User | None] | None:
        srv = self._session.servers.get("id", str(d["guild_id"]))
        if srv is None:
            self._bus.warn(f"server member {action} but server doesn't exist in cache")
            return None
        return srv, self._session.users.get("id", str(d["user"]["id"]))

    def _handle_member_add(self, d: dict[str, Any]) -> None:
        target = self._member_target(d, "added")
        if target is None:
            return
        srv, _ = target
        user = self._session.users.add(User.from_payload(d["user"]))
        srv.member_map[user.id] = MemberInfo(
            roles=srv.resolve_roles(d.get("roles") or []),
            joined_at=parse_timestamp(d.get("joined_at")),
        )
        srv.members.add(user)
        self._bus.emit(Topic.SERVER_NEW_MEMBER, srv, user)

    def _handle_member_remove(self, d: dict[str, Any]) -> None:
        target = self._member_target(d, "removed")
        if target is None:
            return
        srv, user = target
        if user is None:
            self._bus.warn("server member removed but user doesn't exist in cache")
            return
        srv.member_map.pop(user.id, None)
        srv.members.remove(user)
        self._bus.emit(Topic.SERVER_MEMBER_REMOVED, srv, user)

    def _handle_member_update(self, d: dict[str, Any]) -> None:
        target = self._member_target(d, "updated")
        if target is None:
            return
        srv, user = target
        if user is None:
            self._bus.warn("server member updated but user doesn't exist in cache")
            return

        info = srv.member_map.get(user.id)
        if info is None:
            info = srv.member_map[user.id] = MemberInfo()
            srv.members.add(user)
        if "roles" in d:
            info.roles = srv.resolve_roles(d["roles"] or [])
        if "mute" in d:
            info.mute = bool(d["mute"])
        if "deaf" in d:
            info.deaf = bool(d["deaf"])
        self._bus.emit(Topic.SERVER_MEMBER_UPDATED, srv, user)

    # -- Users ----------------------------------------------------------------------

    def _handle_presence_update(self, d: dict[str, Any]) -> None:
        session = self._session
        user = session.users.get("id", str(d["user"]["id"]))
        if user is None:
            self._bus.warn("presence update but user not in cache")
            return

        status = d.get("status") or user.status
        game_id = d.get("game_id")
        candidate = user.merged(d["user"])

        if candidate == user:
            user.status = status
            user.game_id = game_id
            self._bus.emit(Topic.PRESENCE, user, status, game_id)
            return

        # Name or avatar change: swap the value everywhere it is referenced
        candidate.status = status
        candidate.game_id = game_id
        session.replace_user(user, candidate)
        self._bus.emit(Topic.USER_UPDATE, user, candidate)

    def _handle_typing_start(self, d: dict[str, Any]) -> None:
        session = self._session
        user = session.users.get("id", str(d["user_id"]))
        channel = session.get_channel(d["channel_id"])
        if user is None or channel is None:
            self._bus.warn("user typing but user or channel not existent in cache")
            return

        since = time.monotonic()
        user.typing.since = since
        user.typing.channel_id = channel.id
        self._bus.emit(Topic.USER_TYPING_START, user, channel)
        self._fire_task(self._typing_stop_after(user.id, channel, since))

    async def _typing_stop_after(self, user_id: str, channel: Channel, since: float) -> None:
        await asyncio.sleep(self._typing_timeout)
        user = self._session.users.get("id", user_id)
        # A newer typing signal moved `since`; that one owns the stop check
        if user is None or user.typing.since != since:
            return
        user.typing.since = None
        user.typing.channel_id = None
        self._bus.emit(Topic.USER_TYPING_STOP, user, channel)

    def _ban_target(self, d: dict[str, Any], action: str) -> tuple[User, Server] | None:
        user = self._session.users.get("id", str(d["user"]["id"]))
        srv = self._session.servers.get("id", str(d["guild_id"]))
        if user is None or srv is None:
            self._bus.warn(f"user {action} but user/server not in cache")
            return None
        return user, srv

    def _handle_ban_add(self, d: dict[str, Any]) -> None:
        target = self._ban_target(d, "banned")
        if target is not None:
            self._bus.emit(Topic.USER_BANNED, *target)

    def _handle_ban_remove(self, d: dict[str, Any]) -> None:
        target = self._ban_target(d, "unbanned")
        if target is not None:
            self._bus.emit(Topic.USER_UNBANNED, *target)
