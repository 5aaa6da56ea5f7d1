# =============================================================================
# chatgate -- Session
# =============================================================================
#
# Owns the four top-level caches, the credentials and the lifecycle state
# machine.  The dispatcher and the command layer both hold a reference to
# the same Session; nothing lives at module level.
# =============================================================================

from __future__ import annotations

from typing import Any

from ._logging import logger
from .cache import Cache
from .constants import MAX_CACHED_MESSAGES
from .errors import ChatGateNotAuthenticatedError, ChatGateStateError
from .models import Channel, MemberInfo, Server, User, parse_timestamp
from .types import SessionState

_LOGIN_STATES = frozenset({SessionState.IDLE, SessionState.DISCONNECTED})
_AUTHENTICATED_STATES = frozenset({SessionState.AUTHENTICATED, SessionState.LIVE})


class Session:
    """State shared by the dispatcher and the command layer.

    Args:
        max_cached_messages: Bound applied to every channel's message cache.
    """

    def __init__(self, max_cached_messages: int = MAX_CACHED_MESSAGES) -> None:
        self.max_cached_messages = max_cached_messages

        self.users: Cache[User] = Cache()
        self.servers: Cache[Server] = Cache()
        self.channels: Cache[Channel] = Cache()
        self.private_channels: Cache[Channel] = Cache()

        self.user: User | None = None
        self.token: str | None = None
        self.email: str | None = None
        self.heartbeat_interval: float | None = None
        self.sequence: int | None = None

        self._state = SessionState.IDLE

    # -- State machine ----------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state in _AUTHENTICATED_STATES

    @property
    def is_live(self) -> bool:
        return self._state is SessionState.LIVE

    def _set_state(self, new_state: SessionState) -> None:
        if new_state == self._state:
            return
        old = self._state
        self._state = new_state
        logger.debug("State: %s -> %s", old.value, new_state.value)

    def begin_login(self) -> None:
        """IDLE|DISCONNECTED -> AUTHENTICATING.  Starts from empty caches."""
        if self._state not in _LOGIN_STATES:
            raise ChatGateStateError("already logging in/logged in/ready")
        self.clear()
        self._set_state(SessionState.AUTHENTICATING)

    def authenticated(self, token: str, email: str | None = None) -> None:
        if self._state is not SessionState.AUTHENTICATING:
            raise ChatGateStateError(
                f"cannot accept credentials in state {self._state.value}"
            )
        self.token = token
        self.email = email
        self._set_state(SessionState.AUTHENTICATED)

    def go_live(self) -> None:
        if self._state not in _AUTHENTICATED_STATES:
            raise ChatGateStateError(f"cannot go live from state {self._state.value}")
        self._set_state(SessionState.LIVE)

    def disconnect(self, *, clear_credentials: bool = False) -> bool:
        """Move to DISCONNECTED.  Returns False if already there or idle."""
        if clear_credentials:
            self.token = None
            self.email = None
        if self._state in _LOGIN_STATES:
            return False
        self.heartbeat_interval = None
        self._set_state(SessionState.DISCONNECTED)
        return True

    def require_authenticated(self) -> str:
        """Return the token, or raise if no authenticated command may run."""
        if self._state not in _AUTHENTICATED_STATES or self.token is None:
            raise ChatGateNotAuthenticatedError()
        return self.token

    # -- Cache helpers ----------------------------------------------------------

    def clear(self) -> None:
        self.users.clear()
        self.servers.clear()
        self.channels.clear()
        self.private_channels.clear()
        self.user = None
        self.sequence = None

    def get_channel(self, channel_id: Any) -> Channel | None:
        """Look up a server channel first, then a direct channel."""
        channel_id = str(channel_id)
        return self.channels.get("id", channel_id) or self.private_channels.get(
            "id", channel_id
        )

    def server_of(self, channel: Channel) -> Server | None:
        if channel.server_id is None:
            return None
        return self.servers.get("id", channel.server_id)

    def channel_of(self, message: Any) -> Channel | None:
        return self.get_channel(message.channel_id)

    def build_channel(self, data: dict[str, Any], server_id: str | None = None) -> Channel:
        return Channel.from_payload(
            data, server_id, self.users, max_messages=self.max_cached_messages
        )

    def ingest_server(self, data: dict[str, Any]) -> Server:
        """Cache a server from a full payload.

        Members land in the global user cache and the server's member
        map; channels land in both the global channel cache and the
        server's channel list, as the same object.  Presences in the
        payload update the cached users.

        The whole payload is parsed before any cache is touched, so a
        malformed one raises without leaving a partial server behind.
        """
        srv = Server.from_payload(data)

        members: list[tuple[User, MemberInfo]] = []
        for member in data.get("members") or []:
            members.append(
                (
                    User.from_payload(member["user"]),
                    MemberInfo(
                        roles=srv.resolve_roles(member.get("roles") or []),
                        mute=bool(member.get("mute", False)),
                        deaf=bool(member.get("deaf", False)),
                        joined_at=parse_timestamp(member.get("joined_at")),
                    ),
                )
            )
        channels = [
            self.build_channel(chan_data, srv.id) for chan_data in data.get("channels") or []
        ]
        presences = [
            (str(presence["user"]["id"]), presence.get("status"), presence.get("game_id"))
            for presence in data.get("presences") or []
        ]

        srv = self.servers.add(srv)
        for parsed, info in members:
            user = self.users.add(parsed)
            srv.members.add(user)
            srv.member_map[user.id] = info
        for chan in channels:
            srv.channels.add(self.channels.add(chan))
        for user_id, status, game_id in presences:
            user = self.users.get("id", user_id)
            if user is not None:
                user.status = status or user.status
                user.game_id = game_id

        return srv

    def remove_server(self, srv: Server) -> None:
        """Remove *srv* and cascade to its channels in the global cache."""
        for chan in srv.channels:
            self.channels.remove(chan)
        self.servers.remove(srv)

    def replace_user(self, old: User, new: User) -> None:
        """Swap *old* for *new* in every cache and entity that holds it:
        the user cache, server member lists, direct-channel recipients,
        cached message authors and mentions, and the session user.
        """
        user_id = old.id
        self.users.update(old, new)
        for srv in self.servers:
            if old in srv.members:
                srv.members.update(old, new)

        for chan in (*self.channels, *self.private_channels):
            if chan.recipient is not None and chan.recipient.id == user_id:
                chan.recipient = new
            if chan.messages is None:
                continue
            for msg in chan.messages:
                if msg.author is not None and msg.author.id == user_id:
                    msg.author = new
                if any(u.id == user_id for u in msg.mentions):
                    msg.mentions = [new if u.id == user_id else u for u in msg.mentions]

        if self.user is not None and self.user.id == user_id:
            self.user = new

    def stats(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "users": len(self.users),
            "servers": len(self.servers),
            "channels": len(self.channels),
            "private_channels": len(self.private_channels),
        }
