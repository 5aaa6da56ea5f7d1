# =============================================================================
# chatgate -- Domain Entities
# =============================================================================
#
# Plain dataclasses built from gateway / REST payloads.  Cross references
# between entities are by identity (server_id, channel_id); the owning
# Session resolves them.  Channels are one tagged type, not a hierarchy.
# =============================================================================

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .cache import Cache
from .constants import MAX_CACHED_MESSAGES
from .types import ChannelType


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning ``None`` for empty/bad input."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def _require_object(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{what} is not an object: {data!r}")
    return data


def _user_from(data: dict[str, Any], users: Cache[User] | None) -> User:
    """Prefer the cached user over a freshly parsed one."""
    _require_object(data, "user")
    if users is not None:
        cached = users.get("id", str(data.get("id")))
        if cached is not None:
            return cached
    return User.from_payload(data)


# -- User ----------------------------------------------------------------------


@dataclass
class TypingState:
    """Where and since when (``time.monotonic()``) a user is typing."""

    since: float | None = None
    channel_id: str | None = None

    @property
    def active(self) -> bool:
        return self.since is not None


@dataclass
class User:
    """A user account.

    Equality covers the identity fields only (id, username,
    discriminator, avatar): two values differing only in presence
    compare equal.
    """

    id: str
    username: str = ""
    discriminator: str = ""
    avatar: str | None = None
    status: str = field(default="offline", compare=False)
    game_id: int | None = field(default=None, compare=False)
    typing: TypingState = field(default_factory=TypingState, compare=False, repr=False)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> User:
        _require_object(data, "user")
        return cls(
            id=str(data["id"]),
            username=data.get("username") or "",
            discriminator=str(data.get("discriminator") or ""),
            avatar=data.get("avatar"),
        )

    def merged(self, data: dict[str, Any]) -> User:
        """Return a copy with identity fields overwritten by those in *data*."""
        changes: dict[str, Any] = {}
        for key in ("username", "discriminator", "avatar"):
            if key in data and data[key] is not None:
                changes[key] = str(data[key]) if key == "discriminator" else data[key]
        return dataclasses.replace(self, **changes)

    @property
    def mention(self) -> str:
        return f"<@{self.id}>"

    def __str__(self) -> str:
        return self.mention


# -- Role ----------------------------------------------------------------------


@dataclass
class Role:
    id: str
    server_id: str
    name: str = ""
    permissions: int = 0
    color: int = 0
    hoist: bool = False
    position: int = 0
    managed: bool = False

    @classmethod
    def from_payload(cls, data: dict[str, Any], server_id: str) -> Role:
        return cls(
            id=str(data["id"]),
            server_id=server_id,
            name=data.get("name") or "",
            permissions=int(data.get("permissions") or 0),
            color=int(data.get("color") or 0),
            hoist=bool(data.get("hoist", False)),
            position=int(data.get("position") or 0),
            managed=bool(data.get("managed", False)),
        )

    def has_permission(self, bit: int) -> bool:
        return bool(self.permissions & bit)

    def __str__(self) -> str:
        return self.name


# -- Message -------------------------------------------------------------------


@dataclass
class Message:
    """A message in a text or direct channel.

    ``author`` is ``None`` when the payload carried no author.
    """

    id: str
    channel_id: str
    content: str = ""
    author: User | None = None
    timestamp: datetime | None = None
    edited_timestamp: datetime | None = None
    mentions: list[User] = field(default_factory=list)
    tts: bool = False
    mention_everyone: bool = False
    nonce: str | None = None
    attachments: list[dict[str, Any]] = field(default_factory=list)
    embeds: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_payload(
        cls,
        data: dict[str, Any],
        channel_id: str | None = None,
        users: Cache[User] | None = None,
    ) -> Message:
        return cls(
            id=str(data["id"]),
            channel_id=str(channel_id or data.get("channel_id")),
            **cls._fields_from(data, users),
        )

    @staticmethod
    def _fields_from(data: dict[str, Any], users: Cache[User] | None) -> dict[str, Any]:
        """Parse every field present in *data* (absent keys are left out)."""
        fields: dict[str, Any] = {}
        if "content" in data:
            fields["content"] = data["content"] or ""
        if data.get("author"):
            fields["author"] = _user_from(data["author"], users)
        if "timestamp" in data:
            fields["timestamp"] = parse_timestamp(data["timestamp"])
        if "edited_timestamp" in data:
            fields["edited_timestamp"] = parse_timestamp(data["edited_timestamp"])
        if "mentions" in data:
            fields["mentions"] = [_user_from(u, users) for u in data["mentions"] or []]
        if "tts" in data:
            fields["tts"] = bool(data["tts"])
        if "mention_everyone" in data:
            fields["mention_everyone"] = bool(data["mention_everyone"])
        if "nonce" in data:
            fields["nonce"] = data["nonce"]
        if "attachments" in data:
            fields["attachments"] = list(data["attachments"] or [])
        if "embeds" in data:
            fields["embeds"] = list(data["embeds"] or [])
        return fields

    def merged(self, data: dict[str, Any], users: Cache[User] | None = None) -> Message:
        """Return a new message: fields in *data* overwrite, absent ones inherit."""
        return dataclasses.replace(self, **self._fields_from(data, users))

    def is_mentioned(self, user: User) -> bool:
        return self.mention_everyone or any(u.id == user.id for u in self.mentions)

    def __str__(self) -> str:
        return self.content


# -- Channel -------------------------------------------------------------------


@dataclass
class Channel:
    """A text, voice or direct channel, discriminated by ``type``.

    ``messages`` is a cache for TEXT and DIRECT channels and ``None`` for
    VOICE.  ``server_id`` is ``None`` for DIRECT, ``recipient`` is set
    only for DIRECT.
    """

    id: str
    type: ChannelType
    name: str = ""
    server_id: str | None = None
    topic: str | None = None
    position: int = 0
    recipient: User | None = None
    last_message_id: str | None = None
    messages: Cache[Message] | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_payload(
        cls,
        data: dict[str, Any],
        server_id: str | None = None,
        users: Cache[User] | None = None,
        *,
        max_messages: int = MAX_CACHED_MESSAGES,
    ) -> Channel:
        if data.get("is_private"):
            return cls.direct_from_payload(data, users, max_messages=max_messages)

        kind = ChannelType.VOICE if data.get("type") == "voice" else ChannelType.TEXT
        return cls(
            id=str(data["id"]),
            type=kind,
            name=data.get("name") or "",
            server_id=str(server_id or data.get("guild_id")),
            topic=data.get("topic"),
            position=int(data.get("position") or 0),
            last_message_id=data.get("last_message_id"),
            messages=Cache(limit=max_messages) if kind is ChannelType.TEXT else None,
        )

    @classmethod
    def direct_from_payload(
        cls,
        data: dict[str, Any],
        users: Cache[User] | None = None,
        *,
        max_messages: int = MAX_CACHED_MESSAGES,
    ) -> Channel:
        recipient = data.get("recipient")
        return cls(
            id=str(data["id"]),
            type=ChannelType.DIRECT,
            recipient=_user_from(recipient, users) if recipient else None,
            last_message_id=data.get("last_message_id"),
            messages=Cache(limit=max_messages),
        )

    @property
    def is_private(self) -> bool:
        return self.type is ChannelType.DIRECT

    @property
    def is_textual(self) -> bool:
        return self.messages is not None

    @property
    def mention(self) -> str:
        return f"<#{self.id}>"

    def __str__(self) -> str:
        return self.mention


# -- Server --------------------------------------------------------------------


@dataclass
class MemberInfo:
    """Per-server state of one member."""

    roles: list[Role] = field(default_factory=list)
    mute: bool = False
    deaf: bool = False
    joined_at: datetime | None = None


@dataclass
class Server:
    """A server (guild) and its owned collections.

    Equality covers the metadata fields only; :meth:`equals_strict` adds
    the role set.  Channels, members and the member map are excluded
    because a server update carries them forward.
    """

    id: str
    name: str = ""
    region: str = ""
    icon: str | None = None
    owner_id: str | None = None
    afk_timeout: int | None = None
    afk_channel_id: str | None = None
    roles: Cache[Role] = field(default_factory=Cache, compare=False, repr=False)
    channels: Cache[Channel] = field(default_factory=Cache, compare=False, repr=False)
    members: Cache[User] = field(default_factory=Cache, compare=False, repr=False)
    member_map: dict[str, MemberInfo] = field(
        default_factory=dict, compare=False, repr=False
    )

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Server:
        """Build the server and its roles.  Channels and members are wired
        in by the session, which owns the global caches they also go into.
        """
        server_id = str(data["id"])
        srv = cls(
            id=server_id,
            name=data.get("name") or "",
            region=data.get("region") or "",
            icon=data.get("icon"),
            owner_id=str(data["owner_id"]) if data.get("owner_id") else None,
            afk_timeout=data.get("afk_timeout"),
            afk_channel_id=data.get("afk_channel_id"),
        )
        for role in data.get("roles") or []:
            srv.roles.add(Role.from_payload(role, server_id))
        return srv

    def equals_strict(self, other: Server) -> bool:
        return self == other and list(self.roles) == list(other.roles)

    def resolve_roles(self, role_ids: list[Any]) -> list[Role]:
        """Map role ids to cached roles, skipping unknown ids."""
        roles = (self.roles.get("id", str(rid)) for rid in role_ids or [])
        return [role for role in roles if role is not None]

    def member_info(self, user: User | str) -> MemberInfo | None:
        user_id = user if isinstance(user, str) else user.id
        return self.member_map.get(user_id)

    @property
    def default_channel(self) -> Channel | None:
        return self.channels.get("id", self.id)

    def __str__(self) -> str:
        return self.name
