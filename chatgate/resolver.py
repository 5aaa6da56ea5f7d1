# =============================================================================
# chatgate -- Identity Resolver
# =============================================================================
#
# Turns loose inputs (entities, raw ids, free text) into cached entities.
# Synchronous resolvers return None when nothing matches; resolve_channel
# may start a direct conversation and raises ChatGateResolutionError.
# =============================================================================

from __future__ import annotations

import re
from os import PathLike
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from .errors import ChatGateError, ChatGateResolutionError
from .models import Channel, Message, Server, User

if TYPE_CHECKING:
    from .session import Session

_MENTION_RE = re.compile(r"<@!?(\d+)>")

StartDirect = Callable[[User], Awaitable[Channel]]


def _is_identifier(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


class Resolver:
    """Resolve loose references against the session caches.

    Args:
        session: Session whose caches are searched.
        start_direct: Coroutine function opening a direct conversation
            with a user; used when a message is addressed to a user who
            has no cached direct channel yet.
    """

    def __init__(self, session: Session, start_direct: StartDirect | None = None) -> None:
        self._session = session
        self._start_direct = start_direct

    # -- Synchronous ---------------------------------------------------------------

    def resolve_user(self, value: Any) -> User | None:
        session = self._session
        if isinstance(value, User):
            return value
        if isinstance(value, Message):
            return value.author
        if isinstance(value, Server):
            return session.users.get("id", value.owner_id) if value.owner_id else None
        if isinstance(value, Channel):
            return value.recipient
        if _is_identifier(value):
            return session.users.get("id", str(value))
        return None

    def resolve_server(self, value: Any) -> Server | None:
        session = self._session
        if isinstance(value, Server):
            return value
        if isinstance(value, Channel):
            return session.server_of(value)
        if isinstance(value, Message):
            channel = session.channel_of(value)
            return session.server_of(channel) if channel else None
        if _is_identifier(value):
            return session.servers.get("id", str(value))
        return None

    def resolve_message(self, value: Any) -> Message | None:
        if isinstance(value, Message):
            return value
        if _is_identifier(value):
            message_id = str(value)
            for channel in self._textual_channels():
                found = channel.messages.get("id", message_id)
                if found is not None:
                    return found
        return None

    def _textual_channels(self) -> list[Channel]:
        session = self._session
        return [
            c
            for c in (*session.channels, *session.private_channels)
            if c.messages is not None
        ]

    @staticmethod
    def resolve_mentions(text: str) -> list[str]:
        """User ids mentioned as ``<@id>`` in *text*, first occurrence order.

        The ids need not be cached.
        """
        return list(dict.fromkeys(_MENTION_RE.findall(text or "")))

    def resolve_string(self, value: Any) -> str:
        """Render *value* as message text.  Sequences render one item per line."""
        if isinstance(value, str):
            return value
        if isinstance(value, (list, tuple)):
            return "\n".join(self.resolve_string(item) for item in value)
        return str(value)

    @staticmethod
    def resolve_file(value: Any) -> Any:
        """Bytes or a readable binary object suitable for a multipart upload."""
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, (str, PathLike)):
            path = Path(value)
            if not path.is_file():
                raise ChatGateResolutionError(f"File not found: {path}")
            return path.read_bytes()
        if hasattr(value, "read"):
            return value
        raise ChatGateResolutionError(f"Cannot send {type(value).__name__} as a file")

    # -- Asynchronous --------------------------------------------------------------

    async def resolve_channel(self, value: Any) -> Channel:
        """Resolve a destination channel.

        Users resolve to their direct channel, which is started over the
        network when none is cached yet.  Servers resolve to their
        default channel.

        Raises:
            ChatGateResolutionError: If nothing matches or starting the
                direct conversation fails.
        """
        session = self._session
        if isinstance(value, Channel):
            return value
        if isinstance(value, Message):
            channel = session.channel_of(value)
            if channel is None:
                raise ChatGateResolutionError("Message channel is not cached")
            return channel
        if isinstance(value, Server):
            channel = value.default_channel
            if channel is None:
                raise ChatGateResolutionError(
                    f"Server {value.id} has no default channel cached"
                )
            return channel
        if isinstance(value, User):
            return await self._direct_channel(value)
        if _is_identifier(value):
            channel = session.get_channel(value)
            if channel is not None:
                return channel
            user = session.users.get("id", str(value))
            if user is not None:
                return await self._direct_channel(user)
        raise ChatGateResolutionError(f"Could not resolve {value!r} to a channel")

    async def _direct_channel(self, user: User) -> Channel:
        existing = self._session.private_channels.find(
            lambda c: c.recipient is not None and c.recipient.id == user.id
        )
        if existing is not None:
            return existing
        if self._start_direct is None:
            raise ChatGateResolutionError(f"No direct channel with user {user.id}")
        try:
            return await self._start_direct(user)
        except ChatGateError as exc:
            raise ChatGateResolutionError(
                f"Could not start direct conversation: {exc}"
            ) from exc
