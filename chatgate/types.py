# =============================================================================
# chatgate -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .constants import (
    DEFAULT_API_BASE,
    MAX_CACHED_MESSAGES,
    NOTIFICATION_QUEUE_SIZE,
    REQUEST_TIMEOUT,
    SERVER_CREATE_TIMEOUT,
    TYPING_TIMEOUT,
)


class SessionState(str, Enum):
    """Session lifecycle state.

    Typical flow: IDLE -> AUTHENTICATING -> AUTHENTICATED -> LIVE -> DISCONNECTED.
    DISCONNECTED behaves like IDLE for the purpose of logging in again.
    """

    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    LIVE = "live"
    DISCONNECTED = "disconnected"


class ChannelType(str, Enum):
    """Discriminant of the channel variant.

    TEXT and DIRECT channels keep a message history, VOICE channels do not.
    DIRECT channels belong to no server.
    """

    TEXT = "text"
    VOICE = "voice"
    DIRECT = "direct"


class Topic(str, Enum):
    """Notification topics published to the embedding application."""

    READY = "ready"
    MESSAGE = "message"
    MESSAGE_UPDATED = "messageUpdated"
    MESSAGE_DELETED = "messageDeleted"
    SERVER_CREATED = "serverCreated"
    SERVER_UPDATED = "serverUpdated"
    SERVER_DELETED = "serverDeleted"
    CHANNEL_CREATED = "channelCreated"
    CHANNEL_UPDATED = "channelUpdated"
    CHANNEL_DELETED = "channelDeleted"
    SERVER_ROLE_CREATED = "serverRoleCreated"
    SERVER_ROLE_UPDATED = "serverRoleUpdated"
    SERVER_ROLE_DELETED = "serverRoleDeleted"
    SERVER_NEW_MEMBER = "serverNewMember"
    SERVER_MEMBER_REMOVED = "serverMemberRemoved"
    SERVER_MEMBER_UPDATED = "serverMemberUpdated"
    PRESENCE = "presence"
    USER_UPDATE = "userUpdate"
    USER_TYPING_START = "userTypingStart"
    USER_TYPING_STOP = "userTypingStop"
    USER_BANNED = "userBanned"
    USER_UNBANNED = "userUnbanned"
    DISCONNECTED = "disconnected"
    WARNING = "warning"
    DEBUG = "debug"
    RAW = "raw"


@dataclass(frozen=True, slots=True)
class GatewayFrame:
    """A frame received on the push connection.

    Attributes:
        op: Gateway op code (0 for dispatch frames).
        type: Packet type for dispatch frames, e.g. ``"MESSAGE_CREATE"``.
        payload: The ``d`` object of the frame.
        sequence: Gateway sequence number, when the frame carries one.
        raw: The full decoded envelope, forwarded on the ``raw`` topic.
    """

    op: int
    type: str | None
    payload: Any
    sequence: int | None = None
    raw: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class Notification:
    """A tagged notification: the topic plus its positional arguments.

    Callback listeners receive ``*args``; async iteration yields the
    whole :class:`Notification`.
    """

    topic: Topic
    args: tuple[Any, ...] = ()


@dataclass
class ClientOptions:
    """Client configuration.

    Attributes:
        api_base: Base URL for outbound requests.
        compress: Ask the gateway for zlib-compressed frames.
        max_cached_messages: Per-channel message cache bound.
        typing_timeout: Quiet window in seconds before ``userTypingStop``.
        request_timeout: Timeout in seconds for outbound requests.
        server_create_timeout: How long ``create_server`` waits for the
            push stream to deliver the new server.
        queue_size: Max notifications buffered for async iteration.
    """

    api_base: str = DEFAULT_API_BASE
    compress: bool = False
    max_cached_messages: int = MAX_CACHED_MESSAGES
    typing_timeout: float = TYPING_TIMEOUT
    request_timeout: float = REQUEST_TIMEOUT
    server_create_timeout: float = SERVER_CREATE_TIMEOUT
    queue_size: int = NOTIFICATION_QUEUE_SIZE
