"""chatgate: async client for a realtime chat gateway.

Async usage::

    from chatgate import AsyncChatClient

    async with AsyncChatClient() as client:

        @client.on("message")
        async def on_message(message):
            if message.content == "ping":
                await client.send_message(message, "pong")

        await client.login("bot@example.com", "hunter2")
        async for notification in client:
            print(notification.topic, notification.args)

Optional extras::

    pip install chatgate[fast]   # orjson frame decoding
"""

from ._version import __version__
from .cache import Cache
from .client import AsyncChatClient
from .errors import (
    ChatGateConnectionError,
    ChatGateError,
    ChatGateHTTPError,
    ChatGateNotAuthenticatedError,
    ChatGateProtocolError,
    ChatGateResolutionError,
    ChatGateStateError,
    ChatGateTimeoutError,
)
from .models import Channel, MemberInfo, Message, Role, Server, User
from .types import (
    ChannelType,
    ClientOptions,
    GatewayFrame,
    Notification,
    SessionState,
    Topic,
)


def connect(**kwargs) -> AsyncChatClient:
    """Create a client.

    Use as an async context manager; keyword arguments are forwarded to
    :class:`AsyncChatClient` (any :class:`ClientOptions` field).

    Example::

        async with connect(compress=True) as client:
            await client.login(email, password)
    """
    return AsyncChatClient(**kwargs)


__all__ = [
    "AsyncChatClient",
    "Cache",
    "Channel",
    "ChannelType",
    "ChatGateConnectionError",
    "ChatGateError",
    "ChatGateHTTPError",
    "ChatGateNotAuthenticatedError",
    "ChatGateProtocolError",
    "ChatGateResolutionError",
    "ChatGateStateError",
    "ChatGateTimeoutError",
    "ClientOptions",
    "GatewayFrame",
    "MemberInfo",
    "Message",
    "Notification",
    "Role",
    "Server",
    "SessionState",
    "Topic",
    "User",
    "__version__",
    "connect",
]
