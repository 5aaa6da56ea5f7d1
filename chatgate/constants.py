# =============================================================================
# chatgate -- Protocol Constants
# =============================================================================

GATEWAY_VERSION = 3
LIBRARY_NAME = "chatgate"

# -- Endpoints ----------------------------------------------------------------
#
# Paths are relative to ClientOptions.api_base.

DEFAULT_API_BASE = "https://discordapp.com/api"

LOGIN = "auth/login"
LOGOUT = "auth/logout"
GATEWAY = "gateway"
SERVERS = "guilds"


def server(server_id: str) -> str:
    return f"{SERVERS}/{server_id}"


def user_channels(user_id: str) -> str:
    return f"users/{user_id}/channels"


def channel_messages(channel_id: str) -> str:
    return f"channels/{channel_id}/messages"


def channel_message(channel_id: str, message_id: str) -> str:
    return f"channels/{channel_id}/messages/{message_id}"


# -- Op codes -----------------------------------------------------------------

OP_DISPATCH = 0
OP_HEARTBEAT = 1
OP_IDENTIFY = 2

# -- Packet types (the "t" field of dispatch frames) --------------------------

READY = "READY"
MESSAGE_CREATE = "MESSAGE_CREATE"
MESSAGE_DELETE = "MESSAGE_DELETE"
MESSAGE_UPDATE = "MESSAGE_UPDATE"
SERVER_CREATE = "GUILD_CREATE"
SERVER_DELETE = "GUILD_DELETE"
SERVER_UPDATE = "GUILD_UPDATE"
CHANNEL_CREATE = "CHANNEL_CREATE"
CHANNEL_DELETE = "CHANNEL_DELETE"
CHANNEL_UPDATE = "CHANNEL_UPDATE"
SERVER_ROLE_CREATE = "GUILD_ROLE_CREATE"
SERVER_ROLE_DELETE = "GUILD_ROLE_DELETE"
SERVER_ROLE_UPDATE = "GUILD_ROLE_UPDATE"
SERVER_MEMBER_ADD = "GUILD_MEMBER_ADD"
SERVER_MEMBER_REMOVE = "GUILD_MEMBER_REMOVE"
SERVER_MEMBER_UPDATE = "GUILD_MEMBER_UPDATE"
SERVER_BAN_ADD = "GUILD_BAN_ADD"
SERVER_BAN_REMOVE = "GUILD_BAN_REMOVE"
PRESENCE_UPDATE = "PRESENCE_UPDATE"
TYPING_START = "TYPING_START"

# -- Timing (seconds) ---------------------------------------------------------

CONNECTION_TIMEOUT = 10.0
REQUEST_TIMEOUT = 10.0
SERVER_CREATE_TIMEOUT = 10.0
SERVER_CREATE_POLL_INTERVAL = 0.02
TYPING_TIMEOUT = 6.0

# -- Cache bounds ---------------------------------------------------------------

MAX_CACHED_MESSAGES = 1000
NOTIFICATION_QUEUE_SIZE = 1000

# -- Messages ------------------------------------------------------------------

MAX_FRAME_SIZE = 16 * 1_048_576  # ready payloads for large accounts are big

# -- Zlib magic bytes ----------------------------------------------------------

ZLIB_MAGIC = 0x78
ZLIB_METHODS = (0x01, 0x5E, 0x9C, 0xDA)

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000
WS_CLOSE_AUTH_FAILED = 4004
