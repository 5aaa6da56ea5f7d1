# =============================================================================
# chatgate -- Error Types
# =============================================================================


class ChatGateError(Exception):
    """Base exception for all chatgate errors."""


class ChatGateResolutionError(ChatGateError):
    """A loose input could not be mapped to a cached entity."""


class ChatGateHTTPError(ChatGateError):
    """An outbound request failed or returned a non-success status.

    Attributes:
        status: HTTP status code, or ``None`` when the request never
            produced a response (DNS failure, refused connection).
        text: Human-readable error text, taken from the response body
            when the server sent one.
    """

    def __init__(self, text: str, status: int | None = None) -> None:
        self.status = status
        self.text = text
        super().__init__(text)


class ChatGateProtocolError(ChatGateError):
    """Wire protocol errors (undecodable frames, bad envelopes)."""


class ChatGateConnectionError(ChatGateError):
    """Push connection errors (failed to open, lost connection)."""


class ChatGateTimeoutError(ChatGateError):
    """Operation timed out."""


class ChatGateStateError(ChatGateError):
    """Operation not permitted in the current session state."""


class ChatGateNotAuthenticatedError(ChatGateStateError):
    """Authenticated command issued while the session is not logged in."""

    def __init__(self, message: str = "Client is not logged in") -> None:
        super().__init__(message)
