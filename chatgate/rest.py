# =============================================================================
# chatgate -- Outbound Request Transport (REST)
# =============================================================================
#
# Issues authenticated HTTP calls and parses response bodies.  The command
# layer only depends on the ``Transport`` protocol, so tests substitute an
# AsyncMock.
# =============================================================================

from __future__ import annotations

from typing import Any, Protocol

import httpx

from ._logging import logger
from .constants import REQUEST_TIMEOUT
from .errors import ChatGateHTTPError


class Transport(Protocol):
    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: Any = None,
        params: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> Any: ...

    async def aclose(self) -> None: ...


def _error_text(response: httpx.Response) -> str:
    """Human-readable error text from a failed response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text or f"HTTP {response.status_code}"


class HTTPTransport:
    """:class:`Transport` backed by a shared ``httpx.AsyncClient``.

    Args:
        base_url: API root every request path is relative to.
        timeout: Per-request timeout in seconds.
        client: Pre-built ``httpx.AsyncClient`` (e.g. with a mock
            transport); one is created when omitted.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            timeout=timeout,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: Any = None,
        params: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (``None`` if empty).

        Raises:
            ChatGateHTTPError: On transport failure or a non-2xx status.
        """
        headers = {"authorization": token} if token else None
        try:
            response = await self._client.request(
                method,
                path,
                headers=headers,
                json=json,
                params=params,
                files=files,
            )
        except httpx.HTTPError as exc:
            raise ChatGateHTTPError(f"{method} {path} failed: {exc}") from exc

        logger.debug("%s %s -> %d", method, path, response.status_code)
        if response.is_error:
            raise ChatGateHTTPError(_error_text(response), response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def aclose(self) -> None:
        await self._client.aclose()
