"""
HTTP transport for cluster API calls.

HttpRequest fully describes one outbound call; a transport sends it and
returns an HttpResponse for any HTTP status. Only network-level failures
raise (as TransportError). Status interpretation belongs to the caller.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

from pod_launcher.common.exceptions import TransportError
from pod_launcher.common.logging import LoggedClass


@dataclass(frozen=True)
class HttpRequest:
    """Method, target, headers, query and optional JSON body of one call."""

    method: str
    uri: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Optional[Dict[str, str]] = None
    json: Optional[Dict[str, Any]] = None
    verify_ssl: bool = True


@dataclass
class HttpResponse:
    """Status and decoded body of a received response."""

    status: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class AiohttpTransport(LoggedClass):
    """
    Sends HttpRequests with a lazily created aiohttp session.

    Usage:
        async with AiohttpTransport() as transport:
            response = await transport.send(request)
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        max_connections: int = 20,
    ):
        self._session = session
        self._owns_session = session is None
        self._max_connections = max_connections
        super().__init__()

    async def __aenter__(self) -> "AiohttpTransport":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self._max_connections,
                limit_per_host=self._max_connections,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def send(self, request: HttpRequest) -> HttpResponse:
        """
        Send one request.

        Raises:
            TransportError: On connection-level failures
        """
        session = await self._ensure_session()
        try:
            async with session.request(
                request.method,
                request.uri,
                params=request.params,
                json=request.json,
                headers=request.headers,
                ssl=None if request.verify_ssl else False,
            ) as response:
                body = await _decode_body(response)
                return HttpResponse(
                    status=response.status,
                    body=body,
                    headers=dict(response.headers),
                )
        except (aiohttp.ClientError, OSError) as e:
            if isinstance(e, asyncio.TimeoutError):
                raise
            raise TransportError(
                f"{request.method} {request.uri} failed: {type(e).__name__}",
                cause=e,
                context={"method": request.method, "uri": request.uri},
            ) from e


async def _decode_body(response: aiohttp.ClientResponse) -> Any:
    """JSON body when it parses, raw text otherwise, None when empty."""
    text = await response.text()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text
