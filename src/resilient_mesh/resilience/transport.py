"""
HTTP transport used by resilient clients.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp

from ..errors import DependencyTimeout, NetworkError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: Any = None


class Transport(Protocol):
    """One network round trip.

    Raises NetworkError on transport failure and DependencyTimeout when the
    round trip exceeds ``timeout``.
    """

    async def invoke(
        self, url: str, method: str = "GET", payload: Any = None, timeout: float = 5.0
    ) -> TransportResponse: ...

    async def close(self) -> None: ...


class AiohttpTransport:
    """Transport over a shared aiohttp session."""

    def __init__(self, headers: dict[str, str] | None = None):
        self._headers = headers or {}
        self._http_session: aiohttp.ClientSession | None = None

    async def _get_http_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession(headers=self._headers)
        return self._http_session

    async def invoke(
        self, url: str, method: str = "GET", payload: Any = None, timeout: float = 5.0
    ) -> TransportResponse:
        session = await self._get_http_session()
        kwargs: dict[str, Any] = {"timeout": aiohttp.ClientTimeout(total=timeout)}
        if payload is not None:
            kwargs["json"] = payload

        try:
            async with session.request(method, url, **kwargs) as response:
                return TransportResponse(response.status, await self._read_body(response))
        except asyncio.TimeoutError as e:
            logger.debug("Transport timeout on %s %s after %ss", method, url, timeout)
            raise DependencyTimeout(f"{method} {url}", timeout) from e
        except aiohttp.ClientError as e:
            logger.debug("Transport error on %s %s: %s", method, url, e)
            raise NetworkError(f"{method} {url} failed: {e}") from e

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        if response.content_type != "application/json":
            return await response.text()
        try:
            return await response.json()
        except ValueError:
            logger.debug("Malformed JSON body from %s, keeping raw text", response.url)
            return await response.text()

    async def close(self) -> None:
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None
