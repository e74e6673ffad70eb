#!/usr/bin/env python3
"""HTTP Transport - single aiohttp dispatcher for Helix and OAuth calls

Every request goes through HttpCallHandler.request():
- timeout handling (asyncio.wait_for)
- status -> exception mapping (AuthError / RateLimited / UpstreamError)
- JSON decoding
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import aiohttp
from multidict import CIMultiDict

from helixwatch.errors import AuthError, RateLimited, UpstreamError

LOGGER = logging.getLogger(__name__)

# Query params: a list of pairs allows repeated keys (?id=1&id=2)
Params = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


@dataclass
class HttpResponse:
    status: int
    headers: Mapping[str, str] = field(default_factory=CIMultiDict)
    text: str = ""

    def __post_init__(self):
        # HTTP header names are case-insensitive (Twitch may send ratelimit-reset)
        if not isinstance(self.headers, CIMultiDict):
            self.headers = CIMultiDict(self.headers)

    def json(self) -> Any:
        if not self.text:
            return {}
        try:
            return json.loads(self.text)
        except ValueError as e:
            LOGGER.error(f"❌ Invalid JSON body (status {self.status}): {self.text[:80]!r}")
            raise UpstreamError(self.status, "invalid JSON body") from e


def _error_message(text: str) -> str:
    """Helix errors look like {"error": "Unauthorized", "status": 401, "message": "..."}"""
    try:
        payload = json.loads(text)
    except ValueError:
        return text.strip()
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("error") or text.strip()
    return text.strip()


def _retry_after(headers: Mapping[str, str]) -> float:
    reset = headers.get("Ratelimit-Reset")
    if reset:
        try:
            return max(0.0, float(reset) - time.time())
        except ValueError:
            pass
    retry = headers.get("Retry-After")
    if retry:
        try:
            return max(0.0, float(retry))
        except ValueError:
            pass
    return 1.0


class HttpCallHandler:
    """
    Shared aiohttp session + error mapping.

    The session is created lazily on the first request (needs a running loop).
    """

    def __init__(self, timeout: float = 8.0, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        LOGGER.debug(f"HttpCallHandler init (timeout={timeout}s)")

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Params] = None,
        data: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        """Raw round trip, no status handling"""
        session = await self._get_session()
        async with session.request(method, url, params=params, data=data, headers=headers) as resp:
            text = await resp.text()
            return HttpResponse(status=resp.status, headers=CIMultiDict(resp.headers), text=text)

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[Params] = None,
        data: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        allow_status: Iterable[int] = (),
    ) -> HttpResponse:
        """Send a request and map error statuses to exceptions.

        Args:
            method: "GET", "POST", ...
            url: Absolute URL
            params: Query string (mapping or list of pairs)
            data: Form body
            headers: Extra headers
            allow_status: Error statuses returned as-is instead of raising

        Raises:
            AuthError: 401/403
            RateLimited: 429
            UpstreamError: any other status >= 400, network failure or timeout
        """
        LOGGER.debug(f"[HTTP] {method} {url} params={params}")
        try:
            response = await asyncio.wait_for(
                self._send(method, url, params=params, data=data, headers=headers),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.error(f"⏱️ Timeout {method} {url} after {self.timeout}s")
            raise UpstreamError(None, f"Timeout after {self.timeout}s: {method} {url}")
        except aiohttp.ClientError as e:
            LOGGER.error(f"❌ Network error {method} {url}: {e}")
            raise UpstreamError(None, f"Network error: {e}") from e

        status = response.status
        if status < 400 or status in allow_status:
            return response

        message = _error_message(response.text)
        if status in (401, 403):
            LOGGER.warning(f"🔒 {method} {url} -> {status} {message}")
            raise AuthError(status, message)
        if status == 429:
            retry_after = _retry_after(response.headers)
            LOGGER.warning(f"⏳ {method} {url} rate limited, retry after {retry_after:.1f}s")
            raise RateLimited(retry_after, message or "Too Many Requests")

        LOGGER.error(f"❌ {method} {url} -> {status} {message}")
        raise UpstreamError(status, message)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


def query_pairs(**kwargs: Any) -> List[Tuple[str, str]]:
    """Build query pairs, dropping None and expanding lists into repeated keys"""
    pairs: List[Tuple[str, str]] = []
    for key, value in kwargs.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, str(v)) for v in value)
        else:
            pairs.append((key, str(value)))
    return pairs
