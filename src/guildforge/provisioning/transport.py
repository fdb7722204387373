from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol
from urllib.parse import quote

import aiohttp
import discord

log = logging.getLogger("guildforge.transport")

DEFAULT_API_BASE = "https://discord.com/api/v10"
USER_AGENT = f"DiscordBot (https://github.com/guildforge/guildforge, 0.1.0) discord.py/{discord.__version__}"


class Transport(Protocol):
    """One raw REST call. Raises discord.HTTPException subclasses on failure."""

    async def request(self, method: str, path: str, *, payload: Any = None, reason: Optional[str] = None) -> Any:
        ...

    async def close(self) -> None:
        ...


def raise_for_status(response: Any, data: Any) -> None:
    """Map a failed response onto discord.py's exception hierarchy."""
    status = response.status
    if 200 <= status < 300:
        return
    if status == 403:
        raise discord.Forbidden(response, data)
    if status == 404:
        raise discord.NotFound(response, data)
    if status >= 500:
        raise discord.DiscordServerError(response, data)
    raise discord.HTTPException(response, data)


class HttpTransport:
    """aiohttp transport for the Discord REST API, authenticated with a bot token.

    Makes exactly one attempt per call. Pacing and retries live in
    RateLimitedClient.
    """

    def __init__(self, token: str, *, base_url: str = DEFAULT_API_BASE, timeout: float = 30.0):
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def request(self, method: str, path: str, *, payload: Any = None, reason: Optional[str] = None) -> Any:
        headers = {
            "Authorization": f"Bot {self._token}",
            "User-Agent": USER_AGENT,
        }
        if reason:
            headers["X-Audit-Log-Reason"] = quote(reason, safe="/ ")

        session = await self._get_session()
        async with session.request(method, f"{self._base_url}{path}", json=payload, headers=headers) as response:
            text = await response.text(encoding="utf-8")
            data = _decode(response, text)
            log.debug("%s %s -> %s", method, path, response.status)
            raise_for_status(response, data)
            return data

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def _decode(response: aiohttp.ClientResponse, text: str) -> Any:
    if not text:
        return None
    if response.headers.get("Content-Type", "").startswith("application/json"):
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text
