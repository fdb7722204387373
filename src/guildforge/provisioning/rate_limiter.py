"""
Rate-Limited API Client

Every outbound call of a run goes through RateLimitedClient.execute. It paces
requests proactively (fixed spacing, plus a longer pause after each batch),
retries 429s after the advertised wait, retries server errors with
exponential backoff, and sorts every failure into the provisioning error
taxonomy.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import aiohttp
import discord

from .errors import FatalRemoteError, PerItemError, TransientRemoteError

log = logging.getLogger("guildforge.rate_limiter")

# JSON error codes that mean the credential cannot act on the guild at all
MISSING_ACCESS = 50001
UNKNOWN_GUILD = 10004
FATAL_CODES = frozenset({MISSING_ACCESS, UNKNOWN_GUILD})

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class RatePolicy:
    min_interval: float = 0.05
    # Pause after every batch_size requests; 0 disables batching
    batch_size: int = 10
    batch_pause: float = 1.0
    # Total attempts per call, first try included
    max_attempts: int = 4
    backoff_base: float = 1.0
    backoff_max: float = 10.0
    default_retry_after: float = 1.0

    def backoff(self, attempt: int) -> float:
        return min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)


def retry_after_seconds(exc: discord.HTTPException, default: float) -> float:
    headers = getattr(exc.response, "headers", None) or {}
    raw = headers.get("Retry-After") or headers.get("X-RateLimit-Reset-After")
    try:
        return max(float(raw), 0.0) if raw is not None else default
    except (TypeError, ValueError):
        return default


class RateLimitedClient:
    """Single chokepoint for a run's outbound calls."""

    def __init__(self, policy: Optional[RatePolicy] = None, *, sleep: Sleep = asyncio.sleep, clock: Clock = time.monotonic):
        self.policy = policy or RatePolicy()
        self._sleep = sleep
        self._clock = clock
        self._last_call: Optional[float] = None
        self.calls_made = 0

    async def execute(self, operation: str, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Run func with pacing and retries.

        Raises FatalRemoteError for auth / missing-access failures and
        PerItemError for everything else that does not eventually succeed.
        """
        max_attempts = max(1, self.policy.max_attempts)
        attempt = 0

        while True:
            attempt += 1
            await self._pace()
            try:
                result = await func(*args, **kwargs)
            except discord.HTTPException as exc:
                error = self._classify(operation, exc)
                if not isinstance(error, TransientRemoteError):
                    raise error from exc
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                error = TransientRemoteError(operation, f"connection failed: {exc!r}")
            else:
                log.debug("%s succeeded (attempt %d/%d)", operation, attempt, max_attempts)
                return result

            if attempt >= max_attempts:
                log.error("%s gave up after %d attempts: %s", operation, max_attempts, error)
                raise PerItemError(
                    operation,
                    f"gave up after {max_attempts} attempts: {error}",
                    status=error.status,
                    attempts=max_attempts,
                ) from error

            if error.retry_after is not None:
                delay = error.retry_after
                log.warning("%s rate limited, waiting %.2fs (attempt %d/%d)", operation, delay, attempt, max_attempts)
            else:
                delay = self.policy.backoff(attempt)
                log.warning("%s failed (%s), retrying in %.2fs (attempt %d/%d)", operation, error, delay, attempt, max_attempts)
            await self._sleep(delay)

    def _classify(self, operation: str, exc: discord.HTTPException) -> Exception:
        status = exc.status
        code = getattr(exc, "code", 0)
        text = str(exc)

        if status == 401:
            return FatalRemoteError(operation, f"credential rejected: {text}", status=status, code=code)
        if status in (403, 404) and code in FATAL_CODES:
            return FatalRemoteError(operation, f"no access to guild: {text}", status=status, code=code)
        if status == 429:
            wait = retry_after_seconds(exc, self.policy.default_retry_after)
            return TransientRemoteError(operation, "rate limited", status=status, retry_after=wait)
        if status >= 500:
            return TransientRemoteError(operation, text, status=status)
        return PerItemError(operation, text, status=status, code=code)

    async def _pace(self) -> None:
        policy = self.policy
        if policy.batch_size > 0 and self.calls_made and self.calls_made % policy.batch_size == 0:
            log.debug("Sent %d requests, pausing %.2fs", self.calls_made, policy.batch_pause)
            await self._sleep(policy.batch_pause)
        elif self._last_call is not None and policy.min_interval > 0:
            elapsed = self._clock() - self._last_call
            if elapsed < policy.min_interval:
                await self._sleep(policy.min_interval - elapsed)
        self.calls_made += 1
        self._last_call = self._clock()
