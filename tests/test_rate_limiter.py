from __future__ import annotations

import asyncio

import aiohttp
import discord
import pytest

from guildforge.provisioning.errors import FatalRemoteError, PerItemError
from guildforge.provisioning.rate_limiter import RateLimitedClient, RatePolicy
from guildforge.testing.fakes import FakeClock, FakeResponse

NO_PACING = RatePolicy(min_interval=0, batch_size=0)


def http_error(status, *, code=0, headers=None, cls=discord.HTTPException):
    return cls(FakeResponse(status, "Scripted", headers), {"code": code, "message": "scripted"})


class Scripted:
    """Async callable that raises or returns the next scripted outcome and logs call times."""

    def __init__(self, clock, *outcomes):
        self.clock = clock
        self.outcomes = list(outcomes)
        self.times = []

    async def __call__(self):
        self.times.append(self.clock())
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def clock():
    return FakeClock()


def client(clock, policy=NO_PACING):
    return RateLimitedClient(policy, sleep=clock.sleep, clock=clock)


async def test_success_passes_result_through(clock):
    func = Scripted(clock, {"id": "1"})
    assert await client(clock).execute("op", func) == {"id": "1"}
    assert clock.sleeps == []


async def test_rate_limit_waits_advertised_time(clock):
    func = Scripted(clock, http_error(429, headers={"Retry-After": "2"}), "ok")
    assert await client(clock).execute("op", func) == "ok"
    assert len(func.times) == 2
    assert func.times[1] - func.times[0] >= 2.0


async def test_rate_limit_without_header_uses_default(clock):
    func = Scripted(clock, http_error(429), "ok")
    await client(clock).execute("op", func)
    assert clock.sleeps == [1.0]


async def test_attempt_ceiling_escalates_to_per_item(clock):
    func = Scripted(clock, http_error(503, cls=discord.DiscordServerError))
    with pytest.raises(PerItemError) as info:
        await client(clock).execute("create_role", func)
    assert len(func.times) == NO_PACING.max_attempts
    assert info.value.attempts == NO_PACING.max_attempts
    assert info.value.status == 503
    assert clock.sleeps == [1.0, 2.0, 4.0]


async def test_rate_limits_share_the_attempt_ceiling(clock):
    func = Scripted(clock, http_error(429, headers={"Retry-After": "2"}))
    with pytest.raises(PerItemError):
        await client(clock, RatePolicy(min_interval=0, batch_size=0, max_attempts=3)).execute("op", func)
    assert len(func.times) == 3


async def test_zero_attempt_ceiling_still_tries_once(clock):
    func = Scripted(clock, http_error(503, cls=discord.DiscordServerError))
    with pytest.raises(PerItemError) as info:
        await client(clock, RatePolicy(min_interval=0, batch_size=0, max_attempts=0)).execute("op", func)
    assert len(func.times) == 1
    assert info.value.attempts == 1
    assert info.value.status == 503
    assert clock.sleeps == []


async def test_backoff_is_capped(clock):
    policy = RatePolicy(min_interval=0, batch_size=0, max_attempts=6, backoff_base=1.0, backoff_max=5.0)
    func = Scripted(clock, http_error(500, cls=discord.DiscordServerError))
    with pytest.raises(PerItemError):
        await client(clock, policy).execute("op", func)
    assert clock.sleeps == [1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.parametrize("exc", [aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError()])
async def test_connection_failures_are_retried(clock, exc):
    func = Scripted(clock, exc, "ok")
    assert await client(clock).execute("op", func) == "ok"
    assert clock.sleeps == [1.0]


async def test_unauthorized_is_fatal_without_retry(clock):
    func = Scripted(clock, http_error(401))
    with pytest.raises(FatalRemoteError) as info:
        await client(clock).execute("get_guild", func)
    assert len(func.times) == 1
    assert info.value.status == 401
    assert info.value.operation == "get_guild"


@pytest.mark.parametrize(
    "status, code, cls",
    [(403, 50001, discord.Forbidden), (404, 10004, discord.NotFound)],
)
async def test_missing_access_and_unknown_guild_are_fatal(clock, status, code, cls):
    func = Scripted(clock, http_error(status, code=code, cls=cls))
    with pytest.raises(FatalRemoteError) as info:
        await client(clock).execute("op", func)
    assert info.value.code == code
    assert len(func.times) == 1


@pytest.mark.parametrize(
    "status, code, cls",
    [(403, 50013, discord.Forbidden), (400, 50035, discord.HTTPException), (404, 10003, discord.NotFound)],
)
async def test_other_client_errors_fail_the_item_without_retry(clock, status, code, cls):
    func = Scripted(clock, http_error(status, code=code, cls=cls))
    with pytest.raises(PerItemError) as info:
        await client(clock).execute("op", func)
    assert info.value.status == status
    assert info.value.attempts == 1
    assert len(func.times) == 1
    assert clock.sleeps == []


async def test_minimum_spacing_between_calls(clock):
    limiter = client(clock, RatePolicy(min_interval=0.5, batch_size=0))
    func = Scripted(clock, "ok")
    for _ in range(3):
        await limiter.execute("op", func)
    assert clock.sleeps == [0.5, 0.5]
    assert func.times[1] - func.times[0] >= 0.5
    assert func.times[2] - func.times[1] >= 0.5


async def test_spacing_counts_time_already_elapsed(clock):
    limiter = client(clock, RatePolicy(min_interval=0.5, batch_size=0))
    func = Scripted(clock, "ok")
    await limiter.execute("op", func)
    clock.advance(0.2)
    await limiter.execute("op", func)
    assert clock.sleeps == [pytest.approx(0.3)]


async def test_batch_pause(clock):
    limiter = client(clock, RatePolicy(min_interval=0, batch_size=3, batch_pause=5.0))
    func = Scripted(clock, "ok")
    for _ in range(7):
        await limiter.execute("op", func)
    assert clock.sleeps == [5.0, 5.0]
    assert limiter.calls_made == 7
