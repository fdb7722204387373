from __future__ import annotations

import pytest

from guildforge.provisioning.errors import RunInProgressError
from guildforge.provisioning.registry import RunRegistry


def test_try_acquire_and_release():
    registry = RunRegistry()
    assert registry.try_acquire(1)
    assert not registry.try_acquire(1)
    assert registry.try_acquire(2)
    assert registry.active == frozenset({1, 2})

    registry.release(1)
    assert not registry.is_running(1)
    assert registry.try_acquire(1)


def test_release_is_unconditional():
    registry = RunRegistry()
    registry.release(42)
    assert not registry.is_running(42)


async def test_hold_refuses_a_second_run():
    registry = RunRegistry()
    async with registry.hold(7):
        assert registry.is_running(7)
        with pytest.raises(RunInProgressError) as info:
            async with registry.hold(7):
                pass
        assert info.value.target_id == 7
    assert not registry.is_running(7)


async def test_hold_releases_on_error():
    registry = RunRegistry()
    with pytest.raises(ValueError):
        async with registry.hold(7):
            raise ValueError("boom")
    assert not registry.is_running(7)
