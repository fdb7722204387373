from __future__ import annotations

import copy

import pytest

from guildforge.provisioning.engine import Provisioner
from guildforge.provisioning.rate_limiter import RatePolicy
from guildforge.provisioning.registry import RunRegistry
from guildforge.testing.fakes import FakeClock, FakeDiscordTransport

MINIMAL_DOCUMENT = {
    "id": "mini",
    "name": "Mini",
    "description": "One of everything",
    "categories": [
        {
            "name": "General",
            "channels": [
                {"name": "welcome", "type": "text", "embed": {"title": "Hello there"}},
            ],
        },
    ],
    "roles": [
        {"name": "Member", "color": "#99AAB5", "position": 0},
    ],
}


@pytest.fixture
def minimal_doc():
    return copy.deepcopy(MINIMAL_DOCUMENT)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake(clock):
    return FakeDiscordTransport(clock=clock)


@pytest.fixture
def registry():
    return RunRegistry()


@pytest.fixture
def make_provisioner(clock, registry):
    def factory(transport, policy=None):
        return Provisioner(
            registry,
            policy or RatePolicy(),
            transport_factory=lambda token: transport,
            sleep=clock.sleep,
            clock=clock,
        )
    return factory


@pytest.fixture
def provisioner(make_provisioner, fake):
    return make_provisioner(fake)
