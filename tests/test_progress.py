from __future__ import annotations

from guildforge.provisioning.progress import Phase, ProgressThrottle
from guildforge.testing.fakes import FakeClock


class Recorder:
    def __init__(self):
        self.updates = []

    def __call__(self, phase, index, total):
        self.updates.append((phase, index, total))


async def test_updates_inside_interval_are_dropped():
    clock = FakeClock()
    recorder = Recorder()
    throttle = ProgressThrottle(recorder, interval=2.0, clock=clock)

    await throttle.update(Phase.ROLES, 0, 5)
    await throttle.update(Phase.ROLES, 1, 5)
    await throttle.update(Phase.ROLES, 2, 5)
    clock.advance(2.5)
    await throttle.update(Phase.ROLES, 3, 5)
    await throttle.update(Phase.ROLES, 4, 5)
    await throttle.update(Phase.ROLES, 5, 5)

    assert recorder.updates == [(Phase.ROLES, 0, 5), (Phase.ROLES, 3, 5), (Phase.ROLES, 5, 5)]


async def test_phase_change_always_goes_through():
    clock = FakeClock()
    recorder = Recorder()
    throttle = ProgressThrottle(recorder, interval=60, clock=clock)

    await throttle.update(Phase.ROLES, 0, 3)
    await throttle.update(Phase.CHANNELS, 0, 4)
    await throttle.update(Phase.EMBEDS, 0, 1)

    assert [u[0] for u in recorder.updates] == [Phase.ROLES, Phase.CHANNELS, Phase.EMBEDS]


async def test_indices_never_go_backwards_within_a_phase():
    clock = FakeClock()
    recorder = Recorder()
    throttle = ProgressThrottle(recorder, interval=0, clock=clock)

    await throttle.update(Phase.ROLES, 3, 5)
    await throttle.update(Phase.ROLES, 1, 5)

    assert recorder.updates == [(Phase.ROLES, 3, 5), (Phase.ROLES, 3, 5)]


async def test_async_callbacks_are_awaited():
    seen = []

    async def callback(phase, index, total):
        seen.append(index)

    throttle = ProgressThrottle(callback, interval=0, clock=FakeClock())
    await throttle.update(Phase.DONE, 1, 1)
    assert seen == [1]


async def test_failing_callback_does_not_raise():
    def callback(phase, index, total):
        raise RuntimeError("observer broke")

    throttle = ProgressThrottle(callback, clock=FakeClock())
    await throttle.update(Phase.ROLES, 0, 1)
    assert throttle.emitted == 1


async def test_no_callback_is_a_no_op():
    throttle = ProgressThrottle(None)
    await throttle.update(Phase.ROLES, 0, 1)
    assert throttle.emitted == 0
