from __future__ import annotations

import inspect
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

log = logging.getLogger("guildforge.progress")


class Phase(str, Enum):
    PREFLIGHT = "preflight"
    ROLES = "roles"
    CHANNELS = "categories_and_channels"
    EMBEDS = "embeds"
    SETTINGS = "settings"
    DONE = "done"

    # teardown phases
    DELETE_CHANNELS = "delete_channels"
    DELETE_CATEGORIES = "delete_categories"
    DELETE_ROLES = "delete_roles"
    DELETE_AUTOMOD = "delete_automod"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


ProgressCallback = Callable[[Phase, int, int], Union[None, Awaitable[None]]]


class ProgressThrottle:
    """Debounced forwarder for progress callbacks.

    An update goes through when the phase changed, when it is the last item of
    the phase (index == total), or when `interval` seconds passed since the last
    forwarded update. Indices reported for a phase never go backwards.
    """

    def __init__(self, callback: Optional[ProgressCallback], interval: float = 2.0, *, clock: Callable[[], float] = time.monotonic):
        self._callback = callback
        self.interval = interval
        self._clock = clock
        self._last_phase: Optional[Phase] = None
        self._last_index = 0
        self._last_emit: Optional[float] = None
        self.emitted = 0

    async def update(self, phase: Phase, index: int, total: int) -> None:
        if self._callback is None:
            return

        phase_changed = phase != self._last_phase
        if not phase_changed and index < self._last_index:
            index = self._last_index

        now = self._clock()
        should_update = (
            phase_changed
            or index >= total
            or self._last_emit is None
            or now - self._last_emit >= self.interval
        )
        if not should_update:
            return

        self._last_phase = phase
        self._last_index = index
        self._last_emit = now
        self.emitted += 1
        try:
            outcome: Any = self._callback(phase, index, total)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            # Observer failures are logged, never raised into the run
            log.exception("Progress callback failed for %s %d/%d", phase.value, index, total)
