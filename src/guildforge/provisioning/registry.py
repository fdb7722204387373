from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Set

from .errors import RunInProgressError

log = logging.getLogger("guildforge.registry")


class RunRegistry:
    """Guild ids with a run in flight. Shared by every run the process starts.

    All access happens on the event loop thread, so a plain set is enough:
    check-and-insert in try_acquire has no await point between them.
    """

    def __init__(self) -> None:
        self._active: Set[int] = set()

    def try_acquire(self, target_id: int) -> bool:
        if target_id in self._active:
            return False
        self._active.add(target_id)
        return True

    def release(self, target_id: int) -> None:
        self._active.discard(target_id)

    def is_running(self, target_id: int) -> bool:
        return target_id in self._active

    @property
    def active(self) -> frozenset:
        return frozenset(self._active)

    @asynccontextmanager
    async def hold(self, target_id: int) -> AsyncIterator[None]:
        if not self.try_acquire(target_id):
            log.warning("Refusing run for guild %s: already in progress", target_id)
            raise RunInProgressError(target_id)
        try:
            yield
        finally:
            self.release(target_id)
