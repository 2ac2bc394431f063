"""
Single save queue shared by event-driven saves and the periodic autosave.

- at most one save is in flight; triggers arriving meanwhile coalesce into one
  follow-up save of the newest snapshot
- every job carries the generation it was scheduled in; bumping the generation
  (reset, identity change) turns queued and not-yet-written jobs into no-ops
"""

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from progress_sync.schemas.identity_schemas import Identity
from progress_sync.schemas.progress_schemas import ProgressSnapshot, ResumeTarget
from progress_sync.utils.logger import configure_logging

logger = configure_logging()


@dataclass(frozen=True)
class SaveJob:
    identity: Identity
    snapshot: ProgressSnapshot
    location: Optional[ResumeTarget]
    generation: int
    reason: str = "event"


class SaveScheduler:
    def __init__(self, save_fn: Callable[[SaveJob], Awaitable[bool]]):
        self._save_fn = save_fn
        self.generation = 0
        self._task: Optional[asyncio.Task] = None
        self._pending: Optional[SaveJob] = None
        self.completed_saves = 0
        self.skipped_saves = 0

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_current(self, job: SaveJob) -> bool:
        return job.generation == self.generation

    def schedule(self, job: SaveJob) -> None:
        """Fire-and-forget. Must be called from the running event loop."""
        if not self.is_current(job):
            self.skipped_saves += 1
            logger.debug("save dropped: stale generation job=%s current=%s", job.generation, self.generation)
            return
        if self.in_flight:
            # Coalesce: only the newest pending snapshot matters.
            self._pending = job
            logger.debug("save queued behind in-flight save reason=%s", job.reason)
            return
        self._task = asyncio.create_task(self._run(job))

    async def _run(self, job: SaveJob) -> None:
        current: Optional[SaveJob] = job
        while current is not None:
            if self.is_current(current):
                try:
                    await self._save_fn(current)
                    self.completed_saves += 1
                except Exception:
                    logger.exception("save failed identity=%s reason=%s", current.identity.id, current.reason)
            else:
                self.skipped_saves += 1
            current, self._pending = self._pending, None

    def bump_generation(self) -> int:
        self.generation += 1
        self._pending = None
        return self.generation

    async def drain(self) -> None:
        """Wait until nothing is in flight (including coalesced follow-ups)."""
        while self.in_flight:
            await asyncio.wait({self._task})


class AutosaveLoop:
    """Awaits `tick` every `interval` seconds until stopped."""

    def __init__(self, interval: float, tick: Callable[[], Awaitable[None]]):
        self.interval = interval
        self._tick = tick
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running or self.interval <= 0:
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._tick()
            except Exception:
                logger.exception("autosave tick failed")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
