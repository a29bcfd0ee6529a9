"""Debounced, deduplicating staging buffer in front of reconstruction.

Every delivered event, whether from a fetch or a live subscription, is
pushed here. Bursts are coalesced into batches:

1. The first push to an idle buffer arms a
   [DebounceTimer][ravensync.core.timer.DebounceTimer].
2. Pushes inside the window join the same staged batch; an id already staged
   in that batch is ignored.
3. On fire, the staged list is swapped for a fresh one and the old list is
   handed to the batch processor.
4. While a batch is processed the timer stays disarmed. Pushes accumulate in
   the next batch, which is armed as soon as processing ends.

The swap is the only synchronization point between producers and the single
consumer, so each staged event is processed exactly once.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from ravensync.core.logger import Logger
from ravensync.core.metrics import BATCH_SIZE, INTAKE_EVENTS
from ravensync.core.timer import DebounceTimer


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ravensync.core.timer import Scheduler
    from ravensync.models.event import RawEvent


class IntakeBuffer:
    """Ordered staging list deduplicated by event id.

    Args:
        process: Coroutine function receiving each swapped-out batch.
        delay: Debounce window in seconds.
        max_batch_size: Upper bound on events handed over per fire; the
            remainder stays staged for the next fire. ``None`` disables it.
        scheduler: Clock for the debounce timer (a manual clock in tests).
    """

    def __init__(
        self,
        process: Callable[[list[RawEvent]], Awaitable[None]],
        *,
        delay: float = 0.1,
        max_batch_size: int | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        if max_batch_size is not None and max_batch_size < 1:
            raise ValueError("max_batch_size must be positive")
        self._process = process
        self._max_batch_size = max_batch_size
        self._timer = DebounceTimer(delay, self._on_fire, scheduler)
        self._staged: list[RawEvent] = []
        self._staged_ids: set[str] = set()
        self._processing = False
        self._task: asyncio.Task[None] | None = None
        self._logger = Logger("ravensync.intake")

    @property
    def staged_count(self) -> int:
        return len(self._staged)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def armed(self) -> bool:
        return self._timer.armed

    def push(self, event: RawEvent) -> bool:
        """Stage *event* unless its id is already in the unflushed batch.

        Returns:
            ``True`` if the event was staged.
        """
        if event.id in self._staged_ids:
            INTAKE_EVENTS.labels(outcome="duplicate").inc()
            return False

        self._staged.append(event)
        self._staged_ids.add(event.id)
        INTAKE_EVENTS.labels(outcome="staged").inc()

        if not self._processing:
            self._timer.arm()
        return True

    def _take_batch(self) -> list[RawEvent]:
        if self._max_batch_size is None or len(self._staged) <= self._max_batch_size:
            batch = self._staged
            self._staged = []
            self._staged_ids = set()
            return batch

        batch = self._staged[: self._max_batch_size]
        self._staged = self._staged[self._max_batch_size :]
        self._staged_ids = {event.id for event in self._staged}
        return batch

    def _on_fire(self) -> None:
        if self._processing or not self._staged:
            return
        batch = self._take_batch()
        self._processing = True
        self._task = asyncio.get_running_loop().create_task(self._run(batch))

    async def _run(self, batch: list[RawEvent]) -> None:
        BATCH_SIZE.observe(len(batch))
        try:
            await self._process(batch)
        except Exception:
            self._logger.exception("batch_failed", size=len(batch))
        finally:
            self._processing = False
            if self._staged:
                self._timer.arm()

    async def wait_idle(self) -> None:
        """Wait until the batch currently being processed is done."""
        while self._task is not None and not self._task.done():
            await self._task

    async def flush(self) -> None:
        """Process everything staged now, bypassing the debounce window."""
        self._timer.cancel()
        while True:
            await self.wait_idle()
            self._timer.cancel()
            if not self._staged:
                return
            batch = self._take_batch()
            self._processing = True
            await self._run(batch)
