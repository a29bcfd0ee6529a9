"""
One-shot debounce timer over an injectable scheduler.

[DebounceTimer][ravensync.core.timer.DebounceTimer] follows an
"arm once, fire once, re-arm on next use" contract: arming an armed timer is
a no-op, so a burst of pushes results in a single callback ``delay`` seconds
after the first one.

The clock is abstracted behind the [Scheduler][ravensync.core.timer.Scheduler]
protocol. Production code uses
[LoopScheduler][ravensync.core.timer.LoopScheduler] (``loop.call_later``);
tests substitute a manual scheduler and advance time explicitly.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol


if TYPE_CHECKING:
    from collections.abc import Callable


class TimerHandle(Protocol):
    """Cancellable handle returned by a scheduler."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback after a delay."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class DebounceTimer:
    """Single-shot timer owned by one producer.

    Args:
        delay: Seconds between arming and firing.
        callback: Invoked once per arming, from the scheduler's context.
        scheduler: Clock to schedule on; defaults to
            [LoopScheduler][ravensync.core.timer.LoopScheduler].
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        scheduler: Scheduler | None = None,
    ) -> None:
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self._delay = delay
        self._callback = callback
        self._scheduler: Scheduler = scheduler or LoopScheduler()
        self._handle: TimerHandle | None = None

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def armed(self) -> bool:
        """Whether a fire is pending."""
        return self._handle is not None

    def arm(self) -> bool:
        """Schedule a fire unless one is already pending.

        Returns:
            ``True`` if this call armed the timer.
        """
        if self._handle is not None:
            return False
        self._handle = self._scheduler.call_later(self._delay, self._fire)
        return True

    def cancel(self) -> None:
        """Drop the pending fire, if any. Idempotent."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()
