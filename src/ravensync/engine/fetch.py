"""One-shot bounded fetches over the read relay set.

Each filter runs as its own ``close_on_eose`` subscription and is collected
until every relay has sent EOSE or the timeout expires, whichever comes
first. A timed-out subscription is force-stopped and whatever arrived so far
is kept. Pool errors never escape: the public
[fetch()][ravensync.engine.fetch.FetchEngine.fetch] returns an empty list,
while [fetch_result()][ravensync.engine.fetch.FetchEngine.fetch_result]
reports a typed [FetchOutcome][ravensync.engine.fetch.FetchOutcome] that is
logged and counted.

Note:
    Filters run sequentially unless
    [FetchConfig.concurrent_filters][ravensync.engine.configs.FetchConfig] is
    set. Either way each filter is bounded by its own timeout.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from nostr_sdk import NostrSdkError

from ravensync.core.exceptions import ConnectivityError
from ravensync.core.logger import Logger
from ravensync.core.metrics import FETCH_OUTCOMES

from .relay_sets import RelayRole


if TYPE_CHECKING:
    from ravensync.models.event import RawEvent
    from ravensync.models.filter import EventFilter
    from ravensync.utils.protocol import PoolSubscription, RelayPool

    from .configs import FetchConfig
    from .relay_sets import RelaySet, RelaySetResolver


class FetchOutcome(StrEnum):
    """How a fetch ended."""

    COMPLETE = "complete"
    TIMED_OUT = "timed_out"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Events of one fetch call with the outcome that produced them.

    ``TIMED_OUT`` results may carry partial events; ``UNAVAILABLE`` (no live
    read relay) and ``FAILED`` (pool error) always carry none.
    """

    events: tuple[RawEvent, ...] = ()
    outcome: FetchOutcome = FetchOutcome.COMPLETE


class FetchEngine:
    """Bounded one-shot fetches.

    Args:
        pool: Relay pool used for the subscriptions.
        resolver: Supplies the read relay set.
        config: Default timeout and filter concurrency.
    """

    def __init__(self, pool: RelayPool, resolver: RelaySetResolver, config: FetchConfig) -> None:
        self._pool = pool
        self._resolver = resolver
        self._config = config
        self._logger = Logger("ravensync.fetch")

    async def fetch(
        self,
        filters: list[EventFilter],
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> list[RawEvent]:
        """Fetch the events matching *filters*; an empty list on any failure."""
        result = await self.fetch_result(filters, timeout)
        return list(result.events)

    async def fetch_result(
        self,
        filters: list[EventFilter],
        timeout: float | None = None,  # noqa: ASYNC109
        relay_set: RelaySet | None = None,
    ) -> FetchResult:
        """Fetch the events matching *filters* and report how the fetch ended.

        Args:
            filters: One bounded subscription is opened per filter.
            timeout: Per-filter bound in seconds; defaults to
                ``FetchConfig.timeout``.
            relay_set: Explicit relays to query instead of the resolved read set.

        Returns:
            Events deduplicated by id in arrival order.
        """
        effective_timeout = timeout if timeout is not None else self._config.timeout
        if not filters:
            return FetchResult()

        if relay_set is None:
            relay_set = await self._resolver.resolve(RelayRole.READ)
        if not relay_set:
            return self._finish(FetchResult(outcome=FetchOutcome.UNAVAILABLE), len(filters))

        try:
            if self._config.concurrent_filters:
                parts = await asyncio.gather(
                    *(self._fetch_one(f, relay_set, effective_timeout) for f in filters)
                )
            else:
                parts = [await self._fetch_one(f, relay_set, effective_timeout) for f in filters]
        except (OSError, NostrSdkError, ConnectivityError) as e:
            self._logger.warning("fetch_failed", error=str(e), filters=len(filters))
            return self._finish(FetchResult(outcome=FetchOutcome.FAILED), len(filters))

        collected: dict[str, RawEvent] = {}
        timed_out = False
        for events, filter_timed_out in parts:
            timed_out = timed_out or filter_timed_out
            for event in events:
                collected.setdefault(event.id, event)

        outcome = FetchOutcome.TIMED_OUT if timed_out else FetchOutcome.COMPLETE
        return self._finish(FetchResult(tuple(collected.values()), outcome), len(filters))

    async def _fetch_one(
        self,
        event_filter: EventFilter,
        relay_set: RelaySet,
        timeout: float,  # noqa: ASYNC109
    ) -> tuple[list[RawEvent], bool]:
        """Collect one filter until EOSE or *timeout*; return ``(events, timed_out)``."""
        events: list[RawEvent] = []
        eose = asyncio.Event()
        subscription: PoolSubscription | None = None
        timed_out = False

        def on_event(event: RawEvent, _relay: str) -> None:
            if event_filter.matches(event):
                events.append(event)

        try:
            async with asyncio.timeout(timeout):
                subscription = await self._pool.subscribe(
                    [event_filter],
                    relay_set,
                    close_on_eose=True,
                    on_event=on_event,
                    on_eose=eose.set,
                )
                await eose.wait()
        except TimeoutError:
            timed_out = True
        finally:
            if subscription is not None:
                await subscription.stop()

        return events, timed_out

    def _finish(self, result: FetchResult, filter_count: int) -> FetchResult:
        FETCH_OUTCOMES.labels(outcome=result.outcome).inc()
        self._logger.debug(
            "fetch_completed",
            outcome=result.outcome,
            events=len(result.events),
            filters=filter_count,
        )
        return result
