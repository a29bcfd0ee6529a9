"""Background sync bridge: fetch and subscribe outside the interactive loop.

[BackgroundSyncBridge][ravensync.engine.bridge.BackgroundSyncBridge] mirrors
the engine's fetch and subscribe paths on its own relay pool, obtained from
a factory, so background work never shares sockets with the interactive
engine. It adds [locate_relay()][ravensync.engine.bridge.BackgroundSyncBridge.locate_relay],
which answers "which live relay holds this event?".

The pool is recycled once it is older than
[BridgeConfig.pool_ttl][ravensync.engine.configs.BridgeConfig] and no
subscription is open on it, which bounds the growth of long-lived sockets.

[BridgeWorker][ravensync.engine.bridge.BridgeWorker] runs a bridge on a
dedicated thread with its own event loop; other threads submit coroutines
through the thread-safe [call()][ravensync.engine.bridge.BridgeWorker.call].

Examples:
    ```python
    worker = BridgeWorker(lambda: BackgroundSyncBridge(NostrSdkPool))
    worker.start()
    worker.call(lambda bridge: bridge.setup(["wss://nos.lol"]))
    relay = worker.call(lambda bridge: bridge.locate_relay(event_id))
    worker.stop()
    ```
"""

from __future__ import annotations

import asyncio
import itertools
import threading
import time
from typing import TYPE_CHECKING, Any, TypeVar

from ravensync.core.exceptions import RelayNotFoundError
from ravensync.core.logger import Logger
from ravensync.models.filter import EventFilter
from ravensync.models.relay import normalize_relay_urls

from .configs import BridgeConfig


if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Iterable
    from concurrent.futures import Future

    from ravensync.models.event import RawEvent
    from ravensync.utils.protocol import ConnectResult, PoolSubscription, RelayPool


T = TypeVar("T")


class BackgroundSyncBridge:
    """Isolated fetch/subscribe mirror with relay location.

    Args:
        pool_factory: Creates a fresh pool at start and on every recycle.
        config: TTL, locate and probe settings.
        connect_timeout: Timeout for (re)connecting the configured relays.
        clock: Monotonic time source used for the TTL.
    """

    def __init__(
        self,
        pool_factory: Callable[[], RelayPool],
        config: BridgeConfig | None = None,
        *,
        connect_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._pool_factory = pool_factory
        self._config = config or BridgeConfig()
        self._connect_timeout = connect_timeout
        self._clock = clock
        self._pool: RelayPool | None = None
        self._pool_created = 0.0
        self._relays: tuple[str, ...] = ()
        self._subscriptions: dict[str, PoolSubscription] = {}
        self._ids = itertools.count(1)
        self._logger = Logger("ravensync.bridge")

    @property
    def relays(self) -> tuple[str, ...]:
        return self._relays

    @property
    def subscription_ids(self) -> tuple[str, ...]:
        return tuple(self._subscriptions)

    # -------------------------------------------------------------------------
    # Pool lifecycle
    # -------------------------------------------------------------------------

    async def setup(self, relays: Iterable[str]) -> ConnectResult:
        """Set the relays this bridge works against and connect to them.

        Invalid urls are dropped.
        """
        self._relays = normalize_relay_urls(relays)
        pool = await self._ensure_pool(connect=False)
        result = await pool.connect(self._relays, self._connect_timeout)
        self._logger.info(
            "bridge_setup", connected=len(result.connected), failed=len(result.failed)
        )
        return result

    async def _ensure_pool(self, *, connect: bool = True) -> RelayPool:
        expired = self._clock() - self._pool_created >= self._config.pool_ttl
        if self._pool is not None and expired and not self._subscriptions:
            self._logger.debug("pool_recycled", age=round(self._clock() - self._pool_created, 1))
            await self._pool.close()
            self._pool = None

        if self._pool is None:
            self._pool = self._pool_factory()
            self._pool_created = self._clock()
            if connect and self._relays:
                await self._pool.connect(self._relays, self._connect_timeout)
        return self._pool

    async def _relay_set(self, pool: RelayPool) -> tuple[str, ...]:
        live = await pool.live_relays()
        if not self._relays:
            return tuple(live)
        live_set = set(live)
        return tuple(url for url in self._relays if url in live_set)

    async def close(self) -> None:
        """Stop every subscription and close the pool."""
        for sub_id in list(self._subscriptions):
            await self.unsubscribe(sub_id)
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # -------------------------------------------------------------------------
    # Fetch / subscribe
    # -------------------------------------------------------------------------

    async def fetch(
        self,
        filters: list[EventFilter],
        quit_after: float = 0.0,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> list[RawEvent]:
        """Collect the events matching *filters*.

        Args:
            filters: Filters of one bounded subscription.
            quit_after: When positive, stop after this many seconds without a
                new event (the idle timer resets on every event) or at EOSE.
                Otherwise wait for EOSE.
            timeout: Optional overall bound in seconds.

        Returns:
            Events deduplicated by id in arrival order; empty when no relay
            is live.
        """
        pool = await self._ensure_pool()
        relay_set = await self._relay_set(pool)
        if not relay_set or not filters:
            return []

        loop = asyncio.get_running_loop()
        collected: dict[str, RawEvent] = {}
        eose = asyncio.Event()
        last_event = loop.time()

        def on_event(event: RawEvent, _relay: str) -> None:
            nonlocal last_event
            last_event = loop.time()
            collected.setdefault(event.id, event)

        subscription: PoolSubscription | None = None
        try:
            async with asyncio.timeout(timeout):
                subscription = await pool.subscribe(
                    filters, relay_set, close_on_eose=True, on_event=on_event, on_eose=eose.set
                )
                if quit_after > 0:
                    await self._wait_idle(eose, lambda: last_event, quit_after)
                else:
                    await eose.wait()
        except TimeoutError:
            self._logger.debug("fetch_timed_out", events=len(collected))
        finally:
            if subscription is not None:
                await subscription.stop()
        return list(collected.values())

    @staticmethod
    async def _wait_idle(
        eose: asyncio.Event, last_event: Callable[[], float], quit_after: float
    ) -> None:
        loop = asyncio.get_running_loop()
        while not eose.is_set():
            remaining = last_event() + quit_after - loop.time()
            if remaining <= 0:
                return
            try:
                await asyncio.wait_for(eose.wait(), timeout=remaining)
            except TimeoutError:
                continue

    async def subscribe(
        self,
        filters: list[EventFilter],
        on_event: Callable[[RawEvent], None],
        close_on_eose: bool = True,
    ) -> str:
        """Open a subscription and return its id.

        Raises:
            RelayNotFoundError: If no relay is live.
        """
        pool = await self._ensure_pool()
        relay_set = await self._relay_set(pool)
        if not relay_set:
            raise RelayNotFoundError("no live relay to subscribe on")

        sub_id = f"bridge-{next(self._ids)}"

        def on_eose() -> None:
            if close_on_eose:
                self._subscriptions.pop(sub_id, None)

        self._subscriptions[sub_id] = await pool.subscribe(
            filters,
            relay_set,
            close_on_eose=close_on_eose,
            on_event=lambda event, _relay: on_event(event),
            on_eose=on_eose,
        )
        return sub_id

    async def unsubscribe(self, sub_id: str) -> None:
        """Stop *sub_id*. Unknown or finished ids are ignored."""
        subscription = self._subscriptions.pop(sub_id, None)
        if subscription is not None:
            await subscription.stop()

    # -------------------------------------------------------------------------
    # Relay location
    # -------------------------------------------------------------------------

    async def locate_relay(self, event_id: str) -> str:
        """Return a live relay known to hold *event_id*.

        Fetches the event by id up to ``locate_attempts`` times until some
        relay has delivered it, then probes those relays in order and returns
        the first that responds.

        Raises:
            RelayNotFoundError: If no relay delivered the event or none of
                the candidates is live.
        """
        pool = await self._ensure_pool()
        candidates = pool.seen_on(event_id)
        attempt = 0
        while not candidates and attempt < self._config.locate_attempts:
            attempt += 1
            await self.fetch([EventFilter.build(ids=[event_id])], timeout=self._config.locate_timeout)
            pool = await self._ensure_pool()
            candidates = pool.seen_on(event_id)
            self._logger.debug("locate_attempt", id=event_id, attempt=attempt, found=len(candidates))

        if not candidates:
            raise RelayNotFoundError(f"no relay delivered event {event_id}")

        for url in sorted(candidates):
            if await pool.ensure_relay(url, self._config.probe_timeout):
                return url
        raise RelayNotFoundError(f"no live relay holds event {event_id}")


class BridgeWorker:
    """Runs a [BackgroundSyncBridge][ravensync.engine.bridge.BackgroundSyncBridge] on its own thread.

    The bridge is created inside the worker thread so that every asyncio
    object it owns belongs to the worker's event loop.

    Args:
        bridge_factory: Builds the bridge on the worker thread.
        name: Thread name.
    """

    def __init__(
        self,
        bridge_factory: Callable[[], BackgroundSyncBridge],
        *,
        name: str = "ravensync-bridge",
    ) -> None:
        self._bridge_factory = bridge_factory
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._bridge: BackgroundSyncBridge | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread and wait until its loop runs."""
        if self.is_running:
            return
        self._ready.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        self._ready.wait()

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            try:
                self._bridge = self._bridge_factory()
            finally:
                self._ready.set()
            loop.run_forever()
        finally:
            loop.close()

    def submit(
        self, fn: Callable[[BackgroundSyncBridge], Coroutine[Any, Any, T]]
    ) -> Future[T]:
        """Schedule ``fn(bridge)`` on the worker loop and return its future."""
        if self._loop is None or self._bridge is None or not self.is_running:
            raise RuntimeError("bridge worker is not running")
        return asyncio.run_coroutine_threadsafe(fn(self._bridge), self._loop)

    def call(
        self,
        fn: Callable[[BackgroundSyncBridge], Coroutine[Any, Any, T]],
        timeout: float | None = None,
    ) -> T:
        """Run ``fn(bridge)`` on the worker loop and block for its result."""
        return self.submit(fn).result(timeout)

    def stop(self, timeout: float | None = 10.0) -> None:
        """Close the bridge, stop the loop and join the thread. Idempotent."""
        if not self.is_running or self._loop is None:
            return
        if self._bridge is not None:
            self.call(lambda bridge: bridge.close(), timeout)
        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        self._loop = None
        self._bridge = None

    def __enter__(self) -> BridgeWorker:
        self.start()
        return self

    def __exit__(self, *_exc: object) -> None:
        self.stop()
