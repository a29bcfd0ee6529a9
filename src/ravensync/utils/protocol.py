"""Relay pool capability and its nostr-sdk implementation.

The engine talks to relays only through the
[RelayPool][ravensync.utils.protocol.RelayPool] protocol: connect, report
live relays, subscribe with "close on EOSE" or "keep open" semantics,
publish to a relay subset, and answer which relays delivered a given event.
Tests substitute an in-memory pool; production uses
[NostrSdkPool][ravensync.utils.protocol.NostrSdkPool].

Note:
    [NostrSdkPool][ravensync.utils.protocol.NostrSdkPool] keeps one
    ``nostr_sdk.Client`` per relay so every delivered event carries its
    provenance. A subscription first streams each filter from each relay
    until EOSE. Persistent ("keep open") subscriptions then open a live REQ
    on the same client and receive its events through
    ``Client.handle_notifications``.

See Also:
    [ravensync.models.filter.EventFilter][ravensync.models.filter.EventFilter]:
        The filter description converted by
        [create_filter][ravensync.utils.protocol.create_filter].
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import TYPE_CHECKING, Protocol

from nostr_sdk import (
    Alphabet,
    Client,
    ClientBuilder,
    EventId,
    Filter,
    HandleNotification,
    Kind,
    NostrSdkError,
    PublicKey,
    RelayUrl,
    SingleLetterTag,
    Timestamp,
)

from ravensync.core.exceptions import RelayTimeoutError
from ravensync.models.event import RawEvent


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from nostr_sdk import Event, RelayMessage

    from ravensync.models.filter import EventFilter


logger = logging.getLogger(__name__)


# =============================================================================
# Protocol
# =============================================================================


@dataclass(frozen=True, slots=True)
class ConnectResult:
    """Outcome of a connect call. Partial failure is not an error."""

    connected: tuple[str, ...] = ()
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return bool(self.connected)


class PoolSubscription(Protocol):
    """Handle of an open subscription."""

    async def stop(self) -> None:
        """Close the subscription on every relay. Idempotent."""
        ...


class RelayPool(Protocol):
    """Connection pool over independent relays."""

    async def connect(self, urls: Iterable[str], timeout: float) -> ConnectResult: ...  # noqa: ASYNC109

    async def live_relays(self) -> tuple[str, ...]: ...

    async def subscribe(
        self,
        filters: list[EventFilter],
        relay_set: tuple[str, ...],
        *,
        close_on_eose: bool,
        on_event: Callable[[RawEvent, str], None],
        on_eose: Callable[[], None] | None = None,
    ) -> PoolSubscription: ...

    async def publish(self, event: Event, relay_set: tuple[str, ...]) -> set[str]: ...

    def seen_on(self, event_id: str) -> set[str]: ...

    async def ensure_relay(self, url: str, timeout: float) -> bool: ...  # noqa: ASYNC109

    async def close(self) -> None: ...


# =============================================================================
# nostr-sdk helpers
# =============================================================================


def create_client() -> Client:
    """Create a read/publish ``Client``; events are signed before they reach it."""
    return ClientBuilder().build()


def create_filter(event_filter: EventFilter) -> Filter:
    """Build a nostr-sdk ``Filter`` from an [EventFilter][ravensync.models.filter.EventFilter].

    Tag filters are applied as single-letter lowercase tags (``#e``, ``#p``,
    ``#d`` ...), one ``custom_tag`` call per value.
    """
    f = Filter()

    if event_filter.ids:
        f = f.ids([EventId.parse(i) for i in event_filter.ids])
    if event_filter.kinds:
        f = f.kinds([Kind(k) for k in event_filter.kinds])
    if event_filter.authors:
        f = f.authors([PublicKey.parse(a) for a in event_filter.authors])
    if event_filter.since is not None:
        f = f.since(Timestamp.from_secs(event_filter.since))
    if event_filter.until is not None:
        f = f.until(Timestamp.from_secs(event_filter.until))
    if event_filter.limit is not None:
        f = f.limit(event_filter.limit)

    for letter, values in event_filter.tags:
        tag = SingleLetterTag.lowercase(getattr(Alphabet, letter.upper()))
        for value in values:
            f = f.custom_tag(tag, value)

    return f


# =============================================================================
# NostrSdkPool
# =============================================================================


class _NotificationRouter(HandleNotification):
    """Hands notifications of one client to the live subscription that asked for them."""

    def __init__(self) -> None:
        self.routes: dict[str, Callable[[Event], None]] = {}

    async def handle(self, relay_url: str, subscription_id: str, event: Event) -> None:
        route = self.routes.get(str(subscription_id))
        if route is not None:
            route(event)

    async def handle_msg(self, relay_url: str, msg: RelayMessage) -> None:
        return None


class _StreamSubscription:
    """Per-relay, per-filter tasks behind one handle.

    *release* runs once, when the handle is stopped or when every task has
    finished on its own.
    """

    __slots__ = ("_release", "_released", "_stopped", "_tasks")

    def __init__(
        self, tasks: list[asyncio.Task[None]], release: Callable[[_StreamSubscription], None]
    ) -> None:
        self._tasks = tasks
        self._release = release
        self._released = False
        self._stopped = False
        for task in tasks:
            task.add_done_callback(self._task_done)
        if not tasks:
            self._finish()

    def _task_done(self, _task: asyncio.Task[None]) -> None:
        if all(task.done() for task in self._tasks):
            self._finish()

    def _finish(self) -> None:
        if not self._released:
            self._released = True
            self._release(self)

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._finish()


def _remember(ids: OrderedDict[str, None], key: str, capacity: int) -> bool:
    """Mark *key* as most recent; return ``False`` if it was already known."""
    known = key in ids
    if known:
        ids.move_to_end(key)
    else:
        ids[key] = None
        while len(ids) > capacity:
            ids.popitem(last=False)
    return not known


class NostrSdkPool:
    """[RelayPool][ravensync.utils.protocol.RelayPool] backed by ``nostr_sdk.Client``.

    Args:
        stream_timeout: Upper bound in seconds for the backfill pass of a
            filter on one relay.
        connect_grace: Seconds allowed on top of the connect timeout before
            a handshake that never reports back is abandoned.
        seen_capacity: How many event ids keep their provenance for
            [seen_on()][ravensync.utils.protocol.NostrSdkPool.seen_on], and
            how many ids a live subscription remembers to drop repeats.
        client_factory: Builds the client dedicated to each relay.
    """

    def __init__(
        self,
        *,
        stream_timeout: float = 30.0,
        connect_grace: float = 2.0,
        seen_capacity: int = 10_000,
        client_factory: Callable[[], Client] = create_client,
    ) -> None:
        self._clients: dict[str, Client] = {}
        self._relay_urls: dict[str, RelayUrl] = {}
        self._routers: dict[str, tuple[_NotificationRouter, asyncio.Task[None]]] = {}
        self._seen: OrderedDict[str, set[str]] = OrderedDict()
        self._subscriptions: set[_StreamSubscription] = set()
        self._stream_timeout = stream_timeout
        self._connect_grace = connect_grace
        self._seen_capacity = seen_capacity
        self._client_factory = client_factory

    @property
    def open_subscriptions(self) -> int:
        return len(self._subscriptions)

    # -- connections ----------------------------------------------------------

    async def _connect_one(self, url: str, timeout: float) -> str | None:  # noqa: ASYNC109
        """Connect a dedicated client to *url*; return the error message on failure.

        Raises:
            RelayTimeoutError: If the handshake outlives *timeout* plus the
                connect grace.
        """
        if url in self._clients:
            return None
        try:
            relay_url = RelayUrl.parse(url)
        except NostrSdkError as e:
            return str(e)

        client = self._client_factory()
        await client.add_relay(relay_url)
        try:
            output = await asyncio.wait_for(
                client.try_connect(timedelta(seconds=timeout)), timeout + self._connect_grace
            )
        except TimeoutError:
            with contextlib.suppress(Exception):
                await client.shutdown()
            raise RelayTimeoutError(f"connecting to {url} timed out after {timeout}s") from None

        if relay_url in output.success:
            self._clients[url] = client
            self._relay_urls[url] = relay_url
            return None

        error_message = output.failed.get(relay_url, "Unknown error")
        with contextlib.suppress(Exception):
            await client.shutdown()
        return str(error_message)

    async def connect(self, urls: Iterable[str], timeout: float) -> ConnectResult:  # noqa: ASYNC109
        """Connect to every url concurrently; failures are collected, not raised."""
        targets = list(dict.fromkeys(urls))
        results = await asyncio.gather(
            *(self._connect_one(url, timeout) for url in targets), return_exceptions=True
        )

        connected: list[str] = []
        failed: dict[str, str] = {}
        for url, result in zip(targets, results, strict=True):
            if isinstance(result, RelayTimeoutError):
                failed[url] = str(result)
                logger.warning("connect_timeout relay=%s timeout=%s", url, timeout)
            elif isinstance(result, BaseException):
                failed[url] = str(result)
            elif result is None:
                connected.append(url)
            else:
                failed[url] = result

        for url, error in failed.items():
            logger.debug("connect_failed relay=%s error=%s", url, error)
        if targets and not connected:
            logger.warning("connect_none relays=%d", len(targets))
        return ConnectResult(connected=tuple(connected), failed=failed)

    async def live_relays(self) -> tuple[str, ...]:
        live: list[str] = []
        for url, client in self._clients.items():
            try:
                relay = await client.relay(self._relay_urls[url])
                if relay.is_connected():
                    live.append(url)
            except NostrSdkError:
                continue
        return tuple(live)

    # -- subscriptions --------------------------------------------------------

    def _router(self, url: str, client: Client) -> _NotificationRouter:
        """The notification router of *url*, started on first use."""
        if url not in self._routers:
            router = _NotificationRouter()
            task = asyncio.create_task(client.handle_notifications(router))
            self._routers[url] = (router, task)
        return self._routers[url][0]

    async def _backfill(
        self, url: str, client: Client, event_filter: EventFilter, deliver: Callable[[Event, str], None]
    ) -> None:
        try:
            stream = await client.stream_events(
                create_filter(event_filter), timeout=timedelta(seconds=self._stream_timeout)
            )
            while (event := await stream.next()) is not None:
                deliver(event, url)
        except (OSError, TimeoutError, NostrSdkError) as e:
            logger.debug("backfill_failed relay=%s error=%s", url, e)

    async def _follow(
        self, url: str, client: Client, event_filter: EventFilter, deliver: Callable[[Event, str], None]
    ) -> None:
        router = self._router(url, client)
        try:
            output = await client.subscribe(create_filter(event_filter), None)
        except (OSError, TimeoutError, NostrSdkError) as e:
            logger.warning("live_subscribe_failed relay=%s error=%s", url, e)
            return

        sub_id = str(output.id)
        router.routes[sub_id] = lambda event: deliver(event, url)
        try:
            await asyncio.Event().wait()
        finally:
            router.routes.pop(sub_id, None)
            # nostr-sdk Rust FFI can raise arbitrary exception types on a dropped relay.
            with contextlib.suppress(Exception):
                await client.unsubscribe(sub_id)

    async def _stream(
        self,
        url: str,
        client: Client,
        event_filter: EventFilter,
        *,
        close_on_eose: bool,
        deliver: Callable[[Event, str], None],
        first_pass_done: Callable[[], None],
    ) -> None:
        started = int(time.time())
        try:
            await self._backfill(url, client, event_filter, deliver)
        finally:
            first_pass_done()
        if close_on_eose:
            return
        # the live REQ overlaps the backfill by the events published since it began
        since = max(event_filter.since or 0, started)
        await self._follow(url, client, replace(event_filter, since=since, limit=None), deliver)

    async def subscribe(
        self,
        filters: list[EventFilter],
        relay_set: tuple[str, ...],
        *,
        close_on_eose: bool,
        on_event: Callable[[RawEvent, str], None],
        on_eose: Callable[[], None] | None = None,
    ) -> PoolSubscription:
        """Backfill every filter from every relay, then keep following unless *close_on_eose*.

        Each event id reaches *on_event* once per subscription, whichever
        relay or pass delivers it first. *on_eose* fires once, when every
        backfill pass has ended.
        """
        pairs = [
            (url, self._clients[url], f) for url in relay_set if url in self._clients for f in filters
        ]
        pending = len(pairs)
        eose_sent = False
        delivered: OrderedDict[str, None] = OrderedDict()

        def first_pass_done() -> None:
            nonlocal pending, eose_sent
            pending -= 1
            if pending <= 0 and not eose_sent:
                eose_sent = True
                if on_eose is not None:
                    on_eose()

        def deliver(event: Event, url: str) -> None:
            try:
                raw = RawEvent.from_nostr(event)
            except (TypeError, ValueError):
                return
            self._record(raw.id, url)
            if _remember(delivered, raw.id, self._seen_capacity):
                on_event(raw, url)

        tasks = [
            asyncio.create_task(
                self._stream(
                    url,
                    client,
                    f,
                    close_on_eose=close_on_eose,
                    deliver=deliver,
                    first_pass_done=first_pass_done,
                )
            )
            for url, client, f in pairs
        ]
        if not pairs:
            asyncio.get_running_loop().call_soon(first_pass_done)

        subscription = _StreamSubscription(tasks, self._subscriptions.discard)
        if tasks:
            self._subscriptions.add(subscription)
        return subscription

    # -- publishing and provenance --------------------------------------------

    def _record(self, event_id: str, url: str) -> None:
        relays = self._seen.pop(event_id, set())
        relays.add(url)
        self._seen[event_id] = relays
        while len(self._seen) > self._seen_capacity:
            self._seen.popitem(last=False)

    async def publish(self, event: Event, relay_set: tuple[str, ...]) -> set[str]:
        """Send *event* to every relay in *relay_set*; return the accepting urls."""

        async def send(url: str) -> str | None:
            client = self._clients.get(url)
            if client is None:
                return None
            try:
                output = await client.send_event(event)
            except (OSError, TimeoutError, NostrSdkError) as e:
                logger.warning("publish_failed relay=%s error=%s", url, e)
                return None
            relay_url = self._relay_urls[url]
            if relay_url in output.success:
                return url
            logger.warning(
                "publish_rejected relay=%s reason=%s", url, output.failed.get(relay_url, "unknown")
            )
            return None

        results = await asyncio.gather(*(send(url) for url in relay_set))
        accepted = {url for url in results if url is not None}
        event_id = event.id().to_hex()
        for url in accepted:
            self._record(event_id, url)
        return accepted

    def seen_on(self, event_id: str) -> set[str]:
        return set(self._seen.get(event_id, ()))

    async def ensure_relay(self, url: str, timeout: float) -> bool:  # noqa: ASYNC109
        """Connect to *url* if needed and report whether it is live."""
        try:
            error = await self._connect_one(url, timeout)
        except RelayTimeoutError as e:
            error = str(e)
        if error is not None:
            logger.debug("ensure_relay_failed relay=%s error=%s", url, error)
            return False
        client = self._clients[url]
        try:
            await client.wait_for_connection(timedelta(seconds=timeout))
            relay = await client.relay(self._relay_urls[url])
        except (OSError, TimeoutError, NostrSdkError):
            return False
        return bool(relay.is_connected())

    async def close(self) -> None:
        """Stop every subscription and shut every client down."""
        for subscription in list(self._subscriptions):
            await subscription.stop()
        self._subscriptions.clear()
        for client in self._clients.values():
            # nostr-sdk Rust FFI can raise arbitrary exception types during shutdown.
            with contextlib.suppress(Exception):
                await client.shutdown()
        for _router, task in self._routers.values():
            task.cancel()
        await asyncio.gather(*(task for _router, task in self._routers.values()), return_exceptions=True)
        self._routers.clear()
        self._clients.clear()
        self._relay_urls.clear()
