"""Sync engine facade.

[SyncEngine][ravensync.engine.engine.SyncEngine] wires one relay pool and one
explicit [Signer][ravensync.utils.signer.Signer] into the engine components:

```text
RelayPool +-> FetchEngine ----------+
          +-> SubscriptionManager --+--> IntakeBuffer --> ReconstructionPipeline --> EventEmitter
                                                                                        ^
Publisher (local echo) -----------------------------------------------------------------+
```

Several engines with different identities can live in one process; nothing
is looked up from global state.

Examples:
    ```python
    from ravensync.engine import EngineConfig, SyncEngine
    from ravensync.models import DomainKind
    from ravensync.utils import NostrSdkPool, Signer

    engine = SyncEngine(NostrSdkPool(), Signer.from_secret(secret), EngineConfig())
    engine.emitter.on(DomainKind.PUBLIC_MESSAGE, print)

    async with engine:  # connects and runs the bootstrap sync
        await engine.subscriptions.start_inbox()
    ```
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Self

from ravensync.core.logger import Logger
from ravensync.models.constants import DomainKind, EventKind
from ravensync.models.filter import EventFilter
from ravensync.nips.parsing import parse_metadata_content
from ravensync.nips.tags import find_marker_value, find_tag_value
from ravensync.utils.signer import PassthroughCipher

from .configs import EngineConfig
from .emitter import EventEmitter
from .fetch import FetchEngine
from .intake import IntakeBuffer
from .publisher import Publisher
from .reconstruction import ReconstructionPipeline, reduce_channel_creations, reduce_profiles
from .relay_sets import RelaySetResolver
from .subscriptions import SubscriptionManager, chunked


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from types import TracebackType

    from ravensync.core.timer import Scheduler
    from ravensync.models.domain import Channel, Profile
    from ravensync.models.event import RawEvent
    from ravensync.utils.protocol import ConnectResult, RelayPool
    from ravensync.utils.signer import Cipher, Signer

    from .reconstruction import Emission


_BOOTSTRAP_SIGNALS = (DomainKind.READY, DomainKind.DMS_DONE, DomainKind.SYNC_DONE)


class SyncEngine:
    """Relay synchronization and event reconstruction for one identity.

    Args:
        pool: Relay pool shared by every component.
        signer: Identity used for the inbox, direct message orientation and
            publishing.
        config: Engine configuration; defaults to ``EngineConfig()``.
        cipher: Direct message cipher; defaults to
            [PassthroughCipher][ravensync.utils.signer.PassthroughCipher].
        emitter: Event emitter; a fresh one is created when omitted.
        scheduler: Clock for the intake debounce timer.
        clock: Unix time source for published events.

    See Also:
        [EngineConfig][ravensync.engine.configs.EngineConfig]: Per-component
            settings.
        [ListenerService][ravensync.services.listener.service.ListenerService]:
            Long-running service built on this facade.
    """

    def __init__(
        self,
        pool: RelayPool,
        signer: Signer,
        config: EngineConfig | None = None,
        *,
        cipher: Cipher | None = None,
        emitter: EventEmitter | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or EngineConfig()
        self._pool = pool
        self._signer = signer
        self._cipher: Cipher = cipher or PassthroughCipher()
        self._emitter = emitter or EventEmitter()
        self._logger = Logger("ravensync.engine", context={"identity": signer.identity() or "-"})

        self._resolver = RelaySetResolver(self._config.relays, pool)
        self._fetcher = FetchEngine(pool, self._resolver, self._config.fetch)
        self._pipeline = ReconstructionPipeline(signer, self._cipher)
        self._intake = IntakeBuffer(
            self._process_batch,
            delay=self._config.intake.debounce,
            max_batch_size=self._config.intake.max_batch_size,
            scheduler=scheduler,
        )
        self._subscriptions = SubscriptionManager(
            pool, self._resolver, self._intake, signer, self._config.sync
        )
        self._publisher = Publisher(
            pool, self._resolver, signer, self._cipher, self._emitter, clock=clock
        )

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def signer(self) -> Signer:
        return self._signer

    @property
    def emitter(self) -> EventEmitter:
        return self._emitter

    @property
    def resolver(self) -> RelaySetResolver:
        return self._resolver

    @property
    def fetcher(self) -> FetchEngine:
        return self._fetcher

    @property
    def intake(self) -> IntakeBuffer:
        return self._intake

    @property
    def pipeline(self) -> ReconstructionPipeline:
        return self._pipeline

    @property
    def subscriptions(self) -> SubscriptionManager:
        return self._subscriptions

    @property
    def publisher(self) -> Publisher:
        return self._publisher

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> ConnectResult:
        """Connect to the configured relays and, with an identity, run [sync()][ravensync.engine.engine.SyncEngine.sync].

        Partial connection failure is logged, not raised.
        """
        urls = self._resolver.all_configured()
        result = await self._pool.connect(urls, self._config.relays.connect_timeout)
        self._logger.info(
            "relays_connected", connected=len(result.connected), failed=len(result.failed)
        )
        if self._signer.identity() is not None:
            await self.sync()
        return result

    async def close(self) -> None:
        """Stop every subscription, drain the intake buffer and close the pool."""
        await self._subscriptions.stop_all()
        await self._intake.flush()
        await self._pool.close()
        self._logger.info("engine_closed")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Intake and fetch
    # -------------------------------------------------------------------------

    async def _process_batch(self, batch: list[RawEvent]) -> None:
        emissions: list[Emission] = await self._pipeline.process(batch)
        for emission in emissions:
            await self._emitter.emit(emission.kind, emission.items)

    def push(self, event: RawEvent) -> bool:
        """Stage *event* for reconstruction."""
        return self._intake.push(event)

    async def fetch(
        self,
        filters: list[EventFilter],
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> list[RawEvent]:
        """Bounded fetch over the read relays; see [FetchEngine][ravensync.engine.fetch.FetchEngine]."""
        return await self._fetcher.fetch(filters, timeout)

    async def _fetch_and_push(
        self,
        filters: list[EventFilter],
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> list[RawEvent]:
        events = await self._fetcher.fetch(filters, timeout)
        for event in events:
            self._intake.push(event)
        return events

    # -------------------------------------------------------------------------
    # Bootstrap sync
    # -------------------------------------------------------------------------

    async def sync(self) -> None:
        """Backfill the identity's own events, direct messages and channels.

        Emits ``ready`` once own events are staged, ``dms_done`` once incoming
        direct messages are staged and ``sync_done`` at the end. When the
        sync fails, or there is no identity, the signals not yet emitted are
        emitted anyway so consumers never wait forever.
        """
        emitted: set[DomainKind] = set()

        async def signal(kind: DomainKind) -> None:
            emitted.add(kind)
            await self._emitter.emit(kind)

        try:
            identity = self._signer.identity()
            if identity is None:
                return
            await self._sync(identity, signal)
        except Exception:
            self._logger.exception("sync_failed")
        finally:
            for kind in _BOOTSTRAP_SIGNALS:
                if kind not in emitted:
                    await self._emitter.emit(kind)

    async def _sync(self, identity: str, signal: Callable[[DomainKind], Awaitable[None]]) -> None:
        cfg = self._config.sync
        start = time.monotonic()

        own = await self._fetcher.fetch(
            [EventFilter.build(authors=[identity])], cfg.bootstrap_timeout
        )
        for event in own:
            if event.kind != EventKind.CHANNEL_MESSAGE:
                self._intake.push(event)
        await signal(DomainKind.READY)

        await self._fetch_and_push(
            [EventFilter.build(kinds=[EventKind.ENCRYPTED_DIRECT_MESSAGE], p=[identity])],
            cfg.bootstrap_timeout,
        )
        await signal(DomainKind.DMS_DONE)

        channel_ids = self._channel_ids(own)
        found: set[str] = set()
        for chunk in chunked(channel_ids, cfg.id_chunk_size):
            creations = await self._fetch_and_push(
                [EventFilter.build(kinds=[EventKind.CHANNEL_CREATION], ids=chunk)]
            )
            found.update(e.id for e in creations if e.kind == EventKind.CHANNEL_CREATION)
        # only channels whose creation turned up get metadata and message queries
        channel_ids = [c for c in channel_ids if c in found]

        per_channel: list[EventFilter] = []
        for channel_id in channel_ids:
            per_channel.append(
                EventFilter.build(
                    kinds=[EventKind.CHANNEL_METADATA, EventKind.EVENT_DELETION], e=[channel_id]
                )
            )
            per_channel.append(
                EventFilter.build(
                    kinds=[EventKind.CHANNEL_MESSAGE], e=[channel_id], limit=cfg.message_page_size
                )
            )
        for group in chunked(per_channel, cfg.filters_per_group):
            await asyncio.gather(*(self._fetch_and_push([f]) for f in group))

        await signal(DomainKind.SYNC_DONE)
        self._logger.info(
            "sync_completed",
            own_events=len(own),
            channels=len(channel_ids),
            duration=round(time.monotonic() - start, 3),
        )

    def _channel_ids(self, own: Sequence[RawEvent]) -> list[str]:
        """Channels the identity created or posted in, minus its own deletions."""
        deleted = {
            event_id
            for event in own
            if event.kind == EventKind.EVENT_DELETION
            and (event_id := find_tag_value(event.tags, "e"))
        }
        candidates: list[str] = []
        for event in own:
            if event.kind == EventKind.CHANNEL_CREATION:
                candidates.append(event.id)
            elif event.kind == EventKind.CHANNEL_MESSAGE:
                channel_id = find_marker_value(event.tags, "root") or find_tag_value(
                    event.tags, "e"
                )
                if channel_id:
                    candidates.append(channel_id)

        channel_ids = [c for c in dict.fromkeys(candidates) if c not in deleted]
        global_channel = self._config.sync.global_channel
        if global_channel and global_channel not in channel_ids:
            channel_ids.append(global_channel)
        return channel_ids

    # -------------------------------------------------------------------------
    # On-demand loads
    # -------------------------------------------------------------------------

    async def fetch_prev_messages(self, channel_id: str, until: int) -> list[RawEvent]:
        """Fetch the page of channel messages older than *until* and stage it."""
        return await self._fetch_and_push(
            [
                EventFilter.build(
                    kinds=[EventKind.CHANNEL_MESSAGE],
                    e=[channel_id],
                    until=until,
                    limit=self._config.sync.message_page_size,
                )
            ]
        )

    async def fetch_channel(self, channel_id: str) -> Channel | None:
        """Fetch a channel with its latest metadata applied.

        The creation content provides the base metadata. The newest kind 41
        from the channel creator, if any, overrides it. The creation is
        fetched first so the kind 41 query can be restricted to its author;
        a newer update from anyone else never hides the creator's.

        Returns:
            ``None`` when the creation event cannot be found.
        """
        events = await self._fetcher.fetch(
            [EventFilter.build(kinds=[EventKind.CHANNEL_CREATION], ids=[channel_id])]
        )
        creation = next(
            (e for e in events if e.kind == EventKind.CHANNEL_CREATION and e.id == channel_id),
            None,
        )
        if creation is None:
            return None

        (channel,) = reduce_channel_creations([creation], self._signer.identity())
        events = await self._fetcher.fetch(
            [
                EventFilter.build(
                    kinds=[EventKind.CHANNEL_METADATA],
                    authors=[creation.pubkey],
                    e=[channel_id],
                    limit=1,
                )
            ]
        )
        updates = [
            e
            for e in events
            if e.kind == EventKind.CHANNEL_METADATA and e.pubkey == creation.pubkey
        ]
        if updates:
            latest = max(updates, key=lambda e: e.created)
            meta = parse_metadata_content(latest.content)
            channel = replace(channel, name=meta.name, about=meta.about, picture=meta.picture)
        return channel

    async def load_profiles(self, pubkeys: Sequence[str]) -> list[RawEvent]:
        """Fetch kind 0 metadata of *pubkeys* and stage it for ``profile_update``."""
        unique = list(dict.fromkeys(pubkeys))
        if not unique:
            return []
        return await self._fetch_and_push(
            [
                EventFilter.build(kinds=[EventKind.METADATA], authors=chunk)
                for chunk in chunked(unique, self._config.sync.id_chunk_size)
            ]
        )

    async def fetch_profile(self, pubkey: str) -> Profile | None:
        """Fetch the newest profile of *pubkey* without staging it."""
        events = await self._fetcher.fetch(
            [EventFilter.build(kinds=[EventKind.METADATA], authors=[pubkey], limit=1)],
            self._config.sync.profile_timeout,
        )
        candidates = [e for e in events if e.kind == EventKind.METADATA and e.pubkey == pubkey]
        if not candidates:
            return None
        latest = max(candidates, key=lambda e: e.created)
        (profile,) = reduce_profiles([latest], self._signer.identity())
        return profile
