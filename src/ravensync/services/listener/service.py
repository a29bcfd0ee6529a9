"""Listener service for RavenSync.

Keeps one identity's view of the relay network current:

1. On setup, connects the [SyncEngine][ravensync.engine.engine.SyncEngine],
   runs the bootstrap sync and opens the persistent ``inbox`` subscription.
2. Every cycle, catches up messages posted since the previous cycle in every
   known channel (configured, created, or posted in) and re-opens the
   ``message-listener`` over the identity's most recent own messages.
3. On teardown, stops every subscription, drains the intake buffer and
   closes the pool.

Reconstructed objects are only logged here; applications embed the engine
and register their own handlers on its
[EventEmitter][ravensync.engine.emitter.EventEmitter].

See Also:
    [ListenerConfig][ravensync.services.listener.configs.ListenerConfig]:
        Configuration model for this service.
    [BaseService][ravensync.core.base_service.BaseService]: Abstract base
        class providing ``run()``, ``run_forever()`` and ``from_yaml()``.

Examples:
    ```python
    from ravensync.services.listener import ListenerService

    service = ListenerService.from_yaml("config/services/listener.yaml")
    async with service:
        await service.run_forever()
    ```
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, ClassVar

from ravensync.core.base_service import BaseService
from ravensync.engine.engine import SyncEngine
from ravensync.models.constants import DomainKind
from ravensync.utils.protocol import NostrSdkPool

from .configs import ListenerConfig


if TYPE_CHECKING:
    from collections.abc import Callable

    from ravensync.models.domain import Channel, PublicMessage


class ListenerService(BaseService[ListenerConfig]):
    """Long-running listener over one [SyncEngine][ravensync.engine.engine.SyncEngine].

    Args:
        config: Service configuration; defaults to ``ListenerConfig()``.
        engine: Engine to drive. Built from ``config`` with a
            [NostrSdkPool][ravensync.utils.protocol.NostrSdkPool] when omitted.
    """

    SERVICE_NAME: ClassVar[str] = "listener"
    CONFIG_CLASS: ClassVar[type[ListenerConfig]] = ListenerConfig

    def __init__(
        self,
        config: ListenerConfig | None = None,
        *,
        engine: SyncEngine | None = None,
    ) -> None:
        super().__init__(config=config)
        self._engine = engine or SyncEngine(
            NostrSdkPool(), self._config.keys.to_signer(), self._config.engine
        )
        self._channels: dict[str, None] = dict.fromkeys(self._config.channels)
        self._own_messages: dict[str, None] = {}
        self._since = 0
        self._received: dict[str, int] = {}

        emitter = self._engine.emitter
        emitter.on(DomainKind.CHANNEL_CREATION, self._on_channels)
        emitter.on(DomainKind.PUBLIC_MESSAGE, self._on_public_messages)
        for kind in DomainKind:
            if kind not in (DomainKind.READY, DomainKind.DMS_DONE, DomainKind.SYNC_DONE):
                emitter.on(kind, self._counter_for(kind))

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    @property
    def channels(self) -> tuple[str, ...]:
        """Channel ids followed by the catch-up cycle."""
        return tuple(self._channels)

    @property
    def watched_messages(self) -> tuple[str, ...]:
        """Own message ids watched for replies and deletions, oldest first."""
        return tuple(self._own_messages)

    # -------------------------------------------------------------------------
    # Emission handlers
    # -------------------------------------------------------------------------

    def _on_channels(self, channels: tuple[Channel, ...]) -> None:
        for channel in channels:
            self._channels.setdefault(channel.id, None)

    def _on_public_messages(self, messages: tuple[PublicMessage, ...]) -> None:
        identity = self._engine.signer.identity()
        for message in messages:
            if message.root:
                self._channels.setdefault(message.root, None)
            if identity is not None and message.creator == identity:
                self._own_messages.pop(message.id, None)
                self._own_messages[message.id] = None
                while len(self._own_messages) > self._config.message_watch_limit:
                    del self._own_messages[next(iter(self._own_messages))]

    def _counter_for(self, kind: DomainKind) -> Callable[[tuple[Any, ...]], None]:
        def count(items: tuple[Any, ...]) -> None:
            self._received[kind] = self._received.get(kind, 0) + len(items)
            self.inc_counter(f"received_{kind}", len(items))

        return count

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def setup(self) -> None:
        self._since = int(time.time())
        result = await self._engine.start()
        if not result.ok:
            self._logger.warning("no_relay_connected", failed=len(result.failed))
        opened = await self._engine.subscriptions.start_inbox()
        self._logger.info(
            "listener_ready",
            identity=self._engine.signer.identity() or "-",
            inbox=opened,
            channels=len(self._channels),
        )

    async def teardown(self) -> None:
        await self._engine.close()

    async def run(self) -> None:
        """Catch up known channels and refresh the watch on own messages."""
        now = int(time.time())
        subscriptions = self._engine.subscriptions

        if self._engine.signer.identity() is not None and not subscriptions.is_active("inbox"):
            await subscriptions.start_inbox()

        await subscriptions.listen_channels(list(self._channels), self._since)
        self._since = now

        watched = list(self._own_messages)
        await subscriptions.listen_messages(watched, ())

        self.set_gauge("channels", len(self._channels))
        self.set_gauge("watched_messages", len(watched))
        self.set_gauge("subscriptions", len(subscriptions.names))
        self._logger.info(
            "cycle_summary",
            channels=len(self._channels),
            watched_messages=len(watched),
            received=sum(self._received.values()),
        )
