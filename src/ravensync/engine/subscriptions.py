"""Named live subscriptions feeding the intake buffer.

[SubscriptionManager][ravensync.engine.subscriptions.SubscriptionManager]
keeps a registry of open subscriptions by name. Subscribing under a name that
is already registered stops the old subscription first. Bounded subscriptions
(``close_on_eose``) remove themselves from the registry on EOSE. Every
delivered event is pushed into the
[IntakeBuffer][ravensync.engine.intake.IntakeBuffer].

Subscriptions opened by the engine:

* ``inbox`` -- everything tagged to the identity, kept open.
* ``channel-listener`` -- new messages in known channels, bounded.
* ``message-listener`` -- deletions, replies and reactions of known
  messages, kept open.
* ``channel-<id>`` -- one channel's creation, metadata and first message
  page, bounded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from ravensync.core.logger import Logger
from ravensync.models.constants import INBOX_KINDS, EventKind
from ravensync.models.filter import EventFilter

from .relay_sets import RelayRole


if TYPE_CHECKING:
    from collections.abc import Sequence

    from ravensync.models.event import RawEvent
    from ravensync.utils.protocol import PoolSubscription, RelayPool
    from ravensync.utils.signer import Signer

    from .configs import SyncConfig
    from .intake import IntakeBuffer
    from .relay_sets import RelaySetResolver


T = TypeVar("T")

INBOX = "inbox"
CHANNEL_LISTENER = "channel-listener"
MESSAGE_LISTENER = "message-listener"


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split *items* into consecutive lists of at most *size* elements."""
    if size < 1:
        raise ValueError("size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def channel_subscription_name(channel_id: str) -> str:
    return f"channel-{channel_id}"


class SubscriptionManager:
    """Registry of named subscriptions with replace-on-resubscribe.

    Args:
        pool: Relay pool to subscribe on.
        resolver: Supplies the read relay set.
        intake: Destination of every delivered event.
        signer: Identity the inbox is addressed to.
        config: Page and chunk sizes.
    """

    def __init__(
        self,
        pool: RelayPool,
        resolver: RelaySetResolver,
        intake: IntakeBuffer,
        signer: Signer,
        config: SyncConfig,
    ) -> None:
        self._pool = pool
        self._resolver = resolver
        self._intake = intake
        self._signer = signer
        self._config = config
        self._subscriptions: dict[str, PoolSubscription] = {}
        self._logger = Logger("ravensync.subscriptions")

    @property
    def names(self) -> tuple[str, ...]:
        """Names of the currently registered subscriptions."""
        return tuple(self._subscriptions)

    def is_active(self, name: str) -> bool:
        return name in self._subscriptions

    def _on_event(self, event: RawEvent, _relay: str) -> None:
        self._intake.push(event)

    async def subscribe(
        self,
        name: str,
        filters: list[EventFilter],
        *,
        close_on_eose: bool,
    ) -> bool:
        """Open *filters* under *name*, replacing any subscription of that name.

        Returns:
            ``False`` when no read relay is live (nothing is opened).
        """
        await self.stop(name)

        relay_set = await self._resolver.resolve(RelayRole.READ)
        if relay_set is None:
            self._logger.debug("subscribe_skipped", name=name, reason="no_read_relays")
            return False

        subscription: PoolSubscription | None = None
        eose_seen = False

        def on_eose() -> None:
            nonlocal eose_seen
            eose_seen = True
            if subscription is not None and self._subscriptions.get(name) is subscription:
                del self._subscriptions[name]
                self._logger.debug("subscription_completed", name=name)

        subscription = await self._pool.subscribe(
            filters,
            relay_set,
            close_on_eose=close_on_eose,
            on_event=self._on_event,
            on_eose=on_eose if close_on_eose else None,
        )
        # a concurrent call may have registered under the same name meanwhile
        previous = self._subscriptions.pop(name, None)
        if not eose_seen:
            self._subscriptions[name] = subscription
        if previous is not None:
            await previous.stop()
        self._logger.debug(
            "subscription_opened",
            name=name,
            filters=len(filters),
            relays=len(relay_set),
            close_on_eose=close_on_eose,
        )
        return True

    async def start_inbox(self) -> bool:
        """Keep open a subscription for every inbox kind tagged to the identity."""
        identity = self._signer.identity()
        if identity is None:
            return False
        inbox = EventFilter.build(kinds=INBOX_KINDS, p=[identity])
        return await self.subscribe(INBOX, [inbox], close_on_eose=False)

    async def listen_channels(self, channel_ids: Sequence[str], since: int) -> bool:
        """Fetch channel messages newer than *since* for *channel_ids*, until EOSE."""
        if not channel_ids:
            return False
        messages = EventFilter.build(
            kinds=[EventKind.CHANNEL_MESSAGE], e=list(channel_ids), since=since
        )
        return await self.subscribe(CHANNEL_LISTENER, [messages], close_on_eose=True)

    async def listen_messages(
        self, message_ids: Sequence[str], reference_ids: Sequence[str]
    ) -> bool:
        """Watch deletions, replies and reactions of known messages.

        The previous ``message-listener`` is always stopped; nothing new is
        opened when both id lists are empty.
        """
        await self.stop(MESSAGE_LISTENER)
        if not message_ids and not reference_ids:
            return False

        filters: list[EventFilter] = []
        if message_ids:
            filters.append(
                EventFilter.build(
                    kinds=[EventKind.EVENT_DELETION, EventKind.CHANNEL_MESSAGE, EventKind.REACTION],
                    e=list(message_ids),
                )
            )
        filters.extend(
            EventFilter.build(kinds=[EventKind.EVENT_DELETION], e=chunk)
            for chunk in chunked(list(reference_ids), self._config.id_chunk_size)
        )
        return await self.subscribe(MESSAGE_LISTENER, filters, close_on_eose=False)

    async def load_channel(self, channel_id: str) -> bool:
        """Load a channel's creation, metadata, deletions and first message page."""
        filters = [
            EventFilter.build(ids=[channel_id]),
            EventFilter.build(
                kinds=[EventKind.CHANNEL_METADATA, EventKind.EVENT_DELETION], e=[channel_id]
            ),
            EventFilter.build(
                kinds=[EventKind.CHANNEL_MESSAGE],
                e=[channel_id],
                limit=self._config.message_page_size,
            ),
        ]
        return await self.subscribe(
            channel_subscription_name(channel_id), filters, close_on_eose=True
        )

    async def stop(self, name: str) -> None:
        """Stop and unregister *name*. Unknown names are ignored."""
        subscription = self._subscriptions.pop(name, None)
        if subscription is not None:
            await subscription.stop()

    async def stop_all(self) -> None:
        for name in list(self._subscriptions):
            await self.stop(name)
