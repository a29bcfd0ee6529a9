"""Publishing with optimistic local echo.

Every mutating intent is one [Publisher][ravensync.engine.publisher.Publisher]
method. Each follows the same contract:

1. Fail fast with
   [CannotPublishError][ravensync.core.exceptions.CannotPublishError] when
   the identity cannot sign, before any network call.
2. Resolve the write relay set, raising
   [NoWriteRelaysError][ravensync.core.exceptions.NoWriteRelaysError] when
   none is live.
3. Build the event (see [ravensync.nips.event_builders][]), stamp the
   current time, sign, and publish.
4. Raise [PublishingError][ravensync.core.exceptions.PublishingError] when
   no relay accepted the event.
5. Synthesize the domain object from the signed event with the same
   reducers that reconstruct relay traffic, emit it, and return it.

Unlike the read path, nothing here is swallowed: the caller asked for an
action and must learn whether it failed.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import TYPE_CHECKING

from nostr_sdk import NostrSdkError, Timestamp

from ravensync.core.exceptions import (
    CannotPublishError,
    NoWriteRelaysError,
    PublishingError,
    SigningError,
)
from ravensync.core.logger import Logger
from ravensync.core.metrics import PUBLISH_OUTCOMES
from ravensync.models.constants import DomainKind, EventKind
from ravensync.models.event import RawEvent
from ravensync.models.relay import Relay
from ravensync.nips.event_builders import (
    build_channel_creation,
    build_channel_update,
    build_deletion,
    build_direct_message,
    build_hide_message,
    build_mute_list,
    build_mute_user,
    build_profile_event,
    build_public_message,
    build_reaction,
    build_read_mark_map,
    build_recommend_relay,
)

from .reconstruction import (
    reduce_channel_creations,
    reduce_channel_message_hides,
    reduce_channel_updates,
    reduce_channel_user_mutes,
    reduce_direct_messages,
    reduce_event_deletions,
    reduce_mute_list,
    reduce_profiles,
    reduce_public_messages,
    reduce_reactions,
    reduce_read_mark_map,
)
from .relay_sets import RelayRole


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from nostr_sdk import EventBuilder

    from ravensync.models.domain import (
        Channel,
        ChannelMessageHide,
        ChannelMetadata,
        ChannelUpdate,
        ChannelUserMute,
        DirectMessage,
        EventDeletion,
        MuteList,
        Profile,
        PublicMessage,
        Reaction,
        ReadMarkMap,
    )
    from ravensync.utils.protocol import RelayPool
    from ravensync.utils.signer import Cipher, Signer

    from .emitter import EventEmitter
    from .relay_sets import RelaySetResolver


class Publisher:
    """Signs and publishes events, then echoes the domain object locally.

    Args:
        pool: Relay pool to publish on.
        resolver: Supplies the write relay set.
        signer: Identity used to sign.
        cipher: Encrypts direct message content.
        emitter: Receives the local echo.
        clock: Returns the current Unix time; injectable for tests.
    """

    def __init__(
        self,
        pool: RelayPool,
        resolver: RelaySetResolver,
        signer: Signer,
        cipher: Cipher,
        emitter: EventEmitter,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._pool = pool
        self._resolver = resolver
        self._signer = signer
        self._cipher = cipher
        self._emitter = emitter
        self._clock = clock
        self._logger = Logger("ravensync.publisher")

    def can_publish(self) -> bool:
        """Whether the identity exists and can sign locally."""
        return self._signer.can_publish()

    # -------------------------------------------------------------------------
    # Common path
    # -------------------------------------------------------------------------

    def _require_can_publish(self, kind: EventKind) -> None:
        if not self.can_publish():
            PUBLISH_OUTCOMES.labels(kind=kind.name.lower(), outcome="cannot_publish").inc()
            raise CannotPublishError(
                f"identity in {self._signer.mode} mode cannot publish kind {int(kind)}"
            )

    async def _publish(self, kind: EventKind, builder: EventBuilder) -> RawEvent:
        """Stamp, sign and publish *builder*; return the signed event as a RawEvent."""
        label = kind.name.lower()
        self._require_can_publish(kind)

        relay_set = await self._resolver.resolve(RelayRole.WRITE)
        if relay_set is None:
            PUBLISH_OUTCOMES.labels(kind=label, outcome="no_write_relays").inc()
            raise NoWriteRelaysError("no live write relays")

        stamped = builder.custom_created_at(Timestamp.from_secs(int(self._clock())))
        try:
            event = self._signer.sign(stamped)
        except SigningError:
            PUBLISH_OUTCOMES.labels(kind=label, outcome="signing_failed").inc()
            raise

        try:
            accepted = await self._pool.publish(event, relay_set)
        except (OSError, NostrSdkError) as e:
            PUBLISH_OUTCOMES.labels(kind=label, outcome="rejected").inc()
            raise PublishingError(f"publish failed: {e}") from e

        raw = RawEvent.from_nostr(event)
        if not accepted:
            PUBLISH_OUTCOMES.labels(kind=label, outcome="rejected").inc()
            raise PublishingError(f"no relay accepted event {raw.id}")

        PUBLISH_OUTCOMES.labels(kind=label, outcome="published").inc()
        self._logger.info(
            "event_published", kind=int(kind), id=raw.id, relays=len(accepted)
        )
        return raw

    async def _echo(self, kind: DomainKind, *items: object) -> None:
        await self._emitter.emit(kind, tuple(items))

    # -------------------------------------------------------------------------
    # Channels (NIP-28)
    # -------------------------------------------------------------------------

    async def create_channel(self, metadata: ChannelMetadata) -> Channel:
        raw = await self._publish(EventKind.CHANNEL_CREATION, build_channel_creation(metadata))
        (channel,) = reduce_channel_creations([raw], raw.pubkey)
        await self._echo(DomainKind.CHANNEL_CREATION, channel)
        return channel

    async def update_channel(self, channel_id: str, metadata: ChannelMetadata) -> ChannelUpdate:
        raw = await self._publish(
            EventKind.CHANNEL_METADATA, build_channel_update(channel_id, metadata)
        )
        (update,) = reduce_channel_updates([raw], raw.pubkey)
        await self._echo(DomainKind.CHANNEL_UPDATE, update)
        return update

    async def send_public_message(
        self,
        channel_id: str,
        content: str,
        *,
        reply_to: str | None = None,
        mentions: Iterable[str] = (),
    ) -> PublicMessage:
        """Post *content* in a channel, optionally as a reply, mentioning pubkeys."""
        raw = await self._publish(
            EventKind.CHANNEL_MESSAGE,
            build_public_message(channel_id, content, reply_to=reply_to, mentions=mentions),
        )
        (message,) = reduce_public_messages([raw], raw.pubkey)
        await self._echo(DomainKind.PUBLIC_MESSAGE, message)
        return message

    async def hide_channel_message(self, message_id: str, reason: str = "") -> ChannelMessageHide:
        raw = await self._publish(
            EventKind.CHANNEL_HIDE_MESSAGE, build_hide_message(message_id, reason)
        )
        (hide,) = reduce_channel_message_hides([raw], raw.pubkey)
        await self._echo(DomainKind.CHANNEL_MESSAGE_HIDE, hide)
        return hide

    async def mute_channel_user(self, pubkey: str, reason: str = "") -> ChannelUserMute:
        raw = await self._publish(EventKind.CHANNEL_MUTE_USER, build_mute_user(pubkey, reason))
        (mute,) = reduce_channel_user_mutes([raw], raw.pubkey)
        await self._echo(DomainKind.CHANNEL_USER_MUTE, mute)
        return mute

    # -------------------------------------------------------------------------
    # Direct messages, reactions, deletions
    # -------------------------------------------------------------------------

    async def send_direct_message(
        self, recipient: str, content: str, *, root: str | None = None
    ) -> DirectMessage:
        """Encrypt *content* for *recipient* and publish it.

        The echoed message carries the plaintext with ``decrypted=True``.
        """
        self._require_can_publish(EventKind.ENCRYPTED_DIRECT_MESSAGE)
        ciphertext = await self._cipher.encrypt(recipient, content)
        raw = await self._publish(
            EventKind.ENCRYPTED_DIRECT_MESSAGE, build_direct_message(recipient, ciphertext, root)
        )
        (message,) = reduce_direct_messages([raw], raw.pubkey)
        message = replace(message, content=content, decrypted=True)
        await self._echo(DomainKind.DIRECT_MESSAGE, message)
        return message

    async def send_reaction(
        self, message_id: str, message_author: str, content: str = "+"
    ) -> Reaction:
        raw = await self._publish(
            EventKind.REACTION, build_reaction(message_id, message_author, content)
        )
        (reaction,) = reduce_reactions([raw], raw.pubkey)
        await self._echo(DomainKind.REACTION, reaction)
        return reaction

    async def delete_events(
        self, event_ids: Iterable[str], reason: str = ""
    ) -> tuple[EventDeletion, ...]:
        """Request deletion of *event_ids*; one deletion object per id is echoed."""
        ids = list(dict.fromkeys(event_ids))
        if not ids:
            raise ValueError("at least one event id is required")
        raw = await self._publish(EventKind.EVENT_DELETION, build_deletion(ids, reason))
        deletions = reduce_event_deletions([raw], raw.pubkey)
        await self._echo(DomainKind.EVENT_DELETION, *deletions)
        return deletions

    # -------------------------------------------------------------------------
    # Replaceable user data
    # -------------------------------------------------------------------------

    async def update_profile(self, metadata: ChannelMetadata) -> Profile:
        raw = await self._publish(EventKind.METADATA, build_profile_event(metadata))
        (profile,) = reduce_profiles([raw], raw.pubkey)
        await self._echo(DomainKind.PROFILE_UPDATE, profile)
        return profile

    async def update_mute_list(self, pubkeys: Iterable[str]) -> MuteList:
        """Replace the mute list with *pubkeys*."""
        raw = await self._publish(
            EventKind.MUTE_LIST, build_mute_list(list(dict.fromkeys(pubkeys)))
        )
        (mute_list,) = reduce_mute_list([raw], raw.pubkey)
        await self._echo(DomainKind.MUTE_LIST, mute_list)
        return mute_list

    async def update_read_mark_map(self, marks: Mapping[str, int]) -> ReadMarkMap:
        raw = await self._publish(EventKind.APP_DATA, build_read_mark_map(marks))
        (read_marks,) = reduce_read_mark_map([raw], raw.pubkey)
        await self._echo(DomainKind.READ_MARK_MAP, read_marks)
        return read_marks

    async def recommend_relay(self, url: str) -> RawEvent:
        """Publish a relay recommendation. There is no domain object to echo.

        Raises:
            ValueError: If *url* is not a valid relay url.
        """
        relay = Relay(url)
        return await self._publish(EventKind.RECOMMEND_RELAY, build_recommend_relay(relay.url))
