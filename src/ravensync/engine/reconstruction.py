"""Reconstruction of typed domain objects from raw event batches.

A batch swapped out of the
[IntakeBuffer][ravensync.engine.intake.IntakeBuffer] runs through a fixed
sequence of reducers, one per [DomainKind][ravensync.models.constants.DomainKind]:

1. profiles
2. public messages
3. direct messages
4. channel message hides
5. channel user mutes
6. reactions
7. event deletions
8. mute list
9. channel creations
10. channel updates
11. read-mark map

Each reducer is a pure function of the batch. It selects its kind, maps each
event to a domain object (events missing a required tag are dropped), and
keeps the first-seen object per identity. A reducer with no output produces
no [Emission][ravensync.engine.reconstruction.Emission].

Direct messages are decrypted afterwards through the
[Cipher][ravensync.utils.signer.Cipher] unless the identity is synthetic; a
message that fails to decrypt is kept with its ciphertext and
``decrypted=False``.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, TypeVar

from ravensync.core.exceptions import DecryptionError
from ravensync.core.logger import Logger
from ravensync.core.metrics import EMITTED_OBJECTS
from ravensync.models.constants import READ_MARK_MAP_D_TAG, DomainKind, EventKind
from ravensync.models.domain import (
    Channel,
    ChannelMessageHide,
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
from ravensync.nips.parsing import (
    parse_json,
    parse_metadata_content,
    parse_mute_list_pubkeys,
    parse_read_marks,
    parse_reason,
)
from ravensync.nips.tags import filter_tag_values, find_marker_value, find_tag_value


if TYPE_CHECKING:
    from ravensync.models.event import RawEvent
    from ravensync.utils.signer import Cipher, Signer


T = TypeVar("T")

Reducer = Callable[[Sequence["RawEvent"], "str | None"], tuple[Any, ...]]


@dataclass(frozen=True, slots=True)
class Emission:
    """One batch of domain objects of a single kind."""

    kind: DomainKind
    items: tuple[Any, ...]


# =============================================================================
# Helpers
# =============================================================================


def _of_kind(batch: Iterable[RawEvent], kind: EventKind) -> list[RawEvent]:
    return [event for event in batch if event.kind == kind]


def _first_seen(items: Iterable[T], key: Callable[[T], Hashable]) -> tuple[T, ...]:
    """Drop items whose key was already seen, keeping order."""
    seen: set[Hashable] = set()
    result: list[T] = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        result.append(item)
    return tuple(result)


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


# =============================================================================
# Reducers
# =============================================================================


def reduce_profiles(batch: Sequence[RawEvent], _identity: str | None) -> tuple[Profile, ...]:
    """Kind 0. Missing or malformed metadata fields become ``''``."""
    profiles = []
    for event in _of_kind(batch, EventKind.METADATA):
        meta = parse_metadata_content(event.content)
        profiles.append(
            Profile(
                id=event.id,
                creator=event.pubkey,
                created=event.created,
                name=meta.name,
                about=meta.about,
                picture=meta.picture,
                nip05=meta.nip05,
            )
        )
    return _first_seen(profiles, lambda p: p.id)


def reduce_public_messages(
    batch: Sequence[RawEvent], _identity: str | None
) -> tuple[PublicMessage, ...]:
    """Kind 42. ``root``/``reply`` come from NIP-10 markers, mentions from ``p`` tags."""
    messages = [
        PublicMessage(
            id=event.id,
            root=find_marker_value(event.tags, "root"),
            reply=find_marker_value(event.tags, "reply"),
            content=event.content,
            creator=event.pubkey,
            mentions=_unique(filter_tag_values(event.tags, "p")),
            created=event.created,
        )
        for event in _of_kind(batch, EventKind.CHANNEL_MESSAGE)
    ]
    return _first_seen(messages, lambda m: m.id)


def reduce_direct_messages(
    batch: Sequence[RawEvent], identity: str | None
) -> tuple[DirectMessage, ...]:
    """Kind 4 with a ``p`` tag; content stays encrypted at this stage.

    The peer is the author when the message was addressed to *identity*,
    otherwise the recipient.
    """
    messages = []
    for event in _of_kind(batch, EventKind.ENCRYPTED_DIRECT_MESSAGE):
        receiver = find_tag_value(event.tags, "p")
        if not receiver:
            continue
        messages.append(
            DirectMessage(
                id=event.id,
                root=find_marker_value(event.tags, "root"),
                content=event.content,
                peer=event.pubkey if receiver == identity else receiver,
                creator=event.pubkey,
                mentions=_unique(filter_tag_values(event.tags, "p")),
                created=event.created,
            )
        )
    return _first_seen(messages, lambda m: m.id)


def reduce_channel_message_hides(
    batch: Sequence[RawEvent], _identity: str | None
) -> tuple[ChannelMessageHide, ...]:
    """Kind 43 with an ``e`` tag."""
    hides = []
    for event in _of_kind(batch, EventKind.CHANNEL_HIDE_MESSAGE):
        message_id = find_tag_value(event.tags, "e")
        if message_id:
            hides.append(ChannelMessageHide(id=message_id, reason=parse_reason(event.content)))
    return _first_seen(hides, lambda h: h.id)


def reduce_channel_user_mutes(
    batch: Sequence[RawEvent], _identity: str | None
) -> tuple[ChannelUserMute, ...]:
    """Kind 44 with a ``p`` tag."""
    mutes = []
    for event in _of_kind(batch, EventKind.CHANNEL_MUTE_USER):
        pubkey = find_tag_value(event.tags, "p")
        if pubkey:
            mutes.append(ChannelUserMute(pubkey=pubkey, reason=parse_reason(event.content)))
    return _first_seen(mutes, lambda m: m.pubkey)


def reduce_reactions(batch: Sequence[RawEvent], _identity: str | None) -> tuple[Reaction, ...]:
    """Kind 7 with an ``e`` tag; the peer is the ``p`` tag, else the author."""
    reactions = []
    for event in _of_kind(batch, EventKind.REACTION):
        message_id = find_tag_value(event.tags, "e")
        if not message_id:
            continue
        reactions.append(
            Reaction(
                id=event.id,
                message=message_id,
                creator=event.pubkey,
                peer=find_tag_value(event.tags, "p") or event.pubkey,
                content=event.content,
                created=event.created,
            )
        )
    return _first_seen(reactions, lambda r: r.id)


def reduce_event_deletions(
    batch: Sequence[RawEvent], _identity: str | None
) -> tuple[EventDeletion, ...]:
    """Kind 5, one deletion per ``e`` tag; the content is the reason."""
    deletions = [
        EventDeletion(event_id=event_id, reason=event.content)
        for event in _of_kind(batch, EventKind.EVENT_DELETION)
        for event_id in filter_tag_values(event.tags, "e")
        if event_id
    ]
    return _first_seen(deletions, lambda d: d.event_id)


def reduce_mute_list(batch: Sequence[RawEvent], _identity: str | None) -> tuple[MuteList, ...]:
    """Kind 10000, merged into a single list.

    Pubkeys come from ``p`` tags and from a JSON ``pubkeys`` array, in
    first-seen order. Content that is not JSON is kept as ``encrypted``.
    """
    events = _of_kind(batch, EventKind.MUTE_LIST)
    if not events:
        return ()

    pubkeys: list[str] = []
    encrypted = ""
    for event in events:
        pubkeys.extend(filter_tag_values(event.tags, "p"))
        pubkeys.extend(parse_mute_list_pubkeys(event.content))
        if event.content and not encrypted and parse_json(event.content) is None:
            encrypted = event.content
    return (MuteList(pubkeys=_unique(p for p in pubkeys if p), encrypted=encrypted),)


def reduce_channel_creations(
    batch: Sequence[RawEvent], _identity: str | None
) -> tuple[Channel, ...]:
    """Kind 40; the channel id is the creation event id."""
    channels = []
    for event in _of_kind(batch, EventKind.CHANNEL_CREATION):
        meta = parse_metadata_content(event.content)
        channels.append(
            Channel(
                id=event.id,
                name=meta.name,
                about=meta.about,
                picture=meta.picture,
                created=event.created,
                creator=event.pubkey,
            )
        )
    return _first_seen(channels, lambda c: c.id)


def reduce_channel_updates(
    batch: Sequence[RawEvent], _identity: str | None
) -> tuple[ChannelUpdate, ...]:
    """Kind 41 referencing its channel with the first ``e`` tag."""
    updates = []
    for event in _of_kind(batch, EventKind.CHANNEL_METADATA):
        channel_id = find_tag_value(event.tags, "e")
        if not channel_id:
            continue
        meta = parse_metadata_content(event.content)
        updates.append(
            ChannelUpdate(
                id=event.id,
                channel_id=channel_id,
                name=meta.name,
                about=meta.about,
                picture=meta.picture,
                creator=event.pubkey,
                created=event.created,
            )
        )
    return _first_seen(updates, lambda u: u.id)


def reduce_read_mark_map(
    batch: Sequence[RawEvent], _identity: str | None
) -> tuple[ReadMarkMap, ...]:
    """Kind 30078 with ``d`` = ``read-mark-map``; the latest event wins."""
    latest: RawEvent | None = None
    for event in _of_kind(batch, EventKind.APP_DATA):
        if find_tag_value(event.tags, "d") != READ_MARK_MAP_D_TAG:
            continue
        if latest is None or event.created > latest.created:
            latest = event
    if latest is None:
        return ()
    return (ReadMarkMap(marks=parse_read_marks(latest.content), created=latest.created),)


REDUCERS: tuple[tuple[DomainKind, Reducer], ...] = (
    (DomainKind.PROFILE_UPDATE, reduce_profiles),
    (DomainKind.PUBLIC_MESSAGE, reduce_public_messages),
    (DomainKind.DIRECT_MESSAGE, reduce_direct_messages),
    (DomainKind.CHANNEL_MESSAGE_HIDE, reduce_channel_message_hides),
    (DomainKind.CHANNEL_USER_MUTE, reduce_channel_user_mutes),
    (DomainKind.REACTION, reduce_reactions),
    (DomainKind.EVENT_DELETION, reduce_event_deletions),
    (DomainKind.MUTE_LIST, reduce_mute_list),
    (DomainKind.CHANNEL_CREATION, reduce_channel_creations),
    (DomainKind.CHANNEL_UPDATE, reduce_channel_updates),
    (DomainKind.READ_MARK_MAP, reduce_read_mark_map),
)


# =============================================================================
# Pipeline
# =============================================================================


class ReconstructionPipeline:
    """Runs [REDUCERS][ravensync.engine.reconstruction.REDUCERS] over a batch.

    Args:
        signer: Identity used to orient direct messages and to decide
            whether decryption is attempted.
        cipher: Direct message decryption.
    """

    def __init__(self, signer: Signer, cipher: Cipher) -> None:
        self._signer = signer
        self._cipher = cipher
        self._logger = Logger("ravensync.reconstruction")

    def reduce(self, batch: Sequence[RawEvent]) -> list[Emission]:
        """Apply every reducer in order without decrypting. Pure."""
        identity = self._signer.identity()
        emissions = []
        for kind, reducer in REDUCERS:
            items = reducer(batch, identity)
            if items:
                emissions.append(Emission(kind, items))
        return emissions

    async def process(self, batch: Sequence[RawEvent]) -> list[Emission]:
        """Reduce *batch* and decrypt its direct messages."""
        emissions = self.reduce(batch)
        result = []
        for emission in emissions:
            if emission.kind == DomainKind.DIRECT_MESSAGE:
                emission = Emission(emission.kind, await self._decrypt_all(emission.items))
            EMITTED_OBJECTS.labels(kind=emission.kind).inc(len(emission.items))
            result.append(emission)
        return result

    async def _decrypt_all(self, messages: tuple[DirectMessage, ...]) -> tuple[DirectMessage, ...]:
        if self._signer.is_synthetic():
            return messages
        return tuple([await self._decrypt(message) for message in messages])

    async def open_message(self, message: DirectMessage) -> str:
        """Return the plaintext of *message*.

        Raises:
            DecryptionError: If the cipher rejects the ciphertext.
        """
        try:
            return await self._cipher.decrypt(message.peer, message.content)
        except DecryptionError:
            raise
        except Exception as e:  # cipher implementations raise their own error types
            raise DecryptionError(f"cannot decrypt {message.id}: {e}") from e

    async def _decrypt(self, message: DirectMessage) -> DirectMessage:
        try:
            plaintext = await self.open_message(message)
        except DecryptionError as e:
            self._logger.debug("decrypt_failed", id=message.id, error=str(e))
            return message
        return replace(message, content=plaintext, decrypted=True)
