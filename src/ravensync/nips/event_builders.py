"""Nostr event builders for every kind the publisher emits.

Each ``build_*`` function returns an unsigned ``nostr_sdk.EventBuilder`` whose
kind, content and tags match the wire format other chat clients expect. Tag
lists are produced by plain ``*_tags`` helpers first, so their exact shape can
be checked without going through the FFI types.

See Also:
    [ravensync.engine.publisher.Publisher][ravensync.engine.publisher.Publisher]:
        Stamps, signs and publishes the builders produced here.
    [ravensync.engine.reconstruction][]: Reads the same tags back.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from nostr_sdk import EventBuilder, Kind, Tag

from ravensync.models.constants import READ_MARK_MAP_D_TAG, EventKind


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from ravensync.models.domain import ChannelMetadata


TagList = list[list[str]]


def _to_builder(kind: EventKind, content: str, tags: TagList) -> EventBuilder:
    return EventBuilder(Kind(kind), content).tags([Tag.parse(tag) for tag in tags])


# =============================================================================
# Tag helpers
# =============================================================================


def channel_update_tags(channel_id: str) -> TagList:
    """Tags of a kind 41 channel metadata update."""
    return [["e", channel_id, "", "root"], ["a", f"{EventKind.CHANNEL_CREATION}:{channel_id}"]]


def public_message_tags(
    channel_id: str, reply_to: str | None = None, mentions: Iterable[str] = ()
) -> TagList:
    """Tags of a kind 42 channel message: root, optional reply, then mentions."""
    tags = [["e", channel_id, "", "root"]]
    if reply_to:
        tags.append(["e", reply_to, "", "reply"])
    tags.extend(["p", pubkey] for pubkey in mentions)
    return tags


def direct_message_tags(recipient: str, root: str | None = None) -> TagList:
    """Tags of a kind 4 direct message."""
    tags = [["p", recipient]]
    if root:
        tags.append(["e", root, "", "root"])
    return tags


def reaction_tags(message_id: str, message_author: str) -> TagList:
    """Tags of a kind 7 reaction."""
    return [["e", message_id], ["p", message_author]]


def deletion_tags(event_ids: Iterable[str]) -> TagList:
    """One ``e`` tag per deleted event."""
    return [["e", event_id] for event_id in event_ids]


def mute_list_tags(pubkeys: Iterable[str]) -> TagList:
    """One ``p`` tag per muted pubkey."""
    return [["p", pubkey] for pubkey in pubkeys]


# =============================================================================
# Kind 0 / 2 (NIP-01)
# =============================================================================


def build_profile_event(metadata: ChannelMetadata) -> EventBuilder:
    """Build a kind 0 profile metadata event. ``nip05`` is included when set."""
    content = json.dumps(metadata.to_content(include_nip05=True))
    return _to_builder(EventKind.METADATA, content, [])


def build_recommend_relay(url: str) -> EventBuilder:
    """Build a kind 2 relay recommendation carrying an ``r`` tag."""
    return _to_builder(EventKind.RECOMMEND_RELAY, "", [["r", url]])


# =============================================================================
# Kind 4 / 5 / 7 (NIP-04, NIP-09, NIP-25)
# =============================================================================


def build_direct_message(recipient: str, ciphertext: str, root: str | None = None) -> EventBuilder:
    """Build a kind 4 direct message from already encrypted content."""
    return _to_builder(
        EventKind.ENCRYPTED_DIRECT_MESSAGE, ciphertext, direct_message_tags(recipient, root)
    )


def build_deletion(event_ids: Iterable[str], reason: str = "") -> EventBuilder:
    """Build a kind 5 deletion request; the content carries the reason."""
    return _to_builder(EventKind.EVENT_DELETION, reason, deletion_tags(event_ids))


def build_reaction(message_id: str, message_author: str, content: str) -> EventBuilder:
    """Build a kind 7 reaction."""
    return _to_builder(EventKind.REACTION, content, reaction_tags(message_id, message_author))


# =============================================================================
# Kind 40-44 (NIP-28)
# =============================================================================


def build_channel_creation(metadata: ChannelMetadata) -> EventBuilder:
    """Build a kind 40 channel creation with ``{name, about, picture}`` content."""
    return _to_builder(EventKind.CHANNEL_CREATION, json.dumps(metadata.to_content()), [])


def build_channel_update(channel_id: str, metadata: ChannelMetadata) -> EventBuilder:
    """Build a kind 41 channel metadata update."""
    return _to_builder(
        EventKind.CHANNEL_METADATA,
        json.dumps(metadata.to_content()),
        channel_update_tags(channel_id),
    )


def build_public_message(
    channel_id: str,
    content: str,
    *,
    reply_to: str | None = None,
    mentions: Iterable[str] = (),
) -> EventBuilder:
    """Build a kind 42 channel message."""
    return _to_builder(
        EventKind.CHANNEL_MESSAGE, content, public_message_tags(channel_id, reply_to, mentions)
    )


def build_hide_message(message_id: str, reason: str = "") -> EventBuilder:
    """Build a kind 43 hide request for a channel message."""
    return _to_builder(
        EventKind.CHANNEL_HIDE_MESSAGE, json.dumps({"reason": reason}), [["e", message_id]]
    )


def build_mute_user(pubkey: str, reason: str = "") -> EventBuilder:
    """Build a kind 44 channel user mute."""
    return _to_builder(EventKind.CHANNEL_MUTE_USER, json.dumps({"reason": reason}), [["p", pubkey]])


# =============================================================================
# Kind 10000 / 30078 (NIP-51, NIP-78)
# =============================================================================


def build_mute_list(pubkeys: Iterable[str], encrypted: str = "") -> EventBuilder:
    """Build a kind 10000 mute list replacing any previous one."""
    return _to_builder(EventKind.MUTE_LIST, encrypted, mute_list_tags(pubkeys))


def build_read_mark_map(marks: Mapping[str, int]) -> EventBuilder:
    """Build the kind 30078 read-mark map (``d`` = ``read-mark-map``)."""
    return _to_builder(EventKind.APP_DATA, json.dumps(dict(marks)), [["d", READ_MARK_MAP_D_TAG]])


# =============================================================================
# Exports
# =============================================================================


__all__ = [
    "TagList",
    "build_channel_creation",
    "build_channel_update",
    "build_deletion",
    "build_direct_message",
    "build_hide_message",
    "build_mute_list",
    "build_mute_user",
    "build_profile_event",
    "build_public_message",
    "build_reaction",
    "build_read_mark_map",
    "build_recommend_relay",
    "channel_update_tags",
    "deletion_tags",
    "direct_message_tags",
    "mute_list_tags",
    "public_message_tags",
    "reaction_tags",
]
