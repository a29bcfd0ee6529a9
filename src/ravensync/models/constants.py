"""Shared constants for the models layer.

Defines the Nostr event kinds the engine understands, the closed set of
domain emissions produced by reconstruction, and the network classification
used by [Relay][ravensync.models.relay.Relay]. Placing them here avoids
circular dependencies between the models, nips, and engine layers.

See Also:
    [ravensync.models.event][]: Raw event model carrying an
        [EventKind][ravensync.models.constants.EventKind].
    [ravensync.engine.reconstruction][]: Maps each kind to a
        [DomainKind][ravensync.models.constants.DomainKind] emission.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class NetworkType(StrEnum):
    """Network type enum for relay classification.

    Attributes:
        CLEARNET: Public internet relay.
        TOR: Tor hidden service identified by a ``.onion`` hostname.
        I2P: I2P eepsite identified by a ``.i2p`` hostname.
        LOKI: Lokinet service identified by a ``.loki`` hostname.
        LOCAL: Loopback or private address, accepted for development relays.
    """

    CLEARNET = "clearnet"
    TOR = "tor"
    I2P = "i2p"
    LOKI = "loki"
    LOCAL = "local"


class EventKind(IntEnum):
    """Nostr event kinds consumed or published by the sync engine.

    Attributes:
        METADATA: Kind 0 -- user profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 -- short text note (NIP-01), inbox only.
        RECOMMEND_RELAY: Kind 2 -- legacy relay recommendation.
        ENCRYPTED_DIRECT_MESSAGE: Kind 4 -- direct message (NIP-04).
        EVENT_DELETION: Kind 5 -- deletion request (NIP-09).
        REACTION: Kind 7 -- reaction to an event (NIP-25).
        CHANNEL_CREATION: Kind 40 -- public chat channel creation (NIP-28).
        CHANNEL_METADATA: Kind 41 -- channel metadata update (NIP-28).
        CHANNEL_MESSAGE: Kind 42 -- channel message (NIP-28).
        CHANNEL_HIDE_MESSAGE: Kind 43 -- hide a channel message (NIP-28).
        CHANNEL_MUTE_USER: Kind 44 -- mute a user in channels (NIP-28).
        MUTE_LIST: Kind 10000 -- replaceable mute list (NIP-51).
        APP_DATA: Kind 30078 -- arbitrary app data, parameterized
            replaceable (NIP-78). Carries the read-mark map.
    """

    METADATA = 0
    TEXT_NOTE = 1
    RECOMMEND_RELAY = 2
    ENCRYPTED_DIRECT_MESSAGE = 4
    EVENT_DELETION = 5
    REACTION = 7
    CHANNEL_CREATION = 40
    CHANNEL_METADATA = 41
    CHANNEL_MESSAGE = 42
    CHANNEL_HIDE_MESSAGE = 43
    CHANNEL_MUTE_USER = 44
    MUTE_LIST = 10_000
    APP_DATA = 30_078


class DomainKind(StrEnum):
    """Names of everything the engine emits to its subscribers.

    The first group are reconstruction outputs, one per reducer, in pipeline
    order. The last three are lifecycle signals of the bootstrap sync and
    carry no payload.
    """

    PROFILE_UPDATE = "profile_update"
    PUBLIC_MESSAGE = "public_message"
    DIRECT_MESSAGE = "direct_message"
    CHANNEL_MESSAGE_HIDE = "channel_message_hide"
    CHANNEL_USER_MUTE = "channel_user_mute"
    REACTION = "reaction"
    EVENT_DELETION = "event_deletion"
    MUTE_LIST = "mute_list"
    CHANNEL_CREATION = "channel_creation"
    CHANNEL_UPDATE = "channel_update"
    READ_MARK_MAP = "read_mark_map"

    READY = "ready"
    DMS_DONE = "dms_done"
    SYNC_DONE = "sync_done"


EVENT_KIND_MAX = 65_535

READ_MARK_MAP_D_TAG = "read-mark-map"

# Kinds the persistent inbox subscription listens for, tagged to the user.
INBOX_KINDS: tuple[EventKind, ...] = (
    EventKind.TEXT_NOTE,
    EventKind.ENCRYPTED_DIRECT_MESSAGE,
    EventKind.CHANNEL_MESSAGE,
    EventKind.CHANNEL_CREATION,
    EventKind.CHANNEL_METADATA,
    EventKind.EVENT_DELETION,
    EventKind.REACTION,
    EventKind.CHANNEL_HIDE_MESSAGE,
    EventKind.CHANNEL_MUTE_USER,
    EventKind.MUTE_LIST,
    EventKind.APP_DATA,
)

DEFAULT_BOOTSTRAP_RELAYS: tuple[str, ...] = (
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.nostr.band",
    "wss://relay.nostr.wine",
    "wss://relay.mostr.pub",
)
