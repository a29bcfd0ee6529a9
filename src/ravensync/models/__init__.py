"""Pure frozen dataclasses with zero I/O for raw events, filters, and domain objects.

The models layer is the foundation of the diamond DAG. It depends only on the
standard library and ``rfc3986``. Every model uses
``@dataclass(frozen=True, slots=True)`` and validates in ``__post_init__`` so
invalid instances never escape the constructor.

Attributes:
    RawEvent: Immutable copy of a relay-delivered Nostr event.
    EventFilter: NIP-01 filter description with an in-process
        [matches()][ravensync.models.filter.EventFilter.matches] predicate.
    Relay: Validated relay URL with
        [NetworkType][ravensync.models.constants.NetworkType] detection.
    Channel, ChannelUpdate, PublicMessage, DirectMessage, Profile, Reaction,
    EventDeletion, ChannelMessageHide, ChannelUserMute, MuteList, ReadMarkMap:
        Domain objects reconstructed from raw events.
    EventKind: Nostr kinds understood by the engine.
    DomainKind: Closed set of emission names.

See Also:
    [ravensync.models.event][]: Raw event model.
    [ravensync.models.filter][]: Subscription filters.
    [ravensync.models.domain][]: Reconstructed domain objects.
    [ravensync.models.relay][]: Relay URL validation.
    [ravensync.models.constants][]: Shared constants and enumerations.
"""

from .constants import (
    DEFAULT_BOOTSTRAP_RELAYS,
    EVENT_KIND_MAX,
    INBOX_KINDS,
    READ_MARK_MAP_D_TAG,
    DomainKind,
    EventKind,
    NetworkType,
)
from .domain import (
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
from .event import RawEvent, Tag
from .filter import EventFilter
from .relay import Relay, normalize_relay_urls


__all__ = [
    "DEFAULT_BOOTSTRAP_RELAYS",
    "EVENT_KIND_MAX",
    "INBOX_KINDS",
    "READ_MARK_MAP_D_TAG",
    "Channel",
    "ChannelMessageHide",
    "ChannelMetadata",
    "ChannelUpdate",
    "ChannelUserMute",
    "DirectMessage",
    "DomainKind",
    "EventDeletion",
    "EventFilter",
    "EventKind",
    "MuteList",
    "NetworkType",
    "Profile",
    "PublicMessage",
    "RawEvent",
    "Reaction",
    "ReadMarkMap",
    "Relay",
    "Tag",
    "normalize_relay_urls",
]
