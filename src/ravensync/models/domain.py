"""
Typed domain objects reconstructed from raw relay events.

Every class here is derived, never mutated: reconstruction builds a fresh
instance from one (or, for [MuteList][ravensync.models.domain.MuteList],
several) [RawEvent][ravensync.models.event.RawEvent] objects, and the
[Publisher][ravensync.engine.publisher.Publisher] synthesizes the same types
for its local echo.

String fields are never ``None``: missing or malformed values normalize to
the empty string so consumers can render without null checks.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True, slots=True)
class ChannelMetadata:
    """Normalized channel or profile metadata payload.

    Used both as publisher input and as the parsed form of kind 0/40/41
    content. See [normalize_metadata][ravensync.nips.parsing.normalize_metadata].
    """

    name: str = ""
    about: str = ""
    picture: str = ""
    nip05: str = ""

    def to_content(self, *, include_nip05: bool = False) -> dict[str, str]:
        """Return the JSON content dict published on the wire."""
        content = {"name": self.name, "about": self.about, "picture": self.picture}
        if include_nip05 and self.nip05:
            content["nip05"] = self.nip05
        return content


@dataclass(frozen=True, slots=True)
class Channel:
    """Public chat channel; ``id`` is the creation event id."""

    id: str
    name: str
    about: str
    picture: str
    created: int
    creator: str


@dataclass(frozen=True, slots=True)
class ChannelUpdate:
    """Channel metadata revision. Consumers keep the latest by ``created``."""

    id: str
    channel_id: str
    name: str
    about: str
    picture: str
    creator: str
    created: int


@dataclass(frozen=True, slots=True)
class PublicMessage:
    """Channel message with NIP-10 thread references."""

    id: str
    root: str
    reply: str
    content: str
    creator: str
    mentions: tuple[str, ...]
    created: int
    decrypted: bool = True


@dataclass(frozen=True, slots=True)
class DirectMessage:
    """Direct message. ``peer`` is always the other party of the conversation."""

    id: str
    root: str
    content: str
    peer: str
    creator: str
    mentions: tuple[str, ...]
    created: int
    decrypted: bool = False


@dataclass(frozen=True, slots=True)
class Profile:
    """User profile from kind 0 metadata."""

    id: str
    creator: str
    created: int
    name: str = ""
    about: str = ""
    picture: str = ""
    nip05: str = ""


@dataclass(frozen=True, slots=True)
class Reaction:
    """Reaction to a message; ``peer`` is the reacted message's author."""

    id: str
    message: str
    creator: str
    peer: str
    content: str
    created: int


@dataclass(frozen=True, slots=True)
class EventDeletion:
    """Request to delete ``event_id``."""

    event_id: str
    reason: str = ""


@dataclass(frozen=True, slots=True)
class ChannelMessageHide:
    """Hide a channel message (``id`` is the hidden message)."""

    id: str
    reason: str = ""


@dataclass(frozen=True, slots=True)
class ChannelUserMute:
    """Mute a user in public channels."""

    pubkey: str
    reason: str = ""


@dataclass(frozen=True, slots=True)
class MuteList:
    """Merged mute list; ``pubkeys`` keeps first-seen order without duplicates."""

    pubkeys: tuple[str, ...] = ()
    encrypted: str = ""


@dataclass(frozen=True, slots=True)
class ReadMarkMap:
    """Per-channel/peer last-read timestamps, a single replaceable object per user."""

    marks: Mapping[str, int] = field(default_factory=dict)
    created: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "marks", MappingProxyType(dict(self.marks)))

    def __hash__(self) -> int:
        return hash((tuple(sorted(self.marks.items())), self.created))

    def to_content(self) -> dict[str, int]:
        """Return a plain dict copy suitable for JSON serialization."""
        return dict(self.marks)
