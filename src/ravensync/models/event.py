"""
Immutable raw Nostr event as delivered by a relay.

[RawEvent][ravensync.models.event.RawEvent] copies the fields the engine needs
out of a ``nostr_sdk.Event`` into a plain frozen dataclass. Raw events live
for exactly one reconstruction pass; only their ids outlive the batch, in the
intake buffer's dedup set.

See Also:
    [ravensync.engine.intake][]: Stages raw events into debounced batches.
    [ravensync.engine.reconstruction][]: Turns a batch into domain objects.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ._validation import validate_instance, validate_str_not_empty, validate_tags, validate_timestamp


if TYPE_CHECKING:
    from nostr_sdk import Event as NostrEvent


Tag = tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RawEvent:
    """Immutable, content-addressed Nostr event.

    Attributes:
        id: Hex event id (SHA-256 of the serialized event).
        kind: Integer event kind.
        pubkey: Hex public key of the author.
        created: Unix timestamp in seconds.
        content: Raw content string.
        tags: Ordered tags, each an ordered tuple of strings.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If ``id`` or ``pubkey`` is empty or ``created`` negative.

    Examples:
        ```python
        event = RawEvent(
            id="ab" * 32,
            kind=42,
            pubkey="cd" * 32,
            created=1700000000,
            content="hello",
            tags=(("e", "ef" * 32, "", "root"),),
        )
        ```
    """

    id: str
    kind: int
    pubkey: str
    created: int
    content: str = ""
    tags: tuple[Tag, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        validate_str_not_empty(self.id, "id")
        validate_str_not_empty(self.pubkey, "pubkey")
        validate_timestamp(self.created, "created")
        validate_timestamp(self.kind, "kind")
        validate_instance(self.content, str, "content")
        validate_tags(self.tags, "tags")

    @classmethod
    def from_nostr(cls, event: NostrEvent) -> RawEvent:
        """Copy the fields of a ``nostr_sdk.Event`` into a new instance."""
        return cls(
            id=event.id().to_hex(),
            kind=event.kind().as_u16(),
            pubkey=event.author().to_hex(),
            created=event.created_at().as_secs(),
            content=event.content(),
            tags=tuple(tuple(tag.as_vec()) for tag in event.tags().to_vec()),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RawEvent:
        """Build from a NIP-01 JSON object (``created_at`` key, list tags)."""
        return cls(
            id=data["id"],
            kind=data["kind"],
            pubkey=data["pubkey"],
            created=data["created_at"],
            content=data.get("content", ""),
            tags=tuple(tuple(tag) for tag in data.get("tags", [])),
        )

    def to_json(self) -> str:
        """Serialize to a NIP-01 shaped JSON object without signature."""
        return json.dumps(
            {
                "id": self.id,
                "pubkey": self.pubkey,
                "created_at": self.created,
                "kind": self.kind,
                "tags": [list(tag) for tag in self.tags],
                "content": self.content,
            }
        )
