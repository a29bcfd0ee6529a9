"""
Pure description of a NIP-01 subscription filter.

[EventFilter][ravensync.models.filter.EventFilter] is what the engine builds
for every fetch and subscription. It is converted to a ``nostr_sdk.Filter``
only at the pool boundary (see
[create_filter][ravensync.utils.protocol.create_filter]), which keeps the
engine testable against in-memory pools through
[matches()][ravensync.models.filter.EventFilter.matches].
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .constants import EVENT_KIND_MAX


if TYPE_CHECKING:
    from .event import RawEvent


@dataclass(frozen=True, slots=True)
class EventFilter:
    """Immutable NIP-01 filter.

    Empty tuples mean "no constraint" for that field, mirroring the wire
    format where an absent key matches everything.

    Attributes:
        ids: Event ids to match.
        kinds: Event kinds to match.
        authors: Author public keys to match.
        tags: Single-letter tag filters as ``(letter, values)`` pairs, e.g.
            ``(("e", ("abc",)), ("p", ("def",)))``.
        since: Inclusive lower bound on ``created``.
        until: Inclusive upper bound on ``created``.
        limit: Maximum number of stored events requested per relay.
    """

    ids: tuple[str, ...] = ()
    kinds: tuple[int, ...] = ()
    authors: tuple[str, ...] = ()
    tags: tuple[tuple[str, tuple[str, ...]], ...] = ()
    since: int | None = None
    until: int | None = None
    limit: int | None = None
    _tag_map: dict[str, frozenset[str]] = field(
        default=None, init=False, repr=False, compare=False, hash=False  # type: ignore[assignment]
    )

    def __post_init__(self) -> None:
        for kind in self.kinds:
            if not 0 <= kind <= EVENT_KIND_MAX:
                raise ValueError(f"Event kind {kind} out of valid range (0-{EVENT_KIND_MAX})")
        for letter, _ in self.tags:
            if len(letter) != 1 or not letter.isalpha():
                raise ValueError(f"Tag filter key must be a single letter, got {letter!r}")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be non-negative")
        object.__setattr__(
            self, "_tag_map", {letter: frozenset(values) for letter, values in self.tags}
        )

    @classmethod
    def build(
        cls,
        *,
        ids: list[str] | tuple[str, ...] = (),
        kinds: list[int] | tuple[int, ...] = (),
        authors: list[str] | tuple[str, ...] = (),
        e: list[str] | tuple[str, ...] = (),
        p: list[str] | tuple[str, ...] = (),
        d: list[str] | tuple[str, ...] = (),
        since: int | None = None,
        until: int | None = None,
        limit: int | None = None,
    ) -> EventFilter:
        """Keyword-friendly constructor for the common ``#e``/``#p``/``#d`` filters."""
        tags = tuple((letter, tuple(values)) for letter, values in (("e", e), ("p", p), ("d", d)) if values)
        return cls(
            ids=tuple(ids),
            kinds=tuple(int(k) for k in kinds),
            authors=tuple(authors),
            tags=tags,
            since=since,
            until=until,
            limit=limit,
        )

    def tag_values(self, letter: str) -> tuple[str, ...]:
        """Return the values required for tag ``letter`` (empty if unconstrained)."""
        for key, values in self.tags:
            if key == letter:
                return values
        return ()

    def matches(self, event: RawEvent) -> bool:
        """Check whether *event* satisfies every constraint of this filter.

        ``limit`` is not applied here: it bounds a relay's stored-event
        replay, not the match predicate.
        """
        if self.ids and event.id not in self.ids:
            return False
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.authors and event.pubkey not in self.authors:
            return False
        if self.since is not None and event.created < self.since:
            return False
        if self.until is not None and event.created > self.until:
            return False
        for letter, wanted in self._tag_map.items():
            if not any(len(tag) >= 2 and tag[0] == letter and tag[1] in wanted for tag in event.tags):
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Render as a NIP-01 filter object."""
        data: dict[str, Any] = {}
        if self.ids:
            data["ids"] = list(self.ids)
        if self.kinds:
            data["kinds"] = list(self.kinds)
        if self.authors:
            data["authors"] = list(self.authors)
        for letter, values in self.tags:
            data[f"#{letter}"] = list(values)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data
