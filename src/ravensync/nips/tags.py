"""
Tag lookup helpers shared by reconstruction and the sync bootstrap.

Tags are ordered tuples of strings; the first element is the tag name and
the second its primary value. NIP-10 "marked" ``e`` tags carry a relay hint
at index 2 and a marker (``root`` / ``reply`` / ``mention``) at index 3.

All helpers are tolerant: tags shorter than required are skipped, never
raised on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterable

    from ravensync.models.event import Tag


_NIP10_MARKER_INDEX = 3


def find_tag_value(tags: Iterable[Tag], name: str) -> str | None:
    """Return the value of the first *name* tag, or ``None`` when absent."""
    for tag in tags:
        if len(tag) >= 2 and tag[0] == name:
            return tag[1]
    return None


def filter_tag_values(tags: Iterable[Tag], name: str) -> list[str]:
    """Return the values of every *name* tag in tag order."""
    return [tag[1] for tag in tags if len(tag) >= 2 and tag[0] == name]


def find_marker_value(tags: Iterable[Tag], marker: str) -> str:
    """Resolve a NIP-10 marked reference.

    Returns the value of the first ``e`` tag whose marker equals *marker*,
    or ``''`` when no such tag exists.

    Examples:
        ```python
        tags = (("e", "chan1", "", "root"), ("e", "msg5", "", "reply"))
        find_marker_value(tags, "root")     # 'chan1'
        find_marker_value(tags, "mention")  # ''
        ```
    """
    for tag in tags:
        if len(tag) > _NIP10_MARKER_INDEX and tag[0] == "e" and tag[_NIP10_MARKER_INDEX] == marker:
            return tag[1]
    return ""


__all__ = ["filter_tag_values", "find_marker_value", "find_tag_value"]
