"""
Declarative parsing of untrusted JSON event content.

Relays forward whatever authors publish, so every JSON payload the engine
reads (profile metadata, channel metadata, hide/mute reasons, mute list
bodies, read-mark maps) goes through this module. Each payload shape is
described by a [FieldSpec][ravensync.nips.parsing.FieldSpec];
[parse_fields][ravensync.nips.parsing.parse_fields] applies it and drops
values of the wrong type.

Note:
    Nothing here raises on bad input. Unparseable JSON yields an empty
    dictionary, and fields with the wrong type are excluded, so callers
    fall back to their defaults.

See Also:
    [ravensync.engine.reconstruction][]: Primary consumer of these helpers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ravensync.models.domain import ChannelMetadata


if TYPE_CHECKING:
    from collections.abc import Callable


_SKIP: Any = object()


def _parse_int(value: Any) -> Any:
    return value if isinstance(value, int) and not isinstance(value, bool) else _SKIP


def _parse_str(value: Any) -> Any:
    return value if isinstance(value, str) else _SKIP


def _parse_str_list(value: Any) -> Any:
    if isinstance(value, list):
        return [s for s in value if isinstance(s, str)]
    return _SKIP


_FIELD_PARSERS: tuple[tuple[str, Callable[[Any], Any]], ...] = (
    ("int_fields", _parse_int),
    ("str_fields", _parse_str),
    ("str_list_fields", _parse_str_list),
)


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Declarative specification of expected field types.

    Attributes:
        int_fields: Fields expected as ``int`` (``bool`` excluded).
        str_fields: Fields expected as ``str``.
        str_list_fields: Fields expected as ``list[str]`` (invalid elements filtered).
    """

    int_fields: frozenset[str] = field(default_factory=frozenset)
    str_fields: frozenset[str] = field(default_factory=frozenset)
    str_list_fields: frozenset[str] = field(default_factory=frozenset)


METADATA_SPEC = FieldSpec(str_fields=frozenset({"name", "about", "picture", "nip05"}))
REASON_SPEC = FieldSpec(str_fields=frozenset({"reason"}))
MUTE_LIST_SPEC = FieldSpec(str_list_fields=frozenset({"pubkeys"}))


def parse_json(content: str) -> Any:
    """Decode *content* as JSON, returning ``None`` when it is not valid JSON."""
    try:
        return json.loads(content)
    except (TypeError, ValueError):
        return None


def parse_fields(data: Any, spec: FieldSpec) -> dict[str, Any]:
    """Parse a mapping according to *spec*, dropping invalid values.

    Non-dict input yields an empty result. Keys not present in any field set
    are ignored.
    """
    if not isinstance(data, dict):
        return {}

    dispatch: dict[str, Callable[[Any], Any]] = {}
    for attr_name, parser in _FIELD_PARSERS:
        for name in getattr(spec, attr_name):
            dispatch[name] = parser

    result: dict[str, Any] = {}
    for key, value in data.items():
        handler = dispatch.get(key)
        if handler is not None:
            parsed = handler(value)
            if parsed is not _SKIP:
                result[key] = parsed
    return result


def normalize_metadata(meta: Any) -> ChannelMetadata:
    """Coerce an arbitrary parsed JSON value into a ChannelMetadata.

    Non-object input and non-string fields become empty strings.

    Examples:
        ```python
        normalize_metadata({"name": "bob", "about": 3})
        # ChannelMetadata(name='bob', about='', picture='', nip05='')
        normalize_metadata(None)
        # ChannelMetadata(name='', about='', picture='', nip05='')
        ```
    """
    return ChannelMetadata(**parse_fields(meta, METADATA_SPEC))


def parse_metadata_content(content: str) -> ChannelMetadata:
    """Parse kind 0/40/41 JSON content into normalized metadata."""
    return normalize_metadata(parse_json(content))


def parse_reason(content: str) -> str:
    """Extract the ``reason`` of a hide/mute JSON body, ``''`` if unavailable."""
    return parse_fields(parse_json(content), REASON_SPEC).get("reason", "")


def parse_mute_list_pubkeys(content: str) -> list[str]:
    """Extract pubkeys from a JSON mute list body (``{"pubkeys": [...]}``)."""
    return parse_fields(parse_json(content), MUTE_LIST_SPEC).get("pubkeys", [])


def parse_read_marks(content: str) -> dict[str, int]:
    """Parse a read-mark map body, keeping only non-negative integer marks."""
    data = parse_json(content)
    if not isinstance(data, dict):
        return {}
    spec = FieldSpec(int_fields=frozenset(k for k in data if isinstance(k, str)))
    return {key: value for key, value in parse_fields(data, spec).items() if value >= 0}


__all__ = [
    "METADATA_SPEC",
    "MUTE_LIST_SPEC",
    "REASON_SPEC",
    "FieldSpec",
    "normalize_metadata",
    "parse_fields",
    "parse_json",
    "parse_metadata_content",
    "parse_mute_list_pubkeys",
    "parse_reason",
    "parse_read_marks",
]
