"""Protocol-level helpers: tag lookup, content parsing, and event builders.

The NIPs layer sits in the middle of the diamond DAG, depending only on
[ravensync.models][ravensync.models] and ``nostr_sdk``. It knows the wire
conventions of NIP-01 (profiles), NIP-04 (direct messages), NIP-09
(deletions), NIP-10 (thread markers), NIP-25 (reactions), NIP-28 (public
channels), NIP-51 (mute lists) and NIP-78 (app data).

Warning:
    Parsing helpers **never raise**. Malformed content degrades to empty
    strings and empty collections so a single bad event cannot abort a
    reconstruction batch.

See Also:
    [ravensync.nips.tags][]: Tag lookup and NIP-10 marker resolution.
    [ravensync.nips.parsing][]: Declarative parsing of JSON content.
    [ravensync.nips.event_builders][]: Unsigned event builders per kind.
"""

from .parsing import FieldSpec, normalize_metadata, parse_fields, parse_json
from .tags import filter_tag_values, find_marker_value, find_tag_value


__all__ = [
    "FieldSpec",
    "filter_tag_values",
    "find_marker_value",
    "find_tag_value",
    "normalize_metadata",
    "parse_fields",
    "parse_json",
]
