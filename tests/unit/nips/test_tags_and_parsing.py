"""
Unit tests for nips.tags and nips.parsing modules.

Tests:
- Tag lookup helpers tolerate short tags
- NIP-10 marker resolution
- parse_fields() type filtering
- Metadata, reason, mute list and read-mark parsing never raise
"""

from ravensync.models import ChannelMetadata
from ravensync.nips import (
    FieldSpec,
    filter_tag_values,
    find_marker_value,
    find_tag_value,
    normalize_metadata,
    parse_fields,
    parse_json,
)
from ravensync.nips.parsing import (
    parse_metadata_content,
    parse_mute_list_pubkeys,
    parse_read_marks,
    parse_reason,
)


TAGS = (
    ("e",),
    ("e", "chan1", "", "root"),
    ("e", "msg5", "wss://relay.example.com", "reply"),
    ("p", "alice"),
    ("p", "bob"),
)


class TestTagHelpers:
    def test_find_tag_value_first_match(self):
        assert find_tag_value(TAGS, "e") == "chan1"
        assert find_tag_value(TAGS, "p") == "alice"

    def test_find_tag_value_missing(self):
        assert find_tag_value(TAGS, "d") is None
        assert find_tag_value((), "e") is None

    def test_filter_tag_values(self):
        assert filter_tag_values(TAGS, "p") == ["alice", "bob"]
        assert filter_tag_values(TAGS, "e") == ["chan1", "msg5"]

    def test_find_marker_value(self):
        assert find_marker_value(TAGS, "root") == "chan1"
        assert find_marker_value(TAGS, "reply") == "msg5"
        assert find_marker_value(TAGS, "mention") == ""

    def test_marker_on_non_e_tag_ignored(self):
        assert find_marker_value((("a", "x", "", "root"),), "root") == ""


class TestParseJson:
    def test_valid(self):
        assert parse_json('{"a": 1}') == {"a": 1}

    def test_invalid_returns_none(self):
        assert parse_json("not json") is None
        assert parse_json("") is None


class TestParseFields:
    SPEC = FieldSpec(
        int_fields=frozenset({"n"}),
        str_fields=frozenset({"s"}),
        str_list_fields=frozenset({"l"}),
    )

    def test_valid_values_kept(self):
        data = {"n": 1, "s": "x", "l": ["a", "b"]}
        assert parse_fields(data, self.SPEC) == data

    def test_wrong_types_dropped(self):
        assert parse_fields({"n": "1", "s": 2, "l": "a"}, self.SPEC) == {}

    def test_bool_is_not_int(self):
        assert parse_fields({"n": True}, self.SPEC) == {}

    def test_list_elements_filtered(self):
        assert parse_fields({"l": ["a", 1, None, "b"]}, self.SPEC) == {"l": ["a", "b"]}

    def test_unknown_keys_ignored(self):
        assert parse_fields({"other": 1}, self.SPEC) == {}

    def test_non_dict_input(self):
        assert parse_fields(["n"], self.SPEC) == {}
        assert parse_fields(None, self.SPEC) == {}


class TestMetadata:
    def test_normalize_drops_non_strings(self):
        assert normalize_metadata({"name": "bob", "about": 3}) == ChannelMetadata(name="bob")

    def test_normalize_non_object(self):
        assert normalize_metadata(None) == ChannelMetadata()
        assert normalize_metadata([1, 2]) == ChannelMetadata()

    def test_parse_content(self):
        meta = parse_metadata_content('{"name": "n", "picture": "p", "nip05": "a@b.c"}')
        assert meta == ChannelMetadata(name="n", picture="p", nip05="a@b.c")

    def test_parse_bad_content(self):
        assert parse_metadata_content("{oops") == ChannelMetadata()


class TestReasonAndLists:
    def test_reason(self):
        assert parse_reason('{"reason": "spam"}') == "spam"

    def test_reason_missing_or_invalid(self):
        assert parse_reason("{}") == ""
        assert parse_reason('{"reason": 5}') == ""
        assert parse_reason("plain text") == ""

    def test_mute_list_pubkeys(self):
        assert parse_mute_list_pubkeys('{"pubkeys": ["a", 2, "b"]}') == ["a", "b"]

    def test_mute_list_ciphertext(self):
        assert parse_mute_list_pubkeys("ciphertext?iv=abc") == []


class TestReadMarks:
    def test_valid_marks(self):
        assert parse_read_marks('{"chan": 10, "peer": 20}') == {"chan": 10, "peer": 20}

    def test_invalid_marks_dropped(self):
        content = '{"neg": -1, "flag": true, "str": "10", "ok": 3}'
        assert parse_read_marks(content) == {"ok": 3}

    def test_non_object(self):
        assert parse_read_marks("[1, 2]") == {}
        assert parse_read_marks("bad") == {}
