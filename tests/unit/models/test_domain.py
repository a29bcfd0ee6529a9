"""
Unit tests for models.domain and models.constants modules.
"""

from dataclasses import FrozenInstanceError

import pytest

from ravensync.models import (
    INBOX_KINDS,
    ChannelMetadata,
    DirectMessage,
    DomainKind,
    EventKind,
    Profile,
    ReadMarkMap,
)


class TestChannelMetadata:
    def test_defaults_are_empty_strings(self):
        meta = ChannelMetadata()
        assert (meta.name, meta.about, meta.picture, meta.nip05) == ("", "", "", "")

    def test_to_content_excludes_nip05_by_default(self):
        meta = ChannelMetadata(name="n", about="a", picture="p", nip05="me@example.com")
        assert meta.to_content() == {"name": "n", "about": "a", "picture": "p"}
        assert meta.to_content(include_nip05=True)["nip05"] == "me@example.com"

    def test_to_content_skips_empty_nip05(self):
        assert "nip05" not in ChannelMetadata(name="n").to_content(include_nip05=True)


class TestReadMarkMap:
    def test_marks_are_read_only(self):
        marks = {"chan": 10}
        rmm = ReadMarkMap(marks=marks, created=5)
        marks["chan"] = 99
        assert rmm.marks["chan"] == 10
        with pytest.raises(TypeError):
            rmm.marks["chan"] = 1  # type: ignore[index]

    def test_to_content_is_a_copy(self):
        rmm = ReadMarkMap(marks={"a": 1})
        content = rmm.to_content()
        content["a"] = 2
        assert rmm.marks["a"] == 1

    def test_hashable_and_equal(self):
        assert ReadMarkMap({"a": 1, "b": 2}, 3) == ReadMarkMap({"b": 2, "a": 1}, 3)
        assert hash(ReadMarkMap({"a": 1, "b": 2}, 3)) == hash(ReadMarkMap({"b": 2, "a": 1}, 3))


class TestDefaults:
    def test_profile_optional_fields(self):
        profile = Profile(id="i", creator="c", created=1)
        assert profile.name == profile.about == profile.picture == profile.nip05 == ""

    def test_direct_message_starts_encrypted(self):
        dm = DirectMessage(id="i", root="", content="x", peer="p", creator="c", mentions=(), created=1)
        assert dm.decrypted is False

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            Profile(id="i", creator="c", created=1).name = "x"  # type: ignore[misc]


class TestConstants:
    def test_domain_kind_values(self):
        assert DomainKind.PUBLIC_MESSAGE == "public_message"
        assert DomainKind.SYNC_DONE == "sync_done"

    def test_inbox_kinds_cover_chat_kinds(self):
        assert EventKind.CHANNEL_MESSAGE in INBOX_KINDS
        assert EventKind.ENCRYPTED_DIRECT_MESSAGE in INBOX_KINDS
        assert EventKind.METADATA not in INBOX_KINDS
