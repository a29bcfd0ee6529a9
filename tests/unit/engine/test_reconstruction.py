"""
Unit tests for engine.reconstruction module.

Tests:
- One reducer per domain kind, first-seen deduplication
- Tag-driven fields (NIP-10 markers, peers, deletions per e tag)
- Tolerance of malformed JSON content
- Pipeline ordering, purity and direct message decryption
"""

import pytest

from ravensync.core.exceptions import DecryptionError
from ravensync.engine.reconstruction import (
    REDUCERS,
    Emission,
    ReconstructionPipeline,
    reduce_channel_creations,
    reduce_channel_message_hides,
    reduce_channel_updates,
    reduce_channel_user_mutes,
    reduce_direct_messages,
    reduce_event_deletions,
    reduce_mute_list,
    reduce_profiles,
    reduce_public_messages,
    reduce_reactions,
    reduce_read_mark_map,
)
from ravensync.models import (
    Channel,
    ChannelMessageHide,
    ChannelUserMute,
    DomainKind,
    EventDeletion,
    EventKind,
)
from ravensync.utils.signer import PassthroughCipher, Signer
from tests.fixtures.events import ALICE, BOB, CAROL, CREATED, event_id, make_event


CHANNEL = event_id(0xC1)
MESSAGE = event_id(0x5)


class UpperCipher:
    """Cipher that upper-cases on decrypt and records calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def encrypt(self, peer: str, plaintext: str) -> str:
        return plaintext.lower()

    async def decrypt(self, peer: str, ciphertext: str) -> str:
        self.calls.append((peer, ciphertext))
        return ciphertext.upper()


class BrokenCipher:
    async def encrypt(self, peer: str, plaintext: str) -> str:
        raise RuntimeError("no shared secret")

    async def decrypt(self, peer: str, ciphertext: str) -> str:
        raise RuntimeError("bad padding")


class TestProfiles:
    def test_fields_from_metadata(self):
        event = make_event(
            EventKind.METADATA,
            content={"name": "alice", "about": "hi", "picture": "p.png", "nip05": "a@b.c"},
        )
        (profile,) = reduce_profiles([event], None)
        assert profile.id == event.id
        assert profile.creator == ALICE
        assert profile.created == CREATED
        assert (profile.name, profile.about, profile.picture, profile.nip05) == (
            "alice",
            "hi",
            "p.png",
            "a@b.c",
        )

    def test_missing_fields_are_empty(self):
        (profile,) = reduce_profiles([make_event(0, content={"name": "alice"})], None)
        assert profile.about == ""
        assert profile.picture == ""

    def test_invalid_json_still_emitted(self):
        (profile,) = reduce_profiles([make_event(0, content="{not json")], None)
        assert profile.name == ""

    def test_first_seen_kept(self):
        event = make_event(0, content={"name": "alice"})
        assert len(reduce_profiles([event, event], None)) == 1


class TestPublicMessages:
    def test_nip10_markers_and_mentions(self):
        event = make_event(
            EventKind.CHANNEL_MESSAGE,
            content="gm",
            tags=[
                ("e", CHANNEL, "", "root"),
                ("e", MESSAGE, "", "reply"),
                ("p", BOB),
                ("p", CAROL),
                ("p", BOB),
            ],
        )
        (message,) = reduce_public_messages([event], None)
        assert message.root == CHANNEL
        assert message.reply == MESSAGE
        assert message.mentions == (BOB, CAROL)
        assert message.content == "gm"
        assert message.decrypted is True

    def test_unmarked_tags_give_empty_root(self):
        (message,) = reduce_public_messages([make_event(42, tags=[("e", CHANNEL)])], None)
        assert message.root == ""
        assert message.reply == ""

    def test_other_kinds_ignored(self):
        assert reduce_public_messages([make_event(1), make_event(40)], None) == ()


class TestDirectMessages:
    def test_incoming_peer_is_author(self):
        event = make_event(4, pubkey=BOB, content="cipher", tags=[("p", ALICE)])
        (message,) = reduce_direct_messages([event], ALICE)
        assert message.peer == BOB
        assert message.creator == BOB
        assert message.decrypted is False

    def test_outgoing_peer_is_recipient(self):
        event = make_event(4, pubkey=ALICE, tags=[("p", BOB)])
        (message,) = reduce_direct_messages([event], ALICE)
        assert message.peer == BOB

    def test_without_recipient_dropped(self):
        assert reduce_direct_messages([make_event(4)], ALICE) == ()


class TestHidesAndMutes:
    def test_hide_reason(self):
        event = make_event(43, content={"reason": "spam"}, tags=[("e", MESSAGE)])
        assert reduce_channel_message_hides([event], None) == (
            ChannelMessageHide(id=MESSAGE, reason="spam"),
        )

    def test_hide_without_e_dropped(self):
        assert reduce_channel_message_hides([make_event(43)], None) == ()

    def test_hides_deduplicated_by_target(self):
        events = [make_event(43, tags=[("e", MESSAGE)]) for _ in range(2)]
        assert len(reduce_channel_message_hides(events, None)) == 1

    def test_mute_reason_not_json(self):
        event = make_event(44, content="plain", tags=[("p", BOB)])
        assert reduce_channel_user_mutes([event], None) == (
            ChannelUserMute(pubkey=BOB, reason=""),
        )

    def test_mutes_deduplicated_by_pubkey(self):
        events = [
            make_event(44, content={"reason": "first"}, tags=[("p", BOB)]),
            make_event(44, content={"reason": "second"}, tags=[("p", BOB)]),
        ]
        (mute,) = reduce_channel_user_mutes(events, None)
        assert mute.reason == "first"


class TestReactions:
    def test_peer_from_p_tag(self):
        event = make_event(7, content="+", tags=[("e", MESSAGE), ("p", BOB)])
        (reaction,) = reduce_reactions([event], None)
        assert reaction.message == MESSAGE
        assert reaction.peer == BOB
        assert reaction.content == "+"

    def test_peer_defaults_to_author(self):
        (reaction,) = reduce_reactions([make_event(7, tags=[("e", MESSAGE)])], None)
        assert reaction.peer == ALICE

    def test_without_e_dropped(self):
        assert reduce_reactions([make_event(7, tags=[("p", BOB)])], None) == ()


class TestDeletions:
    def test_one_per_e_tag(self):
        first, second = event_id(0xD1), event_id(0xD2)
        event = make_event(5, content="oops", tags=[("e", first), ("e", second), ("p", BOB)])
        assert reduce_event_deletions([event], None) == (
            EventDeletion(event_id=first, reason="oops"),
            EventDeletion(event_id=second, reason="oops"),
        )

    def test_deduplicated_by_target(self):
        events = [make_event(5, tags=[("e", MESSAGE)]) for _ in range(3)]
        assert len(reduce_event_deletions(events, None)) == 1


class TestMuteList:
    def test_tags_and_json_merged(self):
        events = [
            make_event(10000, content={"pubkeys": [CAROL, BOB]}, tags=[("p", BOB)]),
            make_event(10000, tags=[("p", CAROL)]),
        ]
        (mute_list,) = reduce_mute_list(events, None)
        assert mute_list.pubkeys == (BOB, CAROL)
        assert mute_list.encrypted == ""

    def test_non_json_content_kept_encrypted(self):
        (mute_list,) = reduce_mute_list([make_event(10000, content="c2VjcmV0?iv=abc")], None)
        assert mute_list.pubkeys == ()
        assert mute_list.encrypted == "c2VjcmV0?iv=abc"

    def test_nothing_without_events(self):
        assert reduce_mute_list([make_event(0)], None) == ()


class TestChannels:
    def test_creation_uses_event_id(self):
        event = make_event(40, content={"name": "general", "about": "talk", "picture": ""})
        assert reduce_channel_creations([event], None) == (
            Channel(
                id=event.id,
                name="general",
                about="talk",
                picture="",
                created=CREATED,
                creator=ALICE,
            ),
        )

    def test_update_references_first_e_tag(self):
        event = make_event(
            41, content={"name": "renamed"}, tags=[("e", CHANNEL), ("e", MESSAGE)]
        )
        (update,) = reduce_channel_updates([event], None)
        assert update.channel_id == CHANNEL
        assert update.name == "renamed"
        assert update.about == ""

    def test_update_without_e_dropped(self):
        assert reduce_channel_updates([make_event(41, content={"name": "x"})], None) == ()


class TestReadMarkMap:
    def test_latest_wins(self):
        older = make_event(
            30078, created=CREATED, content={CHANNEL: 1}, tags=[("d", "read-mark-map")]
        )
        newer = make_event(
            30078, created=CREATED + 10, content={CHANNEL: 5}, tags=[("d", "read-mark-map")]
        )
        (marks,) = reduce_read_mark_map([newer, older], None)
        assert dict(marks.marks) == {CHANNEL: 5}
        assert marks.created == CREATED + 10

    def test_other_d_tags_ignored(self):
        event = make_event(30078, content={CHANNEL: 1}, tags=[("d", "settings")])
        assert reduce_read_mark_map([event], None) == ()

    def test_invalid_marks_dropped(self):
        event = make_event(
            30078, content={CHANNEL: -1, MESSAGE: "x", BOB: 3}, tags=[("d", "read-mark-map")]
        )
        (marks,) = reduce_read_mark_map([event], None)
        assert dict(marks.marks) == {BOB: 3}


class TestPipeline:
    def test_reducer_order(self):
        assert [kind for kind, _ in REDUCERS] == [
            DomainKind.PROFILE_UPDATE,
            DomainKind.PUBLIC_MESSAGE,
            DomainKind.DIRECT_MESSAGE,
            DomainKind.CHANNEL_MESSAGE_HIDE,
            DomainKind.CHANNEL_USER_MUTE,
            DomainKind.REACTION,
            DomainKind.EVENT_DELETION,
            DomainKind.MUTE_LIST,
            DomainKind.CHANNEL_CREATION,
            DomainKind.CHANNEL_UPDATE,
            DomainKind.READ_MARK_MAP,
        ]

    def test_reduce_emits_in_order_and_skips_empty(self):
        batch = [
            make_event(40, content={"name": "general"}),
            make_event(42, tags=[("e", CHANNEL, "", "root")]),
            make_event(0, content={"name": "alice"}),
        ]
        pipeline = ReconstructionPipeline(Signer(), PassthroughCipher())
        kinds = [emission.kind for emission in pipeline.reduce(batch)]
        assert kinds == [
            DomainKind.PROFILE_UPDATE,
            DomainKind.PUBLIC_MESSAGE,
            DomainKind.CHANNEL_CREATION,
        ]

    def test_reduce_is_pure(self):
        batch = [make_event(7, tags=[("e", MESSAGE)]), make_event(5, tags=[("e", MESSAGE)])]
        pipeline = ReconstructionPipeline(Signer(), PassthroughCipher())
        assert pipeline.reduce(batch) == pipeline.reduce(batch)

    def test_empty_batch(self):
        assert ReconstructionPipeline(Signer(), PassthroughCipher()).reduce([]) == []

    async def test_process_decrypts_direct_messages(self, signer, identity):
        cipher = UpperCipher()
        event = make_event(4, pubkey=BOB, content="hello", tags=[("p", identity)])
        (emission,) = await ReconstructionPipeline(signer, cipher).process([event])
        (message,) = emission.items
        assert message.content == "HELLO"
        assert message.decrypted is True
        assert cipher.calls == [(BOB, "hello")]

    async def test_synthetic_identity_skips_decryption(self):
        cipher = UpperCipher()
        event = make_event(4, pubkey=BOB, content="hello", tags=[("p", ALICE)])
        pipeline = ReconstructionPipeline(Signer.extension(ALICE), cipher)
        (emission,) = await pipeline.process([event])
        assert emission.items[0].content == "hello"
        assert emission.items[0].decrypted is False
        assert cipher.calls == []

    async def test_decryption_failure_keeps_ciphertext(self, signer, identity):
        event = make_event(4, pubkey=BOB, content="garbage", tags=[("p", identity)])
        (emission,) = await ReconstructionPipeline(signer, BrokenCipher()).process([event])
        assert emission.items[0].content == "garbage"
        assert emission.items[0].decrypted is False

    async def test_cipher_failure_raised_as_decryption_error(self, signer, identity):
        event = make_event(4, pubkey=BOB, content="garbage", tags=[("p", identity)])
        (message,) = reduce_direct_messages([event], identity)
        pipeline = ReconstructionPipeline(signer, BrokenCipher())
        with pytest.raises(DecryptionError, match="bad padding") as excinfo:
            await pipeline.open_message(message)
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    async def test_open_message_returns_plaintext(self, signer, identity):
        event = make_event(4, pubkey=BOB, content="hello", tags=[("p", identity)])
        (message,) = reduce_direct_messages([event], identity)
        assert await ReconstructionPipeline(signer, UpperCipher()).open_message(message) == "HELLO"

    async def test_process_passes_other_kinds_through(self, signer):
        event = make_event(5, tags=[("e", MESSAGE)])
        emissions = await ReconstructionPipeline(signer, PassthroughCipher()).process([event])
        assert emissions == [
            Emission(DomainKind.EVENT_DELETION, (EventDeletion(event_id=MESSAGE),))
        ]


@pytest.mark.parametrize(
    ("kind", "expected"),
    [
        (EventKind.TEXT_NOTE, []),
        (EventKind.RECOMMEND_RELAY, []),
    ],
)
def test_unhandled_kinds_produce_nothing(kind, expected):
    pipeline = ReconstructionPipeline(Signer(), PassthroughCipher())
    assert pipeline.reduce([make_event(kind)]) == expected
