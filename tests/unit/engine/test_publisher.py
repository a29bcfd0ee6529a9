"""
Unit tests for engine.publisher module.

Tests:
- Capability and relay checks before any network call
- Signing, publishing and rejection handling
- Local echo equal to what reconstruction yields for the signed event
- Tag layout of replies, mentions, deletions and mute lists
"""

import pytest
from nostr_sdk import Keys

from ravensync.core.exceptions import (
    CannotPublishError,
    NoWriteRelaysError,
    PublishingError,
)
from ravensync.engine.emitter import EventEmitter
from ravensync.engine.publisher import Publisher
from ravensync.engine.reconstruction import ReconstructionPipeline
from ravensync.engine.relay_sets import RelaySetResolver
from ravensync.models import (
    ChannelMetadata,
    DomainKind,
    EventDeletion,
    EventKind,
    RawEvent,
)
from ravensync.utils.signer import PassthroughCipher, Signer
from tests.fixtures.events import event_id
from tests.fixtures.pool import RELAY_A, FakeRelayPool


NOW = 1_700_000_000


class RecordingCipher:
    """Cipher that reverses text and records encrypt calls."""

    def __init__(self) -> None:
        self.encrypted: list[tuple[str, str]] = []

    async def encrypt(self, peer: str, plaintext: str) -> str:
        self.encrypted.append((peer, plaintext))
        return plaintext[::-1]

    async def decrypt(self, peer: str, ciphertext: str) -> str:
        return ciphertext[::-1]


@pytest.fixture
def cipher() -> RecordingCipher:
    return RecordingCipher()


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def echoes(emitter: EventEmitter) -> list:
    received: list = []
    for kind in DomainKind:
        emitter.on(kind, lambda items, kind=kind: received.append((kind, items)))
    return received


def _publisher(pool, relays_config, signer, cipher, emitter) -> Publisher:
    resolver = RelaySetResolver(relays_config, pool)
    return Publisher(pool, resolver, signer, cipher, emitter, clock=lambda: NOW)


@pytest.fixture
def publisher(pool, relays_config, signer, cipher, emitter) -> Publisher:
    return _publisher(pool, relays_config, signer, cipher, emitter)


def _published(pool: FakeRelayPool, index: int = -1) -> RawEvent:
    event, _ = pool.published[index]
    return RawEvent.from_nostr(event)


def _pubkey() -> str:
    return Keys.generate().public_key().to_hex()


class TestPreconditions:
    async def test_synthetic_identity_fails_before_network(
        self, pool, relays_config, cipher, emitter, echoes
    ):
        publisher = _publisher(pool, relays_config, Signer.extension(), cipher, emitter)
        assert not publisher.can_publish()
        with pytest.raises(CannotPublishError):
            await publisher.create_channel(ChannelMetadata(name="general"))
        assert pool.published == []
        assert echoes == []

    async def test_direct_message_not_encrypted_without_capability(
        self, pool, relays_config, cipher, emitter
    ):
        publisher = _publisher(pool, relays_config, Signer(), cipher, emitter)
        with pytest.raises(CannotPublishError):
            await publisher.send_direct_message(_pubkey(), "hi")
        assert cipher.encrypted == []

    async def test_no_write_relays(self, relays_config, signer, cipher, emitter):
        pool = FakeRelayPool(live=[])
        publisher = _publisher(pool, relays_config, signer, cipher, emitter)
        with pytest.raises(NoWriteRelaysError):
            await publisher.create_channel(ChannelMetadata(name="general"))
        assert pool.published == []


class TestPublishing:
    async def test_rejected_by_every_relay(self, publisher, pool, echoes):
        pool.reject_all = True
        with pytest.raises(PublishingError):
            await publisher.create_channel(ChannelMetadata(name="general"))
        assert len(pool.published) == 1
        assert echoes == []

    async def test_transport_error_wrapped(self, publisher, pool, echoes):
        pool.publish_error = OSError("connection reset")
        with pytest.raises(PublishingError, match="connection reset"):
            await publisher.send_public_message(event_id(0xC1), "gm")
        assert echoes == []

    async def test_signed_stamped_and_sent_to_write_set(self, publisher, pool, identity):
        await publisher.create_channel(ChannelMetadata(name="general"))
        event, relay_set = pool.published[0]
        assert relay_set == (RELAY_A,)
        raw = RawEvent.from_nostr(event)
        assert raw.pubkey == identity
        assert raw.created == NOW
        assert raw.kind == EventKind.CHANNEL_CREATION
        assert pool.seen_on(raw.id) == {RELAY_A}


class TestEcho:
    async def test_create_channel_matches_reconstruction(
        self, publisher, pool, signer, echoes
    ):
        channel = await publisher.create_channel(
            ChannelMetadata(name="general", about="talk", picture="https://x.example/p.png")
        )
        raw = _published(pool)
        assert channel.id == raw.id
        assert (channel.name, channel.about, channel.picture) == (
            "general",
            "talk",
            "https://x.example/p.png",
        )
        (emission,) = ReconstructionPipeline(signer, PassthroughCipher()).reduce([raw])
        assert emission.items == (channel,)
        assert echoes == [(DomainKind.CHANNEL_CREATION, (channel,))]

    async def test_update_channel(self, publisher, pool):
        channel = event_id(0xC1)
        update = await publisher.update_channel(channel, ChannelMetadata(name="renamed"))
        assert update.channel_id == channel
        assert update.name == "renamed"
        assert ("e", channel, "", "root") in _published(pool).tags

    async def test_public_message_reply_and_mentions(self, publisher, pool, echoes):
        channel, parent = event_id(0xC1), event_id(0x5)
        mentioned = _pubkey()
        message = await publisher.send_public_message(
            channel, "gm", reply_to=parent, mentions=[mentioned]
        )
        assert message.root == channel
        assert message.reply == parent
        assert message.mentions == (mentioned,)
        assert message.content == "gm"
        assert echoes[-1] == (DomainKind.PUBLIC_MESSAGE, (message,))

    async def test_direct_message_echo_has_plaintext(self, publisher, pool, cipher, identity):
        recipient = _pubkey()
        message = await publisher.send_direct_message(recipient, "hello")
        assert cipher.encrypted == [(recipient, "hello")]
        assert _published(pool).content == "olleh"
        assert message.content == "hello"
        assert message.decrypted is True
        assert message.peer == recipient
        assert message.creator == identity

    async def test_reaction(self, publisher):
        author = _pubkey()
        reaction = await publisher.send_reaction(event_id(0x5), author)
        assert reaction.message == event_id(0x5)
        assert reaction.peer == author
        assert reaction.content == "+"

    async def test_hide_and_mute(self, publisher):
        hide = await publisher.hide_channel_message(event_id(0x5), "spam")
        assert (hide.id, hide.reason) == (event_id(0x5), "spam")
        target = _pubkey()
        mute = await publisher.mute_channel_user(target)
        assert (mute.pubkey, mute.reason) == (target, "")

    async def test_profile(self, publisher, identity):
        profile = await publisher.update_profile(ChannelMetadata(name="alice", nip05="a@b.c"))
        assert profile.creator == identity
        assert profile.nip05 == "a@b.c"


class TestDeletions:
    async def test_one_object_per_id(self, publisher, echoes):
        first, second = event_id(0xD1), event_id(0xD2)
        deletions = await publisher.delete_events([first, second, first], "mistake")
        assert deletions == (
            EventDeletion(event_id=first, reason="mistake"),
            EventDeletion(event_id=second, reason="mistake"),
        )
        assert echoes == [(DomainKind.EVENT_DELETION, deletions)]

    async def test_empty_rejected(self, publisher, pool):
        with pytest.raises(ValueError):
            await publisher.delete_events([])
        assert pool.published == []


class TestReplaceableData:
    async def test_mute_list_deduplicated(self, publisher, pool):
        a, b = _pubkey(), _pubkey()
        mute_list = await publisher.update_mute_list([a, b, a])
        assert mute_list.pubkeys == (a, b)
        assert _published(pool).tags == (("p", a), ("p", b))

    async def test_read_mark_map(self, publisher, pool):
        channel = event_id(0xC1)
        marks = await publisher.update_read_mark_map({channel: 12})
        assert dict(marks.marks) == {channel: 12}
        assert marks.created == NOW
        assert ("d", "read-mark-map") in _published(pool).tags

    async def test_recommend_relay(self, publisher, pool):
        raw = await publisher.recommend_relay("wss://nos.lol")
        assert raw.kind == EventKind.RECOMMEND_RELAY
        assert raw.tags == (("r", "wss://nos.lol"),)

    async def test_recommend_invalid_relay(self, publisher, pool):
        with pytest.raises(ValueError):
            await publisher.recommend_relay("https://nos.lol")
        assert pool.published == []
