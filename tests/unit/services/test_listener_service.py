"""
Unit tests for services.listener.service module.

Tests:
- Setup: engine start, bootstrap sync and inbox
- Channel and own-message tracking from emissions
- run(): channel catch-up and message watch
- Teardown closing the engine
"""

import pytest

from ravensync.engine.engine import SyncEngine
from ravensync.engine.subscriptions import INBOX, MESSAGE_LISTENER
from ravensync.models import Channel, DomainKind, EventKind, PublicMessage
from ravensync.services.listener import ListenerConfig, ListenerService
from ravensync.utils.signer import Signer
from tests.fixtures.events import BOB, CREATED, VALID_HEX_KEY, event_id


CONFIGURED = event_id(0xC1)
DISCOVERED = event_id(0xC2)


def _message(creator: str, root: str, n: int) -> PublicMessage:
    return PublicMessage(
        id=event_id(n),
        root=root,
        reply="",
        content="gm",
        creator=creator,
        mentions=(),
        created=CREATED,
    )


@pytest.fixture
def service(pool, signer, engine_config, scheduler) -> ListenerService:
    engine = SyncEngine(pool, signer, engine_config, scheduler=scheduler)
    config = ListenerConfig(channels=[CONFIGURED], engine=engine_config)
    return ListenerService(config, engine=engine)


class TestSetup:
    async def test_starts_engine_and_inbox(self, service, pool):
        signals = []
        service.engine.emitter.on(DomainKind.SYNC_DONE, lambda: signals.append("done"))
        async with service:
            assert pool.connect_calls
            assert signals == ["done"]
            assert service.engine.subscriptions.is_active(INBOX)
        assert pool.closed

    async def test_no_identity_no_inbox(self, pool, engine_config, scheduler):
        engine = SyncEngine(pool, Signer(), engine_config, scheduler=scheduler)
        service = ListenerService(ListenerConfig(engine=engine_config), engine=engine)
        async with service:
            assert not engine.subscriptions.is_active(INBOX)


class TestTracking:
    async def test_channels_from_creations_and_messages(self, service):
        emitter = service.engine.emitter
        created = Channel(
            id=DISCOVERED, name="", about="", picture="", created=CREATED, creator=BOB
        )
        await emitter.emit(DomainKind.CHANNEL_CREATION, (created,))
        await emitter.emit(DomainKind.PUBLIC_MESSAGE, (_message(BOB, event_id(0xC3), 1),))
        assert service.channels == (CONFIGURED, DISCOVERED, event_id(0xC3))

    async def test_duplicates_ignored(self, service):
        await service.engine.emitter.emit(
            DomainKind.PUBLIC_MESSAGE, (_message(BOB, CONFIGURED, 1),)
        )
        assert service.channels == (CONFIGURED,)

    async def test_own_messages_capped_at_watch_limit(
        self, pool, signer, engine_config, scheduler, identity
    ):
        engine = SyncEngine(pool, signer, engine_config, scheduler=scheduler)
        config = ListenerConfig(engine=engine_config, message_watch_limit=3)
        service = ListenerService(config, engine=engine)
        for n in range(1, 11):
            await engine.emitter.emit(
                DomainKind.PUBLIC_MESSAGE, (_message(identity, DISCOVERED, n),)
            )
        assert service.watched_messages == (event_id(8), event_id(9), event_id(10))

        repeated = _message(identity, DISCOVERED, 8)
        await engine.emitter.emit(DomainKind.PUBLIC_MESSAGE, (repeated,))
        assert service.watched_messages == (event_id(9), event_id(10), event_id(8))


class TestRun:
    async def test_catch_up_and_message_watch(self, service, pool, identity):
        async with service:
            own = _message(identity, DISCOVERED, 7)
            await service.engine.emitter.emit(
                DomainKind.PUBLIC_MESSAGE, (own, _message(BOB, DISCOVERED, 8))
            )
            await service.run()

            channel_listener, message_listener = pool.subscriptions[-2:]
            (messages,) = channel_listener.filters
            assert messages.kinds == (EventKind.CHANNEL_MESSAGE,)
            assert messages.tag_values("e") == (CONFIGURED, DISCOVERED)
            assert messages.since is not None
            assert message_listener.filters[0].tag_values("e") == (own.id,)
            assert service.engine.subscriptions.is_active(MESSAGE_LISTENER)

    async def test_watch_limit_zero(self, pool, signer, engine_config, scheduler, identity):
        engine = SyncEngine(pool, signer, engine_config, scheduler=scheduler)
        config = ListenerConfig(engine=engine_config, message_watch_limit=0)
        service = ListenerService(config, engine=engine)
        async with service:
            await engine.emitter.emit(
                DomainKind.PUBLIC_MESSAGE, (_message(identity, DISCOVERED, 9),)
            )
            await service.run()
            assert not engine.subscriptions.is_active(MESSAGE_LISTENER)

    async def test_reopens_inbox(self, service):
        async with service:
            await service.engine.subscriptions.stop(INBOX)
            await service.run()
            assert service.engine.subscriptions.is_active(INBOX)


class TestDefaultConstruction:
    async def test_engine_from_config(self):
        service = ListenerService()
        assert service.engine.signer.identity() is None
        assert service.channels == ()

    async def test_identity_from_env(self, monkeypatch, keys):
        monkeypatch.setenv("RAVENSYNC_SECRET", VALID_HEX_KEY)
        service = ListenerService()
        assert service.engine.signer.identity() == keys.public_key().to_hex()
