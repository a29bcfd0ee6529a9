"""
Pytest configuration and shared fixtures for RavenSync tests.

Provides:
- A signing identity built from a fixed test key, and a keyless one
- An in-memory relay pool and a manual debounce clock
- Engine configuration pointing at the fake pool's relays
"""

from __future__ import annotations

import logging

import pytest
from nostr_sdk import Keys

from ravensync.engine.configs import EngineConfig, IntakeConfig, RelaysConfig
from ravensync.utils.signer import Signer
from tests.fixtures.events import VALID_HEX_KEY
from tests.fixtures.pool import RELAY_A, FakeRelayPool, ManualScheduler


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


@pytest.fixture(autouse=True)
def _no_secret_in_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's RAVENSYNC_SECRET out of the tests."""
    monkeypatch.delenv("RAVENSYNC_SECRET", raising=False)


# ============================================================================
# Identity Fixtures
# ============================================================================


@pytest.fixture
def keys() -> Keys:
    return Keys.parse(VALID_HEX_KEY)


@pytest.fixture
def signer(keys: Keys) -> Signer:
    """Signer able to publish."""
    return Signer.from_keys(keys)


@pytest.fixture
def identity(signer: Signer) -> str:
    pubkey = signer.identity()
    assert pubkey is not None
    return pubkey


@pytest.fixture
def keyless_signer() -> Signer:
    """Synthetic identity with no key."""
    return Signer()


# ============================================================================
# Relay Fixtures
# ============================================================================


@pytest.fixture
def pool() -> FakeRelayPool:
    return FakeRelayPool()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def relays_config() -> RelaysConfig:
    """Read and write on RELAY_A, no bootstrap fallback."""
    return RelaysConfig(read=[RELAY_A], write=[RELAY_A], bootstrap=[])


@pytest.fixture
def engine_config(relays_config: RelaysConfig) -> EngineConfig:
    return EngineConfig(relays=relays_config, intake=IntakeConfig(debounce=0.05))
