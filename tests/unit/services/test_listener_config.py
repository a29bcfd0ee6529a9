"""
Unit tests for services.listener.configs module.

Tests:
- ListenerConfig defaults
- Channel id validation
- Identity loaded from the environment
- The shipped YAML configuration
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from ravensync.core.yaml import load_yaml
from ravensync.services.listener import ListenerConfig
from ravensync.utils.signer import SignerMode
from tests.fixtures.events import VALID_HEX_KEY


class TestDefaults:
    def test_values(self):
        config = ListenerConfig()
        assert config.interval == 30.0
        assert config.channels == []
        assert config.message_watch_limit == 200
        assert config.keys.keys is None
        assert config.engine.fetch.timeout == 5.0

    def test_interval_minimum(self):
        with pytest.raises(ValidationError):
            ListenerConfig(interval=0.5)


class TestChannels:
    def test_lowercased(self):
        assert ListenerConfig(channels=["AB" * 32]).channels == ["ab" * 32]

    def test_wrong_length(self):
        with pytest.raises(ValidationError, match="length"):
            ListenerConfig(channels=["abc"])

    def test_not_hex(self):
        with pytest.raises(ValidationError, match="Invalid hex"):
            ListenerConfig(channels=["zz" * 32])


class TestKeys:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("RAVENSYNC_SECRET", VALID_HEX_KEY)
        signer = ListenerConfig().keys.to_signer()
        assert signer.mode == SignerMode.KEYS
        assert signer.can_publish()

    def test_extension_placeholder(self, monkeypatch):
        monkeypatch.setenv("RAVENSYNC_SECRET", "nip07")
        signer = ListenerConfig().keys.to_signer()
        assert signer.mode == SignerMode.EXTENSION
        assert not signer.can_publish()

    def test_custom_env_var(self, monkeypatch):
        monkeypatch.setenv("OTHER_SECRET", VALID_HEX_KEY)
        config = ListenerConfig.model_validate({"keys": {"keys_env": "OTHER_SECRET"}})
        assert config.keys.keys is not None


class TestShippedConfig:
    def test_loads(self):
        path = Path(__file__).parents[3] / "config" / "services" / "listener.yaml"
        config = ListenerConfig(**load_yaml(path))
        assert config.interval == 30.0
        assert config.engine.sync.global_channel is None
        assert config.engine.relays.bootstrap[0] == "wss://relay.damus.io"
