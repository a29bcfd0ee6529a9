"""
Unit tests for engine.configs module.

Tests:
- Defaults of every section
- Relay url normalization and rejection
- Cross-section timeout validation
- global_channel hex validation
- YAML loading
"""

import pytest
from pydantic import ValidationError

from ravensync.engine.configs import (
    EngineConfig,
    FetchConfig,
    IntakeConfig,
    RelaysConfig,
    SyncConfig,
)
from ravensync.models import DEFAULT_BOOTSTRAP_RELAYS


class TestDefaults:
    def test_engine_config(self):
        config = EngineConfig()
        assert config.relays.read == []
        assert config.relays.bootstrap == list(DEFAULT_BOOTSTRAP_RELAYS)
        assert config.fetch.timeout == 5.0
        assert config.fetch.concurrent_filters is False
        assert config.intake.debounce == 0.1
        assert config.intake.max_batch_size is None
        assert config.sync.message_page_size == 30
        assert config.sync.global_channel is None
        assert config.bridge.pool_ttl == 120.0


class TestRelaysConfig:
    def test_urls_normalized_and_deduplicated(self):
        config = RelaysConfig(read=["wss://Relay.Example.com/", "wss://relay.example.com"])
        assert config.read == ["wss://relay.example.com"]

    def test_invalid_url_rejected(self):
        with pytest.raises(ValidationError):
            RelaysConfig(write=["https://relay.example.com"])

    def test_connect_timeout_bounds(self):
        with pytest.raises(ValidationError):
            RelaysConfig(connect_timeout=0)


class TestSectionBounds:
    def test_fetch_timeout_positive(self):
        with pytest.raises(ValidationError):
            FetchConfig(timeout=0)

    def test_max_batch_size_positive(self):
        with pytest.raises(ValidationError):
            IntakeConfig(max_batch_size=0)

    def test_page_size_positive(self):
        with pytest.raises(ValidationError):
            SyncConfig(message_page_size=0)


class TestGlobalChannel:
    def test_lowercased(self):
        assert SyncConfig(global_channel="AB" * 32).global_channel == "ab" * 32

    def test_wrong_length(self):
        with pytest.raises(ValidationError, match="length"):
            SyncConfig(global_channel="ab")

    def test_not_hex(self):
        with pytest.raises(ValidationError, match="Invalid hex"):
            SyncConfig(global_channel="zz" * 32)


class TestEngineConfig:
    def test_fetch_timeout_must_not_exceed_bootstrap(self):
        with pytest.raises(ValidationError, match="bootstrap_timeout"):
            EngineConfig(fetch={"timeout": 20}, sync={"bootstrap_timeout": 10})

    def test_from_dict(self):
        config = EngineConfig.from_dict(
            {"relays": {"read": ["wss://nos.lol"]}, "intake": {"debounce": 0.5}}
        )
        assert config.relays.read == ["wss://nos.lol"]
        assert config.intake.debounce == 0.5

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("relays:\n  write:\n    - wss://nos.lol\nfetch:\n  concurrent_filters: true\n")
        config = EngineConfig.from_yaml(str(path))
        assert config.relays.write == ["wss://nos.lol"]
        assert config.fetch.concurrent_filters is True
