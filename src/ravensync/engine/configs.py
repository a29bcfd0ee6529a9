"""Sync engine configuration models.

[EngineConfig][ravensync.engine.configs.EngineConfig] groups one section per
component. All timeouts are in seconds.

See Also:
    [SyncEngine][ravensync.engine.engine.SyncEngine]: The facade that
        consumes these configurations.
    [ListenerConfig][ravensync.services.listener.configs.ListenerConfig]:
        Service config that embeds an ``EngineConfig``.
"""

from __future__ import annotations

from typing import Any, Self

from pydantic import BaseModel, Field, field_validator, model_validator

from ravensync.core.yaml import load_yaml
from ravensync.models.constants import DEFAULT_BOOTSTRAP_RELAYS
from ravensync.models.relay import Relay


_HEX_STRING_LENGTH = 64


def _normalize_urls(urls: list[str]) -> list[str]:
    """Validate and normalize relay urls, keeping first-seen order."""
    normalized: dict[str, None] = {}
    for url in urls:
        normalized.setdefault(Relay(url).url, None)
    return list(normalized)


class RelaysConfig(BaseModel):
    """Relay lists per role.

    ``bootstrap`` is used for reading when ``read`` is empty, and for writing
    only when neither ``read`` nor ``write`` is configured.

    See Also:
        [RelaySetResolver][ravensync.engine.relay_sets.RelaySetResolver]:
            Applies these lists against the pool's live connections.
    """

    read: list[str] = Field(default_factory=list, description="Relays to read from")
    write: list[str] = Field(default_factory=list, description="Relays to publish to")
    bootstrap: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BOOTSTRAP_RELAYS),
        description="Fallback relays when nothing is configured",
    )
    connect_timeout: float = Field(
        default=10.0, gt=0.0, le=120.0, description="Per-relay connect timeout"
    )

    @field_validator("read", "write", "bootstrap", mode="after")
    @classmethod
    def validate_urls(cls, v: list[str]) -> list[str]:
        """Normalize every url; an invalid url fails validation."""
        return _normalize_urls(v)


class FetchConfig(BaseModel):
    """One-shot fetch settings.

    Note:
        Filters of one fetch run sequentially by default. With
        ``concurrent_filters`` they run concurrently; each filter keeps its
        own ``timeout`` bound either way.
    """

    timeout: float = Field(default=5.0, gt=0.0, le=300.0, description="Default per-filter timeout")
    concurrent_filters: bool = Field(default=False, description="Run filters concurrently")


class IntakeConfig(BaseModel):
    """Intake buffer settings."""

    debounce: float = Field(default=0.1, ge=0.0, le=10.0, description="Batch coalescing window")
    max_batch_size: int | None = Field(
        default=None, ge=1, description="Cap on events per batch (None = unbounded)"
    )


class SyncConfig(BaseModel):
    """Bootstrap sync and subscription sizing."""

    bootstrap_timeout: float = Field(
        default=30.0, gt=0.0, description="Timeout for own events and incoming DMs"
    )
    profile_timeout: float = Field(default=10.0, gt=0.0, description="Single profile fetch timeout")
    message_page_size: int = Field(default=30, ge=1, le=500, description="Messages per page")
    id_chunk_size: int = Field(
        default=10, ge=1, le=500, description="Ids per filter when batching id lists"
    )
    filters_per_group: int = Field(
        default=6, ge=1, le=50, description="Filters per concurrent fetch group"
    )
    global_channel: str | None = Field(
        default=None, description="Channel id always included in the bootstrap sync"
    )

    @field_validator("global_channel", mode="after")
    @classmethod
    def validate_global_channel(cls, v: str | None) -> str | None:
        """Validate a 64-character hex event id."""
        if v is None:
            return v
        if len(v) != _HEX_STRING_LENGTH:
            raise ValueError(f"Invalid hex string length: {len(v)} (expected {_HEX_STRING_LENGTH})")
        try:
            bytes.fromhex(v)
        except ValueError as e:
            raise ValueError(f"Invalid hex string: {v}") from e
        return v.lower()


class BridgeConfig(BaseModel):
    """Background sync bridge settings."""

    pool_ttl: float = Field(default=120.0, gt=0.0, description="Seconds before the pool is recycled")
    locate_attempts: int = Field(default=3, ge=1, le=10, description="Fetch attempts per locate")
    locate_timeout: float = Field(default=5.0, gt=0.0, description="Timeout per locate fetch")
    probe_timeout: float = Field(default=5.0, gt=0.0, description="Liveness probe timeout")


class EngineConfig(BaseModel):
    """Complete sync engine configuration."""

    relays: RelaysConfig = Field(default_factory=RelaysConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    intake: IntakeConfig = Field(default_factory=IntakeConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)

    @model_validator(mode="after")
    def validate_timeouts(self) -> Self:
        """The fetch timeout must not exceed the bootstrap timeout."""
        if self.fetch.timeout > self.sync.bootstrap_timeout:
            raise ValueError(
                f"fetch.timeout ({self.fetch.timeout}) must not exceed "
                f"sync.bootstrap_timeout ({self.sync.bootstrap_timeout})"
            )
        return self

    @classmethod
    def from_yaml(cls, config_path: str) -> EngineConfig:
        """Load an ``EngineConfig`` from a YAML file."""
        return cls.from_dict(load_yaml(config_path))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        return cls(**data)
