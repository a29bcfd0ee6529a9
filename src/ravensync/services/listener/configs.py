"""Listener service configuration models.

See Also:
    [ListenerService][ravensync.services.listener.service.ListenerService]:
        The service class that consumes these configurations.
    [BaseServiceConfig][ravensync.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures`` and
        ``metrics`` fields.
"""

from __future__ import annotations

from pydantic import Field, field_validator

from ravensync.core.base_service import BaseServiceConfig
from ravensync.engine.configs import EngineConfig
from ravensync.utils.keys import KeysConfig


_HEX_STRING_LENGTH = 64


class ListenerConfig(BaseServiceConfig):
    """Listener service configuration.

    Each cycle (every ``interval`` seconds) catches up new messages in the
    known channels and refreshes the watch on the identity's own messages.

    See Also:
        [EngineConfig][ravensync.engine.configs.EngineConfig]: Relay, fetch,
            intake, sync and bridge settings of the embedded engine.
        [KeysConfig][ravensync.utils.keys.KeysConfig]: Optional identity
            loaded from the environment.
    """

    interval: float = Field(default=30.0, ge=1.0, description="Seconds between catch-up cycles")
    engine: EngineConfig = Field(default_factory=EngineConfig)
    keys: KeysConfig = Field(default_factory=lambda: KeysConfig.model_validate({}))
    channels: list[str] = Field(
        default_factory=list, description="Channel ids to follow in addition to discovered ones"
    )
    message_watch_limit: int = Field(
        default=200, ge=0, le=5000, description="Own messages watched for replies and deletions"
    )

    @field_validator("channels", mode="after")
    @classmethod
    def validate_hex_strings(cls, v: list[str]) -> list[str]:
        """Validate that all entries are valid 64-character hex strings."""
        for hex_str in v:
            if len(hex_str) != _HEX_STRING_LENGTH:
                raise ValueError(
                    f"Invalid hex string length: {len(hex_str)} (expected {_HEX_STRING_LENGTH})"
                )
            try:
                bytes.fromhex(hex_str)
            except ValueError as e:
                raise ValueError(f"Invalid hex string: {hex_str}") from e
        return [hex_str.lower() for hex_str in v]
