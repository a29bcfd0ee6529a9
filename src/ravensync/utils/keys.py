"""Nostr key loading from environment variables.

Supports nsec1 (bech32) and hex-encoded private keys. Unlike a publishing
service, a chat client can run without a key: it then syncs read-only and
every publish fails with
[CannotPublishError][ravensync.core.exceptions.CannotPublishError].

Warning:
    Private keys must **never** be stored in configuration files, source code,
    or logged to any output. Always use environment variables or a secret
    manager.

Examples:
    ```python
    import os

    os.environ["RAVENSYNC_SECRET"] = "nsec1..."  # pragma: allowlist secret
    keys = load_keys_from_env("RAVENSYNC_SECRET")
    print(keys.public_key().to_hex())
    ```
"""

from __future__ import annotations

import os
from typing import Any

from nostr_sdk import Keys
from pydantic import BaseModel, Field, model_validator

from .signer import SYNTHETIC_SECRETS, Signer


ENV_PRIVATE_KEY = "RAVENSYNC_SECRET"  # pragma: allowlist secret  # Default env var name


def load_keys_from_env(env_var: str) -> Keys:
    """Load Nostr keys from an environment variable.

    Raises:
        ValueError: If the environment variable is not set or is empty.
        nostr_sdk.NostrSdkError: If the key value is malformed.
    """
    value = os.getenv(env_var)

    if not value:
        raise ValueError(
            f"{env_var} environment variable is required. Generate one with: openssl rand -hex 32"
        )

    return Keys.parse(value)


class KeysConfig(BaseModel):
    """Pydantic model that loads an optional identity from the environment.

    When the variable named by ``keys_env`` is unset, empty, or holds one of
    the placeholder secrets (``none``, ``nip07``), ``keys`` stays ``None`` and
    the engine runs with a synthetic identity. A malformed key fails
    validation.

    Attributes:
        keys_env: Environment variable name for the private key.
        keys: Loaded ``nostr_sdk.Keys`` instance, or ``None``.
        secret_kind: The placeholder found in the environment, if any.
    """

    model_config = {"arbitrary_types_allowed": True}

    keys_env: str = Field(
        default=ENV_PRIVATE_KEY,
        min_length=1,
        description="Environment variable name for private key",
    )
    keys: Keys | None = Field(default=None, description="Keys loaded from keys_env")
    secret_kind: str | None = Field(default=None, description="Placeholder secret, if any")

    @model_validator(mode="before")
    @classmethod
    def _load_keys_from_env(cls, data: Any) -> Any:
        """Populate ``keys`` from the environment unless given explicitly."""
        if isinstance(data, dict) and "keys" not in data:
            env_var = data.get("keys_env", ENV_PRIVATE_KEY)
            value = (os.getenv(env_var) or "").strip()
            if value in SYNTHETIC_SECRETS:
                data["secret_kind"] = value
            elif value:
                data["keys"] = Keys.parse(value)
        return data

    def to_signer(self) -> Signer:
        """Build the [Signer][ravensync.utils.signer.Signer] for this identity."""
        if self.keys is not None:
            return Signer.from_keys(self.keys)
        return Signer.from_secret(self.secret_kind)
