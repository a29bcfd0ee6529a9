"""Utilities at the edge of the system: identity, key loading, and the relay pool.

Attributes:
    Signer: Explicit signing identity (keys, extension placeholder, or none).
    Cipher, PassthroughCipher: Direct message encryption boundary.
    KeysConfig: Pydantic model loading an optional key from the environment.
    RelayPool: Protocol the engine uses for all relay I/O.
    NostrSdkPool: ``nostr_sdk.Client`` implementation of the pool.
    create_filter: Converts an
        [EventFilter][ravensync.models.filter.EventFilter] to ``nostr_sdk.Filter``.
"""

from .keys import ENV_PRIVATE_KEY, KeysConfig, load_keys_from_env
from .protocol import ConnectResult, NostrSdkPool, PoolSubscription, RelayPool, create_filter
from .signer import Cipher, PassthroughCipher, Signer, SignerMode


__all__ = [
    "ENV_PRIVATE_KEY",
    "Cipher",
    "ConnectResult",
    "KeysConfig",
    "NostrSdkPool",
    "PassthroughCipher",
    "PoolSubscription",
    "RelayPool",
    "Signer",
    "SignerMode",
    "create_filter",
    "load_keys_from_env",
]
