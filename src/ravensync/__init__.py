r"""RavenSync -- relay synchronization and event reconstruction for Nostr chat clients.

The engine connects to a configurable set of relays, fetches and subscribes
to chat events, coalesces them into deduplicated batches, reconstructs typed
domain objects (channels, messages, profiles, reactions, deletions, mutes,
read marks) and publishes signed events back with an optimistic local echo.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
                 services         Long-running listener service
                /    |    \
           engine   core   utils  Sync engine | logging, errors, metrics | relay pool, signer
                \    |    /
                  nips            Tag helpers, content parsing, event builders
                    |
                  models          Pure frozen dataclasses (zero I/O)
```

Note:
    For lightweight usage, import directly from subpackages::

        from ravensync.models import RawEvent
        from ravensync.engine import SyncEngine

    Top-level imports (``from ravensync import SyncEngine``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("ravensync")

__all__ = [
    "BackgroundSyncBridge",
    "BaseService",
    "Channel",
    "DomainKind",
    "EngineConfig",
    "EventFilter",
    "EventKind",
    "ListenerConfig",
    "ListenerService",
    "Logger",
    "NostrSdkPool",
    "RawEvent",
    "Relay",
    "Signer",
    "SyncEngine",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("ravensync.core", "BaseService"),
    "Logger": ("ravensync.core", "Logger"),
    "Channel": ("ravensync.models", "Channel"),
    "DomainKind": ("ravensync.models", "DomainKind"),
    "EventFilter": ("ravensync.models", "EventFilter"),
    "EventKind": ("ravensync.models", "EventKind"),
    "RawEvent": ("ravensync.models", "RawEvent"),
    "Relay": ("ravensync.models", "Relay"),
    "NostrSdkPool": ("ravensync.utils", "NostrSdkPool"),
    "Signer": ("ravensync.utils", "Signer"),
    "BackgroundSyncBridge": ("ravensync.engine", "BackgroundSyncBridge"),
    "EngineConfig": ("ravensync.engine", "EngineConfig"),
    "SyncEngine": ("ravensync.engine", "SyncEngine"),
    "ListenerConfig": ("ravensync.services", "ListenerConfig"),
    "ListenerService": ("ravensync.services", "ListenerService"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'ravensync' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
