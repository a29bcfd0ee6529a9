"""Sync engine: relay sets, fetch, subscriptions, intake, reconstruction and publishing.

Depends on ``ravensync.models``, ``ravensync.nips``, ``ravensync.core`` and
``ravensync.utils``; depended upon by ``ravensync.services``.

Attributes:
    SyncEngine: Facade wiring every component for one identity.
    EngineConfig: Pydantic configuration with one section per component.
    RelaySetResolver: Live relay subset per [RelayRole][ravensync.engine.relay_sets.RelayRole].
    FetchEngine: Bounded one-shot fetches with typed
        [FetchOutcome][ravensync.engine.fetch.FetchOutcome].
    SubscriptionManager: Named live subscriptions.
    IntakeBuffer: Debounced, deduplicating staging buffer.
    ReconstructionPipeline: Ordered per-kind reducers.
    Publisher: Sign, publish and echo.
    EventEmitter: Handler registry keyed by
        [DomainKind][ravensync.models.constants.DomainKind].
    BackgroundSyncBridge, BridgeWorker: Isolated background fetch and relay
        location, optionally on a dedicated thread.
"""

from .bridge import BackgroundSyncBridge, BridgeWorker
from .configs import (
    BridgeConfig,
    EngineConfig,
    FetchConfig,
    IntakeConfig,
    RelaysConfig,
    SyncConfig,
)
from .emitter import EventEmitter
from .engine import SyncEngine
from .fetch import FetchEngine, FetchOutcome, FetchResult
from .intake import IntakeBuffer
from .publisher import Publisher
from .reconstruction import REDUCERS, Emission, ReconstructionPipeline
from .relay_sets import RelayRole, RelaySet, RelaySetResolver
from .subscriptions import SubscriptionManager, chunked


__all__ = [
    "REDUCERS",
    "BackgroundSyncBridge",
    "BridgeConfig",
    "BridgeWorker",
    "Emission",
    "EngineConfig",
    "EventEmitter",
    "FetchConfig",
    "FetchEngine",
    "FetchOutcome",
    "FetchResult",
    "IntakeBuffer",
    "IntakeConfig",
    "Publisher",
    "ReconstructionPipeline",
    "RelayRole",
    "RelaySet",
    "RelaySetResolver",
    "RelaysConfig",
    "SubscriptionManager",
    "SyncConfig",
    "SyncEngine",
    "chunked",
]
