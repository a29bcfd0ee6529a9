"""Core layer: logging, errors, configuration loading, metrics, timers, service lifecycle.

Sits in the middle of the diamond DAG -- depends only on
``ravensync.models`` and is depended upon by ``ravensync.engine`` and
``ravensync.services``.

Attributes:
    BaseService: Abstract generic base class with lifecycle management
        ([run()][ravensync.core.base_service.BaseService.run] /
        [run_forever()][ravensync.core.base_service.BaseService.run_forever] /
        shutdown) and factory methods
        ([from_yaml()][ravensync.core.base_service.BaseService.from_yaml],
        [from_dict()][ravensync.core.base_service.BaseService.from_dict]).
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus endpoint served over aiohttp.
    DebounceTimer: Arm-once/fire-once timer over an injectable
        [Scheduler][ravensync.core.timer.Scheduler].
    load_yaml: Safe YAML loading with ``yaml.safe_load()``.

See Also:
    [ravensync.core.exceptions][]: The typed exception hierarchy.
"""

from .base_service import BaseService, BaseServiceConfig, ConfigT
from .exceptions import (
    CannotPublishError,
    CapabilityError,
    ConfigurationError,
    ConnectivityError,
    DecryptionError,
    NoWriteRelaysError,
    ProtocolError,
    PublishingError,
    RavenSyncError,
    RelayNotFoundError,
    RelayTimeoutError,
    SigningError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs, setup_logging
from .metrics import MetricsConfig, MetricsServer
from .timer import DebounceTimer, LoopScheduler, Scheduler, TimerHandle
from .yaml import load_yaml


__all__ = [
    "BaseService",
    "BaseServiceConfig",
    "CannotPublishError",
    "CapabilityError",
    "ConfigT",
    "ConfigurationError",
    "ConnectivityError",
    "DebounceTimer",
    "DecryptionError",
    "Logger",
    "LoopScheduler",
    "MetricsConfig",
    "MetricsServer",
    "NoWriteRelaysError",
    "ProtocolError",
    "PublishingError",
    "RavenSyncError",
    "RelayNotFoundError",
    "RelayTimeoutError",
    "Scheduler",
    "SigningError",
    "StructuredFormatter",
    "TimerHandle",
    "format_kv_pairs",
    "load_yaml",
    "setup_logging",
]
