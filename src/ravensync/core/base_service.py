"""
Lifecycle shared by the long-running RavenSync processes.

A service is a pydantic-configured object with three hooks:
[setup()][ravensync.core.base_service.BaseService.setup] (connect, run the
bootstrap sync), [run()][ravensync.core.base_service.BaseService.run] (one
bounded cycle) and
[teardown()][ravensync.core.base_service.BaseService.teardown] (close
subscriptions and the relay pool). ``async with service`` brackets the
first and last; [run_forever()][ravensync.core.base_service.BaseService.run_forever]
repeats the middle one on an interval until shutdown is requested or too
many cycles fail in a row.

Collaborators such as a [SyncEngine][ravensync.engine.engine.SyncEngine]
are handed to subclass constructors, never built here.

See Also:
    [ListenerService][ravensync.services.listener.service.ListenerService]:
        The service the CLI runs.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from .logger import Logger
from .metrics import (
    CYCLE_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
)
from .yaml import load_yaml


if TYPE_CHECKING:
    from types import TracebackType


# =============================================================================
# Configuration
# =============================================================================


class BaseServiceConfig(BaseModel):
    """Settings every looping service understands.

    Subclasses add their own sections next to these; the YAML file for a
    service is validated against the subclass as a whole.
    """

    interval: float = Field(
        default=60.0,
        ge=1.0,
        description="Seconds to sleep between two cycles",
    )
    max_consecutive_failures: int = Field(
        default=5,
        ge=0,
        description="Failed cycles in a row before the loop gives up (0 = never)",
    )
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Prometheus exposition settings",
    )


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


# =============================================================================
# Service
# =============================================================================


class BaseService(ABC, Generic[ConfigT]):
    """Base class for RavenSync services.

    Concrete services declare ``SERVICE_NAME`` (used as the logger suffix
    and the ``service`` metric label) and ``CONFIG_CLASS`` (the pydantic
    model the factories validate against), then implement
    [run()][ravensync.core.base_service.BaseService.run].
    """

    SERVICE_NAME: ClassVar[str]
    CONFIG_CLASS: ClassVar[type[BaseModel]]

    def __init__(self, config: ConfigT | None = None) -> None:
        if config is None:
            config = cast("ConfigT", self.CONFIG_CLASS())
        self._config: ConfigT = config
        self._logger = Logger(f"ravensync.{self.SERVICE_NAME}")
        self._stop = asyncio.Event()

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> Self:
        """Validate *data* against ``CONFIG_CLASS`` and build the service.

        Extra keyword arguments are passed to the constructor unchanged.
        """
        return cls(config=cast("ConfigT", cls.CONFIG_CLASS(**data)), **kwargs)

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> Self:
        """Build the service from the YAML file at *config_path*."""
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @property
    def config(self) -> ConfigT:
        return self._config

    @property
    def is_running(self) -> bool:
        """``False`` once a shutdown has been requested."""
        return not self._stop.is_set()

    # -- hooks ----------------------------------------------------------------

    async def setup(self) -> None:  # noqa: B027
        """Called on ``async with`` entry. Does nothing by default."""

    @abstractmethod
    async def run(self) -> None:
        """Perform one cycle of work and return."""
        ...

    async def teardown(self) -> None:  # noqa: B027
        """Called on ``async with`` exit, even after an error. Does nothing by default."""

    # -- loop -----------------------------------------------------------------

    def request_shutdown(self) -> None:
        """Ask the loop to stop after the current cycle. Signal-handler safe."""
        self._stop.set()

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Sleep up to *timeout* seconds; return ``True`` if woken by a shutdown request."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    async def run_forever(self) -> None:
        """Call [run()][ravensync.core.base_service.BaseService.run] every ``interval`` seconds.

        A failing cycle is logged and counted but does not stop the loop
        unless ``max_consecutive_failures`` is reached. Cancellation,
        ``KeyboardInterrupt`` and ``SystemExit`` are never caught.
        """
        limit = self._config.max_consecutive_failures
        if self._config.metrics.enabled:
            SERVICE_INFO.info({"service": self.SERVICE_NAME})
        self._logger.info("loop_started", interval=self._config.interval, failure_limit=limit)

        failures = 0
        while self.is_running:
            if await self._run_cycle():
                failures = 0
            else:
                failures += 1
                self.set_gauge("consecutive_failures", failures)
                if 0 < limit <= failures:
                    self._logger.error("failure_limit_reached", failures=failures, limit=limit)
                    break
            if await self.wait(self._config.interval):
                break

        self._logger.info("loop_stopped")

    async def _run_cycle(self) -> bool:
        started = time.monotonic()
        try:
            await self.run()
        except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
            raise
        except Exception as e:  # a broken cycle must not end the process
            self.inc_counter("cycles_failed")
            self.inc_counter(f"errors_{type(e).__name__}")
            self._logger.error("cycle_failed", error=str(e), error_type=type(e).__name__)
            return False

        elapsed = time.monotonic() - started
        self.inc_counter("cycles_success")
        self.set_gauge("consecutive_failures", 0)
        self.set_gauge("last_cycle_timestamp", time.time())
        if self._config.metrics.enabled:
            CYCLE_DURATION_SECONDS.labels(service=self.SERVICE_NAME).observe(elapsed)
        self._logger.info("cycle_completed", duration_s=round(elapsed, 3))
        return True

    # -- context manager ------------------------------------------------------

    async def __aenter__(self) -> Self:
        self._stop.clear()
        await self.setup()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self._stop.set()
        try:
            await self.teardown()
        finally:
            self._logger.info("service_stopped")

    # -- metrics --------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set the ``name`` series of the shared service gauge (no-op when metrics are off)."""
        if self._config.metrics.enabled:
            SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """Add *value* to the ``name`` counter series (no-op when metrics are off)."""
        if self._config.metrics.enabled:
            SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)
