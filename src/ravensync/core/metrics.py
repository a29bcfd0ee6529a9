"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects are process-wide singletons. The engine records
intake, reconstruction, fetch and publish activity directly; long-running
services additionally get cycle metrics from
[BaseService.run_forever()][ravensync.core.base_service.BaseService.run_forever].

Architecture:
    SERVICE_INFO:               Static metadata set once at startup.
    SERVICE_GAUGE:              Point-in-time service values.
    SERVICE_COUNTER:            Cumulative service totals.
    CYCLE_DURATION_SECONDS:     Service cycle latency histogram.
    INTAKE_EVENTS:              Events pushed into the intake buffer, by outcome.
    BATCH_SIZE:                 Size of each batch handed to reconstruction.
    EMITTED_OBJECTS:            Domain objects emitted, by domain kind.
    FETCH_OUTCOMES:             One-shot fetches, by outcome.
    PUBLISH_OUTCOMES:           Publish attempts, by event kind and outcome.

The ``MetricsServer`` provides an async HTTP endpoint (via aiohttp) for
Prometheus scraping, configured through ``MetricsConfig``.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Where the scrape endpoint listens. Nothing is bound unless ``enabled``."""

    enabled: bool = Field(default=False, description="Serve /metrics while the service loops")
    port: int = Field(default=8000, ge=1024, le=65535, description="TCP port to bind")
    host: str = Field(default="127.0.0.1", description="Interface to bind")
    path: str = Field(default="/metrics", description="URL path answered with the exposition")


# ---------------------------------------------------------------------------
# Service Metrics (auto-tracked by BaseService.run_forever)
# ---------------------------------------------------------------------------

SERVICE_INFO = Info(
    "ravensync_service",
    "Service information and metadata",
)

CYCLE_DURATION_SECONDS = Histogram(
    "ravensync_cycle_duration_seconds",
    "Duration of service cycle in seconds",
    ["service"],
    buckets=(0.1, 0.5, 1, 5, 10, 30, 60, 120, 300),
)

SERVICE_GAUGE = Gauge(
    "ravensync_service_gauge",
    "Service gauge values (point-in-time state)",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "ravensync_service_counter",
    "Service counter values (cumulative totals)",
    ["service", "name"],
)


# ---------------------------------------------------------------------------
# Engine Metrics
# ---------------------------------------------------------------------------

# outcome: staged | duplicate
INTAKE_EVENTS = Counter(
    "ravensync_intake_events",
    "Raw events pushed into the intake buffer",
    ["outcome"],
)

BATCH_SIZE = Histogram(
    "ravensync_batch_size",
    "Number of raw events per reconstruction batch",
    buckets=(1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000),
)

EMITTED_OBJECTS = Counter(
    "ravensync_emitted_objects",
    "Domain objects emitted by reconstruction",
    ["kind"],
)

# outcome: complete | timed_out | unavailable | failed
FETCH_OUTCOMES = Counter(
    "ravensync_fetch",
    "One-shot fetch calls by outcome",
    ["outcome"],
)

# outcome: published | cannot_publish | no_write_relays | signing_failed | rejected
PUBLISH_OUTCOMES = Counter(
    "ravensync_publish",
    "Publish attempts by event kind and outcome",
    ["kind", "outcome"],
)


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """aiohttp application answering Prometheus scrapes on ``config.path``.

    ``start()`` and ``stop()`` are both safe to call when metrics are
    disabled; the CLI brackets
    [run_forever()][ravensync.core.base_service.BaseService.run_forever]
    with them.
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    @property
    def is_serving(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Bind the endpoint.

        Raises:
            OSError: If the address cannot be bound.
        """
        if not self._config.enabled or self._runner is not None:
            return
        app = web.Application()
        app.router.add_get(self._config.path, _scrape)
        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        await web.TCPSite(runner, self._config.host, self._config.port).start()
        self._runner = runner

    async def stop(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()


async def _scrape(_request: web.Request) -> web.Response:
    return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})
