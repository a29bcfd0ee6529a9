"""Command-line runner for RavenSync services.

``python -m ravensync <command>`` looks the command up in
``SERVICE_REGISTRY``, validates its YAML file and either runs one cycle
(``--once``) or loops until SIGINT/SIGTERM with the metrics endpoint up.

Examples:
    ```bash
    python -m ravensync listen
    python -m ravensync listen --once --log-level DEBUG
    python -m ravensync listen --config config/services/listener.yaml
    ```
"""

import argparse
import asyncio
import contextlib
import signal
import sys
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any, NamedTuple

from ravensync.core.base_service import BaseService
from ravensync.core.exceptions import ConfigurationError
from ravensync.core.logger import Logger, setup_logging
from ravensync.core.metrics import MetricsServer
from ravensync.core.yaml import load_yaml
from ravensync.services.listener import ListenerService


class ServiceEntry(NamedTuple):
    """A runnable command: the service class and where its YAML lives by default."""

    cls: type[BaseService[Any]]
    config_path: Path


SERVICE_REGISTRY: dict[str, ServiceEntry] = {
    "listen": ServiceEntry(ListenerService, Path("config/services/listener.yaml")),
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
EXIT_INTERRUPTED = 130

logger = Logger("cli")


@contextlib.asynccontextmanager
async def _metrics_endpoint(service: BaseService[Any]) -> AsyncIterator[None]:
    metrics = service.config.metrics
    server = MetricsServer(metrics)
    await server.start()
    if metrics.enabled:
        logger.info("metrics_listening", url=f"http://{metrics.host}:{metrics.port}{metrics.path}")
    try:
        yield
    finally:
        await server.stop()


def _stop_on_signals(service: BaseService[Any]) -> None:
    loop = asyncio.get_running_loop()

    def on_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_requested", signal=sig.name)
        service.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, on_signal, sig)


async def run_service(
    command: str,
    service_class: type[BaseService[Any]],
    service_dict: dict[str, Any],
    *,
    once: bool,
) -> int:
    """Build *service_class* from *service_dict* and run it.

    With *once* the service goes through setup, a single
    [run()][ravensync.core.base_service.BaseService.run] and teardown.
    Otherwise it loops under
    [run_forever()][ravensync.core.base_service.BaseService.run_forever]
    until a signal arrives.

    Returns:
        The process exit code, ``0`` or ``1``.
    """
    service = service_class.from_dict(service_dict) if service_dict else service_class()

    try:
        if once:
            async with service:
                await service.run()
        else:
            _stop_on_signals(service)
            async with _metrics_endpoint(service), service:
                await service.run_forever()
    except Exception as e:  # last stop before the exit code
        logger.error(f"{command}_failed", error=str(e), error_type=type(e).__name__)
        return 1

    logger.info(f"{command}_finished", once=once)
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ravensync",
        description="Run a RavenSync relay synchronization service.",
    )
    parser.add_argument("command", choices=sorted(SERVICE_REGISTRY), help="service to run")
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML configuration (default: the service's file under config/services/)",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="INFO")
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single cycle and exit instead of looping",
    )
    return parser.parse_args(argv)


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    """Read *path*; a missing file means "all defaults" and yields ``{}``."""
    if path.exists():
        return load_yaml(path)
    logger.warning("config_missing_using_defaults", path=str(path))
    return {}


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    entry = SERVICE_REGISTRY[args.command]
    path = args.config or entry.config_path
    try:
        return await run_service(args.command, entry.cls, _load_yaml_dict(path), once=args.once)
    except (ConfigurationError, ValueError) as e:
        # pydantic's ValidationError is a ValueError
        logger.error("config_rejected", path=str(path), error=str(e))
        return 1
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED


def cli() -> None:
    """``console_scripts`` entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
