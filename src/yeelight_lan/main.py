"""Main entrypoint and lifecycle management for the yeelight-lan service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, cast, runtime_checkable

import dotenv
import uvloop

from yeelight_lan import metrics
from yeelight_lan.api import ApiServer, create_app
from yeelight_lan.const import (
    LOG_FORMATTER,
    YEELIGHT_API_HOST,
    YEELIGHT_API_PORT,
    YEELIGHT_COMMAND_TIMEOUT,
    YEELIGHT_CONNECT_TIMEOUT,
    YEELIGHT_DEBUG,
    YEELIGHT_DISCOVERY_INTERVAL,
    YEELIGHT_DISCOVERY_WINDOW,
    YEELIGHT_METRICS_PORT,
    YEELIGHT_RECONNECT_ATTEMPTS,
    YEELIGHT_RECONNECT_DELAY,
    YEELIGHT_STATE_FILE,
    YEELIGHT_VERSION,
    YES_ANSWER,
    env_float,
    env_int,
)
from yeelight_lan.correlation import correlation_context, ensure_correlation_id
from yeelight_lan.discovery import DiscoveryEngine
from yeelight_lan.dispatcher import CommandDispatcher
from yeelight_lan.logging_abstraction import get_logger
from yeelight_lan.persistence import DevicePersistence, YamlDeviceStore
from yeelight_lan.registry import DeviceRegistry
from yeelight_lan.transport.retry_policy import ReconnectPolicy, TimeoutConfig

logger = get_logger(__name__)

# Route uvicorn through one plain stdout handler
uv_handler = logging.StreamHandler(sys.stdout)
uv_handler.setLevel(logging.INFO)
uv_handler.setFormatter(LOG_FORMATTER)
for _name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    _ul = logging.getLogger(_name)
    _ul.setLevel(logging.INFO)
    _ul.propagate = False
    _ul.addHandler(uv_handler)

PACKAGE_LOGGER_PREFIX = "yeelight_lan"


@runtime_checkable
class _CLIArgs(Protocol):
    debug: bool
    env: Path | None
    api_port: int | None
    metrics_port: int | None
    no_discovery: bool


@dataclass
class Settings:
    """Runtime settings, read from the environment after ``--env`` is loaded."""

    discovery_interval: float = YEELIGHT_DISCOVERY_INTERVAL
    discovery_window: float = YEELIGHT_DISCOVERY_WINDOW
    command_timeout: float = YEELIGHT_COMMAND_TIMEOUT
    connect_timeout: float = YEELIGHT_CONNECT_TIMEOUT
    reconnect_delay: float = YEELIGHT_RECONNECT_DELAY
    reconnect_attempts: int = YEELIGHT_RECONNECT_ATTEMPTS
    state_file: str = YEELIGHT_STATE_FILE
    metrics_port: int = YEELIGHT_METRICS_PORT
    api_host: str = YEELIGHT_API_HOST
    api_port: int = YEELIGHT_API_PORT
    debug: bool = YEELIGHT_DEBUG
    discovery_enabled: bool = True

    @classmethod
    def from_env(cls) -> Settings:
        defaults = cls()
        return cls(
            discovery_interval=env_float("YEELIGHT_DISCOVERY_INTERVAL", defaults.discovery_interval),
            discovery_window=env_float("YEELIGHT_DISCOVERY_WINDOW", defaults.discovery_window),
            command_timeout=env_float("YEELIGHT_COMMAND_TIMEOUT", defaults.command_timeout),
            connect_timeout=env_float("YEELIGHT_CONNECT_TIMEOUT", defaults.connect_timeout),
            reconnect_delay=env_float("YEELIGHT_RECONNECT_DELAY", defaults.reconnect_delay),
            reconnect_attempts=env_int("YEELIGHT_RECONNECT_ATTEMPTS", defaults.reconnect_attempts),
            state_file=os.environ.get("YEELIGHT_STATE_FILE", defaults.state_file),
            metrics_port=env_int("YEELIGHT_METRICS_PORT", defaults.metrics_port),
            api_host=os.environ.get("YEELIGHT_API_HOST", defaults.api_host),
            api_port=env_int("YEELIGHT_API_PORT", defaults.api_port),
            debug=os.environ.get("YEELIGHT_DEBUG", "1" if defaults.debug else "0").casefold() in YES_ANSWER,
        )

    def apply_cli(self, args: _CLIArgs) -> Settings:
        """Let CLI flags override environment values."""
        if args.debug:
            self.debug = True
        if args.api_port is not None:
            self.api_port = args.api_port
        if args.metrics_port is not None:
            self.metrics_port = args.metrics_port
        if args.no_discovery:
            self.discovery_enabled = False
        return self


def set_package_log_level(level: int) -> None:
    """Apply ``level`` to every yeelight_lan logger and its handlers."""
    for name, candidate in logging.Logger.manager.loggerDict.items():
        if name.startswith(PACKAGE_LOGGER_PREFIX) and isinstance(candidate, logging.Logger):
            candidate.setLevel(level)
            for handler in candidate.handlers:
                handler.setLevel(level)


class YeelightController:
    """Wires persistence, registry, discovery, dispatcher and the optional API together."""

    lp: str = "YeelightController:"

    def __init__(
        self,
        settings: Settings,
        persistence: DevicePersistence | None = None,
        registry: DeviceRegistry | None = None,
        discovery: DiscoveryEngine | None = None,
        dispatcher: CommandDispatcher | None = None,
    ) -> None:
        self.settings: Settings = settings
        self.persistence: DevicePersistence | None = persistence
        self.registry: DeviceRegistry = registry or DeviceRegistry(
            persistence=persistence,
            reconnect_policy=ReconnectPolicy(
                delay_seconds=settings.reconnect_delay,
                max_attempts=settings.reconnect_attempts,
            ),
            timeout_config=TimeoutConfig(
                connect_timeout_seconds=settings.connect_timeout,
                command_timeout_seconds=settings.command_timeout,
            ),
        )
        self.discovery: DiscoveryEngine | None = discovery
        if self.discovery is None and settings.discovery_enabled:
            self.discovery = DiscoveryEngine(
                on_device=self.registry.upsert,
                interval=settings.discovery_interval,
                listen_window=settings.discovery_window,
            )
        self.dispatcher: CommandDispatcher = dispatcher or CommandDispatcher(self.registry)
        self.api_server: ApiServer | None = None
        self._stop_event: asyncio.Event = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []

    async def start(self) -> None:
        """Restore devices, start discovery and the API, then run until ``request_stop``."""
        lp = f"{self.lp}start:"
        _ = ensure_correlation_id("controller")

        restored = await self.registry.restore()
        if restored:
            logger.info("%s Connecting %d restored device(s)", lp, len(restored))
            self._tasks.append(asyncio.create_task(self.registry.connect_all(), name="yeelight-connect-restored"))

        if self.discovery is not None:
            await self.discovery.start()
        else:
            logger.info("%s Discovery disabled", lp)

        if self.settings.api_port:
            app = create_app(self.registry, self.dispatcher, self.discovery)
            self.api_server = ApiServer(app, host=self.settings.api_host, port=self.settings.api_port)
            self._tasks.append(asyncio.create_task(self.api_server.start(), name="yeelight-api"))

        await self._stop_event.wait()
        await self.stop()

    def request_stop(self) -> None:
        self._stop_event.set()

    async def stop(self) -> None:
        """Stop discovery and the API, then close every session."""
        logger.info("%s Shutting down...", self.lp)
        if self.discovery is not None:
            await self.discovery.stop()
        if self.api_server is not None:
            await self.api_server.stop()
        await self.registry.close()
        for task in self._tasks:
            if not task.done():
                task.cancel()
        _ = await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()


def parse_cli(argv: list[str] | None = None) -> _CLIArgs:
    """Parse CLI arguments and load the optional env file."""
    parser = argparse.ArgumentParser(description="Yeelight LAN controller")
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument("--api-port", type=int, default=None, help="Serve the HTTP API on this port")
    _ = parser.add_argument("--metrics-port", type=int, default=None, help="Serve Prometheus metrics on this port")
    _ = parser.add_argument(
        "--no-discovery",
        action="store_true",
        help="Skip discovery and only manage restored devices",
    )
    args = cast("_CLIArgs", cast("object", parser.parse_args(argv)))

    if args.env:
        env_path = args.env.expanduser().resolve()
        if not env_path.exists():
            logger.error("Environment file not found", extra={"path": str(env_path)})
        elif dotenv.load_dotenv(env_path, override=True):
            logger.info("Environment variables loaded", extra={"source": str(env_path)})
        else:
            logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})

    return args


def main(argv: list[str] | None = None) -> None:
    """Run the yeelight-lan entry point."""
    with correlation_context(kind="main"):
        logger.info("Starting yeelight-lan", extra={"version": YEELIGHT_VERSION})

        args = parse_cli(argv)
        settings = Settings.from_env().apply_cli(args)
        if settings.debug:
            set_package_log_level(logging.DEBUG)
            logger.info("Debug logging enabled")

        if settings.metrics_port:
            metrics.start_metrics_server(settings.metrics_port)

        loop = uvloop.new_event_loop()
        asyncio.set_event_loop(loop)
        controller = YeelightController(settings, persistence=YamlDeviceStore(settings.state_file))
        loop.add_signal_handler(signal.SIGINT, controller.request_stop)
        loop.add_signal_handler(signal.SIGTERM, controller.request_stop)
        logger.debug("Signal handlers configured for SIGINT & SIGTERM")

        try:
            loop.run_until_complete(controller.start())
        except asyncio.CancelledError:
            logger.info("yeelight-lan cancelled, shutting down...")
        except Exception as e:
            logger.exception("Fatal error in main loop", extra={"error": str(e)})
            raise
        else:
            logger.info("yeelight-lan stopped gracefully")
        finally:
            loop.close()
            logger.info("yeelight-lan shutdown complete")


if __name__ == "__main__":
    main()
