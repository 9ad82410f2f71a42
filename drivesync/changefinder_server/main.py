"""
Drive Sync change finder server - Main entry point.

This module starts the server with all components:
- Audit log store (SQLite or in-memory)
- Change finder
- HTTP API

Usage:
    python -m drivesync.changefinder_server.main

Configuration is entirely via environment variables (plus the optional
REPOSITORIES_FILE). See config.py for all available settings.

Invariants:
    - Server connects the log store before accepting requests
    - Configuration is loaded once and injected, never re-read
    - Graceful shutdown stops the HTTP API before closing the store

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter

from .api import HttpServer, create_http_app
from .changes import ChangeFinder
from .config import ConfigurationError, ServerConfig
from .logstore import LogStore, create_log_store

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


class Server:
    """Change finder server orchestrator.

    Manages the lifecycle of all server components.

    Attributes:
        config: Server configuration
        log_store: Audit log store
        finder: Change finder serving requests
        http_server: HTTP API server

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.log_store: LogStore | None = None
        self.finder: ChangeFinder | None = None
        self.http_server: HttpServer | None = None

    async def start(self, wait: bool = True) -> None:
        """Start the server and all components.

        Args:
            wait: Block until shutdown is requested
        """
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting change finder server")
        self.config.log_config()

        try:
            self.log_store = create_log_store(self.config)
            await self.log_store.connect()
            logger.info("Audit log store connected")

            self.finder = ChangeFinder.create(
                self.log_store,
                self.config.repositories,
                self.config.change_finder,
            )

            self.http_server = HttpServer(
                create_http_app(self.finder, self.log_store, self.config.http),
                host=self.config.http.host,
                port=self.config.http.port,
            )
            await self.http_server.start()

            self._running = True
            logger.info("Change finder server started successfully")

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            self._running = True
            await self.stop()
            raise

        if wait:
            await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping change finder server")

        if self.http_server:
            await self.http_server.stop()

        if self.log_store:
            await self.log_store.close()

        self._running = False
        logger.info("Change finder server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
