"""
Core agent runtime that wires all components together.
This is the main entry point for the service.
"""

import asyncio
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import Optional
from loguru import logger

from parcelwatch import __version__
from parcelwatch.config import ParcelWatchConfig, init_config
from parcelwatch.exceptions import ConfigurationError
from parcelwatch.logging_config import setup_logging
from parcelwatch.models import TrackingUpdate
from parcelwatch.service import ParcelService
from parcelwatch.storage import SQLiteTrackingStorage
from parcelwatch.stream import UpdateStream
from parcelwatch.tracking import ParcelsAPI, ProviderClient


UpdateHandler = Callable[[TrackingUpdate], Awaitable[None]]


async def log_update(update: TrackingUpdate):
    """Default consumer: record the update in the log."""
    if update.is_not_found:
        logger.info(f"Update for user {update.user_id}: {update.tracking_number} not found yet")
    elif update.is_error:
        logger.warning(
            f"Update for user {update.user_id}: could not check {update.tracking_number}: {update.error}"
        )
    else:
        logger.info(
            f"Update for user {update.user_id}: {update.tracking_number} "
            f"({len(update.new_tracking_infos)} new provider(s), "
            f"{len(update.new_tracking_events)} new event(s))"
        )


class ParcelWatchAgent:
    """
    Main service class.

    Orchestrates:
    - Tracking store
    - Tracking provider client
    - Tracking service (track requests + polling)
    - Update consumer draining the update stream
    """

    def __init__(
        self,
        config: Optional[ParcelWatchConfig] = None,
        on_update: UpdateHandler = log_update,
        provider: Optional[ProviderClient] = None,
    ):
        self.config = config or init_config()
        self.on_update = on_update

        # Components (initialized in start())
        self._provider = provider
        self._storage: Optional[SQLiteTrackingStorage] = None
        self._service: Optional[ParcelService] = None

        # State
        self._running = False
        self._stopped: Optional[asyncio.Event] = None
        self._consumer_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def service(self) -> Optional[ParcelService]:
        return self._service

    def build_service(self) -> ParcelService:
        """
        Validate configuration and create the tracking service.

        Raises:
            ConfigurationError: configuration is incomplete
        """
        errors = self.config.validate()
        if errors:
            for error in errors:
                logger.error(f"Config error: {error}")
            raise ConfigurationError("; ".join(errors))

        self._storage = SQLiteTrackingStorage(self.config.db_path)
        self._storage.init_db()

        if self._provider is None:
            self._provider = ParcelsAPI(
                self.config.parcels_service_url,
                timeout=self.config.provider_timeout,
            )

        self._service = ParcelService(
            storage=self._storage,
            provider=self._provider,
            polling_interval=self.config.polling_interval,
            updates=UpdateStream(self.config.updates_buffer_size),
            shutdown_grace_seconds=self.config.shutdown_grace_seconds,
        )
        return self._service

    async def _consume_updates(self):
        """Drain the update stream into the update handler."""
        async for update in self._service.updates:
            try:
                await self.on_update(update)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Update handler failed for {update.tracking_number}: {e}")

    async def start(self):
        """Start the service and the update consumer."""
        logger.info(f"Starting ParcelWatch v{__version__}")

        if self._service is None:
            self.build_service()

        self._running = True
        self._stopped = asyncio.Event()
        self._consumer_task = asyncio.create_task(self._consume_updates(), name="parcelwatch-consumer")
        await self._service.start()
        logger.info("ParcelWatch started successfully")

    async def stop(self):
        """Stop the service, then the consumer."""
        if not self._running:
            return

        logger.info("Stopping ParcelWatch...")
        self._running = False

        if self._service:
            await self._service.stop()

        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        if self._provider:
            await self._provider.close()

        if self._stopped:
            self._stopped.set()

        logger.info("ParcelWatch stopped")

    async def serve(self):
        """Start and block until stop() is called."""
        await self.start()
        await self._stopped.wait()

    def run(self):
        """Run the agent (blocking)."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

        def signal_handler():
            logger.info("Received shutdown signal")
            loop.create_task(self.stop())

        try:
            if sys.platform != "win32":
                loop.add_signal_handler(signal.SIGTERM, signal_handler)
                loop.add_signal_handler(signal.SIGINT, signal_handler)
        except NotImplementedError:
            pass

        try:
            loop.run_until_complete(self.serve())
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received")
            loop.run_until_complete(self.stop())
        finally:
            loop.close()


def run_agent(config_file: Optional[str] = None):
    """
    Run ParcelWatch.

    Args:
        config_file: Path to .env style configuration file
    """
    config = init_config(config_file)
    setup_logging(config, console=True)

    agent = ParcelWatchAgent(config)
    agent.run()
