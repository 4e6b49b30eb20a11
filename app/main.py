# Application lifecycle: bring up infrastructure, start the worker pool, tear it all down

from typing import Optional

from core.logging import configure_logging, get_logger
from app.containers import AppContainer


class ApplicationOrchestrator:
    """Starts and stops the order execution runtime around the DI container."""

    def __init__(self, container: Optional[AppContainer] = None):
        self.container = container or AppContainer()
        self.settings = self.container.settings()
        configure_logging(self.settings)
        self.logger = get_logger("order_engine.main", component="application")
        self._started = False

    async def startup(self):
        """Initialize database, start workers and the fanout sweeper."""
        if self._started:
            return
        self.logger.info("Starting order execution engine",
                         environment=self.settings.environment.value,
                         concurrency=self.settings.queue.concurrency,
                         sources=self.settings.routing.sources)

        db_manager = self.container.db_manager()
        await db_manager.init()
        await db_manager.wait_for_ready(timeout=30)
        self.logger.info("Database initialized and verified ready")

        self.container.order_processor().start()
        self.container.status_fanout().start_cleanup_loop(self.settings.fanout.cleanup_interval_seconds)
        self._started = True
        self.logger.info("Order execution engine started")

    async def shutdown(self):
        """Drain the queue, then release connections."""
        if not self._started:
            return
        self.logger.info("Shutting down order execution engine")
        await self.container.status_fanout().stop()
        await self.container.order_processor().shutdown(self.settings.queue.shutdown_timeout_seconds)
        await self.container.active_order_cache().close()
        await self.container.db_manager().shutdown()
        self._started = False
        self.logger.info("Order execution engine shutdown complete")

