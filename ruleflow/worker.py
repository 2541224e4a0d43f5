"""Worker process entry point for trigger consumption and scheduled runs."""

import asyncio
import signal

from ruleflow.actions.dispatcher import ActionDispatcher, create_default_dispatcher
from ruleflow.core.config import get_settings
from ruleflow.core.logging import get_logger, setup_logging
from ruleflow.messaging.consumer import RabbitMQConsumer
from ruleflow.messaging.handler import TriggerHandler
from ruleflow.models.rule import utcnow
from ruleflow.models.trigger import ScheduledTrigger
from ruleflow.storage.redis_client import (
    close_redis_pool,
    get_redis,
    init_redis_pool,
)
from ruleflow.storage.rule_store import RedisRuleRepository

logger = get_logger(__name__)


class WorkerManager:
    """Manager for coordinating worker tasks."""

    def __init__(self):
        """Initialize worker manager."""
        self._settings = get_settings()
        self._consumer: RabbitMQConsumer | None = None
        self._dispatcher: ActionDispatcher | None = None
        self._handler: TriggerHandler | None = None
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start all worker tasks."""
        setup_logging("worker")
        logger.info("Starting worker manager")

        # Initialize Redis
        await init_redis_pool()

        redis = get_redis()
        repository = RedisRuleRepository(redis)
        self._dispatcher = create_default_dispatcher(redis=redis, repository=repository)
        self._handler = TriggerHandler(repository, self._dispatcher)
        self._consumer = RabbitMQConsumer(self._handler.handle)

        try:
            await asyncio.gather(
                self._run_consumer(),
                self._run_scheduler(),
            )
        finally:
            await self._cleanup()

    async def _run_consumer(self) -> None:
        """Run message consumer."""
        if self._consumer:
            try:
                await self._consumer.start_consuming()
            except asyncio.CancelledError:
                logger.info("Consumer cancelled")
            except Exception as e:
                logger.error("Consumer error", error=str(e), exc_info=True)

    async def _run_scheduler(self) -> None:
        """Fire a scheduled trigger every ``schedule_interval_seconds``."""
        interval = self._settings.schedule_interval_seconds
        if not interval or not self._handler:
            logger.info("Scheduled execution disabled")
            return

        logger.info("Scheduler started", interval_seconds=interval)
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self._handler.handle(ScheduledTrigger(detail={"tick": utcnow().isoformat()}))
            except Exception as e:
                logger.error("Scheduled run failed", error=str(e), exc_info=True)

    async def stop(self) -> None:
        """Signal workers to stop."""
        logger.info("Stopping workers")
        if self._consumer:
            self._consumer.stop()
        self._shutdown_event.set()

    async def _cleanup(self) -> None:
        """Clean up resources."""
        logger.info("Cleaning up resources")
        if self._consumer:
            await self._consumer.disconnect()
        if self._dispatcher:
            await self._dispatcher.close()
        await close_redis_pool()
        logger.info("Cleanup complete")


async def main() -> None:
    """Main entry point for worker process."""
    manager = WorkerManager()

    # Setup signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(manager.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    await manager.start()


if __name__ == "__main__":
    asyncio.run(main())
