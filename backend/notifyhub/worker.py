"""Reminder worker process.

Run with ``python -m notifyhub.worker``. Registers the daily triggers and
consumes the reminder queue until SIGINT/SIGTERM.
"""
import asyncio
import logging
import signal
import sys

from notifyhub.container import ServiceContainer
from notifyhub.infra.jobs.tasks import JobDispatcher
from notifyhub.settings import get_settings

logger = logging.getLogger(__name__)


async def run_worker(container: ServiceContainer) -> None:
    await container.scheduler.setup_schedules()
    worker = container.worker(JobDispatcher(container))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    try:
        await worker.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


async def main_async() -> int:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    container = ServiceContainer(settings)
    try:
        await container.start()
    except Exception:
        logger.exception("Worker startup failed: database or Redis unreachable")
        await container.close()
        return 1

    logger.info("Reminder worker starting (queue=%s)", settings.queue_name)
    try:
        await run_worker(container)
    finally:
        await container.close()
        logger.info("Reminder worker shut down")
    return 0


def main() -> None:
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
