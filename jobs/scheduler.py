"""
Ledger scheduler.

Enqueues the qualification sweep on a fixed interval and serves the
health endpoints. Run with ``python -m jobs.scheduler``; workers run with
``dramatiq jobs.broker jobs.tasks.qualification_sweep``.
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from referral_ledger.config.logging import setup_logging
from referral_ledger.config.settings import settings
from jobs.health import set_scheduler, start_health_server, stop_health_server


SWEEP_JOB_ID = "qualify_commissions"


def enqueue_qualification_sweep() -> None:
    """Send one sweep message to the workers."""
    from jobs.tasks.qualification_sweep import qualify_commissions

    qualify_commissions.send(settings.qualification_sweep_batch_size)
    logger.debug("Qualification sweep enqueued")


def schedule_ledger_tasks(scheduler: AsyncIOScheduler) -> None:
    """
    Register the ledger's periodic jobs.

    Args:
        scheduler: APScheduler instance
    """
    interval = settings.qualification_sweep_interval_minutes
    scheduler.add_job(
        enqueue_qualification_sweep,
        trigger="interval",
        minutes=interval,
        id=SWEEP_JOB_ID,
        name="Promote commissions past their grace period",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Qualification sweep scheduled every {interval} minutes")


async def main() -> None:
    """Run the scheduler until SIGINT / SIGTERM."""
    setup_logging()

    scheduler = AsyncIOScheduler(timezone="UTC")
    schedule_ledger_tasks(scheduler)
    scheduler.start()
    set_scheduler(scheduler)

    runner, _ = await start_health_server(port=settings.health_check_port)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    logger.info("Ledger scheduler started")
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down ledger scheduler...")
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)


if __name__ == "__main__":
    asyncio.run(main())
