"""
Qualification sweep task.

Promotes PENDING commissions whose grace period has elapsed. Safe to run
concurrently: every row transition is guarded on PENDING.
"""

import dramatiq
from loguru import logger

from referral_ledger.config.constants import SWEEP_TIME_LIMIT_MS
from referral_ledger.config.settings import settings
from referral_ledger.services.referral.qualification_sweeper import (
    QualificationSweeper,
    SweepResult,
)
from jobs import broker  # noqa: F401  registers the Redis broker
from jobs.async_runner import create_local_session, run_async


@dramatiq.actor(max_retries=3, time_limit=SWEEP_TIME_LIMIT_MS)
def qualify_commissions(batch_size: int | None = None) -> None:
    """
    Run one qualification sweep batch.

    Args:
        batch_size: Max commissions to process (defaults to settings)
    """
    limit = batch_size or settings.qualification_sweep_batch_size
    logger.info(f"Starting qualification sweep (batch {limit})")

    result = run_async(run_qualification_sweep(limit))

    logger.info(
        f"Qualification sweep finished: {result.qualified} qualified, "
        f"{result.cancelled} cancelled, {result.errors} errors"
    )


async def run_qualification_sweep(limit: int) -> SweepResult:
    """Async body of the sweep (one local session per run)."""
    async with create_local_session() as session:
        return await QualificationSweeper(session).run(limit=limit)
