"""
Qualification sweeper.

Periodic batch that promotes PENDING commissions past their grace period.
This is the only place where money is counted as earned. Each
row is locked and re-read before it moves, so the earned amount always
reflects refunds applied since the batch was selected.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.commission import ReferralCommission
from referral_ledger.models.enums import CommissionStatus, ReferralStatus
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.repositories.commission_repository import (
    CommissionRepository,
)
from referral_ledger.repositories.referral_repository import ReferralRepository
from referral_ledger.services.base_service import BaseService
from referral_ledger.utils.datetime_utils import utc_now


INVALID_REFERRAL_REASON = "Referral invalid"


@dataclass
class SweepResult:
    """Counts for one sweep run."""

    qualified: int = 0
    cancelled: int = 0
    skipped: int = 0  # Taken by a concurrent run
    errors: int = 0
    earned: Decimal = Decimal("0")
    failed_ids: list[int] = field(default_factory=list)

    @property
    def processed(self) -> int:
        """Rows this run changed."""
        return self.qualified + self.cancelled


class QualificationSweeper(BaseService):
    """Promotes due commissions to QUALIFIED."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize qualification sweeper."""
        super().__init__(session)
        self.commission_repo = CommissionRepository(session)
        self.referral_repo = ReferralRepository(session)
        self.assignment_repo = AssignmentRepository(session)

    async def run(
        self, now: datetime | None = None, limit: int = 500
    ) -> SweepResult:
        """
        Process one batch of due PENDING commissions.

        Each row is committed on its own so a failing row does not undo the
        rest of the batch.

        Args:
            now: Reference time (defaults to now)
            limit: Max rows per run

        Returns:
            SweepResult
        """
        now = now or utc_now()
        result = SweepResult()

        due = await self.commission_repo.get_due_pending(now, limit)
        if not due:
            self.logger.debug("No commissions due for qualification")
            return result

        commission_ids = [c.id for c in due]

        for commission_id in commission_ids:
            try:
                await self._settle(commission_id, now, result)
                await self.commit()
            except SQLAlchemyError as e:
                await self.rollback()
                result.errors += 1
                result.failed_ids.append(commission_id)
                self.logger.error(
                    f"Failed to process commission {commission_id}: {e}"
                )

        self.logger.info(
            f"Qualification sweep: {result.qualified} qualified, "
            f"{result.cancelled} cancelled, {result.skipped} skipped, "
            f"{result.errors} errors, earned {result.earned}"
        )
        return result

    async def _settle(
        self, commission_id: int, now: datetime, result: SweepResult
    ) -> None:
        """Qualify or cancel one commission from its locked, current state."""
        commission = await self.commission_repo.get_current(
            commission_id, for_update=True
        )
        if commission is None or commission.status != CommissionStatus.PENDING:
            result.skipped += 1
            return

        referral_status = await self.referral_repo.get_status(commission.referral_id)
        if referral_status is None or ReferralStatus(referral_status).is_terminal:
            await self._cancel(commission, now)
            result.cancelled += 1
            return

        amount = commission.effective_amount
        await self._qualify(commission, amount, now)
        result.qualified += 1
        result.earned += amount

    async def _cancel(self, commission: ReferralCommission, now: datetime) -> None:
        await self.commission_repo.transition(
            commission.id,
            (CommissionStatus.PENDING,),
            status=CommissionStatus.CANCELLED.value,
            adjustment_reason=INVALID_REFERRAL_REASON,
            cancelled_at=now,
        )
        self.logger.info(
            f"Commission {commission.id} cancelled: {INVALID_REFERRAL_REASON}"
        )

    async def _qualify(
        self, commission: ReferralCommission, amount: Decimal, now: datetime
    ) -> None:
        await self.commission_repo.transition(
            commission.id,
            (CommissionStatus.PENDING,),
            status=CommissionStatus.QUALIFIED.value,
            qualified_at=now,
        )
        await self.referral_repo.transition(
            commission.referral_id,
            (ReferralStatus.CONVERTED,),
            status=ReferralStatus.QUALIFIED.value,
            qualified_at=now,
        )
        await self.assignment_repo.increment(
            commission.assignment_id, total_earned=amount
        )
        self.logger.info(
            f"Commission {commission.id} qualified: +{amount} earned "
            f"for assignment {commission.assignment_id}"
        )


async def qualify_due_commissions(
    session: AsyncSession, limit: int = 500
) -> SweepResult:
    """Run one sweep batch on a session (entry point for jobs)."""
    return await QualificationSweeper(session).run(limit=limit)
