"""
Referral payout repository.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.enums import PAYOUT_OPEN_STATUSES
from referral_ledger.models.payout import ReferralPayout
from referral_ledger.repositories.base import BaseRepository


class PayoutRepository(BaseRepository[ReferralPayout]):
    """Payout repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payout repository."""
        super().__init__(ReferralPayout, session)

    async def sum_open(self, assignment_id: int) -> Decimal:
        """Sum amounts of PENDING / PROCESSING payouts."""
        stmt = select(func.coalesce(func.sum(ReferralPayout.amount), 0)).where(
            ReferralPayout.assignment_id == assignment_id,
            ReferralPayout.status.in_([s.value for s in PAYOUT_OPEN_STATUSES]),
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))
