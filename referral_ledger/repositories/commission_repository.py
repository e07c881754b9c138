"""
Referral commission repository.

Ledger queries: idempotency lookups, monthly totals, sweep selection.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.commission import ReferralCommission
from referral_ledger.models.enums import CommissionStatus
from referral_ledger.repositories.base import BaseRepository


# Amount owed after refunds: adjusted_amount ?? total_amount
EFFECTIVE_AMOUNT = func.coalesce(
    ReferralCommission.adjusted_amount, ReferralCommission.total_amount
)


class CommissionRepository(BaseRepository[ReferralCommission]):
    """Commission repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission repository."""
        super().__init__(ReferralCommission, session)

    async def get_by_payment_id(
        self, payment_id: str, for_update: bool = False
    ) -> ReferralCommission | None:
        """
        Get commission by provider payment id (idempotency key).

        Args:
            payment_id: Provider payment identifier
            for_update: Lock the row until the transaction ends

        Returns:
            Commission or None
        """
        stmt = (
            select(ReferralCommission)
            .where(ReferralCommission.payment_id == payment_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=ReferralCommission)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def exists_for_referral(self, referral_id: int) -> bool:
        """Check if any payment of a referral was already rewarded."""
        return await self.exists(referral_id=referral_id)

    async def sum_since(
        self, assignment_id: int, since: datetime
    ) -> Decimal:
        """
        Sum non-cancelled commission amounts created since a moment.

        Args:
            assignment_id: Assignment ID
            since: Lower bound on created_at (inclusive)

        Returns:
            Sum of effective amounts (0 if none)
        """
        stmt = select(func.coalesce(func.sum(EFFECTIVE_AMOUNT), 0)).where(
            ReferralCommission.assignment_id == assignment_id,
            ReferralCommission.created_at >= since,
            ReferralCommission.status != CommissionStatus.CANCELLED.value,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))

    async def get_due_pending(
        self, now: datetime, limit: int
    ) -> list[ReferralCommission]:
        """
        Get PENDING commissions whose grace period has elapsed.

        Args:
            now: Reference time
            limit: Max rows

        Returns:
            Commissions ordered by qualifies_at
        """
        stmt = (
            select(ReferralCommission)
            .where(
                ReferralCommission.status == CommissionStatus.PENDING.value,
                ReferralCommission.qualifies_at <= now,
            )
            .order_by(ReferralCommission.qualifies_at, ReferralCommission.id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_payable(
        self, assignment_id: int
    ) -> list[ReferralCommission]:
        """Get QUALIFIED commissions not yet attached to a payout."""
        stmt = (
            select(ReferralCommission)
            .where(
                ReferralCommission.assignment_id == assignment_id,
                ReferralCommission.status == CommissionStatus.QUALIFIED.value,
                ReferralCommission.payout_id.is_(None),
            )
            .order_by(ReferralCommission.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def totals_by_status(
        self, assignment_id: int
    ) -> dict[str, Decimal]:
        """
        Sum effective amounts per status for an assignment.

        Returns:
            Dict mapping status value to amount
        """
        stmt = (
            select(ReferralCommission.status, func.sum(EFFECTIVE_AMOUNT))
            .where(ReferralCommission.assignment_id == assignment_id)
            .group_by(ReferralCommission.status)
        )
        result = await self.session.execute(stmt)
        return {
            status: Decimal(str(amount or 0)) for status, amount in result.all()
        }

    async def link_to_payout(
        self, commission_ids: list[int], payout_id: int
    ) -> int:
        """Attach still-unlinked QUALIFIED commissions to a payout."""
        if not commission_ids:
            return 0
        stmt = (
            update(ReferralCommission)
            .where(
                ReferralCommission.id.in_(commission_ids),
                ReferralCommission.payout_id.is_(None),
                ReferralCommission.status == CommissionStatus.QUALIFIED.value,
            )
            .values(payout_id=payout_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def unlink_payout(self, payout_id: int) -> int:
        """Detach QUALIFIED commissions from a failed payout."""
        stmt = (
            update(ReferralCommission)
            .where(
                ReferralCommission.payout_id == payout_id,
                ReferralCommission.status == CommissionStatus.QUALIFIED.value,
            )
            .values(payout_id=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def mark_payout_paid(
        self, payout_id: int, paid_at: datetime
    ) -> int:
        """Move a payout's QUALIFIED commissions to PAID."""
        stmt = (
            update(ReferralCommission)
            .where(
                ReferralCommission.payout_id == payout_id,
                ReferralCommission.status == CommissionStatus.QUALIFIED.value,
            )
            .values(status=CommissionStatus.PAID.value, paid_at=paid_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def set_adjusted_amount(
        self,
        commission_id: int,
        status: str,
        previous: Decimal | None,
        adjusted_amount: Decimal,
        reason: str,
    ) -> bool:
        """
        Replace adjusted_amount if status and previous value are unchanged.

        Args:
            commission_id: Commission ID
            status: Status the row must still have
            previous: adjusted_amount the caller read (None = never adjusted)
            adjusted_amount: New amount
            reason: Adjustment reason

        Returns:
            True if this call wrote the new amount
        """
        if previous is None:
            guard = ReferralCommission.adjusted_amount.is_(None)
        else:
            guard = ReferralCommission.adjusted_amount == previous
        stmt = (
            update(ReferralCommission)
            .where(
                ReferralCommission.id == commission_id,
                ReferralCommission.status == status,
                guard,
            )
            .values(adjusted_amount=adjusted_amount, adjustment_reason=reason)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def get_current(
        self, commission_id: int, for_update: bool = False
    ) -> ReferralCommission | None:
        """
        Load a commission with fresh status and amounts.

        Args:
            commission_id: Commission ID
            for_update: Lock the row until the transaction ends

        Returns:
            Commission or None
        """
        stmt = (
            select(ReferralCommission)
            .where(ReferralCommission.id == commission_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=ReferralCommission)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def sum_payout_paid(self, payout_id: int) -> Decimal:
        """Sum effective amounts of a payout's PAID commissions."""
        stmt = select(func.coalesce(func.sum(EFFECTIVE_AMOUNT), 0)).where(
            ReferralCommission.payout_id == payout_id,
            ReferralCommission.status == CommissionStatus.PAID.value,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))
