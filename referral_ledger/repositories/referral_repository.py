"""
Referral repository.

Data access layer for Referral model.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.enums import REFERRAL_ACTIVE_STATUSES
from referral_ledger.models.referral import Referral
from referral_ledger.repositories.base import BaseRepository


class ReferralRepository(BaseRepository[Referral]):
    """Referral repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral repository."""
        super().__init__(Referral, session)

    async def get_by_email(self, email: str) -> Referral | None:
        """
        Get the referral recorded for an email.

        Args:
            email: Referred email (normalized by the caller)

        Returns:
            Referral or None
        """
        stmt = (
            select(Referral)
            .where(Referral.referred_email == email)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_active_for_user(self, user_id: int) -> Referral | None:
        """
        Get the non-terminal referral of a paying user.

        Args:
            user_id: Referred user ID

        Returns:
            Referral in REGISTERED / CONVERTED / QUALIFIED, or None
        """
        stmt = (
            select(Referral)
            .where(
                Referral.referred_user_id == user_id,
                Referral.status.in_([s.value for s in REFERRAL_ACTIVE_STATUSES]),
            )
            .order_by(Referral.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_status(self, referral_id: int) -> str | None:
        """Read the current status of a referral straight from the database."""
        stmt = select(Referral.status).where(Referral.id == referral_id)
        result = await self.session.execute(stmt)
        return result.scalar()

    async def get_status_counts(self, assignment_id: int) -> dict[str, int]:
        """
        Count an assignment's referrals per status in a single query.

        Args:
            assignment_id: Assignment ID

        Returns:
            Dict mapping status value to count
        """
        stmt = (
            select(Referral.status, func.count(Referral.id))
            .where(Referral.assignment_id == assignment_id)
            .group_by(Referral.status)
        )
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}
