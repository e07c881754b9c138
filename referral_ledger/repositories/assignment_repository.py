"""
Referral assignment repository.
"""

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.assignment import ReferralAssignment
from referral_ledger.models.enums import AssignmentStatus
from referral_ledger.repositories.base import BaseRepository


class AssignmentRepository(BaseRepository[ReferralAssignment]):
    """Assignment repository with code lookups."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize assignment repository."""
        super().__init__(ReferralAssignment, session)

    async def get_active_by_code(
        self, code: str, now: datetime
    ) -> ReferralAssignment | None:
        """
        Resolve a referral code or custom slug to an active assignment.

        Codes are matched case-insensitively against the stored upper-case
        code; slugs are matched as given and lower-cased.

        Args:
            code: Referral code or custom slug
            now: Reference time for expiry

        Returns:
            Active, unexpired assignment or None
        """
        stmt = (
            select(ReferralAssignment)
            .where(
                or_(
                    ReferralAssignment.referral_code == code.upper(),
                    ReferralAssignment.custom_slug == code.lower(),
                ),
                ReferralAssignment.status == AssignmentStatus.ACTIVE.value,
                or_(
                    ReferralAssignment.expires_at.is_(None),
                    ReferralAssignment.expires_at > now,
                ),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_user(self, user_id: int) -> ReferralAssignment | None:
        """Get the assignment owned by a user."""
        return await self.get_by(user_id=user_id)

    async def code_taken(self, code: str) -> bool:
        """Check if a code or slug is already used by any assignment."""
        stmt = select(ReferralAssignment.id).where(
            or_(
                ReferralAssignment.referral_code == code.upper(),
                ReferralAssignment.custom_slug == code.lower(),
            )
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def count_for_profile(self, profile_id: int) -> int:
        """Count assignments referencing a profile."""
        return await self.count(profile_id=profile_id)

    async def get_current(
        self, assignment_id: int, for_update: bool = False
    ) -> ReferralAssignment | None:
        """
        Load an assignment with fresh counters.

        Args:
            assignment_id: Assignment ID
            for_update: Lock the row until the transaction ends

        Returns:
            Assignment or None
        """
        stmt = (
            select(ReferralAssignment)
            .where(ReferralAssignment.id == assignment_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=ReferralAssignment)
        result = await self.session.execute(stmt)
        return result.scalars().first()
