"""
Referral profile repository.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.enums import ProfileType
from referral_ledger.models.profile import ReferralProfile
from referral_ledger.repositories.base import BaseRepository


class ProfileRepository(BaseRepository[ReferralProfile]):
    """Profile repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize profile repository."""
        super().__init__(ReferralProfile, session)

    async def get_active_by_type(
        self, profile_type: ProfileType
    ) -> ReferralProfile | None:
        """
        Get the oldest active profile of a type.

        Args:
            profile_type: CUSTOMER or AFFILIATE

        Returns:
            Profile or None if none is active
        """
        stmt = (
            select(ReferralProfile)
            .where(
                ReferralProfile.type == str(profile_type),
                ReferralProfile.is_active.is_(True),
            )
            .order_by(ReferralProfile.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()
