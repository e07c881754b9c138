"""
Referral click repository.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.click import ReferralClick
from referral_ledger.repositories.base import BaseRepository


class ClickRepository(BaseRepository[ReferralClick]):
    """Click log repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize click repository."""
        super().__init__(ReferralClick, session)
