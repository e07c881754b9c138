"""
User repository.

Read access to the account mirror.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.user import User
from referral_ledger.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository with lookup helpers."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> User | None:
        """Get user by email (case-insensitive)."""
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_provider_customer_id(
        self, customer_id: str
    ) -> User | None:
        """Get user by payment provider customer id."""
        return await self.get_by(provider_customer_id=customer_id)
