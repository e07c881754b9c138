"""
User model.

Read-only mirror of the account system: the ledger needs a user's email
(self-referral checks, synthesized registrations) and the payment
provider's customer id (resolving the payer of a payment event).
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base


class User(Base):
    """User model - accounts known to the ledger."""

    __tablename__ = "users"

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    email: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )

    # Payment provider customer id (e.g. Stripe "cus_...")
    provider_customer_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, index=True, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"User(id={self.id}, email={self.email!r})"
