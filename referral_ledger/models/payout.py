"""
ReferralPayout model.

Groups qualified commissions into one transfer request. The transfer
itself happens on an external payout rail.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_ledger.models.base import Base
from referral_ledger.models.enums import PayoutMethod, PayoutStatus
from referral_ledger.models.types import MoneyType


if TYPE_CHECKING:
    from referral_ledger.models.commission import ReferralCommission


class ReferralPayout(Base):
    """ReferralPayout entity."""

    __tablename__ = "referral_payouts"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    assignment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("referral_assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[str] = mapped_column(
        String(32), nullable=False, default=PayoutMethod.MANUAL
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PayoutStatus.PENDING,
        index=True,
    )

    # Transfer id on the payout rail
    external_reference: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    failed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    commissions: Mapped[list["ReferralCommission"]] = relationship(
        "ReferralCommission", back_populates="payout"
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ReferralPayout(id={self.id}, assignment_id={self.assignment_id}, "
            f"amount={self.amount}, status={self.status})"
        )
