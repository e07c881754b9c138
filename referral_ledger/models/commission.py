"""
ReferralCommission model.

Ledger row: the reward owed for one payment.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_ledger.models.base import Base
from referral_ledger.models.enums import CommissionStatus
from referral_ledger.models.types import MoneyType, RateType


if TYPE_CHECKING:
    from referral_ledger.models.payout import ReferralPayout
    from referral_ledger.models.referral import Referral


class ReferralCommission(Base):
    """
    ReferralCommission entity.

    ``payment_id`` is the provider's payment identifier and the idempotency
    key: the unique constraint on it turns a duplicate delivery into an
    IntegrityError instead of a second row.

    Attributes:
        id: Primary key
        assignment_id: Referrer assignment
        referral_id: Referred person
        payment_id: Provider payment id (unique)
        invoice_id: Provider invoice id
        base_amount: Payment amount the reward is computed from
        commission_rate: Rate applied (0 for FIXED rewards)
        fixed_amount: Fixed part of the reward
        total_amount: Computed reward, never rewritten
        adjusted_amount: Post-refund amount, wins over total_amount
        currency: ISO currency code
        status: PENDING / QUALIFIED / PAID / CREDITED / CANCELLED / ADJUSTED
        qualifies_at: End of the grace period
        adjustment_reason: Why the row was cancelled or adjusted
        payout_id: Payout the row is included in
    """

    __tablename__ = "referral_commissions"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="total_amount_non_negative"),
        CheckConstraint(
            "adjusted_amount IS NULL OR adjusted_amount >= 0",
            name="adjusted_amount_non_negative",
        ),
        Index("idx_commissions_status_qualifies", "status", "qualifies_at"),
        Index("idx_commissions_assignment_created", "assignment_id", "created_at"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    assignment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("referral_assignments.id", ondelete="CASCADE"),
        nullable=False,
    )
    referral_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("referrals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Idempotency key
    payment_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False
    )
    invoice_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Amounts
    base_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(
        RateType, nullable=False, default=Decimal("0")
    )
    fixed_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    adjusted_amount: Mapped[Decimal | None] = mapped_column(
        MoneyType, nullable=True
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CommissionStatus.PENDING,
        index=True,
    )
    adjustment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    payout_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("referral_payouts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Timestamps
    qualifies_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    qualified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    referral: Mapped["Referral"] = relationship("Referral", lazy="joined")
    payout: Mapped[Optional["ReferralPayout"]] = relationship(
        "ReferralPayout", back_populates="commissions"
    )

    @property
    def effective_amount(self) -> Decimal:
        """Amount owed after refunds."""
        if self.adjusted_amount is not None:
            return self.adjusted_amount
        return self.total_amount

    @property
    def commission_status(self) -> CommissionStatus:
        """Status as enum."""
        return CommissionStatus(self.status)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ReferralCommission(id={self.id}, payment_id={self.payment_id}, "
            f"total={self.total_amount}, status={self.status})"
        )
