"""
ReferralAssignment model.

Binds one referrer to one profile through a shareable code.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_ledger.models.base import Base, JSONType
from referral_ledger.models.enums import AssignmentStatus, PayoutMethod
from referral_ledger.models.types import MoneyType


if TYPE_CHECKING:
    from referral_ledger.models.profile import ReferralProfile
    from referral_ledger.models.user import User


class ReferralAssignment(Base):
    """
    ReferralAssignment entity.

    One row per referrer (unique user_id). Counters are only changed with
    atomic ``col = col + delta`` updates.

    Attributes:
        id: Primary key
        user_id: Referrer
        profile_id: Policy template
        referral_code: Generated code, globally unique
        custom_slug: Optional vanity code, globally unique
        status: ACTIVE / SUSPENDED / TERMINATED
        config_override: Partial policy merged over the profile's config
        payout_method: How payouts are sent
        total_clicks: Tracked link visits
        total_referrals: Referred people (leads and registrations)
        total_converted: Referrals with at least one rewarded payment
        total_earned: Sum of qualified commissions
        total_paid_out: Sum of completed payouts and applied credits
        expires_at: Optional end of the assignment
    """

    __tablename__ = "referral_assignments"
    __table_args__ = (
        CheckConstraint(
            "total_earned >= 0", name="total_earned_non_negative"
        ),
        CheckConstraint(
            "total_paid_out >= 0", name="total_paid_out_non_negative"
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    profile_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("referral_profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Codes
    referral_code: Mapped[str] = mapped_column(
        String(32), unique=True, index=True, nullable=False
    )
    custom_slug: Mapped[str | None] = mapped_column(
        String(64), unique=True, index=True, nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AssignmentStatus.ACTIVE,
        index=True,
    )
    config_override: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    payout_method: Mapped[str] = mapped_column(
        String(32), nullable=False, default=PayoutMethod.MANUAL
    )

    # Counters
    total_clicks: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    total_referrals: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    total_converted: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    total_earned: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    total_paid_out: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    # Timestamps
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=lambda: datetime.now(UTC),
        nullable=True,
    )

    # Relationships
    profile: Mapped["ReferralProfile"] = relationship(
        "ReferralProfile", back_populates="assignments", lazy="joined"
    )
    user: Mapped["User"] = relationship("User", lazy="joined")

    @property
    def is_active(self) -> bool:
        """Check if assignment can earn."""
        return self.status == AssignmentStatus.ACTIVE

    @property
    def public_code(self) -> str:
        """Code shown to the referrer."""
        return self.custom_slug or self.referral_code

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ReferralAssignment(id={self.id}, user_id={self.user_id}, "
            f"code={self.referral_code}, status={self.status})"
        )
