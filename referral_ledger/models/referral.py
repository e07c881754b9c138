"""
Referral model.

One row per referred person, keyed by email.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_ledger.models.base import Base
from referral_ledger.models.enums import ReferralStatus


if TYPE_CHECKING:
    from referral_ledger.models.assignment import ReferralAssignment


class Referral(Base):
    """
    Referral entity.

    The first code an email arrives with keeps the attribution for good;
    ``referred_email`` is unique across the table.

    Attributes:
        id: Primary key
        assignment_id: Owning referrer assignment
        referred_email: Email of the referred person (unique)
        referred_user_id: Set once registration completes
        status: CLICKED -> REGISTERED -> CONVERTED -> QUALIFIED,
            or one of the terminal REFUNDED / FRAUDULENT / CANCELLED
        source_ip, user_agent, utm_*: Attribution metadata
        *_at: Transition timestamps
    """

    __tablename__ = "referrals"
    __table_args__ = (
        Index("idx_referrals_user_status", "referred_user_id", "status"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    assignment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("referral_assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    referred_email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False
    )
    referred_user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReferralStatus.REGISTERED,
        index=True,
    )

    # Attribution metadata
    source_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    utm_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    clicked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    registered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    converted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    qualified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    assignment: Mapped["ReferralAssignment"] = relationship(
        "ReferralAssignment", lazy="joined"
    )

    @property
    def referral_status(self) -> ReferralStatus:
        """Status as enum."""
        return ReferralStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        """Check if referral was aborted (refund, fraud, cancel)."""
        return self.referral_status.is_terminal

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"Referral(id={self.id}, assignment_id={self.assignment_id}, "
            f"email={self.referred_email!r}, status={self.status})"
        )
