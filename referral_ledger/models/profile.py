"""
ReferralProfile model.

Reusable reward-policy template assigned to referrers.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from referral_ledger.models.base import Base, JSONType
from referral_ledger.models.enums import ProfileType


if TYPE_CHECKING:
    from referral_ledger.models.assignment import ReferralAssignment


class ReferralProfile(Base):
    """
    ReferralProfile entity.

    Named policy template. The ``config`` JSON holds the policy groups
    (reward, calculation_base, duration, limits, tiers, qualification,
    payout_settings) parsed by ``services.referral.policy``.

    Attributes:
        id: Primary key
        name: Display name, unique
        type: CUSTOMER (bill credit) or AFFILIATE (cash payout)
        description: Optional admin notes
        is_active: Inactive profiles are not used for auto-assignment
        config: Base reward policy
        created_at: Creation timestamp
        updated_at: Last edit timestamp
    """

    __tablename__ = "referral_profiles"

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    name: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False
    )
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ProfileType.AFFILIATE,
        index=True,
        comment="CUSTOMER or AFFILIATE",
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    config: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )

    # Timestamps
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
    assignments: Mapped[list["ReferralAssignment"]] = relationship(
        "ReferralAssignment", back_populates="profile"
    )

    @property
    def profile_type(self) -> ProfileType:
        """Profile type as enum."""
        return ProfileType(self.type)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ReferralProfile(id={self.id}, name={self.name!r}, "
            f"type={self.type}, is_active={self.is_active})"
        )
