"""
ReferralAuditLog model.

Append-only record of sensitive ledger transitions for compliance review.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.models.base import Base, JSONType
from referral_ledger.models.enums import ActorType


class ReferralAuditLog(Base):
    """
    ReferralAuditLog entity.

    Rows are only ever inserted.

    Attributes:
        id: Primary key
        assignment_id: Assignment the action relates to
        action: AuditAction value
        actor_id: Who did it ("SYSTEM" for automated actions)
        actor_type: SYSTEM / ADMIN / USER
        metadata_: Free-form JSON context (column name ``metadata``)
        created_at: When it happened
    """

    __tablename__ = "referral_audit_logs"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    assignment_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("referral_assignments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ActorType.SYSTEM
    )
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ReferralAuditLog(id={self.id}, action={self.action}, "
            f"actor={self.actor_type}:{self.actor_id})"
        )
