"""
Audit log repository.

Insert-only access to the audit trail.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.audit_log import ReferralAuditLog
from referral_ledger.models.enums import ActorType, AuditAction
from referral_ledger.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository[ReferralAuditLog]):
    """Audit log repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize audit log repository."""
        super().__init__(ReferralAuditLog, session)

    async def append(
        self,
        action: AuditAction,
        actor_id: str,
        actor_type: ActorType = ActorType.SYSTEM,
        assignment_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ReferralAuditLog:
        """
        Append an audit entry.

        Args:
            action: What happened
            actor_id: Who did it
            actor_type: SYSTEM / ADMIN / USER
            assignment_id: Related assignment
            metadata: JSON-serializable context

        Returns:
            Created entry
        """
        return await self.create(
            action=action.value,
            actor_id=str(actor_id),
            actor_type=actor_type.value,
            assignment_id=assignment_id,
            metadata_=metadata or {},
        )
