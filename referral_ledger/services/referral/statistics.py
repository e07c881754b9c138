"""
Referral statistics.

Read-only queries behind the referrer dashboard.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.commission import ReferralCommission
from referral_ledger.models.enums import CommissionStatus, ReferralStatus
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.repositories.commission_repository import (
    CommissionRepository,
)
from referral_ledger.repositories.payout_repository import PayoutRepository
from referral_ledger.repositories.referral_repository import ReferralRepository
from referral_ledger.services.base_service import BaseService
from referral_ledger.services.referral.payout_manager import payout_threshold
from referral_ledger.services.referral.policy import quantize_money
from referral_ledger.utils.exceptions import AssignmentNotFoundError


@dataclass
class AssignmentSummary:
    """Dashboard summary of one assignment."""

    assignment_id: int
    referral_code: str
    custom_slug: str | None
    status: str
    profile_type: str
    total_clicks: int
    total_referrals: int
    total_converted: int
    total_earned: Decimal
    total_paid_out: Decimal
    pending_amount: Decimal
    qualified_amount: Decimal
    paid_amount: Decimal
    cancelled_amount: Decimal
    in_flight_payouts: Decimal
    available_balance: Decimal
    payout_threshold: Decimal
    referrals_by_status: dict[str, int] = field(default_factory=dict)

    @property
    def can_request_payout(self) -> bool:
        """Check if the available balance reaches the threshold."""
        return (
            self.available_balance > 0
            and self.available_balance >= self.payout_threshold
        )


class ReferralStatistics(BaseService):
    """Dashboard read model."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize statistics service."""
        super().__init__(session)
        self.assignment_repo = AssignmentRepository(session)
        self.commission_repo = CommissionRepository(session)
        self.referral_repo = ReferralRepository(session)
        self.payout_repo = PayoutRepository(session)

    async def get_assignment_summary(self, assignment_id: int) -> AssignmentSummary:
        """
        Get counters and commission totals of an assignment.

        Commission totals use ``adjusted_amount ?? total_amount``. PAID
        includes bill credits.

        Raises:
            AssignmentNotFoundError: Unknown assignment
        """
        assignment = await self.assignment_repo.get_current(assignment_id)
        if assignment is None:
            raise AssignmentNotFoundError(f"Assignment {assignment_id} not found")

        totals = await self.commission_repo.totals_by_status(assignment_id)
        funnel = await self.referral_repo.get_status_counts(assignment_id)
        in_flight = await self.payout_repo.sum_open(assignment_id)

        def total(*statuses: CommissionStatus) -> Decimal:
            return quantize_money(
                sum((totals.get(s.value, Decimal("0")) for s in statuses), Decimal("0"))
            )

        return AssignmentSummary(
            assignment_id=assignment.id,
            referral_code=assignment.referral_code,
            custom_slug=assignment.custom_slug,
            status=assignment.status,
            profile_type=assignment.profile.type,
            total_clicks=assignment.total_clicks,
            total_referrals=assignment.total_referrals,
            total_converted=assignment.total_converted,
            total_earned=quantize_money(assignment.total_earned),
            total_paid_out=quantize_money(assignment.total_paid_out),
            pending_amount=total(CommissionStatus.PENDING),
            qualified_amount=total(CommissionStatus.QUALIFIED),
            paid_amount=total(CommissionStatus.PAID, CommissionStatus.CREDITED),
            cancelled_amount=total(CommissionStatus.CANCELLED),
            in_flight_payouts=quantize_money(in_flight),
            available_balance=quantize_money(
                assignment.total_earned - assignment.total_paid_out - in_flight
            ),
            payout_threshold=payout_threshold(assignment),
            referrals_by_status={
                s.value: funnel.get(s.value, 0) for s in ReferralStatus
            },
        )

    async def get_commission_history(
        self,
        assignment_id: int,
        page: int = 1,
        per_page: int = 20,
        status: CommissionStatus | None = None,
    ) -> tuple[list[ReferralCommission], int]:
        """
        Get an assignment's commissions, newest first.

        Args:
            assignment_id: Assignment ID
            page: Page number (1-indexed)
            per_page: Items per page
            status: Optional status filter

        Returns:
            Tuple of (commissions, total_count)
        """
        filters = {"assignment_id": assignment_id}
        if status is not None:
            filters["status"] = CommissionStatus(status).value

        return await self.commission_repo.find_paginated(
            page=page,
            per_page=per_page,
            **filters,
        )
