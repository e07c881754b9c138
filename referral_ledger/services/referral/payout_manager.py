"""
Payout manager.

Groups qualified commissions into payout requests and records the result
reported by the external payout rail. No money moves here.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.constants import DEFAULT_CURRENCY, SYSTEM_ACTOR_ID
from referral_ledger.config.settings import settings
from referral_ledger.models.assignment import ReferralAssignment
from referral_ledger.models.commission import ReferralCommission
from referral_ledger.models.enums import (
    ActorType,
    AuditAction,
    CommissionStatus,
    PayoutStatus,
)
from referral_ledger.models.payout import ReferralPayout
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.repositories.audit_log_repository import (
    AuditLogRepository,
)
from referral_ledger.repositories.commission_repository import (
    CommissionRepository,
)
from referral_ledger.repositories.payout_repository import PayoutRepository
from referral_ledger.services.base_service import BaseService
from referral_ledger.services.referral.attribution_resolver import (
    effective_policy,
)
from referral_ledger.services.referral.policy import quantize_money
from referral_ledger.utils.datetime_utils import utc_now
from referral_ledger.utils.exceptions import (
    AssignmentNotFoundError,
    InvalidTransitionError,
    NotFoundError,
    PayoutNotFoundError,
)


class PayoutOutcome(StrEnum):
    """Result of a payout request."""

    REQUESTED = "REQUESTED"
    ASSIGNMENT_INACTIVE = "ASSIGNMENT_INACTIVE"
    NOTHING_TO_PAY = "NOTHING_TO_PAY"  # No unlinked QUALIFIED commissions
    BELOW_THRESHOLD = "BELOW_THRESHOLD"


@dataclass
class PayoutRequestResult:
    """Result of ``request_payout``."""

    outcome: PayoutOutcome
    payout: ReferralPayout | None = None
    available: Decimal = Decimal("0")
    threshold: Decimal = Decimal("0")

    @property
    def success(self) -> bool:
        """Check if a payout was created."""
        return self.outcome == PayoutOutcome.REQUESTED


def payout_threshold(assignment: ReferralAssignment) -> Decimal:
    """Minimum payout of an assignment (policy, else settings default)."""
    threshold = effective_policy(assignment).payout_settings.min_threshold
    if threshold is None:
        return Decimal(str(settings.default_payout_threshold))
    return threshold


class PayoutManager(BaseService):
    """Payout requests and their settlement."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize payout manager."""
        super().__init__(session)
        self.assignment_repo = AssignmentRepository(session)
        self.commission_repo = CommissionRepository(session)
        self.payout_repo = PayoutRepository(session)
        self.audit_repo = AuditLogRepository(session)

    async def available_balance(self, assignment: ReferralAssignment) -> Decimal:
        """Earned, minus paid out, minus payouts still in flight."""
        in_flight = await self.payout_repo.sum_open(assignment.id)
        return quantize_money(
            assignment.total_earned - assignment.total_paid_out - in_flight
        )

    async def request_payout(
        self, assignment_id: int, actor_id: str
    ) -> PayoutRequestResult:
        """
        Request a payout of all unlinked QUALIFIED commissions.

        Args:
            assignment_id: Assignment to pay
            actor_id: Requesting user or admin

        Returns:
            PayoutRequestResult; a balance below the threshold is an outcome

        Raises:
            AssignmentNotFoundError: Unknown assignment
        """
        assignment = await self.assignment_repo.get_current(
            assignment_id, for_update=True
        )
        if assignment is None:
            raise AssignmentNotFoundError(f"Assignment {assignment_id} not found")
        if not assignment.is_active:
            await self.commit()
            return PayoutRequestResult(outcome=PayoutOutcome.ASSIGNMENT_INACTIVE)

        threshold = payout_threshold(assignment)
        available = await self.available_balance(assignment)

        payable = await self.commission_repo.get_payable(assignment_id)
        if not payable:
            await self.commit()
            return PayoutRequestResult(
                outcome=PayoutOutcome.NOTHING_TO_PAY,
                available=available,
                threshold=threshold,
            )

        if available < threshold:
            await self.commit()
            self.logger.info(
                f"Payout for assignment {assignment_id} below threshold: "
                f"{available} < {threshold}"
            )
            return PayoutRequestResult(
                outcome=PayoutOutcome.BELOW_THRESHOLD,
                available=available,
                threshold=threshold,
            )

        amount = quantize_money(sum(
            (c.effective_amount for c in payable), Decimal("0")
        ))
        payout = await self.payout_repo.create(
            assignment_id=assignment_id,
            amount=amount,
            currency=payable[0].currency or DEFAULT_CURRENCY,
            method=assignment.payout_method,
            status=PayoutStatus.PENDING.value,
        )
        linked = await self.commission_repo.link_to_payout(
            [c.id for c in payable], payout.id
        )

        await self.audit_repo.append(
            AuditAction.PAYOUT_REQUESTED,
            actor_id=actor_id,
            actor_type=ActorType.USER,
            assignment_id=assignment_id,
            metadata={
                "payout_id": payout.id,
                "amount": str(amount),
                "commission_ids": [c.id for c in payable],
            },
        )
        await self.commit()

        self.logger.info(
            f"Payout {payout.id} requested: {amount} {payout.currency} "
            f"for assignment {assignment_id} ({linked} commissions)"
        )
        return PayoutRequestResult(
            outcome=PayoutOutcome.REQUESTED,
            payout=payout,
            available=available,
            threshold=threshold,
        )

    async def mark_payout_processing(
        self, payout_id: int, external_reference: str | None = None
    ) -> ReferralPayout:
        """
        Record that the payout rail accepted the transfer.

        Raises:
            PayoutNotFoundError: Unknown payout
            InvalidTransitionError: Payout not PENDING
        """
        payout = await self._get(payout_id)
        await self._move(
            payout,
            (PayoutStatus.PENDING,),
            status=PayoutStatus.PROCESSING.value,
            external_reference=external_reference,
        )
        await self.audit_repo.append(
            AuditAction.PAYOUT_PROCESSING,
            actor_id=SYSTEM_ACTOR_ID,
            assignment_id=payout.assignment_id,
            metadata={"payout_id": payout_id, "external_reference": external_reference},
        )
        await self.commit()
        await self.payout_repo.refresh(payout)

        self.logger.info(f"Payout {payout_id} processing ({external_reference})")
        return payout

    async def complete_payout(
        self, payout_id: int, external_reference: str | None = None
    ) -> ReferralPayout:
        """
        Settle a payout: linked commissions become PAID and total_paid_out
        grows by their current effective amount.

        Raises:
            PayoutNotFoundError: Unknown payout
            InvalidTransitionError: Payout already completed or failed
        """
        payout = await self._get(payout_id)
        now = utc_now()
        values = {"status": PayoutStatus.COMPLETED.value, "processed_at": now}
        if external_reference:
            values["external_reference"] = external_reference
        await self._move(
            payout, (PayoutStatus.PENDING, PayoutStatus.PROCESSING), **values
        )

        paid = await self.commission_repo.mark_payout_paid(payout_id, now)
        # Rows refunded or charged back while in flight are not settled here
        settled = quantize_money(
            await self.commission_repo.sum_payout_paid(payout_id)
        )
        if settled:
            await self.assignment_repo.increment(
                payout.assignment_id, total_paid_out=settled
            )
        await self.audit_repo.append(
            AuditAction.PAYOUT_COMPLETED,
            actor_id=SYSTEM_ACTOR_ID,
            assignment_id=payout.assignment_id,
            metadata={
                "payout_id": payout_id,
                "amount": str(payout.amount),
                "settled_amount": str(settled),
                "commissions_paid": paid,
            },
        )
        await self.commit()
        await self.payout_repo.refresh(payout)

        if settled != payout.amount:
            self.logger.warning(
                f"Payout {payout_id} settled {settled} of requested "
                f"{payout.amount}: commissions changed while in flight"
            )
        self.logger.info(
            f"Payout {payout_id} completed: {settled} {payout.currency}, "
            f"{paid} commissions paid"
        )
        return payout

    async def fail_payout(self, payout_id: int, reason: str) -> ReferralPayout:
        """
        Mark a payout failed and release its commissions for a new request.

        Raises:
            PayoutNotFoundError: Unknown payout
            InvalidTransitionError: Payout already completed or failed
        """
        payout = await self._get(payout_id)
        await self._move(
            payout,
            (PayoutStatus.PENDING, PayoutStatus.PROCESSING),
            status=PayoutStatus.FAILED.value,
            failure_reason=reason,
            failed_at=utc_now(),
        )
        released = await self.commission_repo.unlink_payout(payout_id)
        await self.audit_repo.append(
            AuditAction.PAYOUT_FAILED,
            actor_id=SYSTEM_ACTOR_ID,
            assignment_id=payout.assignment_id,
            metadata={"payout_id": payout_id, "reason": reason},
        )
        await self.commit()
        await self.payout_repo.refresh(payout)

        self.logger.warning(
            f"Payout {payout_id} failed: {reason} ({released} commissions released)"
        )
        return payout

    async def record_credit(
        self, commission_id: int, actor_id: str
    ) -> ReferralCommission:
        """
        Record a CUSTOMER reward applied as bill credit.

        Raises:
            NotFoundError: Unknown commission
            InvalidTransitionError: Commission not QUALIFIED
        """
        commission = await self.commission_repo.get_by_id(commission_id)
        if commission is None:
            raise NotFoundError(f"Commission {commission_id} not found")

        now = utc_now()
        moved = await self.commission_repo.transition(
            commission_id,
            (CommissionStatus.QUALIFIED,),
            status=CommissionStatus.CREDITED.value,
            paid_at=now,
        )
        if not moved:
            raise InvalidTransitionError(
                f"Commission {commission_id} is {commission.status}, not QUALIFIED"
            )

        amount = commission.effective_amount
        await self.assignment_repo.increment(
            commission.assignment_id, total_paid_out=amount
        )
        await self.audit_repo.append(
            AuditAction.CREDIT_APPLIED,
            actor_id=actor_id,
            actor_type=ActorType.SYSTEM,
            assignment_id=commission.assignment_id,
            metadata={"commission_id": commission_id, "amount": str(amount)},
        )
        await self.commit()
        await self.commission_repo.refresh(commission)

        self.logger.info(
            f"Credit of {amount} applied for commission {commission_id}"
        )
        return commission

    async def _get(self, payout_id: int) -> ReferralPayout:
        payout = await self.payout_repo.get_by_id(payout_id)
        if payout is None:
            raise PayoutNotFoundError(f"Payout {payout_id} not found")
        return payout

    async def _move(
        self,
        payout: ReferralPayout,
        from_statuses: tuple[PayoutStatus, ...],
        **values,
    ) -> None:
        moved = await self.payout_repo.transition(payout.id, from_statuses, **values)
        if not moved:
            raise InvalidTransitionError(
                f"Payout {payout.id} is {payout.status}"
            )
