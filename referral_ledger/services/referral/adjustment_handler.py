"""
Adjustment handler.

Applies refunds and chargebacks to existing commissions. Safe to call for
every refund in the system: payments without a commission are a no-op.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.constants import SYSTEM_ACTOR_ID
from referral_ledger.models.commission import ReferralCommission
from referral_ledger.models.enums import (
    COMMISSION_SETTLED_STATUSES,
    REFERRAL_TERMINAL_STATUSES,
    ActorType,
    AuditAction,
    CommissionStatus,
    ReferralStatus,
)
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.repositories.audit_log_repository import (
    AuditLogRepository,
)
from referral_ledger.repositories.commission_repository import (
    CommissionRepository,
)
from referral_ledger.repositories.referral_repository import ReferralRepository
from referral_ledger.services.base_service import BaseService
from referral_ledger.services.referral.policy import quantize_money
from referral_ledger.utils.datetime_utils import utc_now
from referral_ledger.utils.exceptions import InvalidEventError


class AdjustmentOutcome(StrEnum):
    """What a refund or chargeback did."""

    NO_COMMISSION = "NO_COMMISSION"
    CANCELLED = "CANCELLED"
    AMOUNT_ADJUSTED = "AMOUNT_ADJUSTED"
    MANUAL_REVIEW = "MANUAL_REVIEW"  # Money already left the system
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"  # Redelivered event


@dataclass
class AdjustmentResult:
    """Result of an adjustment."""

    outcome: AdjustmentOutcome
    commission: ReferralCommission | None = None


def prorate_after_refund(
    total_amount: Decimal, base_amount: Decimal, refunded_amount: Decimal
) -> Decimal:
    """
    Reward left after a partial refund.

    ``total * (1 - refunded / base)``, never below zero. A zero base means
    nothing is left.
    """
    if base_amount <= 0 or refunded_amount >= base_amount:
        return Decimal("0")
    ratio = refunded_amount / base_amount
    return max(Decimal("0"), quantize_money(total_amount * (1 - ratio)))


class AdjustmentHandler(BaseService):
    """Reacts to refund and chargeback events."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize adjustment handler."""
        super().__init__(session)
        self.commission_repo = CommissionRepository(session)
        self.referral_repo = ReferralRepository(session)
        self.assignment_repo = AssignmentRepository(session)
        self.audit_repo = AuditLogRepository(session)

    async def handle_refund(
        self,
        payment_id: str,
        refunded_amount: Decimal,
        is_full_refund: bool,
    ) -> AdjustmentResult:
        """
        Apply a refund to the commission of a payment.

        ``refunded_amount`` is the total refunded so far for the payment, so
        redelivery of the same refund recomputes the same adjusted amount.

        Args:
            payment_id: Provider payment id
            refunded_amount: Cumulative refunded amount (decimal units)
            is_full_refund: Whole payment refunded

        Returns:
            AdjustmentResult
        """
        if refunded_amount < 0:
            raise InvalidEventError("Refunded amount must not be negative")

        commission = await self.commission_repo.get_by_payment_id(
            payment_id, for_update=True
        )
        if commission is None:
            self.logger.debug(f"Refund for payment {payment_id}: no commission")
            return AdjustmentResult(outcome=AdjustmentOutcome.NO_COMMISSION)

        status = CommissionStatus(commission.status)

        if status == CommissionStatus.CANCELLED:
            await self.commit()
            return AdjustmentResult(
                outcome=AdjustmentOutcome.ALREADY_CANCELLED, commission=commission
            )

        if status in COMMISSION_SETTLED_STATUSES:
            return await self._flag_for_review(
                commission, status, refunded_amount, is_full_refund
            )

        if is_full_refund:
            return await self._cancel_for_refund(commission, status)

        return await self._prorate(commission, status, refunded_amount)

    async def handle_chargeback(self, payment_id: str) -> AdjustmentResult:
        """
        Cancel a charged-back commission and flag its referral as fraudulent.

        Applies from any commission status. A redelivered chargeback changes
        nothing and writes no second audit entry.

        Args:
            payment_id: Provider payment id

        Returns:
            AdjustmentResult
        """
        commission = await self.commission_repo.get_by_payment_id(
            payment_id, for_update=True
        )
        if commission is None:
            self.logger.debug(f"Chargeback for payment {payment_id}: no commission")
            return AdjustmentResult(outcome=AdjustmentOutcome.NO_COMMISSION)

        previous_status = CommissionStatus(commission.status)
        now = utc_now()

        cancelled = False
        if previous_status != CommissionStatus.CANCELLED:
            cancelled = await self.commission_repo.transition(
                commission.id,
                (previous_status,),
                status=CommissionStatus.CANCELLED.value,
                adjustment_reason="Chargeback",
                cancelled_at=now,
            )
            if cancelled and previous_status == CommissionStatus.QUALIFIED:
                await self._reverse_earned(commission, commission.effective_amount)

        flagged = await self.referral_repo.transition(
            commission.referral_id,
            [s for s in ReferralStatus if s != ReferralStatus.FRAUDULENT],
            status=ReferralStatus.FRAUDULENT.value,
            cancelled_at=now,
        )

        if not cancelled and not flagged:
            await self.commit()
            return AdjustmentResult(
                outcome=AdjustmentOutcome.ALREADY_PROCESSED, commission=commission
            )

        await self.audit_repo.append(
            AuditAction.CHARGEBACK_DETECTED,
            actor_id=SYSTEM_ACTOR_ID,
            actor_type=ActorType.SYSTEM,
            assignment_id=commission.assignment_id,
            metadata={
                "payment_id": payment_id,
                "commission_id": commission.id,
                "referral_id": commission.referral_id,
                "previous_status": previous_status.value,
                "amount": str(commission.effective_amount),
            },
        )
        await self.commit()
        await self.commission_repo.refresh(commission)

        self.logger.warning(
            f"Chargeback on payment {payment_id}: commission {commission.id} "
            f"cancelled (was {previous_status}), referral "
            f"{commission.referral_id} flagged fraudulent"
        )
        return AdjustmentResult(
            outcome=AdjustmentOutcome.CANCELLED, commission=commission
        )

    async def _flag_for_review(
        self,
        commission: ReferralCommission,
        status: CommissionStatus,
        refunded_amount: Decimal,
        is_full_refund: bool,
    ) -> AdjustmentResult:
        # Amounts stay untouched: reconciliation is manual
        if status != CommissionStatus.ADJUSTED:
            kind = "FULL" if is_full_refund else "PARTIAL"
            await self.commission_repo.transition(
                commission.id,
                (status,),
                status=CommissionStatus.ADJUSTED.value,
                adjustment_reason=(
                    f"Refund after payout: {kind} - {quantize_money(refunded_amount)}"
                ),
            )
            await self.commit()
            await self.commission_repo.refresh(commission)
            self.logger.warning(
                f"Commission {commission.id} was {status}; refund needs manual review"
            )
        else:
            await self.commit()

        return AdjustmentResult(
            outcome=AdjustmentOutcome.MANUAL_REVIEW, commission=commission
        )

    async def _cancel_for_refund(
        self, commission: ReferralCommission, status: CommissionStatus
    ) -> AdjustmentResult:
        now = utc_now()
        cancelled = await self.commission_repo.transition(
            commission.id,
            (status,),
            status=CommissionStatus.CANCELLED.value,
            adjustment_reason="Full refund",
            cancelled_at=now,
        )
        if not cancelled:
            await self.commit()
            return AdjustmentResult(
                outcome=AdjustmentOutcome.ALREADY_PROCESSED, commission=commission
            )

        if status == CommissionStatus.QUALIFIED:
            await self._reverse_earned(commission, commission.effective_amount)

        await self.referral_repo.transition(
            commission.referral_id,
            [s for s in ReferralStatus if s not in REFERRAL_TERMINAL_STATUSES],
            status=ReferralStatus.REFUNDED.value,
            cancelled_at=now,
        )
        await self.commit()
        await self.commission_repo.refresh(commission)

        self.logger.info(
            f"Commission {commission.id} cancelled: full refund of payment "
            f"{commission.payment_id}"
        )
        return AdjustmentResult(
            outcome=AdjustmentOutcome.CANCELLED, commission=commission
        )

    async def _prorate(
        self,
        commission: ReferralCommission,
        status: CommissionStatus,
        refunded_amount: Decimal,
    ) -> AdjustmentResult:
        previous = commission.adjusted_amount
        adjusted = prorate_after_refund(
            commission.total_amount, commission.base_amount, refunded_amount
        )
        if previous is not None and previous == adjusted:
            await self.commit()
            return AdjustmentResult(
                outcome=AdjustmentOutcome.ALREADY_PROCESSED, commission=commission
            )

        old_effective = commission.effective_amount
        written = await self.commission_repo.set_adjusted_amount(
            commission.id,
            status.value,
            previous,
            adjusted,
            reason=f"Partial refund: {quantize_money(refunded_amount)}",
        )
        if not written:
            await self.commit()
            return AdjustmentResult(
                outcome=AdjustmentOutcome.ALREADY_PROCESSED, commission=commission
            )

        if status == CommissionStatus.QUALIFIED and old_effective > adjusted:
            await self._reverse_earned(commission, old_effective - adjusted)

        await self.commit()
        await self.commission_repo.refresh(commission)

        self.logger.info(
            f"Commission {commission.id} adjusted from {commission.total_amount} "
            f"to {adjusted} after partial refund"
        )
        return AdjustmentResult(
            outcome=AdjustmentOutcome.AMOUNT_ADJUSTED, commission=commission
        )

    async def _reverse_earned(
        self, commission: ReferralCommission, amount: Decimal
    ) -> None:
        """Take an unpaid qualified amount back out of total_earned."""
        await self.assignment_repo.increment(
            commission.assignment_id, total_earned=-amount
        )
        self.logger.info(
            f"Assignment {commission.assignment_id} total_earned reduced by {amount}"
        )
