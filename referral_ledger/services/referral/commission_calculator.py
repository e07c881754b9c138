"""
Commission calculator.

Turns one successful payment into at most one ledger row. The payment id
is the idempotency key: a redelivered event returns the existing row and
touches no counter.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.constants import DEFAULT_CURRENCY, PAYMENT_WEBHOOK_SOURCE
from referral_ledger.models.commission import ReferralCommission
from referral_ledger.models.enums import (
    CommissionStatus,
    ProfileType,
    ReferralStatus,
)
from referral_ledger.models.referral import Referral
from referral_ledger.models.user import User
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.repositories.commission_repository import (
    CommissionRepository,
)
from referral_ledger.repositories.referral_repository import ReferralRepository
from referral_ledger.repositories.user_repository import UserRepository
from referral_ledger.services.base_service import BaseService
from referral_ledger.services.referral.attribution_resolver import (
    effective_policy,
)
from referral_ledger.services.referral.policy import (
    apply_monthly_cap,
    compute_reward,
    quantize_money,
)
from referral_ledger.services.referral.referral_tracker import (
    AttributionMetadata,
    ReferralTracker,
)
from referral_ledger.utils.datetime_utils import add_days, start_of_month, utc_now
from referral_ledger.utils.exceptions import (
    InvalidCodeError,
    InvalidEventError,
    SelfReferralError,
)


class CommissionOutcome(StrEnum):
    """What happened to a payment."""

    CREATED = "CREATED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"  # Duplicate payment id
    USER_NOT_FOUND = "USER_NOT_FOUND"
    NO_REFERRAL = "NO_REFERRAL"  # Payer was not referred
    ASSIGNMENT_INACTIVE = "ASSIGNMENT_INACTIVE"
    ALREADY_REWARDED = "ALREADY_REWARDED"  # CUSTOMER one-shot
    MONTHLY_LIMIT_REACHED = "MONTHLY_LIMIT_REACHED"


@dataclass
class CommissionResult:
    """Result of processing one payment."""

    outcome: CommissionOutcome
    commission: ReferralCommission | None = None
    amount: Decimal | None = None
    clamped: bool = False  # Amount cut by the monthly cap

    @property
    def created(self) -> bool:
        """Check if a new ledger row was written."""
        return self.outcome == CommissionOutcome.CREATED


class CommissionCalculator(BaseService):
    """Computes and records referral commissions for payments."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission calculator."""
        super().__init__(session)
        self.commission_repo = CommissionRepository(session)
        self.referral_repo = ReferralRepository(session)
        self.assignment_repo = AssignmentRepository(session)
        self.user_repo = UserRepository(session)
        self.tracker = ReferralTracker(session)

    async def process_payment(
        self,
        payment_id: str,
        amount: Decimal,
        currency: str = DEFAULT_CURRENCY,
        user_id: int | None = None,
        customer_id: str | None = None,
        invoice_id: str | None = None,
        referral_code: str | None = None,
    ) -> CommissionResult:
        """
        Record the commission owed for a successful payment.

        Args:
            payment_id: Provider payment id (idempotency key)
            amount: Gross payment amount in decimal currency units
            currency: ISO currency code
            user_id: Paying user, if known
            customer_id: Provider customer id, used when user_id is absent
            invoice_id: Provider invoice id
            referral_code: Code captured at checkout, used when the payer's
                registration was never attributed

        Returns:
            CommissionResult; business no-ops are outcomes, not errors

        Raises:
            InvalidEventError: Missing payment id or negative amount
        """
        if not payment_id:
            raise InvalidEventError("payment_id is required")
        if amount < 0:
            raise InvalidEventError("Payment amount must not be negative")

        existing = await self.commission_repo.get_by_payment_id(payment_id)
        if existing is not None:
            self.logger.info(f"Payment {payment_id} already processed")
            return CommissionResult(
                outcome=CommissionOutcome.ALREADY_PROCESSED,
                commission=existing,
                amount=existing.effective_amount,
            )

        user = await self._find_user(user_id, customer_id)
        if user is None:
            self.logger.bind(user_id=user_id, customer_id=customer_id).info(
                f"Payment {payment_id}: paying user not found"
            )
            return CommissionResult(outcome=CommissionOutcome.USER_NOT_FOUND)

        referral = await self._resolve_referral(user, referral_code)
        if referral is None:
            self.logger.debug(f"Payment {payment_id}: no referrer for user {user.id}")
            return CommissionResult(outcome=CommissionOutcome.NO_REFERRAL)

        # Row lock serializes tier and cap reads per assignment
        assignment = await self.assignment_repo.get_current(
            referral.assignment_id, for_update=True
        )
        if assignment is None or not assignment.is_active:
            await self.commit()
            self.logger.info(
                f"Payment {payment_id}: assignment {referral.assignment_id} not active"
            )
            return CommissionResult(outcome=CommissionOutcome.ASSIGNMENT_INACTIVE)

        policy = effective_policy(assignment)
        profile_type = ProfileType(assignment.profile.type)

        if profile_type == ProfileType.CUSTOMER:
            if await self.commission_repo.exists_for_referral(referral.id):
                self.logger.info(
                    f"Payment {payment_id}: referral {referral.id} already "
                    f"received its one-time credit"
                )
                await self.commit()
                return CommissionResult(outcome=CommissionOutcome.ALREADY_REWARDED)

        breakdown = compute_reward(policy, amount, assignment.total_converted)

        now = utc_now()
        month_total = await self.commission_repo.sum_since(
            assignment.id, start_of_month(now)
        )
        reward, clamped = apply_monthly_cap(
            breakdown.total, policy.limits.max_monthly_commission, month_total
        )
        if clamped and reward <= 0:
            await self.commit()
            self.logger.info(
                f"Payment {payment_id}: monthly cap reached for assignment "
                f"{assignment.id}"
            )
            return CommissionResult(
                outcome=CommissionOutcome.MONTHLY_LIMIT_REACHED,
                amount=Decimal("0"),
                clamped=True,
            )

        try:
            commission = await self.commission_repo.create(
                assignment_id=assignment.id,
                referral_id=referral.id,
                payment_id=payment_id,
                invoice_id=invoice_id,
                base_amount=quantize_money(amount),
                commission_rate=breakdown.rate,
                fixed_amount=breakdown.fixed_amount,
                total_amount=reward,
                currency=(currency or DEFAULT_CURRENCY).upper(),
                status=CommissionStatus.PENDING.value,
                qualifies_at=add_days(now, policy.grace_period_days(profile_type)),
                created_at=now,
            )
        except IntegrityError:
            # Concurrent delivery of the same payment won the insert
            await self.rollback()
            existing = await self.commission_repo.get_by_payment_id(payment_id)
            if existing is None:
                raise
            self.logger.info(f"Payment {payment_id} processed concurrently")
            return CommissionResult(
                outcome=CommissionOutcome.ALREADY_PROCESSED,
                commission=existing,
                amount=existing.effective_amount,
            )

        converted = await self.referral_repo.transition(
            referral.id,
            (ReferralStatus.REGISTERED,),
            status=ReferralStatus.CONVERTED.value,
            converted_at=now,
        )
        if converted:
            await self.assignment_repo.increment(assignment.id, total_converted=1)

        await self.commit()

        self.logger.info(
            f"Commission created: {reward} {commission.currency} for assignment "
            f"{assignment.id} (payment {payment_id}, rate {breakdown.rate}"
            f"{', clamped' if clamped else ''})"
        )
        if converted:
            self.logger.info(f"Referral {referral.id} converted")

        return CommissionResult(
            outcome=CommissionOutcome.CREATED,
            commission=commission,
            amount=reward,
            clamped=clamped,
        )

    async def _find_user(
        self, user_id: int | None, customer_id: str | None
    ) -> User | None:
        if user_id is not None:
            return await self.user_repo.get_by_id(user_id)
        if customer_id:
            return await self.user_repo.get_by_provider_customer_id(customer_id)
        return None

    async def _resolve_referral(
        self, user: User, referral_code: str | None
    ) -> Referral | None:
        referral = await self.referral_repo.get_active_for_user(user.id)
        if referral is not None or not referral_code:
            return referral

        # Registration was never attributed: synthesize it from checkout data
        try:
            await self.tracker.register(
                code=referral_code,
                referred_email=user.email,
                referred_user_id=user.id,
                metadata=AttributionMetadata(source_ip=PAYMENT_WEBHOOK_SOURCE),
            )
        except (InvalidCodeError, SelfReferralError) as e:
            self.logger.info(
                f"Checkout referral code not applied for user {user.id}: {e.message}"
            )
            return None

        return await self.referral_repo.get_active_for_user(user.id)
