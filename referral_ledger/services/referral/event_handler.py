"""
Referral event handler.

Entry point for the event consumer: parses inbound events, converts
minor units to decimal amounts, routes each event to its component and
wraps the outcome in a ServiceResult. Ledger errors become failed results
so user-correctable events are not retried; infrastructure errors
propagate so the job runner can retry.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.constants import MINOR_UNITS_PER_MAJOR
from referral_ledger.config.settings import settings
from referral_ledger.services.base_service import BaseService, ServiceResult
from referral_ledger.services.referral.adjustment_handler import AdjustmentHandler
from referral_ledger.services.referral.assignment_manager import AssignmentManager
from referral_ledger.services.referral.commission_calculator import (
    CommissionCalculator,
)
from referral_ledger.services.referral.events import (
    PaymentChargedBack,
    PaymentRefunded,
    PaymentSucceeded,
    UserRegistered,
)
from referral_ledger.services.referral.referral_tracker import (
    AttributionMetadata,
    ReferralTracker,
)
from referral_ledger.utils.exceptions import ReferralError


def to_major_units(amount: int) -> Decimal:
    """Convert provider minor units (cents) to decimal currency units."""
    return Decimal(amount) / MINOR_UNITS_PER_MAJOR


def _failure(error: ReferralError) -> ServiceResult:
    return ServiceResult(
        success=False, error=error.message, error_code=error.error_code
    )


class ReferralEventHandler(BaseService):
    """Routes inbound events to the ledger components."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize event handler."""
        super().__init__(session)
        self.tracker = ReferralTracker(session)
        self.calculator = CommissionCalculator(session)
        self.adjustments = AdjustmentHandler(session)
        self.assignments = AssignmentManager(session)

    async def on_payment_succeeded(
        self, event: PaymentSucceeded | dict[str, Any]
    ) -> ServiceResult:
        """
        Record the commission for a payment and onboard the payer.

        Returns:
            ServiceResult with the CommissionResult as data
        """
        try:
            if isinstance(event, dict):
                event = PaymentSucceeded.from_dict(event)

            result = await self.calculator.process_payment(
                payment_id=event.payment_id,
                amount=to_major_units(event.amount),
                currency=event.currency,
                user_id=event.user_id,
                customer_id=event.customer_id,
                invoice_id=event.invoice_id,
                referral_code=event.referral_code_hint,
            )

            if settings.auto_assign_on_payment and event.user_id is not None:
                await self.assignments.auto_assign(event.user_id)
        except ReferralError as e:
            self.logger.warning(f"Payment event rejected: {e.message}")
            return _failure(e)

        return ServiceResult(success=True, data=result)

    async def on_payment_refunded(
        self, event: PaymentRefunded | dict[str, Any]
    ) -> ServiceResult:
        """Apply a refund. Payments without commission succeed as no-ops."""
        try:
            if isinstance(event, dict):
                event = PaymentRefunded.from_dict(event)

            result = await self.adjustments.handle_refund(
                payment_id=event.payment_id,
                refunded_amount=to_major_units(event.refunded_amount),
                is_full_refund=event.is_full_refund,
            )
        except ReferralError as e:
            self.logger.warning(f"Refund event rejected: {e.message}")
            return _failure(e)

        return ServiceResult(success=True, data=result)

    async def on_payment_charged_back(
        self, event: PaymentChargedBack | dict[str, Any]
    ) -> ServiceResult:
        """Apply a chargeback."""
        try:
            if isinstance(event, dict):
                event = PaymentChargedBack.from_dict(event)

            result = await self.adjustments.handle_chargeback(event.payment_id)
        except ReferralError as e:
            self.logger.warning(f"Chargeback event rejected: {e.message}")
            return _failure(e)

        return ServiceResult(success=True, data=result)

    async def on_user_registered(
        self, event: UserRegistered | dict[str, Any]
    ) -> ServiceResult:
        """
        Attribute a registration.

        Invalid codes and self-referrals come back as failed results.
        """
        try:
            if isinstance(event, dict):
                event = UserRegistered.from_dict(event)

            result = await self.tracker.register(
                code=event.referral_code,
                referred_email=event.referred_email,
                referred_user_id=event.referred_user_id,
                metadata=AttributionMetadata(
                    source_ip=event.source_ip,
                    user_agent=event.user_agent,
                    utm_source=event.utm_source,
                    utm_medium=event.utm_medium,
                    utm_campaign=event.utm_campaign,
                ),
            )
        except ReferralError as e:
            return _failure(e)

        return ServiceResult(success=True, data=result)
