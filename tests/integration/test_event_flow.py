"""End-to-end tests through the event handler."""

from decimal import Decimal

import pytest

from referral_ledger.models import CommissionStatus, ReferralStatus
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.repositories.referral_repository import ReferralRepository
from referral_ledger.services.referral.adjustment_handler import AdjustmentOutcome
from referral_ledger.services.referral.commission_calculator import (
    CommissionOutcome,
)
from referral_ledger.services.referral.event_handler import ReferralEventHandler


class TestEventFlow:
    """Registration, payment and refund events for one referred user."""

    @pytest.mark.asyncio
    async def test_referred_customer_lifecycle(
        self, db_session, assignment, customer_profile, alice
    ):
        """Events drive the referral from registration to refund."""
        handler = ReferralEventHandler(db_session)

        registered = await handler.on_user_registered({
            "referralCode": "partner-one",
            "referredEmail": alice.email,
            "referredUserId": alice.id,
            "utmSource": "podcast",
        })
        assert registered.success is True
        assert registered.data.created is True

        paid = await handler.on_payment_succeeded({
            "paymentId": "pi_1",
            "customerId": "cus_alice",
            "userId": alice.id,
            "amount": 10000,
            "currency": "usd",
        })
        assert paid.success is True
        assert paid.data.outcome == CommissionOutcome.CREATED
        assert paid.data.amount == Decimal("10.00")

        # The payer became a CUSTOMER referrer
        own = await AssignmentRepository(db_session).get_by_user(alice.id)
        assert own is not None
        assert own.profile_id == customer_profile.id

        redelivered = await handler.on_payment_succeeded({
            "paymentId": "pi_1",
            "customerId": "cus_alice",
            "userId": alice.id,
            "amount": 10000,
        })
        assert redelivered.data.outcome == CommissionOutcome.ALREADY_PROCESSED

        refunded = await handler.on_payment_refunded(
            {"paymentId": "pi_1", "refundedAmount": 10000, "isFullRefund": True}
        )
        assert refunded.success is True
        assert refunded.data.outcome == AdjustmentOutcome.CANCELLED
        assert refunded.data.commission.status == CommissionStatus.CANCELLED

        referral = await ReferralRepository(db_session).get_by_email(alice.email)
        assert referral.status == ReferralStatus.REFUNDED
        assert referral.utm_source == "podcast"

    @pytest.mark.asyncio
    async def test_self_referral_event(self, db_session, assignment, referrer):
        """Self-referrals come back as failed results."""
        result = await ReferralEventHandler(db_session).on_user_registered({
            "referralCode": assignment.referral_code,
            "referredEmail": referrer.email,
            "referredUserId": referrer.id,
        })

        assert result.success is False
        assert result.error_code == "SELF_REFERRAL"

    @pytest.mark.asyncio
    async def test_chargeback_event(self, db_session, assignment, alice, alice_referral):
        """Chargebacks flag the referral through the event handler."""
        handler = ReferralEventHandler(db_session)
        await handler.on_payment_succeeded(
            {"paymentId": "pi_1", "userId": alice.id, "amount": 5000}
        )

        result = await handler.on_payment_charged_back({"paymentId": "pi_1"})

        assert result.data.outcome == AdjustmentOutcome.CANCELLED
        await db_session.refresh(alice_referral)
        assert alice_referral.status == ReferralStatus.FRAUDULENT
