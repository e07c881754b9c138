"""Integration tests for commission calculation."""

from decimal import Decimal

import pytest
from loguru import logger

from referral_ledger.config.constants import PAYMENT_WEBHOOK_SOURCE
from referral_ledger.models import (
    AssignmentStatus,
    CommissionStatus,
    ReferralStatus,
)
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.repositories.commission_repository import (
    CommissionRepository,
)
from referral_ledger.repositories.referral_repository import ReferralRepository
from referral_ledger.services.referral.assignment_manager import (
    AssignmentManager,
)
from referral_ledger.services.referral.commission_calculator import (
    CommissionCalculator,
    CommissionOutcome,
)
from referral_ledger.services.referral.referral_tracker import ReferralTracker
from referral_ledger.utils.exceptions import InvalidEventError


class TestProcessPayment:
    """Integration tests for CommissionCalculator.process_payment."""

    @pytest.mark.asyncio
    async def test_first_payment_creates_commission(
        self, db_session, assignment, alice, alice_referral
    ):
        """A referred payment writes one PENDING row and converts the referral."""
        result = await CommissionCalculator(db_session).process_payment(
            payment_id="pi_1",
            amount=Decimal("100.00"),
            currency="usd",
            user_id=alice.id,
            invoice_id="in_1",
        )

        assert result.outcome == CommissionOutcome.CREATED
        assert result.created is True
        assert result.amount == Decimal("10.00")
        assert result.clamped is False

        commission = result.commission
        assert commission.status == CommissionStatus.PENDING
        assert commission.base_amount == Decimal("100.00")
        assert commission.commission_rate == Decimal("0.10")
        assert commission.total_amount == Decimal("10.00")
        assert commission.adjusted_amount is None
        assert commission.currency == "USD"
        assert commission.invoice_id == "in_1"
        assert commission.referral_id == alice_referral.id

        await db_session.refresh(alice_referral)
        assert alice_referral.status == ReferralStatus.CONVERTED
        assert alice_referral.converted_at is not None

        current = await AssignmentRepository(db_session).get_current(assignment.id)
        assert current.total_converted == 1
        assert current.total_earned == Decimal("0")

    @pytest.mark.asyncio
    async def test_duplicate_delivery(self, db_session, assignment, alice, alice_referral):
        """The payment id is processed once."""
        calculator = CommissionCalculator(db_session)
        first = await calculator.process_payment("pi_1", Decimal("100.00"), user_id=alice.id)
        second = await calculator.process_payment("pi_1", Decimal("100.00"), user_id=alice.id)

        assert second.outcome == CommissionOutcome.ALREADY_PROCESSED
        assert second.commission.id == first.commission.id

        assert await CommissionRepository(db_session).count(assignment_id=assignment.id) == 1
        current = await AssignmentRepository(db_session).get_current(assignment.id)
        assert current.total_converted == 1

    @pytest.mark.asyncio
    async def test_recurring_payments_convert_once(
        self, db_session, assignment, alice, alice_referral
    ):
        """AFFILIATE referrals earn on every payment but convert once."""
        calculator = CommissionCalculator(db_session)
        await calculator.process_payment("pi_1", Decimal("100.00"), user_id=alice.id)
        result = await calculator.process_payment("pi_2", Decimal("100.00"), user_id=alice.id)

        assert result.outcome == CommissionOutcome.CREATED
        current = await AssignmentRepository(db_session).get_current(assignment.id)
        assert current.total_converted == 1

    @pytest.mark.asyncio
    async def test_tier_rate(self, db_session, assignment, alice, alice_referral):
        """Five prior conversions unlock the 15% tier."""
        repo = AssignmentRepository(db_session)
        await repo.increment(assignment.id, total_converted=5)
        await db_session.commit()

        result = await CommissionCalculator(db_session).process_payment(
            "pi_1", Decimal("100.00"), user_id=alice.id
        )

        assert result.amount == Decimal("15.00")
        assert result.commission.commission_rate == Decimal("0.15")

    @pytest.mark.asyncio
    async def test_payer_found_by_customer_id(self, db_session, assignment, alice, alice_referral):
        """Payments without user id resolve the payer by provider customer id."""
        result = await CommissionCalculator(db_session).process_payment(
            "pi_1", Decimal("50.00"), customer_id="cus_alice"
        )
        assert result.outcome == CommissionOutcome.CREATED

    @pytest.mark.asyncio
    async def test_unknown_payer(self, db_session, assignment):
        """Unknown payers are a no-op."""
        result = await CommissionCalculator(db_session).process_payment(
            "pi_1", Decimal("50.00"), customer_id="cus_missing"
        )
        assert result.outcome == CommissionOutcome.USER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_payer_log_context(self, db_session, assignment):
        """The payer lookup keys are bound to the log record."""
        records = []
        sink_id = logger.add(lambda message: records.append(message.record))
        try:
            await CommissionCalculator(db_session).process_payment(
                "pi_1", Decimal("50.00"), customer_id="cus_missing"
            )
        finally:
            logger.remove(sink_id)

        record = next(r for r in records if "paying user not found" in r["message"])
        assert record["extra"]["customer_id"] == "cus_missing"
        assert record["extra"]["user_id"] is None
        assert record["extra"]["service"] == "CommissionCalculator"
        assert "extra" not in record["extra"]

    @pytest.mark.asyncio
    async def test_payer_not_referred(self, db_session, assignment, carol):
        """Payments of users nobody referred earn nothing."""
        result = await CommissionCalculator(db_session).process_payment(
            "pi_1", Decimal("50.00"), user_id=carol.id
        )
        assert result.outcome == CommissionOutcome.NO_REFERRAL
        assert result.commission is None

    @pytest.mark.asyncio
    async def test_inactive_assignment(self, db_session, assignment, alice, alice_referral):
        """Suspended referrers stop earning."""
        await AssignmentManager(db_session).set_assignment_status(
            assignment.id, AssignmentStatus.SUSPENDED, actor_id="admin-1"
        )

        result = await CommissionCalculator(db_session).process_payment(
            "pi_1", Decimal("100.00"), user_id=alice.id
        )
        assert result.outcome == CommissionOutcome.ASSIGNMENT_INACTIVE

    @pytest.mark.asyncio
    async def test_invalid_input(self, db_session, assignment, alice):
        """Negative amounts and empty payment ids are rejected."""
        calculator = CommissionCalculator(db_session)
        with pytest.raises(InvalidEventError):
            await calculator.process_payment("pi_1", Decimal("-1"), user_id=alice.id)
        with pytest.raises(InvalidEventError):
            await calculator.process_payment("", Decimal("10"), user_id=alice.id)


class TestMonthlyCap:
    """Integration tests for the monthly commission cap (50)."""

    @pytest.mark.asyncio
    async def test_cap_clamps_then_stops(self, db_session, assignment, alice, alice_referral):
        """20 + 20 + 10 (clamped), then nothing."""
        calculator = CommissionCalculator(db_session)

        first = await calculator.process_payment("pi_1", Decimal("200.00"), user_id=alice.id)
        second = await calculator.process_payment("pi_2", Decimal("200.00"), user_id=alice.id)
        third = await calculator.process_payment("pi_3", Decimal("200.00"), user_id=alice.id)
        fourth = await calculator.process_payment("pi_4", Decimal("200.00"), user_id=alice.id)

        assert first.amount == Decimal("20.00")
        assert second.amount == Decimal("20.00")
        assert third.outcome == CommissionOutcome.CREATED
        assert third.amount == Decimal("10.00")
        assert third.clamped is True
        assert fourth.outcome == CommissionOutcome.MONTHLY_LIMIT_REACHED
        assert fourth.commission is None

        repo = CommissionRepository(db_session)
        assert await repo.count(assignment_id=assignment.id) == 3
        assert await repo.get_by_payment_id("pi_4") is None

    @pytest.mark.asyncio
    async def test_override_lifts_cap(self, db_session, assignment, alice, alice_referral):
        """An override setting the cap to None removes it."""
        await AssignmentManager(db_session).update_override(
            assignment.id, {"limits": {"maxMonthlyCommission": None}}, actor_id="admin-1"
        )
        calculator = CommissionCalculator(db_session)
        for i in range(4):
            result = await calculator.process_payment(
                f"pi_{i}", Decimal("200.00"), user_id=alice.id
            )
            assert result.amount == Decimal("20.00")


class TestCustomerProfile:
    """Integration tests for the one-time CUSTOMER credit."""

    @pytest.mark.asyncio
    async def test_one_time_credit(self, db_session, customer_profile, carol, bob):
        """A CUSTOMER referral is rewarded on its first payment only."""
        customer_assignment = await AssignmentManager(db_session).auto_assign(carol.id)
        await ReferralTracker(db_session).register(
            customer_assignment.referral_code, bob.email, bob.id
        )
        calculator = CommissionCalculator(db_session)

        first = await calculator.process_payment("pi_1", Decimal("15.00"), user_id=bob.id)
        second = await calculator.process_payment("pi_2", Decimal("15.00"), user_id=bob.id)

        assert first.outcome == CommissionOutcome.CREATED
        assert first.amount == Decimal("20.00")
        assert first.commission.commission_rate == Decimal("0")
        assert first.commission.fixed_amount == Decimal("20")
        assert second.outcome == CommissionOutcome.ALREADY_REWARDED


class TestCheckoutReferralCode:
    """Integration tests for registrations synthesized at checkout."""

    @pytest.mark.asyncio
    async def test_code_hint_creates_referral(self, db_session, assignment, bob):
        """A code captured at checkout attributes an unreferred payer."""
        result = await CommissionCalculator(db_session).process_payment(
            "pi_1", Decimal("100.00"), user_id=bob.id, referral_code="partner-one"
        )

        assert result.outcome == CommissionOutcome.CREATED
        referral = await ReferralRepository(db_session).get_by_email(bob.email)
        assert referral.assignment_id == assignment.id
        assert referral.source_ip == PAYMENT_WEBHOOK_SOURCE
        assert referral.status == ReferralStatus.CONVERTED

        current = await AssignmentRepository(db_session).get_current(assignment.id)
        assert current.total_referrals == 1
        assert current.total_converted == 1

    @pytest.mark.asyncio
    async def test_invalid_code_hint(self, db_session, assignment, bob):
        """Unknown checkout codes are ignored."""
        result = await CommissionCalculator(db_session).process_payment(
            "pi_1", Decimal("100.00"), user_id=bob.id, referral_code="RFNOPE99"
        )
        assert result.outcome == CommissionOutcome.NO_REFERRAL

    @pytest.mark.asyncio
    async def test_self_referral_code_hint(self, db_session, assignment, referrer):
        """Referrers paying with their own code earn nothing."""
        result = await CommissionCalculator(db_session).process_payment(
            "pi_1", Decimal("100.00"), user_id=referrer.id,
            referral_code=assignment.referral_code,
        )
        assert result.outcome == CommissionOutcome.NO_REFERRAL

    @pytest.mark.asyncio
    async def test_existing_referral_wins_over_hint(
        self, db_session, assignment, affiliate_profile, alice, alice_referral, carol
    ):
        """The registered attribution is kept when checkout carries another code."""
        other = await AssignmentManager(db_session).create_assignment(
            user_id=carol.id, profile_id=affiliate_profile.id
        )
        result = await CommissionCalculator(db_session).process_payment(
            "pi_1", Decimal("100.00"), user_id=alice.id,
            referral_code=other.referral_code,
        )
        assert result.commission.assignment_id == assignment.id
