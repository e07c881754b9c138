"""Integration tests for the qualification sweep, payouts and credits."""

from datetime import timedelta
from decimal import Decimal

import pytest

from referral_ledger.models import (
    AssignmentStatus,
    CommissionStatus,
    PayoutStatus,
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
from referral_ledger.services.referral.adjustment_handler import (
    AdjustmentHandler,
)
from referral_ledger.services.referral.assignment_manager import (
    AssignmentManager,
)
from referral_ledger.services.referral.commission_calculator import (
    CommissionCalculator,
)
from referral_ledger.services.referral.payout_manager import (
    PayoutManager,
    PayoutOutcome,
)
from referral_ledger.services.referral.qualification_sweeper import (
    INVALID_REFERRAL_REASON,
    QualificationSweeper,
    qualify_due_commissions,
)
from referral_ledger.services.referral.referral_tracker import ReferralTracker
from referral_ledger.utils.datetime_utils import utc_now
from referral_ledger.utils.exceptions import (
    AssignmentNotFoundError,
    InvalidTransitionError,
)


def after_grace():
    """A moment past the 30 day AFFILIATE grace period."""
    return utc_now() + timedelta(days=31)


async def _pay(session, user, payment_id, amount):
    result = await CommissionCalculator(session).process_payment(
        payment_id, Decimal(amount), user_id=user.id
    )
    return result.commission


async def _assignment(session, assignment_id):
    return await AssignmentRepository(session).get_current(assignment_id)


class TestQualificationSweep:
    """Integration tests for QualificationSweeper.run."""

    @pytest.mark.asyncio
    async def test_not_due_yet(self, db_session, assignment, alice, alice_referral):
        """Commissions inside the grace period are left alone."""
        await _pay(db_session, alice, "pi_1", "100.00")

        result = await QualificationSweeper(db_session).run()

        assert result.processed == 0
        commission = await CommissionRepository(db_session).get_by_payment_id("pi_1")
        assert commission.status == CommissionStatus.PENDING

    @pytest.mark.asyncio
    async def test_qualifies_due_commission(
        self, db_session, assignment, alice, alice_referral
    ):
        """Due commissions count as earned and qualify the referral."""
        await _pay(db_session, alice, "pi_1", "100.00")

        result = await QualificationSweeper(db_session).run(now=after_grace())

        assert result.qualified == 1
        assert result.earned == Decimal("10.00")
        assert result.errors == 0

        commission = await CommissionRepository(db_session).get_by_payment_id("pi_1")
        assert commission.status == CommissionStatus.QUALIFIED
        assert commission.qualified_at is not None

        await db_session.refresh(alice_referral)
        assert alice_referral.status == ReferralStatus.QUALIFIED

        current = await _assignment(db_session, assignment.id)
        assert current.total_earned == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_second_run_adds_nothing(
        self, db_session, assignment, alice, alice_referral
    ):
        """Running the sweep again never double-counts."""
        await _pay(db_session, alice, "pi_1", "100.00")
        sweeper = QualificationSweeper(db_session)
        now = after_grace()

        await sweeper.run(now=now)
        again = await sweeper.run(now=now)

        assert again.processed == 0
        current = await _assignment(db_session, assignment.id)
        assert current.total_earned == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_adjusted_amount_is_earned(
        self, db_session, assignment, alice, alice_referral
    ):
        """Partially refunded commissions qualify at the adjusted amount."""
        await _pay(db_session, alice, "pi_1", "100.00")
        await AdjustmentHandler(db_session).handle_refund(
            "pi_1", Decimal("50.00"), False
        )

        result = await QualificationSweeper(db_session).run(now=after_grace())

        assert result.earned == Decimal("5.00")
        current = await _assignment(db_session, assignment.id)
        assert current.total_earned == Decimal("5.00")

    @pytest.mark.asyncio
    async def test_refund_between_selection_and_qualification(
        self, db_session, assignment, alice, alice_referral, monkeypatch
    ):
        """A refund committed after the batch is selected lowers what is earned."""
        await _pay(db_session, alice, "pi_1", "100.00")
        sweeper = QualificationSweeper(db_session)
        settle = sweeper._settle

        async def refund_then_settle(commission_id, now, result):
            await AdjustmentHandler(db_session).handle_refund(
                "pi_1", Decimal("50.00"), False
            )
            await settle(commission_id, now, result)

        monkeypatch.setattr(sweeper, "_settle", refund_then_settle)

        result = await sweeper.run(now=after_grace())

        assert result.qualified == 1
        assert result.earned == Decimal("5.00")
        commission = await CommissionRepository(db_session).get_by_payment_id("pi_1")
        assert commission.status == CommissionStatus.QUALIFIED
        assert commission.effective_amount == Decimal("5.00")
        current = await _assignment(db_session, assignment.id)
        assert current.total_earned == Decimal("5.00")

    @pytest.mark.asyncio
    async def test_terminal_referral_cancels(
        self, db_session, assignment, alice, alice_referral
    ):
        """Commissions of cancelled referrals never qualify."""
        await _pay(db_session, alice, "pi_1", "100.00")
        await ReferralTracker(db_session).cancel_referral(alice_referral.id, "fraud")

        result = await QualificationSweeper(db_session).run(now=after_grace())

        assert result.cancelled == 1
        assert result.qualified == 0
        commission = await CommissionRepository(db_session).get_by_payment_id("pi_1")
        assert commission.status == CommissionStatus.CANCELLED
        assert commission.adjustment_reason == INVALID_REFERRAL_REASON

        current = await _assignment(db_session, assignment.id)
        assert current.total_earned == Decimal("0")

    @pytest.mark.asyncio
    async def test_batch_limit(self, db_session, assignment, alice, alice_referral):
        """A run processes at most ``limit`` rows."""
        await _pay(db_session, alice, "pi_1", "100.00")
        await _pay(db_session, alice, "pi_2", "100.00")
        sweeper = QualificationSweeper(db_session)

        first = await sweeper.run(now=after_grace(), limit=1)
        second = await sweeper.run(now=after_grace(), limit=1)

        assert first.qualified == 1
        assert second.qualified == 1
        current = await _assignment(db_session, assignment.id)
        assert current.total_earned == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_customer_credit_qualifies_immediately(
        self, db_session, customer_profile, carol, bob
    ):
        """CUSTOMER rewards have no grace period."""
        customer_assignment = await AssignmentManager(db_session).auto_assign(carol.id)
        await ReferralTracker(db_session).register(
            customer_assignment.referral_code, bob.email, bob.id
        )
        await _pay(db_session, bob, "pi_1", "15.00")

        result = await qualify_due_commissions(db_session)

        assert result.qualified == 1
        assert result.earned == Decimal("20.00")


class TestPayouts:
    """Integration tests for PayoutManager."""

    @pytest.fixture
    async def earned(self, db_session, assignment, alice, alice_referral):
        """25.00 qualified across two commissions."""
        await _pay(db_session, alice, "pi_1", "100.00")
        await _pay(db_session, alice, "pi_2", "150.00")
        await QualificationSweeper(db_session).run(now=after_grace())
        return assignment

    @pytest.mark.asyncio
    async def test_request_and_complete(self, db_session, earned, referrer):
        """A completed payout pays every linked commission."""
        payouts = PayoutManager(db_session)

        result = await payouts.request_payout(earned.id, actor_id=str(referrer.id))

        assert result.success is True
        assert result.outcome == PayoutOutcome.REQUESTED
        assert result.available == Decimal("25.00")
        assert result.threshold == Decimal("10")
        payout = result.payout
        assert payout.amount == Decimal("25.00")
        assert payout.status == PayoutStatus.PENDING
        assert payout.currency == "USD"

        current = await _assignment(db_session, earned.id)
        assert await payouts.available_balance(current) == Decimal("0")

        payout = await payouts.mark_payout_processing(payout.id, "tr_1")
        assert payout.status == PayoutStatus.PROCESSING
        assert payout.external_reference == "tr_1"

        payout = await payouts.complete_payout(payout.id)
        assert payout.status == PayoutStatus.COMPLETED
        assert payout.processed_at is not None

        repo = CommissionRepository(db_session)
        commissions = [
            await repo.get_by_payment_id("pi_1"),
            await repo.get_by_payment_id("pi_2"),
        ]
        assert {c.status for c in commissions} == {CommissionStatus.PAID}
        assert all(c.payout_id == payout.id for c in commissions)

        current = await _assignment(db_session, earned.id)
        assert current.total_paid_out == Decimal("25.00")
        assert await payouts.available_balance(current) == Decimal("0")

        with pytest.raises(InvalidTransitionError):
            await payouts.complete_payout(payout.id)

        audit = AuditLogRepository(db_session)
        assert await audit.count(action="PAYOUT_REQUESTED") == 1
        assert await audit.count(action="PAYOUT_COMPLETED") == 1

    @pytest.mark.asyncio
    async def test_nothing_left_after_request(self, db_session, earned, referrer):
        """Linked commissions are not requested twice."""
        payouts = PayoutManager(db_session)
        await payouts.request_payout(earned.id, actor_id=str(referrer.id))

        again = await payouts.request_payout(earned.id, actor_id=str(referrer.id))

        assert again.outcome == PayoutOutcome.NOTHING_TO_PAY
        assert again.success is False

    @pytest.mark.asyncio
    async def test_failed_payout_releases_commissions(
        self, db_session, earned, referrer
    ):
        """Commissions of a failed payout can be requested again."""
        payouts = PayoutManager(db_session)
        first = await payouts.request_payout(earned.id, actor_id=str(referrer.id))

        failed = await payouts.fail_payout(first.payout.id, "account closed")

        assert failed.status == PayoutStatus.FAILED
        assert failed.failure_reason == "account closed"
        commissions = await CommissionRepository(db_session).get_payable(earned.id)
        assert len(commissions) == 2

        retry = await payouts.request_payout(earned.id, actor_id=str(referrer.id))
        assert retry.outcome == PayoutOutcome.REQUESTED
        assert retry.payout.id != first.payout.id
        assert retry.payout.amount == Decimal("25.00")

    @pytest.mark.asyncio
    async def test_chargeback_while_payout_in_flight(
        self, db_session, earned, referrer
    ):
        """Only commissions still payable at completion count as paid out."""
        payouts = PayoutManager(db_session)
        requested = await payouts.request_payout(earned.id, actor_id=str(referrer.id))

        await AdjustmentHandler(db_session).handle_chargeback("pi_2")
        payout = await payouts.complete_payout(requested.payout.id)

        assert payout.status == PayoutStatus.COMPLETED
        repo = CommissionRepository(db_session)
        assert (await repo.get_by_payment_id("pi_1")).status == CommissionStatus.PAID
        assert (
            await repo.get_by_payment_id("pi_2")
        ).status == CommissionStatus.CANCELLED

        current = await _assignment(db_session, earned.id)
        assert current.total_earned == Decimal("10.00")
        assert current.total_paid_out == Decimal("10.00")
        assert await payouts.available_balance(current) == Decimal("0")

    @pytest.mark.asyncio
    async def test_partial_refund_while_payout_in_flight(
        self, db_session, earned, referrer
    ):
        """A prorated commission is paid out at its adjusted amount."""
        payouts = PayoutManager(db_session)
        requested = await payouts.request_payout(earned.id, actor_id=str(referrer.id))

        await AdjustmentHandler(db_session).handle_refund(
            "pi_1", Decimal("50.00"), False
        )
        await payouts.complete_payout(requested.payout.id)

        current = await _assignment(db_session, earned.id)
        assert current.total_earned == Decimal("20.00")
        assert current.total_paid_out == Decimal("20.00")
        assert await payouts.available_balance(current) == Decimal("0")

    @pytest.mark.asyncio
    async def test_below_threshold(
        self, db_session, assignment, alice, alice_referral, referrer
    ):
        """Balances under the policy minimum are not paid."""
        await _pay(db_session, alice, "pi_1", "50.00")
        await QualificationSweeper(db_session).run(now=after_grace())

        result = await PayoutManager(db_session).request_payout(
            assignment.id, actor_id=str(referrer.id)
        )

        assert result.outcome == PayoutOutcome.BELOW_THRESHOLD
        assert result.available == Decimal("5.00")
        assert result.threshold == Decimal("10")
        assert result.payout is None

    @pytest.mark.asyncio
    async def test_nothing_qualified(self, db_session, assignment, referrer):
        """No qualified commissions, nothing to pay."""
        result = await PayoutManager(db_session).request_payout(
            assignment.id, actor_id=str(referrer.id)
        )
        assert result.outcome == PayoutOutcome.NOTHING_TO_PAY

    @pytest.mark.asyncio
    async def test_suspended_assignment(self, db_session, earned, referrer):
        """Suspended referrers cannot request payouts."""
        await AssignmentManager(db_session).set_assignment_status(
            earned.id, AssignmentStatus.SUSPENDED, actor_id="admin-1"
        )
        result = await PayoutManager(db_session).request_payout(
            earned.id, actor_id=str(referrer.id)
        )
        assert result.outcome == PayoutOutcome.ASSIGNMENT_INACTIVE

    @pytest.mark.asyncio
    async def test_unknown_assignment(self, db_session):
        """Unknown assignments raise."""
        with pytest.raises(AssignmentNotFoundError):
            await PayoutManager(db_session).request_payout(999, actor_id="1")


class TestCredits:
    """Integration tests for CUSTOMER bill credits."""

    @pytest.mark.asyncio
    async def test_record_credit(self, db_session, customer_profile, carol, bob):
        """A qualified credit is applied once."""
        customer_assignment = await AssignmentManager(db_session).auto_assign(carol.id)
        await ReferralTracker(db_session).register(
            customer_assignment.referral_code, bob.email, bob.id
        )
        commission = await _pay(db_session, bob, "pi_1", "15.00")
        await qualify_due_commissions(db_session)
        payouts = PayoutManager(db_session)

        credited = await payouts.record_credit(commission.id, actor_id="billing")

        assert credited.status == CommissionStatus.CREDITED
        assert credited.paid_at is not None
        current = await _assignment(db_session, customer_assignment.id)
        assert current.total_earned == Decimal("20.00")
        assert current.total_paid_out == Decimal("20.00")
        assert await AuditLogRepository(db_session).count(action="CREDIT_APPLIED") == 1

        with pytest.raises(InvalidTransitionError):
            await payouts.record_credit(commission.id, actor_id="billing")

    @pytest.mark.asyncio
    async def test_pending_credit_rejected(self, db_session, assignment, alice, alice_referral):
        """Only QUALIFIED commissions can be credited."""
        commission = await _pay(db_session, alice, "pi_1", "100.00")
        with pytest.raises(InvalidTransitionError):
            await PayoutManager(db_session).record_credit(commission.id, actor_id="billing")
