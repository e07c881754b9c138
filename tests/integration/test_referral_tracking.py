"""Integration tests for clicks, leads and registrations."""

import pytest

from referral_ledger.models import AssignmentStatus, ReferralStatus
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.services.referral.assignment_manager import (
    AssignmentManager,
)
from referral_ledger.services.referral.referral_tracker import (
    AttributionMetadata,
    ReferralTracker,
)
from referral_ledger.utils.exceptions import (
    InvalidCodeError,
    InvalidTransitionError,
    SelfReferralError,
)


async def _counters(session, assignment_id):
    return await AssignmentRepository(session).get_current(assignment_id)


class TestRegister:
    """Integration tests for ReferralTracker.register."""

    @pytest.mark.asyncio
    async def test_register_creates_referral(self, db_session, assignment, alice):
        """A valid code creates a REGISTERED referral and counts it."""
        tracker = ReferralTracker(db_session)

        result = await tracker.register(
            code=assignment.referral_code.lower(),
            referred_email="  Alice@Example.com ",
            referred_user_id=alice.id,
            metadata=AttributionMetadata(
                source_ip="203.0.113.5", utm_source="newsletter"
            ),
        )

        assert result.created is True
        referral = result.referral
        assert referral.referred_email == "alice@example.com"
        assert referral.referred_user_id == alice.id
        assert referral.status == ReferralStatus.REGISTERED
        assert referral.source_ip == "203.0.113.5"
        assert referral.utm_source == "newsletter"

        current = await _counters(db_session, assignment.id)
        assert current.total_referrals == 1

    @pytest.mark.asyncio
    async def test_register_by_custom_slug(self, db_session, assignment, alice):
        """Custom slugs resolve case-insensitively."""
        result = await ReferralTracker(db_session).register(
            code="PARTNER-ONE",
            referred_email=alice.email,
            referred_user_id=alice.id,
        )
        assert result.referral.assignment_id == assignment.id

    @pytest.mark.asyncio
    async def test_repeat_registration_is_idempotent(
        self, db_session, assignment, alice
    ):
        """The same registration twice counts once."""
        tracker = ReferralTracker(db_session)
        first = await tracker.register(
            assignment.referral_code, alice.email, alice.id
        )
        second = await tracker.register(
            assignment.referral_code, alice.email, alice.id
        )

        assert second.created is False
        assert second.linked is False
        assert second.referral.id == first.referral.id

        current = await _counters(db_session, assignment.id)
        assert current.total_referrals == 1

    @pytest.mark.asyncio
    async def test_first_code_keeps_attribution(
        self, db_session, assignment, affiliate_profile, alice, bob
    ):
        """An email referred before is not moved to another referrer."""
        other = await AssignmentManager(db_session).create_assignment(
            user_id=bob.id, profile_id=affiliate_profile.id
        )
        tracker = ReferralTracker(db_session)
        await tracker.register(assignment.referral_code, alice.email, alice.id)

        result = await tracker.register(other.referral_code, alice.email, alice.id)

        assert result.referral.assignment_id == assignment.id
        current = await _counters(db_session, other.id)
        assert current.total_referrals == 0

    @pytest.mark.asyncio
    async def test_self_referral_by_email(self, db_session, assignment, referrer):
        """Referrers cannot refer their own email."""
        with pytest.raises(SelfReferralError):
            await ReferralTracker(db_session).register(
                assignment.referral_code, "REFERRER@example.com", 9999
            )

    @pytest.mark.asyncio
    async def test_self_referral_by_user_id(self, db_session, assignment, referrer):
        """Referrers cannot refer their own account under another email."""
        with pytest.raises(SelfReferralError):
            await ReferralTracker(db_session).register(
                assignment.referral_code, "alias@example.com", referrer.id
            )

    @pytest.mark.asyncio
    async def test_unknown_code(self, db_session, assignment, alice):
        """Unknown codes are rejected."""
        with pytest.raises(InvalidCodeError):
            await ReferralTracker(db_session).register(
                "RFNOPE99", alice.email, alice.id
            )

    @pytest.mark.asyncio
    async def test_suspended_assignment_code(self, db_session, assignment, alice):
        """Codes of suspended assignments do not resolve."""
        await AssignmentManager(db_session).set_assignment_status(
            assignment.id, AssignmentStatus.SUSPENDED, actor_id="admin-1"
        )
        with pytest.raises(InvalidCodeError):
            await ReferralTracker(db_session).register(
                assignment.referral_code, alice.email, alice.id
            )


class TestLeadCapture:
    """Integration tests for leads captured before registration."""

    @pytest.mark.asyncio
    async def test_lead_then_registration(self, db_session, assignment, bob):
        """A CLICKED lead is linked on registration and counted once."""
        tracker = ReferralTracker(db_session)

        lead = await tracker.capture_lead(assignment.referral_code, bob.email)
        assert lead.created is True
        assert lead.referral.status == ReferralStatus.CLICKED
        assert lead.referral.referred_user_id is None

        result = await tracker.register(
            assignment.referral_code, bob.email, bob.id
        )

        assert result.linked is True
        assert result.referral.id == lead.referral.id
        assert result.referral.status == ReferralStatus.REGISTERED
        assert result.referral.referred_user_id == bob.id

        current = await _counters(db_session, assignment.id)
        assert current.total_referrals == 1

    @pytest.mark.asyncio
    async def test_repeat_lead(self, db_session, assignment, bob):
        """Capturing the same lead twice returns the first row."""
        tracker = ReferralTracker(db_session)
        first = await tracker.capture_lead(assignment.referral_code, bob.email)
        second = await tracker.capture_lead(assignment.referral_code, bob.email)

        assert second.created is False
        assert second.referral.id == first.referral.id


class TestClicks:
    """Integration tests for click tracking."""

    @pytest.mark.asyncio
    async def test_track_click(self, db_session, assignment):
        """Clicks are logged and counted."""
        tracker = ReferralTracker(db_session)

        click = await tracker.track_click(
            "partner-one",
            ip="198.51.100.7",
            user_agent="Mozilla/5.0",
            referer="https://blog.example.com/post",
            landing_page="/pricing",
        )
        await tracker.track_click(assignment.referral_code)

        assert click is not None
        assert click.assignment_id == assignment.id
        assert click.landing_page == "/pricing"

        current = await _counters(db_session, assignment.id)
        assert current.total_clicks == 2

    @pytest.mark.asyncio
    async def test_unknown_code_click(self, db_session, assignment):
        """Unknown codes are ignored."""
        assert await ReferralTracker(db_session).track_click("RFNOPE99") is None


class TestCancelReferral:
    """Integration tests for administrative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel(self, db_session, alice_referral):
        """Non-terminal referrals can be cancelled once."""
        tracker = ReferralTracker(db_session)

        referral = await tracker.cancel_referral(alice_referral.id, "duplicate account")
        assert referral.status == ReferralStatus.CANCELLED

        with pytest.raises(InvalidTransitionError):
            await tracker.cancel_referral(alice_referral.id)

