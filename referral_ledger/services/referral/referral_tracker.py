"""
Referral tracker.

Owns the lifecycle of one referred person: link click, lead capture,
registration, and administrative cancellation. Conversion and
qualification are driven by the commission calculator and the sweeper.
"""

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.assignment import ReferralAssignment
from referral_ledger.models.click import ReferralClick
from referral_ledger.models.enums import (
    REFERRAL_TERMINAL_STATUSES,
    ReferralStatus,
)
from referral_ledger.models.referral import Referral
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.repositories.click_repository import ClickRepository
from referral_ledger.repositories.referral_repository import ReferralRepository
from referral_ledger.services.base_service import BaseService
from referral_ledger.services.referral.attribution_resolver import (
    AttributionResolver,
)
from referral_ledger.utils.datetime_utils import utc_now
from referral_ledger.utils.exceptions import (
    InvalidCodeError,
    InvalidTransitionError,
    NotFoundError,
    SelfReferralError,
)


@dataclass
class AttributionMetadata:
    """Where a referred person came from."""

    source_ip: str | None = None
    user_agent: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None

    def as_columns(self) -> dict[str, str | None]:
        """Column values for a new Referral row."""
        return {
            "source_ip": self.source_ip,
            "user_agent": self.user_agent,
            "utm_source": self.utm_source,
            "utm_medium": self.utm_medium,
            "utm_campaign": self.utm_campaign,
        }


@dataclass
class RegistrationResult:
    """Outcome of a registration or lead capture."""

    referral: Referral
    created: bool = False  # New Referral row
    linked: bool = False  # User id attached to an existing lead


def normalize_email(email: str) -> str:
    """Emails are compared trimmed and lower-cased."""
    return email.strip().lower()


class ReferralTracker(BaseService):
    """Creates and advances Referral rows before conversion."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral tracker."""
        super().__init__(session)
        self.resolver = AttributionResolver(session)
        self.referral_repo = ReferralRepository(session)
        self.assignment_repo = AssignmentRepository(session)
        self.click_repo = ClickRepository(session)

    async def register(
        self,
        code: str,
        referred_email: str,
        referred_user_id: int,
        metadata: AttributionMetadata | None = None,
    ) -> RegistrationResult:
        """
        Attribute a newly registered user to a referrer.

        Safe to call repeatedly for the same (code, email): the Referral is
        created once and ``total_referrals`` is incremented once. An email
        that was referred before keeps its original attribution even when
        it arrives with a different code.

        Args:
            code: Referral code or custom slug
            referred_email: Email of the new user
            referred_user_id: ID of the new user
            metadata: Attribution metadata (IP, UTM)

        Returns:
            RegistrationResult

        Raises:
            InvalidCodeError: Code does not resolve to an active assignment
            SelfReferralError: Email or user belongs to the referrer
        """
        email = normalize_email(referred_email)
        assignment = await self._resolve_for(code, email, referred_user_id)

        existing = await self.referral_repo.get_by_email(email)
        if existing is not None:
            return await self._link_existing(existing, referred_user_id)

        try:
            referral = await self.referral_repo.create(
                assignment_id=assignment.id,
                referred_email=email,
                referred_user_id=referred_user_id,
                status=ReferralStatus.REGISTERED.value,
                registered_at=utc_now(),
                **(metadata or AttributionMetadata()).as_columns(),
            )
        except IntegrityError:
            # Concurrent registration for the same email won the insert
            await self.rollback()
            existing = await self.referral_repo.get_by_email(email)
            if existing is None:
                raise
            return await self._link_existing(existing, referred_user_id)

        await self.assignment_repo.increment(assignment.id, total_referrals=1)
        await self.commit()

        self.logger.info(
            f"Referral registered: assignment {assignment.id} -> "
            f"user {referred_user_id} (referral {referral.id})"
        )
        return RegistrationResult(referral=referral, created=True)

    async def capture_lead(
        self,
        code: str,
        email: str,
        metadata: AttributionMetadata | None = None,
    ) -> RegistrationResult:
        """
        Record a referred email before the person registers (CLICKED).

        Args:
            code: Referral code or custom slug
            email: Lead email
            metadata: Attribution metadata

        Returns:
            RegistrationResult (existing referral returned unchanged)

        Raises:
            InvalidCodeError: Code does not resolve
            SelfReferralError: Email belongs to the referrer
        """
        email = normalize_email(email)
        assignment = await self._resolve_for(code, email, None)

        existing = await self.referral_repo.get_by_email(email)
        if existing is not None:
            return RegistrationResult(referral=existing)

        now = utc_now()
        try:
            referral = await self.referral_repo.create(
                assignment_id=assignment.id,
                referred_email=email,
                status=ReferralStatus.CLICKED.value,
                clicked_at=now,
                **(metadata or AttributionMetadata()).as_columns(),
            )
        except IntegrityError:
            await self.rollback()
            existing = await self.referral_repo.get_by_email(email)
            if existing is None:
                raise
            return RegistrationResult(referral=existing)

        await self.assignment_repo.increment(assignment.id, total_referrals=1)
        await self.commit()

        self.logger.info(
            f"Referral lead captured for assignment {assignment.id} "
            f"(referral {referral.id})"
        )
        return RegistrationResult(referral=referral, created=True)

    async def track_click(
        self,
        code: str,
        ip: str | None = None,
        user_agent: str | None = None,
        referer: str | None = None,
        landing_page: str | None = None,
    ) -> ReferralClick | None:
        """
        Log a visit to a referral link.

        Args:
            code: Referral code or custom slug from the link
            ip: Visitor IP
            user_agent: Visitor user agent
            referer: HTTP referer
            landing_page: Redirect target

        Returns:
            Click row, or None for unknown / inactive codes
        """
        assignment = await self.resolver.resolve(code)
        if assignment is None:
            return None

        click = await self.click_repo.create(
            assignment_id=assignment.id,
            ip=ip,
            user_agent=user_agent,
            referer=referer,
            landing_page=landing_page,
        )
        await self.assignment_repo.increment(assignment.id, total_clicks=1)
        await self.commit()
        return click

    async def cancel_referral(
        self, referral_id: int, reason: str | None = None
    ) -> Referral:
        """
        Administratively cancel a referral.

        Pending commissions of a cancelled referral are cancelled by the
        qualification sweep instead of being qualified.

        Raises:
            NotFoundError: Unknown referral
            InvalidTransitionError: Referral already in a terminal state
        """
        referral = await self.referral_repo.get_by_id(referral_id)
        if referral is None:
            raise NotFoundError(f"Referral {referral_id} not found")

        non_terminal = [
            s for s in ReferralStatus if s not in REFERRAL_TERMINAL_STATUSES
        ]
        moved = await self.referral_repo.transition(
            referral_id,
            non_terminal,
            status=ReferralStatus.CANCELLED.value,
            cancelled_at=utc_now(),
        )
        if not moved:
            raise InvalidTransitionError(
                f"Referral {referral_id} is already {referral.status}"
            )

        await self.commit()
        await self.referral_repo.refresh(referral)
        self.logger.info(f"Referral {referral_id} cancelled: {reason or 'no reason'}")
        return referral

    async def _resolve_for(
        self, code: str, email: str, user_id: int | None
    ) -> ReferralAssignment:
        assignment = await self.resolver.resolve(code)
        if assignment is None:
            self.logger.warning(f"Invalid referral code: {code!r}")
            raise InvalidCodeError("Invalid or inactive referral code")

        referrer_email = normalize_email(assignment.user.email)
        if email == referrer_email or (
            user_id is not None and user_id == assignment.user_id
        ):
            self.logger.warning(
                f"Self-referral rejected for assignment {assignment.id}"
            )
            raise SelfReferralError("Self-referral not allowed")

        return assignment

    async def _link_existing(
        self, referral: Referral, referred_user_id: int
    ) -> RegistrationResult:
        if referral.referred_user_id is not None:
            return RegistrationResult(referral=referral)

        linked = await self.referral_repo.transition(
            referral.id,
            (ReferralStatus.CLICKED, ReferralStatus.REGISTERED),
            referred_user_id=referred_user_id,
            status=ReferralStatus.REGISTERED.value,
            registered_at=utc_now(),
        )
        await self.commit()
        await self.referral_repo.refresh(referral)

        if linked:
            self.logger.info(
                f"Referral {referral.id} linked to user {referred_user_id}"
            )
        return RegistrationResult(referral=referral, linked=linked)
