"""
Attribution resolver.

Maps a referral code or custom slug to an active assignment and computes
the assignment's effective reward policy. Read-only.
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.assignment import ReferralAssignment
from referral_ledger.models.enums import ProfileType
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.services.referral.policy import RewardPolicy, merge_policy
from referral_ledger.utils.datetime_utils import utc_now


@dataclass
class ResolvedAttribution:
    """Active assignment together with its effective policy."""

    assignment: ReferralAssignment
    policy: RewardPolicy

    @property
    def profile_type(self) -> ProfileType:
        """Profile kind (CUSTOMER / AFFILIATE)."""
        return ProfileType(self.assignment.profile.type)


def effective_policy(assignment: ReferralAssignment) -> RewardPolicy:
    """
    Compute an assignment's effective policy (profile merged with override).

    Args:
        assignment: Assignment with its profile loaded

    Returns:
        Parsed policy
    """
    merged = merge_policy(assignment.profile.config, assignment.config_override)
    return RewardPolicy.from_dict(merged)


class AttributionResolver:
    """Resolves referral codes. Unknown, expired and suspended look the same."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize attribution resolver.

        Args:
            session: Async database session
        """
        self.session = session
        self.assignment_repo = AssignmentRepository(session)

    async def resolve(self, code: str | None) -> ReferralAssignment | None:
        """
        Find the active assignment for a code or slug.

        Args:
            code: Referral code or custom slug as entered by the user

        Returns:
            Assignment or None (fail closed)
        """
        if not code or not code.strip():
            return None

        assignment = await self.assignment_repo.get_active_by_code(
            code.strip(), utc_now()
        )
        if assignment is None:
            logger.debug(f"Referral code not resolved: {code!r}")
        return assignment

    async def resolve_with_policy(
        self, code: str | None
    ) -> ResolvedAttribution | None:
        """
        Resolve a code and compute the effective policy.

        Args:
            code: Referral code or custom slug

        Returns:
            ResolvedAttribution or None
        """
        assignment = await self.resolve(code)
        if assignment is None:
            return None
        return ResolvedAttribution(
            assignment=assignment, policy=effective_policy(assignment)
        )
