"""
Assignment manager.

Creates referrer assignments (self-serve on first payment or by an admin),
generates their codes, and changes their status and policy override.
"""

import re
import secrets
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.config.constants import (
    REFERRAL_CODE_ALPHABET,
    REFERRAL_CODE_MAX_ATTEMPTS,
    SYSTEM_ACTOR_ID,
)
from referral_ledger.config.settings import settings
from referral_ledger.models.assignment import ReferralAssignment
from referral_ledger.models.enums import (
    ActorType,
    AssignmentStatus,
    AuditAction,
    PayoutMethod,
    ProfileType,
)
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.repositories.audit_log_repository import (
    AuditLogRepository,
)
from referral_ledger.repositories.profile_repository import ProfileRepository
from referral_ledger.repositories.user_repository import UserRepository
from referral_ledger.services.base_service import BaseService
from referral_ledger.services.referral.policy import (
    RewardPolicy,
    merge_policy,
    normalize_keys,
)
from referral_ledger.utils.exceptions import (
    AssignmentNotFoundError,
    ConflictError,
    DuplicateAssignmentError,
    InvalidEventError,
    InvalidTransitionError,
    ProfileNotFoundError,
    UserNotFoundError,
)


SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{2,63}$")


def generate_referral_code(
    prefix: str | None = None, length: int | None = None
) -> str:
    """
    Generate a random referral code.

    Args:
        prefix: Code prefix (defaults to settings)
        length: Random characters after the prefix (defaults to settings)

    Returns:
        Upper-case code such as ``RF7KQ2MX``
    """
    prefix = settings.referral_code_prefix if prefix is None else prefix
    length = length or settings.referral_code_length
    suffix = "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length))
    return f"{prefix}{suffix}".upper()


def normalize_slug(slug: str) -> str:
    """
    Validate and normalize a custom slug.

    Raises:
        InvalidEventError: Slug has invalid characters or length
    """
    slug = slug.strip().lower()
    if not SLUG_PATTERN.match(slug):
        raise InvalidEventError(
            "Custom slug must be 3-64 characters: letters, digits and dashes"
        )
    return slug


class AssignmentManager(BaseService):
    """Assignment lifecycle: creation, status, override."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize assignment manager."""
        super().__init__(session)
        self.assignment_repo = AssignmentRepository(session)
        self.profile_repo = ProfileRepository(session)
        self.user_repo = UserRepository(session)
        self.audit_repo = AuditLogRepository(session)

    async def generate_unique_code(self) -> str:
        """
        Generate a code not used by any assignment.

        The unique constraint on ``referral_code`` still guards the insert.

        Raises:
            ConflictError: No free code after bounded attempts
        """
        for _ in range(REFERRAL_CODE_MAX_ATTEMPTS):
            code = generate_referral_code()
            if not await self.assignment_repo.code_taken(code):
                return code
        raise ConflictError("Could not generate a unique referral code")

    async def auto_assign(self, user_id: int) -> ReferralAssignment | None:
        """
        Make a paying user a referrer under the active CUSTOMER profile.

        Args:
            user_id: User ID

        Returns:
            The user's assignment (existing or new), or None when no
            CUSTOMER profile is active

        Raises:
            UserNotFoundError: Unknown user
        """
        existing = await self.assignment_repo.get_by_user(user_id)
        if existing is not None:
            return existing

        if await self.user_repo.get_by_id(user_id) is None:
            raise UserNotFoundError(f"User {user_id} not found")

        profile = await self.profile_repo.get_active_by_type(ProfileType.CUSTOMER)
        if profile is None:
            self.logger.info("No active CUSTOMER profile, skipping auto-assign")
            return None

        code = await self.generate_unique_code()
        try:
            assignment = await self.assignment_repo.create(
                user_id=user_id,
                profile_id=profile.id,
                referral_code=code,
                status=AssignmentStatus.ACTIVE.value,
            )
        except IntegrityError:
            # Concurrent auto-assign for the same user
            await self.rollback()
            existing = await self.assignment_repo.get_by_user(user_id)
            if existing is None:
                raise
            return existing

        await self.commit()
        self.logger.info(
            f"Auto-assigned user {user_id} to profile {profile.id} "
            f"with code {code}"
        )
        return assignment

    async def create_assignment(
        self,
        user_id: int,
        profile_id: int,
        custom_slug: str | None = None,
        config_override: dict[str, Any] | None = None,
        actor_id: str = SYSTEM_ACTOR_ID,
        payout_method: PayoutMethod = PayoutMethod.MANUAL,
        expires_at: datetime | None = None,
    ) -> ReferralAssignment:
        """
        Create an assignment on behalf of an administrator.

        Args:
            user_id: Referrer
            profile_id: Policy template
            custom_slug: Optional vanity code
            config_override: Partial policy merged over the profile's
            actor_id: Administrator performing the action
            payout_method: How payouts are sent
            expires_at: Optional end of the assignment

        Returns:
            Created assignment

        Raises:
            UserNotFoundError: Unknown user
            ProfileNotFoundError: Unknown profile
            DuplicateAssignmentError: User already assigned or slug taken
            InvalidPolicyError: Override does not parse
        """
        if await self.user_repo.get_by_id(user_id) is None:
            raise UserNotFoundError(f"User {user_id} not found")

        profile = await self.profile_repo.get_by_id(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"Profile {profile_id} not found")
        if not profile.is_active:
            raise ConflictError(f"Profile {profile_id} is not active")

        if await self.assignment_repo.get_by_user(user_id) is not None:
            raise DuplicateAssignmentError(f"User {user_id} already has an assignment")

        slug = normalize_slug(custom_slug) if custom_slug else None
        if slug and await self.assignment_repo.code_taken(slug):
            raise DuplicateAssignmentError(f"Slug '{slug}' is already taken")

        override = normalize_keys(config_override) if config_override else None
        RewardPolicy.from_dict(merge_policy(profile.config, override))

        code = await self.generate_unique_code()
        try:
            assignment = await self.assignment_repo.create(
                user_id=user_id,
                profile_id=profile.id,
                referral_code=code,
                custom_slug=slug,
                config_override=override,
                payout_method=payout_method.value,
                expires_at=expires_at,
                status=AssignmentStatus.ACTIVE.value,
            )
        except IntegrityError as e:
            await self.rollback()
            raise DuplicateAssignmentError(
                "Assignment conflicts with an existing user, code or slug"
            ) from e

        await self.audit_repo.append(
            AuditAction.ASSIGNMENT_CREATED,
            actor_id=actor_id,
            actor_type=ActorType.ADMIN,
            assignment_id=assignment.id,
            metadata={
                "user_id": user_id,
                "profile_id": profile.id,
                "referral_code": code,
                "custom_slug": slug,
            },
        )
        await self.commit()

        self.logger.info(
            f"Assignment {assignment.id} created for user {user_id} "
            f"(profile {profile.id}, code {code}) by {actor_id}"
        )
        return assignment

    async def set_assignment_status(
        self,
        assignment_id: int,
        status: AssignmentStatus,
        actor_id: str,
        reason: str | None = None,
    ) -> ReferralAssignment:
        """
        Suspend, reactivate or terminate an assignment.

        TERMINATED is final.

        Raises:
            AssignmentNotFoundError: Unknown assignment
            InvalidTransitionError: Assignment is terminated
        """
        assignment = await self._get(assignment_id)
        current = AssignmentStatus(assignment.status)
        if current == status:
            return assignment
        if current == AssignmentStatus.TERMINATED:
            raise InvalidTransitionError(f"Assignment {assignment_id} is terminated")

        moved = await self.assignment_repo.transition(
            assignment_id, (current,), status=status.value
        )
        if not moved:
            raise InvalidTransitionError(
                f"Assignment {assignment_id} changed concurrently, retry"
            )

        await self.audit_repo.append(
            AuditAction.ASSIGNMENT_STATUS_CHANGED,
            actor_id=actor_id,
            actor_type=ActorType.ADMIN,
            assignment_id=assignment_id,
            metadata={"from": current.value, "to": status.value, "reason": reason},
        )
        await self.commit()
        await self.assignment_repo.refresh(assignment)

        self.logger.info(
            f"Assignment {assignment_id} status {current} -> {status} by {actor_id}"
        )
        return assignment

    async def update_override(
        self,
        assignment_id: int,
        config_override: dict[str, Any] | None,
        actor_id: str,
    ) -> ReferralAssignment:
        """
        Replace an assignment's policy override (None clears it).

        Raises:
            AssignmentNotFoundError: Unknown assignment
            InvalidPolicyError: Merged policy does not parse
        """
        assignment = await self._get(assignment_id)
        override = normalize_keys(config_override) if config_override else None
        RewardPolicy.from_dict(merge_policy(assignment.profile.config, override))

        previous = assignment.config_override
        assignment.config_override = override
        await self.audit_repo.append(
            AuditAction.ASSIGNMENT_OVERRIDE_UPDATED,
            actor_id=actor_id,
            actor_type=ActorType.ADMIN,
            assignment_id=assignment_id,
            metadata={"previous": previous, "current": override},
        )
        await self.commit()

        self.logger.info(f"Assignment {assignment_id} override updated by {actor_id}")
        return assignment

    async def _get(self, assignment_id: int) -> ReferralAssignment:
        assignment = await self.assignment_repo.get_current(assignment_id)
        if assignment is None:
            raise AssignmentNotFoundError(f"Assignment {assignment_id} not found")
        return assignment
