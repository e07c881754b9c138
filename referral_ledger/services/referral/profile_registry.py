"""
Profile registry.

Stores reusable reward policy templates. Policies are validated by parsing
them on every write.
"""

from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.enums import ProfileType
from referral_ledger.models.profile import ReferralProfile
from referral_ledger.repositories.assignment_repository import (
    AssignmentRepository,
)
from referral_ledger.repositories.profile_repository import ProfileRepository
from referral_ledger.services.base_service import BaseService
from referral_ledger.services.referral.policy import RewardPolicy, normalize_keys
from referral_ledger.utils.datetime_utils import utc_now
from referral_ledger.utils.exceptions import (
    ConflictError,
    ProfileInUseError,
    ProfileNotFoundError,
)


class ProfileRegistry(BaseService):
    """CRUD for referral profiles."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize profile registry."""
        super().__init__(session)
        self.profile_repo = ProfileRepository(session)
        self.assignment_repo = AssignmentRepository(session)

    async def create_profile(
        self,
        name: str,
        profile_type: ProfileType,
        config: dict[str, Any],
        description: str | None = None,
        is_active: bool = True,
    ) -> ReferralProfile:
        """
        Create a profile.

        Args:
            name: Unique profile name
            profile_type: CUSTOMER or AFFILIATE
            config: Policy JSON (camelCase keys are accepted)
            description: Free text
            is_active: Available for new assignments

        Returns:
            Created profile

        Raises:
            InvalidPolicyError: Policy does not parse
            ConflictError: Name already used
        """
        config = normalize_keys(config or {})
        RewardPolicy.from_dict(config)

        try:
            profile = await self.profile_repo.create(
                name=name.strip(),
                type=ProfileType(profile_type).value,
                config=config,
                description=description,
                is_active=is_active,
            )
        except IntegrityError as e:
            await self.rollback()
            raise ConflictError(f"Profile '{name}' already exists") from e

        await self.commit()
        self.logger.info(f"Profile {profile.id} '{profile.name}' created ({profile.type})")
        return profile

    async def update_profile_config(
        self, profile_id: int, config: dict[str, Any]
    ) -> ReferralProfile:
        """
        Replace a profile's policy. Applies to existing assignments too.

        Raises:
            ProfileNotFoundError: Unknown profile
            InvalidPolicyError: Policy does not parse
        """
        profile = await self._get(profile_id)
        config = normalize_keys(config or {})
        RewardPolicy.from_dict(config)

        profile.config = config
        profile.updated_at = utc_now()
        await self.commit()

        self.logger.info(f"Profile {profile_id} policy updated")
        return profile

    async def set_profile_active(
        self, profile_id: int, is_active: bool
    ) -> ReferralProfile:
        """Enable or disable a profile for new assignments."""
        profile = await self._get(profile_id)
        profile.is_active = is_active
        profile.updated_at = utc_now()
        await self.commit()

        self.logger.info(
            f"Profile {profile_id} {'activated' if is_active else 'deactivated'}"
        )
        return profile

    async def get_profile(self, profile_id: int) -> ReferralProfile:
        """Get a profile or raise ProfileNotFoundError."""
        return await self._get(profile_id)

    async def get_active_profile(
        self, profile_type: ProfileType
    ) -> ReferralProfile | None:
        """Get the active profile of a type."""
        return await self.profile_repo.get_active_by_type(profile_type)

    async def list_profiles(self) -> list[ReferralProfile]:
        """All profiles ordered by id."""
        return await self.profile_repo.find_by()

    async def delete_profile(self, profile_id: int) -> None:
        """
        Delete an unused profile.

        Raises:
            ProfileNotFoundError: Unknown profile
            ProfileInUseError: Assignments still reference it
        """
        profile = await self._get(profile_id)
        in_use = await self.assignment_repo.count_for_profile(profile_id)
        if in_use:
            raise ProfileInUseError(
                f"Profile {profile_id} is used by {in_use} assignment(s)"
            )

        await self.session.delete(profile)
        await self.commit()
        self.logger.info(f"Profile {profile_id} deleted")

    async def _get(self, profile_id: int) -> ReferralProfile:
        profile = await self.profile_repo.get_by_id(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"Profile {profile_id} not found")
        return profile
