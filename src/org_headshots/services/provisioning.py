"""Member profile provisioning against an organization join code."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from org_headshots.domain.errors import (
    ErrorKind,
    Result,
    RetryExhaustedError,
    describe_database_error,
    is_timeout,
)
from org_headshots.domain.models import (
    Identity,
    MemberProfile,
    NewMemberProfile,
    Organization,
)
from org_headshots.services.retry import RetryPolicy
from org_headshots.services.sessions import MemberRepository

DEFAULT_ROLE = "member"
UNKNOWN_MEMBER_NAME = "Unknown User"

_logger = logging.getLogger(__name__)


class OrganizationRepository(Protocol):
    """Persistence interface for organizations."""

    async def get_by_join_code(self, join_code: str) -> Organization | None:
        """Return the organization with this join code, if any."""


@dataclass
class ProfileProvisioner:
    """Creates the member profile for an identity, at most once."""

    organization_repository: OrganizationRepository
    member_repository: MemberRepository
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    organization_timeout_seconds: float = 5.0
    profile_check_timeout_seconds: float = 5.0
    insert_attempts: int = 3
    insert_delay_seconds: float = 1.0
    insert_timeout_seconds: float = 10.0

    async def resolve_organization(
        self, join_code: str, timeout_seconds: float | None = None
    ) -> Result[Organization]:
        """Look up an organization by join code under a deadline."""
        code = (join_code or "").strip()
        if not code:
            return Result.failure(ErrorKind.INVALID_INPUT, "Join code is required")
        try:
            organization = await self.retry_policy.run(
                lambda: self.organization_repository.get_by_join_code(code),
                name="Organization lookup",
                max_attempts=1,
                timeout_seconds=timeout_seconds or self.organization_timeout_seconds,
            )
        except Exception as exc:
            if is_timeout(exc):
                return Result.failure(
                    ErrorKind.TIMEOUT,
                    "Organization lookup timed out. Please try again.",
                    exc,
                )
            cause = exc.last_error if isinstance(exc, RetryExhaustedError) else exc
            return Result.failure(
                ErrorKind.NETWORK_ERROR,
                describe_database_error(cause, "validate organization"),
                exc,
            )
        if organization is None:
            return Result.failure(
                ErrorKind.INVALID_JOIN_CODE,
                "Invalid join code. Please check with your organization.",
            )
        return Result.success(organization)

    async def provision(
        self,
        identity: Identity,
        join_code: str,
        role: str | None = DEFAULT_ROLE,
        name: str | None = None,
    ) -> Result[MemberProfile]:
        """Bind the identity to the organization behind `join_code`.

        Safe to repeat: an existing profile is returned untouched.
        """
        if not identity.id:
            return Result.failure(ErrorKind.INVALID_INPUT, "Invalid user data")
        organization_result = await self.resolve_organization(join_code)
        if not organization_result.ok:
            return Result(error=organization_result.error)
        organization = organization_result.value

        existing = await self._existing_profile(identity.id)
        if existing is not None:
            _logger.info("Profile already exists for %s", identity.id)
            return Result.success(existing)

        new_profile = NewMemberProfile(
            id=identity.id,
            name=derive_display_name(identity, name),
            email=(identity.email or "").strip().lower(),
            organization_id=organization.id,
            role=(role or "").strip() or DEFAULT_ROLE,
        )
        _logger.info(
            "Creating profile for %s in organization %s", identity.id, organization.id
        )
        return await self._insert(new_profile)

    async def _insert(self, new_profile: NewMemberProfile) -> Result[MemberProfile]:
        fixed_delay = RetryPolicy(
            base_delay_seconds=self.insert_delay_seconds,
            max_delay_seconds=self.insert_delay_seconds,
            sleep=self.retry_policy.sleep,
        )
        attempt = 0

        async def insert_once() -> MemberProfile:
            nonlocal attempt
            attempt += 1
            if attempt > 1:
                # A racing request may have created the row already.
                winner = await self._existing_profile(new_profile.id)
                if winner is not None:
                    return winner
            return await self.member_repository.create_profile(new_profile)

        try:
            profile = await fixed_delay.run(
                insert_once,
                name="Member profile insert",
                max_attempts=self.insert_attempts,
                timeout_seconds=self.insert_timeout_seconds,
            )
        except Exception as exc:
            cause = exc.last_error if isinstance(exc, RetryExhaustedError) else exc
            _logger.error("Profile creation failed for %s: %s", new_profile.id, cause)
            return Result.failure(
                ErrorKind.PROVISION_FAILED,
                describe_database_error(cause, "create user profile"),
                cause,
            )
        return Result.success(profile)

    async def _existing_profile(self, member_id: str) -> MemberProfile | None:
        try:
            return await self.retry_policy.run(
                lambda: self.member_repository.get_profile(member_id),
                name="Existing profile check",
                max_attempts=1,
                timeout_seconds=self.profile_check_timeout_seconds,
            )
        except Exception as exc:
            _logger.warning("Existing profile check failed for %s: %s", member_id, exc)
            return None


def derive_display_name(identity: Identity, explicit: str | None = None) -> str:
    """Pick a display name from input, provider metadata or the email."""
    candidates = [
        explicit,
        identity.metadata.get("full_name"),
        identity.metadata.get("name"),
    ]
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    if identity.email and identity.email.split("@")[0].strip():
        return identity.email.split("@")[0].strip()
    return UNKNOWN_MEMBER_NAME
