"""Organization member directory."""

from dataclasses import dataclass, field

from org_headshots.domain.errors import (
    ErrorKind,
    Result,
    RetryExhaustedError,
    describe_database_error,
    is_timeout,
)
from org_headshots.domain.models import OrgMember
from org_headshots.services.retry import RetryPolicy
from org_headshots.services.sessions import MemberRepository

MEMBER_LIST_LIMIT = 50


@dataclass
class MemberDirectory:
    """Lists members sharing an organization."""

    member_repository: MemberRepository
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    timeout_seconds: float = 8.0

    async def list_members(self, organization_id: str) -> Result[list[OrgMember]]:
        """Return up to 50 members of the organization ordered by name."""
        if not organization_id:
            return Result.failure(
                ErrorKind.INVALID_INPUT, "Organization ID is required"
            )
        try:
            members = await self.retry_policy.run(
                lambda: self.member_repository.list_members(
                    organization_id, MEMBER_LIST_LIMIT
                ),
                name="Organization members fetch",
                max_attempts=1,
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            cause = exc.last_error if isinstance(exc, RetryExhaustedError) else exc
            kind = ErrorKind.TIMEOUT if is_timeout(exc) else ErrorKind.NETWORK_ERROR
            return Result.failure(
                kind,
                describe_database_error(cause, "fetch organization members"),
                exc,
            )
        return Result.success(members)
