"""Domain models for identities, organizations and member profiles."""

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True)
class Identity:
    """An authenticated user as reported by the identity provider."""

    id: str
    email: str | None = None
    metadata: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthSession:
    """Read-only view of an identity provider session."""

    access_token: str
    expires_at: datetime | None
    identity: Identity | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True once the token expiry has passed."""
        if self.expires_at is None:
            return False
        current = now or datetime.now(tz=UTC)
        return self.expires_at <= current

    def is_usable(self, now: datetime | None = None) -> bool:
        """Return True when the session carries an unexpired token."""
        return bool(self.access_token) and not self.is_expired(now)


@dataclass(frozen=True)
class Organization:
    """Organization a member can join with a join code."""

    id: str
    name: str
    join_code: str


@dataclass(frozen=True)
class OrganizationSummary:
    """Organization fields embedded in a member profile."""

    name: str
    join_code: str


@dataclass(frozen=True)
class MemberProfile:
    """Member row bound to an organization."""

    id: str
    name: str
    email: str
    organization_id: str
    role: str | None
    organization: OrganizationSummary | None = None


@dataclass(frozen=True)
class NewMemberProfile:
    """Payload for inserting a member row."""

    id: str
    name: str
    email: str
    organization_id: str
    role: str


@dataclass(frozen=True)
class OrgMember:
    """Member listing row for the organization directory."""

    id: str
    name: str
    email: str
    role: str | None
    created_at: datetime | None
