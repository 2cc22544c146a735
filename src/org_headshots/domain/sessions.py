"""Domain models for the client session cache."""

from dataclasses import dataclass
from enum import StrEnum

from org_headshots.domain.models import AuthSession, Identity, MemberProfile


class AuthState(StrEnum):
    """Lifecycle states of the session store."""

    UNINITIALIZED = "uninitialized"
    RECONCILING = "reconciling"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time view of the cached identity and profile."""

    state: AuthState
    identity: Identity | None = None
    profile: MemberProfile | None = None
    session: AuthSession | None = None
    error: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.state is AuthState.AUTHENTICATED and self.profile is not None

    @property
    def needs_provisioning(self) -> bool:
        """True when the identity is known but has no member profile yet."""
        return (
            self.state is AuthState.AUTHENTICATED
            and self.identity is not None
            and self.profile is None
        )
