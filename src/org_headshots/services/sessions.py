"""Session and profile reconciliation against the identity provider."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from org_headshots.domain.errors import RetryExhaustedError, is_timeout
from org_headshots.domain.models import (
    AuthSession,
    Identity,
    MemberProfile,
    NewMemberProfile,
    OrgMember,
)
from org_headshots.domain.sessions import AuthState, SessionSnapshot
from org_headshots.services.retry import RetryPolicy, first_success

NETWORK_DELAY_MESSAGE = "Network delay. Some data may not load. Try refreshing."
SESSION_UNAVAILABLE_MESSAGE = "Session temporarily unavailable. Please try again."

_logger = logging.getLogger(__name__)

CredentialListener = Callable[[str, AuthSession | None], None]


class IdentityProvider(Protocol):
    """Remote identity provider operations used by the core."""

    async def sign_up(self, email: str, password: str) -> Identity:
        """Create an account and return its identity."""

    async def sign_in(self, email: str, password: str) -> Identity:
        """Sign in with a password and return the identity."""

    async def sign_out(self) -> None:
        """End the current session."""

    async def get_current_identity(self) -> Identity | None:
        """Return the identity behind the current token, if any."""

    async def get_session(self) -> AuthSession | None:
        """Return the locally held session, if any."""

    async def exchange_callback(self, params: dict[str, str]) -> AuthSession:
        """Turn federated-login redirect parameters into a session."""

    def on_credential_change(
        self, listener: CredentialListener
    ) -> Callable[[], None]:
        """Register a credential listener and return its unsubscribe handle."""


class MemberRepository(Protocol):
    """Persistence interface for member profiles."""

    async def get_profile(self, member_id: str) -> MemberProfile | None:
        """Return the member profile with its organization, if present."""

    async def create_profile(self, profile: NewMemberProfile) -> MemberProfile:
        """Insert a member profile row and return it."""

    async def list_members(self, organization_id: str, limit: int) -> list[OrgMember]:
        """Return members of an organization ordered by name."""


@dataclass
class SessionStore:
    """Holds the authenticated identity and its member profile.

    The store is the only writer of its cache. `reconcile` re-derives the cache
    from the identity provider; credential events are applied through
    `apply_credential_change`. Transient failures leave the store DEGRADED with
    the last known identity in place; only a confirmed missing session moves
    it to UNAUTHENTICATED.
    """

    identity_provider: IdentityProvider
    member_repository: MemberRepository
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    restore_delay_seconds: float = 1.0
    max_restore_attempts: int = 2
    lookup_attempts: int = 2
    lookup_timeout_seconds: float = 4.0
    profile_attempts: int = 2
    profile_timeout_seconds: float = 5.0
    session_check_timeout_seconds: float = 3.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    _state: AuthState = field(default=AuthState.UNINITIALIZED, init=False)
    _identity: Identity | None = field(default=None, init=False)
    _profile: MemberProfile | None = field(default=None, init=False)
    _session: AuthSession | None = field(default=None, init=False)
    _error: str | None = field(default=None, init=False)
    _automatic_restores: int = field(default=0, init=False)
    _unsubscribe: Callable[[], None] | None = field(default=None, init=False)
    _pending: set[asyncio.Task[None]] = field(default_factory=set, init=False)

    @property
    def snapshot(self) -> SessionSnapshot:
        """Return the cached state; an expired session is never exposed."""
        session = self._session
        if session is not None and session.is_expired():
            session = None
        return SessionSnapshot(
            state=self._state,
            identity=self._identity,
            profile=self._profile,
            session=session,
            error=self._error,
        )

    @property
    def automatic_restores(self) -> int:
        return self._automatic_restores

    async def start(self) -> bool:
        """Subscribe to credential changes and run the initial reconcile."""
        if self._unsubscribe is None:
            self._unsubscribe = self.identity_provider.on_credential_change(
                self._on_credential_change
            )
        return await self.reconcile(automatic=True)

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()

    async def reconcile(self, *, automatic: bool = False) -> bool:
        """Refresh the cached identity and profile.

        Returns True iff an authenticated member with a resolved profile is now
        cached. `automatic` calls share one restore budget per store; calls made
        on behalf of the user each get a fresh budget.
        """
        self._state = AuthState.RECONCILING
        self._error = None
        restores_used = self._automatic_restores if automatic else 0
        try:
            identity, transient = await self._lookup_identity()
            if identity is None and restores_used < self.max_restore_attempts:
                restores_used += 1
                if await self._has_valid_session():
                    _logger.info("Valid session token cached, retrying lookup")
                    await self.sleep(self.restore_delay_seconds)
                    identity, transient = await self._lookup_identity()
            if automatic:
                self._automatic_restores = restores_used

            if identity is None:
                return await self._settle_without_identity(transient)

            self._identity = identity
            resolved = await self._load_profile(identity)
            if resolved:
                self._automatic_restores = 0
            return resolved
        except Exception as exc:
            _logger.exception("Auth status check failed")
            self._state = AuthState.DEGRADED
            self._error = (
                NETWORK_DELAY_MESSAGE
                if is_timeout(exc) or "network" in str(exc).lower()
                else str(exc) or "Authentication check failed"
            )
            return False

    async def apply_credential_change(
        self, event: str, session: AuthSession | None
    ) -> None:
        """Apply a sign-in/sign-out notification from the identity provider."""
        _logger.info("Credential change: %s", event)
        self._automatic_restores = 0
        if session is None or session.identity is None or not session.is_usable():
            if session is not None and session.is_expired():
                _logger.warning("Ignoring expired session from %s", event)
            self._clear(AuthState.UNAUTHENTICATED)
            return
        identity = session.identity
        self._session = session
        self._identity = identity
        self._error = None
        try:
            await self._load_profile(identity)
        except Exception as exc:
            _logger.exception("Profile refresh after credential change failed")
            self._state = AuthState.DEGRADED
            self._error = str(exc) or SESSION_UNAVAILABLE_MESSAGE

    def _on_credential_change(self, event: str, session: AuthSession | None) -> None:
        self._automatic_restores = 0
        task = asyncio.get_running_loop().create_task(
            self.apply_credential_change(event, session)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _lookup_identity(self) -> tuple[Identity | None, BaseException | None]:
        """Return the identity, or None plus the transient error that hid it."""
        try:
            identity = await self.retry_policy.run(
                lambda: first_success(
                    self.identity_provider.get_current_identity,
                    self._identity_from_session,
                ),
                name="Current identity lookup",
                max_attempts=self.lookup_attempts,
                timeout_seconds=self.lookup_timeout_seconds,
            )
        except RetryExhaustedError as exc:
            return None, exc
        return identity, None

    async def _identity_from_session(self) -> Identity | None:
        session = await self.identity_provider.get_session()
        if session is None or not session.is_usable():
            return None
        self._session = session
        return session.identity

    async def _has_valid_session(self) -> bool:
        """Check directly whether the provider holds an unexpired token."""
        try:
            session = await self.retry_policy.run(
                self.identity_provider.get_session,
                name="Session validation",
                max_attempts=1,
                timeout_seconds=self.session_check_timeout_seconds,
            )
        except Exception as exc:
            _logger.warning("Session validation error: %s", exc)
            return False
        if session is None or not session.is_usable():
            return False
        self._session = session
        return True

    async def _settle_without_identity(self, transient: BaseException | None) -> bool:
        if transient is not None:
            # A flaky network is not a sign-out.
            self._state = AuthState.DEGRADED
            self._error = NETWORK_DELAY_MESSAGE
            return False
        if await self._has_valid_session():
            self._state = AuthState.DEGRADED
            self._error = SESSION_UNAVAILABLE_MESSAGE
            return False
        self._automatic_restores = 0
        self._clear(AuthState.UNAUTHENTICATED)
        return False

    async def _load_profile(self, identity: Identity) -> bool:
        try:
            profile = await self.retry_policy.run(
                lambda: self.member_repository.get_profile(identity.id),
                name="Member profile fetch",
                max_attempts=self.profile_attempts,
                timeout_seconds=self.profile_timeout_seconds,
            )
        except Exception as exc:
            self._state = AuthState.DEGRADED
            if is_timeout(exc):
                # Session stays valid; the previous profile is kept as stale.
                self._error = NETWORK_DELAY_MESSAGE
            else:
                cause = exc.last_error if isinstance(exc, RetryExhaustedError) else exc
                self._error = str(cause) or "Failed to load member profile"
                self._profile = None
            return False
        self._profile = profile
        self._state = AuthState.AUTHENTICATED
        return profile is not None

    def _clear(self, state: AuthState) -> None:
        self._state = state
        self._identity = None
        self._profile = None
        self._session = None
        self._error = None
