"""Supabase Auth implementation of the identity provider."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import AsyncClient

from org_headshots.domain.errors import (
    AuthFlowError,
    InvalidCredentialsError,
    NoActiveSessionError,
)
from org_headshots.domain.models import AuthSession, Identity
from org_headshots.services.sessions import CredentialListener, IdentityProvider

_MISSING_SESSION_MARKERS = ("Auth session missing", "session_not_found")
_BAD_CREDENTIAL_MARKERS = ("Invalid login credentials", "invalid_credentials")


@dataclass
class SupabaseIdentityProvider(IdentityProvider):
    """Wraps `AsyncClient.auth` and maps its objects to domain models."""

    client: AsyncClient

    async def sign_up(self, email: str, password: str) -> Identity:
        """Create an auth user and return its identity."""
        response = await self.client.auth.sign_up(
            {"email": email, "password": password}
        )
        if response.user is None:
            raise AuthFlowError("Failed to create user account")
        return _identity_from_user(response.user)

    async def sign_in(self, email: str, password: str) -> Identity:
        """Sign in with email and password."""
        try:
            response = await self.client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as exc:
            if _matches(exc, _BAD_CREDENTIAL_MARKERS):
                raise InvalidCredentialsError("Invalid email or password") from exc
            raise
        if response.user is None:
            raise InvalidCredentialsError("Invalid email or password")
        return _identity_from_user(response.user)

    async def sign_out(self) -> None:
        await self.client.auth.sign_out()

    async def get_current_identity(self) -> Identity | None:
        """Return the user validated by the auth server."""
        try:
            response = await self.client.auth.get_user()
        except Exception as exc:
            if _matches(exc, _MISSING_SESSION_MARKERS):
                raise NoActiveSessionError(str(exc)) from exc
            raise
        if response is None or response.user is None:
            return None
        return _identity_from_user(response.user)

    async def get_session(self) -> AuthSession | None:
        """Return the locally stored session, if any."""
        try:
            session = await self.client.auth.get_session()
        except Exception as exc:
            if _matches(exc, _MISSING_SESSION_MARKERS):
                raise NoActiveSessionError(str(exc)) from exc
            raise
        return _to_session(session)

    async def exchange_callback(self, params: dict[str, str]) -> AuthSession:
        """Exchange a PKCE code or implicit-flow tokens for a session."""
        if params.get("code"):
            response = await self.client.auth.exchange_code_for_session(
                {"auth_code": params["code"]}
            )
        elif params.get("access_token"):
            response = await self.client.auth.set_session(
                params["access_token"], params.get("refresh_token", "")
            )
        else:
            raise AuthFlowError("Authentication failed. No session created.")
        session = _to_session(response.session)
        if session is None:
            raise AuthFlowError("Authentication failed. No session created.")
        return session

    def on_credential_change(
        self, listener: CredentialListener
    ) -> Callable[[], None]:
        """Forward auth state events as domain sessions."""

        def forward(event: object, session: object) -> None:
            listener(str(event), _to_session(session))

        subscription = self.client.auth.on_auth_state_change(forward)
        return subscription.unsubscribe


def _matches(exc: BaseException, markers: tuple[str, ...]) -> bool:
    text = f"{exc} {getattr(exc, 'code', '') or ''}"
    return any(marker in text for marker in markers)


def _identity_from_user(user: object) -> Identity:
    metadata = getattr(user, "user_metadata", None) or {}
    return Identity(
        id=str(user.id),
        email=getattr(user, "email", None),
        metadata=dict(metadata),
    )


def _to_session(session: object | None) -> AuthSession | None:
    if session is None:
        return None
    expires_at = getattr(session, "expires_at", None)
    user = getattr(session, "user", None)
    return AuthSession(
        access_token=getattr(session, "access_token", "") or "",
        expires_at=(
            datetime.fromtimestamp(expires_at, tz=UTC) if expires_at else None
        ),
        identity=_identity_from_user(user) if user is not None else None,
    )
