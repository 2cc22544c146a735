"""Email/password sign-up, sign-in and sign-out."""

import logging
from dataclasses import dataclass

from org_headshots.domain.errors import (
    ErrorKind,
    InvalidCredentialsError,
    Result,
    is_timeout,
)
from org_headshots.domain.models import Identity, MemberProfile
from org_headshots.services.provisioning import DEFAULT_ROLE, ProfileProvisioner
from org_headshots.services.sessions import IdentityProvider, SessionStore

_SIGNUP_ORGANIZATION_TIMEOUT_SECONDS = 6.0

_logger = logging.getLogger(__name__)


@dataclass
class AuthService:
    """Credential flows that end in a reconciled session store."""

    identity_provider: IdentityProvider
    provisioner: ProfileProvisioner
    session_store: SessionStore

    async def sign_up_with_email(  # noqa: PLR0913
        self,
        email: str,
        password: str,
        name: str,
        join_code: str,
        role: str | None = None,
    ) -> Result[MemberProfile]:
        """Create an account and its member profile in one organization."""
        missing = _missing_fields(
            email=email, password=password, name=name, join_code=join_code
        )
        if missing:
            return Result.failure(
                ErrorKind.INVALID_INPUT,
                f"Missing required fields: {', '.join(missing)}",
            )
        # Validate the code before an auth user exists for it.
        organization = await self.provisioner.resolve_organization(
            join_code, timeout_seconds=_SIGNUP_ORGANIZATION_TIMEOUT_SECONDS
        )
        if not organization.ok:
            return Result(error=organization.error)

        normalized_email = email.strip().lower()
        try:
            identity = await self.identity_provider.sign_up(normalized_email, password)
        except Exception as exc:
            _logger.error("Sign-up failed for %s: %s", normalized_email, exc)
            return _auth_failure(exc, "Failed to create account")

        profile = await self.provisioner.provision(
            Identity(
                id=identity.id, email=normalized_email, metadata=identity.metadata
            ),
            join_code,
            role=role or DEFAULT_ROLE,
            name=name,
        )
        if profile.ok:
            await self.session_store.reconcile()
        return profile

    async def sign_in_with_email(self, email: str, password: str) -> Result[bool]:
        """Sign in and reconcile; value is True when a profile was resolved."""
        missing = _missing_fields(email=email, password=password)
        if missing:
            return Result.failure(
                ErrorKind.INVALID_INPUT,
                f"Missing required fields: {', '.join(missing)}",
            )
        try:
            await self.identity_provider.sign_in(email.strip().lower(), password)
        except Exception as exc:
            _logger.warning("Sign-in failed: %s", exc)
            return _auth_failure(exc, "Invalid email or password")
        return Result.success(await self.session_store.reconcile())

    async def sign_out(self) -> Result[None]:
        try:
            await self.identity_provider.sign_out()
        except Exception as exc:
            _logger.error("Sign-out failed: %s", exc)
            return Result.failure(ErrorKind.NETWORK_ERROR, "Failed to sign out", exc)
        await self.session_store.apply_credential_change("SIGNED_OUT", None)
        return Result.success(None)


def _missing_fields(**fields: str | None) -> list[str]:
    return [key for key, value in fields.items() if not value or not value.strip()]


def _auth_failure(exc: BaseException, fallback: str) -> Result:
    if isinstance(exc, InvalidCredentialsError):
        return Result.failure(
            ErrorKind.INVALID_CREDENTIALS, str(exc) or fallback, exc
        )
    if is_timeout(exc):
        return Result.failure(
            ErrorKind.TIMEOUT, "Network delay, please try again.", exc
        )
    return Result.failure(ErrorKind.NETWORK_ERROR, str(exc) or fallback, exc)
