"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import AsyncClient

from org_headshots.adapters.supabase_identity_provider import SupabaseIdentityProvider
from org_headshots.adapters.supabase_member_repository import (
    SupabaseMemberRepository,
)
from org_headshots.adapters.supabase_object_store import SupabaseObjectStore
from org_headshots.adapters.supabase_organization_repository import (
    SupabaseOrganizationRepository,
)
from org_headshots.adapters.supabase_photo_repository import SupabasePhotoRepository
from org_headshots.config import Settings
from org_headshots.services.auth import AuthService
from org_headshots.services.members import MemberDirectory
from org_headshots.services.oauth_callback import CallbackDestinations, CallbackRuns
from org_headshots.services.photos import PhotoStorageService
from org_headshots.services.provisioning import ProfileProvisioner
from org_headshots.services.retry import RetryPolicy
from org_headshots.services.sessions import (
    IdentityProvider,
    MemberRepository,
    SessionStore,
)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    identity_provider: IdentityProvider
    member_repository: MemberRepository
    session_store: SessionStore
    provisioner: ProfileProvisioner
    auth_service: AuthService
    member_directory: MemberDirectory
    photo_service: PhotoStorageService
    callback_destinations: CallbackDestinations
    callback_runs: CallbackRuns
    retry_policy: RetryPolicy
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = AsyncClient(
        resolved_settings.supabase_url, resolved_settings.supabase_anon_key
    )
    retry_policy = RetryPolicy()
    identity_provider = SupabaseIdentityProvider(supabase_client)
    member_repository = SupabaseMemberRepository(supabase_client)
    organization_repository = SupabaseOrganizationRepository(supabase_client)
    photo_repository = SupabasePhotoRepository(supabase_client)
    object_store = SupabaseObjectStore(
        supabase_client, bucket=resolved_settings.photo_bucket
    )
    session_store = SessionStore(
        identity_provider=identity_provider,
        member_repository=member_repository,
        retry_policy=retry_policy,
        restore_delay_seconds=resolved_settings.session_restore_delay_seconds,
    )
    provisioner = ProfileProvisioner(
        organization_repository=organization_repository,
        member_repository=member_repository,
        retry_policy=retry_policy,
    )
    auth_service = AuthService(
        identity_provider=identity_provider,
        provisioner=provisioner,
        session_store=session_store,
    )
    photo_service = PhotoStorageService(
        photo_repository=photo_repository,
        object_store=object_store,
    )
    destinations = CallbackDestinations(
        authenticated=resolved_settings.authenticated_path,
        provisioning=resolved_settings.provisioning_path,
        login=resolved_settings.login_path,
    )

    async def close_resources() -> None:
        await session_store.close()

    return AppContainer(
        settings=resolved_settings,
        identity_provider=identity_provider,
        member_repository=member_repository,
        session_store=session_store,
        provisioner=provisioner,
        auth_service=auth_service,
        member_directory=MemberDirectory(member_repository, retry_policy),
        photo_service=photo_service,
        callback_destinations=destinations,
        callback_runs=CallbackRuns(),
        retry_policy=retry_policy,
        close_resources=close_resources,
    )
