"""Shared test fixtures."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from itertools import count

import pytest

from org_headshots.config import Settings
from org_headshots.containers import AppContainer
from org_headshots.domain.errors import NoActiveSessionError
from org_headshots.domain.models import (
    AuthSession,
    Identity,
    MemberProfile,
    NewMemberProfile,
    Organization,
    OrganizationSummary,
    OrgMember,
)
from org_headshots.domain.photos import Photo
from org_headshots.services.auth import AuthService
from org_headshots.services.members import MemberDirectory
from org_headshots.services.oauth_callback import CallbackDestinations, CallbackRuns
from org_headshots.services.photos import (
    ObjectStore,
    PhotoRepository,
    PhotoStorageService,
)
from org_headshots.services.provisioning import (
    OrganizationRepository,
    ProfileProvisioner,
)
from org_headshots.services.retry import RetryPolicy
from org_headshots.services.sessions import (
    CredentialListener,
    IdentityProvider,
    MemberRepository,
    SessionStore,
)


@dataclass
class RecordingSleep:
    """Sleep replacement that records delays and returns immediately."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def fresh_session(identity: Identity | None, minutes: int = 30) -> AuthSession:
    return AuthSession(
        access_token="access-token",
        expires_at=datetime.now(tz=UTC) + timedelta(minutes=minutes),
        identity=identity,
    )


@dataclass
class FakeIdentityProvider(IdentityProvider):
    """Identity provider with scripted answers."""

    identity: Identity | None = None
    session: AuthSession | None = None
    identity_error: Exception | None = None
    session_error: Exception | None = None
    exchange_session: AuthSession | None = None
    exchange_error: Exception | None = None
    exchange_gate: asyncio.Event | None = None
    sign_in_error: Exception | None = None
    sign_up_identity: Identity | None = None
    identity_calls: int = 0
    session_calls: int = 0
    exchange_calls: int = 0
    sign_out_calls: int = 0
    signed_up: list[str] = field(default_factory=list)
    listeners: list[CredentialListener] = field(default_factory=list)

    async def sign_up(self, email: str, password: str) -> Identity:
        self.signed_up.append(email)
        identity = self.sign_up_identity or Identity(id="new-user", email=email)
        self.identity = identity
        self.session = fresh_session(identity)
        return identity

    async def sign_in(self, email: str, password: str) -> Identity:
        if self.sign_in_error is not None:
            raise self.sign_in_error
        identity = self.identity or Identity(id="signed-in", email=email)
        self.identity = identity
        self.session = fresh_session(identity)
        return identity

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        self.identity = None
        self.session = None

    async def get_current_identity(self) -> Identity | None:
        self.identity_calls += 1
        if self.identity_error is not None:
            raise self.identity_error
        if self.identity is None:
            raise NoActiveSessionError("Auth session missing!")
        return self.identity

    async def get_session(self) -> AuthSession | None:
        self.session_calls += 1
        if self.session_error is not None:
            raise self.session_error
        return self.session

    async def exchange_callback(self, params: dict[str, str]) -> AuthSession:
        self.exchange_calls += 1
        if self.exchange_gate is not None:
            await self.exchange_gate.wait()
        if self.exchange_error is not None:
            raise self.exchange_error
        if self.exchange_session is not None:
            self.identity = self.exchange_session.identity
            self.session = self.exchange_session
        return self.exchange_session

    def on_credential_change(
        self, listener: CredentialListener
    ) -> Callable[[], None]:
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)


@dataclass
class InMemoryMemberRepository(MemberRepository):
    """In-memory member repository for tests."""

    profiles: dict[str, MemberProfile] = field(default_factory=dict)
    organizations: dict[str, Organization] = field(default_factory=dict)
    get_error: Exception | None = None
    get_delay: float = 0.0
    create_errors: list[Exception] = field(default_factory=list)
    get_calls: int = 0
    create_calls: int = 0

    async def get_profile(self, member_id: str) -> MemberProfile | None:
        self.get_calls += 1
        if self.get_delay:
            await asyncio.sleep(self.get_delay)
        if self.get_error is not None:
            raise self.get_error
        return self.profiles.get(member_id)

    async def create_profile(self, profile: NewMemberProfile) -> MemberProfile:
        self.create_calls += 1
        if self.create_errors:
            raise self.create_errors.pop(0)
        if profile.id in self.profiles:
            raise RuntimeError("duplicate key value violates unique constraint")
        organization = self.organizations.get(profile.organization_id)
        created = MemberProfile(
            id=profile.id,
            name=profile.name,
            email=profile.email,
            organization_id=profile.organization_id,
            role=profile.role,
            organization=(
                OrganizationSummary(
                    name=organization.name, join_code=organization.join_code
                )
                if organization
                else None
            ),
        )
        self.profiles[profile.id] = created
        return created

    async def list_members(self, organization_id: str, limit: int) -> list[OrgMember]:
        members = [
            OrgMember(
                id=profile.id,
                name=profile.name,
                email=profile.email,
                role=profile.role,
                created_at=None,
            )
            for profile in self.profiles.values()
            if profile.organization_id == organization_id
        ]
        return sorted(members, key=lambda member: member.name)[:limit]


@dataclass
class InMemoryOrganizationRepository(OrganizationRepository):
    """In-memory organization repository for tests."""

    organizations: dict[str, Organization] = field(default_factory=dict)
    error: Exception | None = None
    lookups: int = 0

    async def get_by_join_code(self, join_code: str) -> Organization | None:
        self.lookups += 1
        if self.error is not None:
            raise self.error
        return self.organizations.get(join_code)


@dataclass
class InMemoryPhotoRepository(PhotoRepository):
    """In-memory photo repository for tests."""

    photos: dict[str, Photo] = field(default_factory=dict)
    create_errors: list[Exception] = field(default_factory=list)
    delete_errors: list[Exception] = field(default_factory=list)
    list_error: Exception | None = None
    create_calls: int = 0
    bulk_calls: int = 0
    _ids: "count[int]" = field(default_factory=lambda: count(1))

    def add(self, owner_member_id: str, image_url: str, minutes_ago: int = 0) -> Photo:
        photo_id = f"photo-{next(self._ids)}"
        photo = Photo(
            id=photo_id,
            owner_member_id=owner_member_id,
            image_url=image_url,
            created_at=datetime.now(tz=UTC) - timedelta(minutes=minutes_ago),
        )
        self.photos[photo_id] = photo
        return photo

    def owned_by(self, owner_member_id: str) -> list[Photo]:
        return [
            photo
            for photo in self.photos.values()
            if photo.owner_member_id == owner_member_id
        ]

    async def list_photo_ids(self, owner_member_id: str, limit: int) -> list[str]:
        if self.list_error is not None:
            raise self.list_error
        return [photo.id for photo in self.owned_by(owner_member_id)][:limit]

    async def list_for_owner(self, owner_member_id: str, limit: int) -> list[Photo]:
        if self.list_error is not None:
            raise self.list_error
        photos = sorted(
            self.owned_by(owner_member_id),
            key=lambda photo: photo.created_at,
            reverse=True,
        )
        return photos[:limit]

    async def list_for_owners(
        self, owner_member_ids: list[str], limit: int
    ) -> list[Photo]:
        self.bulk_calls += 1
        if self.list_error is not None:
            raise self.list_error
        photos = [
            photo
            for photo in self.photos.values()
            if photo.owner_member_id in owner_member_ids
        ]
        photos.sort(key=lambda photo: photo.created_at, reverse=True)
        return photos[:limit]

    async def get_photo(self, photo_id: str) -> Photo | None:
        return self.photos.get(photo_id)

    async def create_photo(self, owner_member_id: str, image_url: str) -> Photo:
        self.create_calls += 1
        if self.create_errors:
            raise self.create_errors.pop(0)
        return self.add(owner_member_id, image_url)

    async def delete_photo(self, photo_id: str) -> None:
        if self.delete_errors:
            raise self.delete_errors.pop(0)
        self.photos.pop(photo_id, None)


@dataclass
class FakeObjectStore(ObjectStore):
    """In-memory object store that records every call."""

    base_url: str = "https://example.supabase.co/storage/v1/object/public/photos"
    objects: dict[str, bytes] = field(default_factory=dict)
    put_errors: list[Exception] = field(default_factory=list)
    remove_error: Exception | None = None
    resolve_urls: bool = True
    put_calls: list[str] = field(default_factory=list)
    remove_calls: list[list[str]] = field(default_factory=list)

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.put_calls.append(key)
        if self.put_errors:
            raise self.put_errors.pop(0)
        self.objects[key] = data
        return key

    async def get_public_url(self, key: str) -> str | None:
        if not self.resolve_urls:
            return None
        return f"{self.base_url}/{key}"

    async def remove(self, keys: list[str]) -> None:
        self.remove_calls.append(list(keys))
        if self.remove_error is not None:
            raise self.remove_error
        for key in keys:
            self.objects.pop(key, None)

    @property
    def call_count(self) -> int:
        return len(self.put_calls) + len(self.remove_calls)


@dataclass
class FakeAddressBar:
    """Address bar that remembers replacements."""

    url: str
    replaced: list[str] = field(default_factory=list)

    def current_url(self) -> str:
        return self.url

    def replace(self, url: str) -> None:
        self.replaced.append(url)
        self.url = url


@dataclass
class FakeNavigator:
    """Navigator that records destinations."""

    visits: list[tuple[str, str | None]] = field(default_factory=list)

    def navigate(self, destination: str, *, error: str | None = None) -> None:
        self.visits.append((destination, error))


ACME = Organization(id="org1", name="Acme", join_code="ACME-2024")


def acme_profile(member_id: str = "u1", name: str = "Ada") -> MemberProfile:
    return MemberProfile(
        id=member_id,
        name=name,
        email=f"{name.lower()}@acme.com",
        organization_id=ACME.id,
        role="member",
        organization=OrganizationSummary(name=ACME.name, join_code=ACME.join_code),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_anon_key="header.payload.signature",
        callback_error_delay_seconds=0.0,
        session_restore_delay_seconds=0.0,
    )


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def member_repository() -> InMemoryMemberRepository:
    return InMemoryMemberRepository(organizations={ACME.id: ACME})


@pytest.fixture
def organization_repository() -> InMemoryOrganizationRepository:
    return InMemoryOrganizationRepository(organizations={ACME.join_code: ACME})


@pytest.fixture
def photo_repository() -> InMemoryPhotoRepository:
    return InMemoryPhotoRepository()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    no_sleep: RecordingSleep,
    identity_provider: FakeIdentityProvider,
    member_repository: InMemoryMemberRepository,
    organization_repository: InMemoryOrganizationRepository,
    photo_repository: InMemoryPhotoRepository,
    object_store: FakeObjectStore,
) -> AppContainer:
    retry_policy = RetryPolicy(sleep=no_sleep)
    session_store = SessionStore(
        identity_provider=identity_provider,
        member_repository=member_repository,
        retry_policy=retry_policy,
        restore_delay_seconds=0.0,
        sleep=no_sleep,
    )
    provisioner = ProfileProvisioner(
        organization_repository=organization_repository,
        member_repository=member_repository,
        retry_policy=retry_policy,
    )

    async def close_resources() -> None:
        await session_store.close()

    return AppContainer(
        settings=settings,
        identity_provider=identity_provider,
        member_repository=member_repository,
        session_store=session_store,
        provisioner=provisioner,
        auth_service=AuthService(identity_provider, provisioner, session_store),
        member_directory=MemberDirectory(member_repository, retry_policy),
        photo_service=PhotoStorageService(
            photo_repository=photo_repository,
            object_store=object_store,
            retry_policy=retry_policy,
        ),
        callback_destinations=CallbackDestinations(),
        callback_runs=CallbackRuns(),
        retry_policy=retry_policy,
        close_resources=close_resources,
    )
