"""Tests for the session reconcile state machine."""

import asyncio
from datetime import UTC, datetime, timedelta

from org_headshots.domain.errors import NetworkError
from org_headshots.domain.models import AuthSession, Identity
from org_headshots.domain.sessions import AuthState
from org_headshots.services.retry import RetryPolicy
from org_headshots.services.sessions import (
    NETWORK_DELAY_MESSAGE,
    SESSION_UNAVAILABLE_MESSAGE,
    SessionStore,
)
from tests.conftest import (
    FakeIdentityProvider,
    InMemoryMemberRepository,
    RecordingSleep,
    acme_profile,
    fresh_session,
)

ADA = Identity(id="u1", email="ada@acme.com")


def _store(
    identity_provider: FakeIdentityProvider,
    member_repository: InMemoryMemberRepository,
    **overrides: object,
) -> SessionStore:
    sleep = RecordingSleep()
    return SessionStore(
        identity_provider=identity_provider,
        member_repository=member_repository,
        retry_policy=RetryPolicy(sleep=sleep),
        restore_delay_seconds=0.0,
        sleep=sleep,
        **overrides,
    )


def test_reconcile_caches_identity_and_profile() -> None:
    provider = FakeIdentityProvider(identity=ADA, session=fresh_session(ADA))
    repository = InMemoryMemberRepository(profiles={"u1": acme_profile()})
    store = _store(provider, repository)

    assert asyncio.run(store.reconcile()) is True

    snapshot = store.snapshot
    assert snapshot.state is AuthState.AUTHENTICATED
    assert snapshot.is_authenticated
    assert snapshot.identity == ADA
    assert snapshot.profile.organization.join_code == "ACME-2024"
    assert snapshot.error is None


def test_reconcile_twice_yields_same_snapshot() -> None:
    provider = FakeIdentityProvider(identity=ADA, session=fresh_session(ADA))
    repository = InMemoryMemberRepository(profiles={"u1": acme_profile()})
    store = _store(provider, repository)

    async def scenario() -> None:
        await store.reconcile()
        first = store.snapshot
        await store.reconcile()
        assert store.snapshot == first

    asyncio.run(scenario())


def test_identity_without_profile_needs_provisioning() -> None:
    provider = FakeIdentityProvider(identity=ADA, session=fresh_session(ADA))
    store = _store(provider, InMemoryMemberRepository())

    assert asyncio.run(store.reconcile()) is False

    snapshot = store.snapshot
    assert snapshot.state is AuthState.AUTHENTICATED
    assert snapshot.needs_provisioning
    assert not snapshot.is_authenticated


def test_confirmed_missing_session_is_unauthenticated() -> None:
    provider = FakeIdentityProvider()
    store = _store(provider, InMemoryMemberRepository())

    assert asyncio.run(store.reconcile()) is False

    snapshot = store.snapshot
    assert snapshot.state is AuthState.UNAUTHENTICATED
    assert snapshot.identity is None
    assert snapshot.profile is None
    assert snapshot.error is None


def test_network_failure_keeps_previous_identity() -> None:
    provider = FakeIdentityProvider(identity=ADA, session=fresh_session(ADA))
    repository = InMemoryMemberRepository(profiles={"u1": acme_profile()})
    store = _store(provider, repository)

    async def scenario() -> None:
        await store.reconcile()
        provider.identity_error = NetworkError("fetch failed")
        provider.session_error = NetworkError("fetch failed")
        assert await store.reconcile() is False

    asyncio.run(scenario())

    snapshot = store.snapshot
    assert snapshot.state is AuthState.DEGRADED
    assert snapshot.identity == ADA
    assert snapshot.profile == acme_profile()
    assert snapshot.error == NETWORK_DELAY_MESSAGE


def test_profile_timeout_keeps_stale_profile() -> None:
    provider = FakeIdentityProvider(identity=ADA, session=fresh_session(ADA))
    repository = InMemoryMemberRepository(profiles={"u1": acme_profile()})
    store = _store(provider, repository, profile_timeout_seconds=0.01)

    async def scenario() -> bool:
        await store.reconcile()
        repository.get_delay = 0.1
        return await store.reconcile()

    assert asyncio.run(scenario()) is False

    snapshot = store.snapshot
    assert snapshot.state is AuthState.DEGRADED
    assert snapshot.identity == ADA
    assert snapshot.profile == acme_profile()
    assert snapshot.error == NETWORK_DELAY_MESSAGE


def test_profile_hard_error_clears_profile_only() -> None:
    provider = FakeIdentityProvider(identity=ADA, session=fresh_session(ADA))
    repository = InMemoryMemberRepository(profiles={"u1": acme_profile()})
    store = _store(provider, repository)

    async def scenario() -> None:
        await store.reconcile()
        repository.get_error = RuntimeError("permission denied for table members")
        await store.reconcile()

    asyncio.run(scenario())

    snapshot = store.snapshot
    assert snapshot.state is AuthState.DEGRADED
    assert snapshot.identity == ADA
    assert snapshot.profile is None
    assert snapshot.error == "permission denied for table members"


def test_valid_token_restores_identity_on_second_lookup() -> None:
    provider = FakeIdentityProvider(session=fresh_session(None))
    repository = InMemoryMemberRepository(profiles={"u1": acme_profile()})
    store = _store(provider, repository)
    original = provider.get_session
    checks = 0

    async def session_then_identity() -> AuthSession | None:
        nonlocal checks
        checks += 1
        if checks == 2:
            provider.identity = ADA
        return await original()

    provider.get_session = session_then_identity  # type: ignore[method-assign]

    assert asyncio.run(store.reconcile()) is True
    assert store.snapshot.identity == ADA


def test_valid_token_without_identity_is_degraded_not_signed_out() -> None:
    provider = FakeIdentityProvider(session=fresh_session(None))
    store = _store(provider, InMemoryMemberRepository())

    assert asyncio.run(store.reconcile()) is False

    snapshot = store.snapshot
    assert snapshot.state is AuthState.DEGRADED
    assert snapshot.error == SESSION_UNAVAILABLE_MESSAGE


def test_automatic_restores_share_a_budget() -> None:
    provider = FakeIdentityProvider(session=fresh_session(None))
    store = _store(provider, InMemoryMemberRepository())

    async def scenario() -> None:
        await store.reconcile(automatic=True)
        await store.reconcile(automatic=True)
        before = provider.session_calls
        await store.reconcile(automatic=True)
        # Budget spent: one lookup attempt plus the final validity check.
        assert provider.session_calls - before == 2

    asyncio.run(scenario())

    assert store.automatic_restores == 2


def test_user_reconcile_gets_a_fresh_budget() -> None:
    provider = FakeIdentityProvider(session=fresh_session(None))
    store = _store(provider, InMemoryMemberRepository())

    async def scenario() -> int:
        await store.reconcile(automatic=True)
        await store.reconcile(automatic=True)
        before = provider.session_calls
        await store.reconcile()
        return provider.session_calls - before

    # Lookup, restore check, second lookup, final validity check.
    assert asyncio.run(scenario()) == 4
    assert store.automatic_restores == 2


def test_expired_session_event_is_not_adopted() -> None:
    expired = AuthSession(
        access_token="old",
        expires_at=datetime.now(tz=UTC) - timedelta(minutes=1),
        identity=ADA,
    )
    provider = FakeIdentityProvider(identity=ADA, session=fresh_session(ADA))
    repository = InMemoryMemberRepository(profiles={"u1": acme_profile()})
    store = _store(provider, repository)

    async def scenario() -> None:
        assert await store.reconcile() is True
        gets_before = repository.get_calls
        await store.apply_credential_change("TOKEN_REFRESHED", expired)
        assert repository.get_calls == gets_before

    asyncio.run(scenario())

    snapshot = store.snapshot
    assert snapshot.state is AuthState.UNAUTHENTICATED
    assert not snapshot.is_authenticated
    assert snapshot.session is None
    assert snapshot.identity is None
    assert snapshot.profile is None


def test_sign_in_event_loads_profile() -> None:
    provider = FakeIdentityProvider()
    repository = InMemoryMemberRepository(profiles={"u1": acme_profile()})
    store = _store(provider, repository)

    asyncio.run(store.apply_credential_change("SIGNED_IN", fresh_session(ADA)))

    snapshot = store.snapshot
    assert snapshot.is_authenticated
    assert snapshot.session is not None


def test_sign_out_event_clears_cache() -> None:
    provider = FakeIdentityProvider(identity=ADA, session=fresh_session(ADA))
    repository = InMemoryMemberRepository(profiles={"u1": acme_profile()})
    store = _store(provider, repository)

    async def scenario() -> None:
        await store.reconcile()
        await store.apply_credential_change("SIGNED_OUT", None)

    asyncio.run(scenario())

    snapshot = store.snapshot
    assert snapshot.state is AuthState.UNAUTHENTICATED
    assert snapshot.identity is None
    assert snapshot.profile is None


def test_start_subscribes_and_close_unsubscribes() -> None:
    provider = FakeIdentityProvider(identity=ADA, session=fresh_session(ADA))
    repository = InMemoryMemberRepository(profiles={"u1": acme_profile()})
    store = _store(provider, repository)

    async def scenario() -> None:
        assert await store.start() is True
        assert len(provider.listeners) == 1
        provider.listeners[0]("SIGNED_OUT", None)
        await asyncio.sleep(0)
        assert store.snapshot.state is AuthState.UNAUTHENTICATED
        await store.close()

    asyncio.run(scenario())

    assert provider.listeners == []
