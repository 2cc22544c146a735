"""Session, credential and login-callback endpoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request

from org_headshots.api.dependencies import unwrap
from org_headshots.api.schemas import (
    CallbackRequest,
    CallbackResponse,
    ProfileOut,
    SessionOut,
    SignInRequest,
    SignUpRequest,
)
from org_headshots.services.oauth_callback import OAuthCallbackResolver

if TYPE_CHECKING:
    from org_headshots.containers import AppContainer

router = APIRouter(tags=["auth"])


@dataclass
class StaticAddressBar:
    """Address bar backed by the URL a client posted."""

    url: str

    def current_url(self) -> str:
        return self.url

    def replace(self, url: str) -> None:
        self.url = url


@dataclass
class RecordingNavigator:
    """Captures the navigation a callback run asked for."""

    visits: list[tuple[str, str | None]] = field(default_factory=list)

    def navigate(self, destination: str, *, error: str | None = None) -> None:
        self.visits.append((destination, error))


@router.get("/session")
async def get_session(request: Request) -> SessionOut:
    """Return the cached session state without contacting the provider."""
    container: AppContainer = request.app.state.container
    return SessionOut.from_snapshot(container.session_store.snapshot)


@router.post("/session/reconcile")
async def reconcile_session(request: Request) -> SessionOut:
    """Re-check the session with the identity provider."""
    container: AppContainer = request.app.state.container
    await container.session_store.reconcile()
    return SessionOut.from_snapshot(container.session_store.snapshot)


@router.post("/auth/sign-up")
async def sign_up(payload: SignUpRequest, request: Request) -> ProfileOut:
    container: AppContainer = request.app.state.container
    profile = unwrap(
        await container.auth_service.sign_up_with_email(
            email=payload.email,
            password=payload.password,
            name=payload.name,
            join_code=payload.join_code,
            role=payload.role,
        )
    )
    return ProfileOut.from_domain(profile)


@router.post("/auth/sign-in")
async def sign_in(payload: SignInRequest, request: Request) -> SessionOut:
    container: AppContainer = request.app.state.container
    unwrap(
        await container.auth_service.sign_in_with_email(
            payload.email, payload.password
        )
    )
    return SessionOut.from_snapshot(container.session_store.snapshot)


@router.post("/auth/sign-out")
async def sign_out(request: Request) -> SessionOut:
    container: AppContainer = request.app.state.container
    unwrap(await container.auth_service.sign_out())
    return SessionOut.from_snapshot(container.session_store.snapshot)


@router.post("/auth/callback")
async def resolve_callback(
    payload: CallbackRequest, request: Request
) -> CallbackResponse:
    """Resolve a federated-login redirect and report where to go next."""
    container: AppContainer = request.app.state.container
    resolver = OAuthCallbackResolver(
        identity_provider=container.identity_provider,
        member_repository=container.member_repository,
        session_store=container.session_store,
        address_bar=StaticAddressBar(payload.url),
        navigator=RecordingNavigator(),
        destinations=container.callback_destinations,
        retry_policy=container.retry_policy,
        error_redirect_delay_seconds=container.settings.callback_error_delay_seconds,
    )
    outcome = await container.callback_runs.run(payload.url, resolver.resolve)
    return CallbackResponse(
        state=outcome.state.value,
        destination=outcome.destination,
        error=outcome.error,
    )
