"""One-shot handling of federated-login redirects."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import parse_qsl, urlsplit, urlunsplit

from org_headshots.domain.callbacks import CallbackOutcome, CallbackState
from org_headshots.domain.errors import AuthFlowError, RetryExhaustedError
from org_headshots.domain.models import AuthSession
from org_headshots.services.retry import RetryPolicy
from org_headshots.services.sessions import (
    IdentityProvider,
    MemberRepository,
    SessionStore,
)

_FRAGMENT_MARKERS = ("access_token", "error")
_QUERY_MARKERS = ("code", "error")

_logger = logging.getLogger(__name__)


class AddressBar(Protocol):
    """The visible address of the current page."""

    def current_url(self) -> str:
        """Return the full current address."""

    def replace(self, url: str) -> None:
        """Replace the address without adding a history entry."""


class Navigator(Protocol):
    """Client-side routing."""

    def navigate(self, destination: str, *, error: str | None = None) -> None:
        """Send the user to a destination, optionally carrying an error."""


@dataclass(frozen=True)
class CallbackDestinations:
    """Where resolved, unprovisioned and failed callbacks lead."""

    authenticated: str = "/org-home"
    provisioning: str = "/post-auth"
    login: str = "/login"


def callback_params(url: str) -> dict[str, str] | None:
    """Return redirect parameters when the URL carries a login marker."""
    parts = urlsplit(url)
    fragment = dict(parse_qsl(parts.fragment, keep_blank_values=True))
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    has_fragment = any(marker in fragment for marker in _FRAGMENT_MARKERS)
    has_query = any(marker in query for marker in _QUERY_MARKERS)
    if not has_fragment and not has_query:
        return None
    params: dict[str, str] = {}
    if has_query:
        params.update(query)
    if has_fragment:
        params.update(fragment)
    return params


def strip_callback_markers(url: str) -> str:
    """Return the address without its query string and fragment."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", "", ""))


@dataclass
class CallbackRuns:
    """Shares one in-flight resolution per callback address.

    Concurrent requests carrying the same address join a single run, so a
    one-time code is exchanged once.
    """

    _runs: dict[str, "asyncio.Task[CallbackOutcome | None]"] = field(
        default_factory=dict, init=False
    )

    async def run(
        self,
        url: str,
        resolve: Callable[[], Awaitable[CallbackOutcome | None]],
    ) -> CallbackOutcome | None:
        task = self._runs.get(url)
        if task is None:
            task = asyncio.ensure_future(resolve())
            self._runs[url] = task
            task.add_done_callback(lambda done: self._forget(url, done))
        else:
            _logger.info("Joining callback resolution already in flight")
        return await asyncio.shield(task)

    def in_flight(self) -> int:
        return len(self._runs)

    def _forget(
        self, url: str, task: "asyncio.Task[CallbackOutcome | None]"
    ) -> None:
        if self._runs.get(url) is task:
            del self._runs[url]


@dataclass
class OAuthCallbackResolver:
    """Consumes a login redirect exactly once per page lifecycle.

    Runs IDLE -> DETECTED -> PROCESSING -> RESOLVED | FAILED. Calls made while a
    run is PROCESSING return None and touch nothing.
    """

    identity_provider: IdentityProvider
    member_repository: MemberRepository
    session_store: SessionStore
    address_bar: AddressBar
    navigator: Navigator
    destinations: CallbackDestinations = field(default_factory=CallbackDestinations)
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    exchange_attempts: int = 2
    exchange_timeout_seconds: float = 15.0
    profile_timeout_seconds: float = 10.0
    refresh_timeout_seconds: float = 8.0
    error_redirect_delay_seconds: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    state: CallbackState = field(default=CallbackState.IDLE, init=False)
    error: str | None = field(default=None, init=False)

    async def resolve(self) -> CallbackOutcome | None:
        """Process the current address if it is a login callback."""
        if self.state is CallbackState.PROCESSING:
            _logger.info("Callback already processing, skipping")
            return None
        url = self.address_bar.current_url()
        params = callback_params(url)
        if params is None:
            return CallbackOutcome(state=self.state)

        self.state = CallbackState.DETECTED
        _logger.info("Login callback detected")
        self.state = CallbackState.PROCESSING
        self.error = None
        try:
            session = await self._exchange(params)
        except Exception as exc:
            return await self._fail(url, exc)

        self.address_bar.replace(strip_callback_markers(url))
        destination = await self._route(session)
        self.state = CallbackState.RESOLVED
        self.navigator.navigate(destination)
        return CallbackOutcome(state=self.state, destination=destination)

    async def _exchange(self, params: dict[str, str]) -> AuthSession:
        if "error" in params:
            raise AuthFlowError(
                params.get("error_description") or params["error"]
            )
        # An authorization code is single-use; only token redirects are retried.
        attempts = 1 if params.get("code") else self.exchange_attempts
        session = await self.retry_policy.run(
            lambda: self.identity_provider.exchange_callback(params),
            name="Callback session exchange",
            max_attempts=attempts,
            timeout_seconds=self.exchange_timeout_seconds,
        )
        if session is None or session.identity is None:
            raise AuthFlowError("Authentication failed. No session created.")
        return session

    async def _route(self, session: AuthSession) -> str:
        identity = session.identity
        try:
            profile = await self.retry_policy.run(
                lambda: self.member_repository.get_profile(identity.id),
                name="Callback profile check",
                max_attempts=1,
                timeout_seconds=self.profile_timeout_seconds,
            )
        except Exception as exc:
            _logger.warning("Profile check failed, routing to provisioning: %s", exc)
            return self.destinations.provisioning
        if profile is None:
            return self.destinations.provisioning
        try:
            await self.retry_policy.run(
                self.session_store.reconcile,
                name="Auth status refresh",
                max_attempts=1,
                timeout_seconds=self.refresh_timeout_seconds,
            )
        except Exception as exc:
            _logger.warning("Auth status refresh failed: %s", exc)
        return self.destinations.authenticated

    async def _fail(self, url: str, exc: BaseException) -> CallbackOutcome:
        cause = exc.last_error if isinstance(exc, RetryExhaustedError) else exc
        message = str(cause) or (
            "An unexpected error occurred during authentication. Please try again."
        )
        _logger.error("Login callback failed: %s", message)
        self.state = CallbackState.FAILED
        self.error = message
        self.address_bar.replace(strip_callback_markers(url))
        await self.sleep(self.error_redirect_delay_seconds)
        self.navigator.navigate(self.destinations.login, error=message)
        return CallbackOutcome(
            state=self.state, destination=self.destinations.login, error=message
        )
