"""Shared FastAPI dependencies and error mapping."""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from fastapi import HTTPException, Request, status

from org_headshots.domain.errors import ErrorKind, Result
from org_headshots.domain.models import MemberProfile  # noqa: TC001

if TYPE_CHECKING:
    from org_headshots.containers import AppContainer

T = TypeVar("T")

_STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_JOIN_CODE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.QUOTA_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.NETWORK_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.RETRY_EXHAUSTED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.STORAGE_WRITE_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.URL_RESOLUTION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.METADATA_WRITE_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.PROVISION_FAILED: status.HTTP_502_BAD_GATEWAY,
}


def unwrap(result: Result[T]) -> T:
    """Return the value of a successful result or raise the mapped HTTP error."""
    if result.error is None:
        return result.value
    status_code = _STATUS_BY_KIND.get(
        result.error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    raise HTTPException(
        status_code=status_code,
        detail={"kind": result.error.kind.value, "message": result.error.message},
    )


async def require_member(request: Request) -> MemberProfile:
    """Ensure the process-wide session store holds a resolved member profile."""
    container: AppContainer = request.app.state.container
    snapshot = container.session_store.snapshot
    if snapshot.profile is None or snapshot.identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=snapshot.error or "Not signed in",
        )
    return snapshot.profile
