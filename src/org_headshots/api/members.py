"""Member provisioning and directory endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, status

from org_headshots.api.dependencies import require_member, unwrap
from org_headshots.api.schemas import MemberOut, ProfileOut, ProvisionRequest
from org_headshots.domain.models import MemberProfile  # noqa: TC001

if TYPE_CHECKING:
    from org_headshots.containers import AppContainer

router = APIRouter(prefix="/members", tags=["members"])


@router.post("/provision")
async def provision_member(payload: ProvisionRequest, request: Request) -> ProfileOut:
    """Join the signed-in identity to an organization by join code."""
    container: AppContainer = request.app.state.container
    identity = container.session_store.snapshot.identity
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No authenticated user found. Please try again.",
        )
    profile = unwrap(
        await container.provisioner.provision(
            identity, payload.join_code, role=payload.role, name=payload.name
        )
    )
    await container.session_store.reconcile()
    return ProfileOut.from_domain(profile)


@router.get("")
async def list_members(
    request: Request, member: MemberProfile = Depends(require_member)
) -> dict[str, list[MemberOut]]:
    """Return members of the caller's organization."""
    container: AppContainer = request.app.state.container
    members = unwrap(
        await container.member_directory.list_members(member.organization_id)
    )
    return {"members": [MemberOut.from_domain(item) for item in members]}
