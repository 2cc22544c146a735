"""Headshot upload, listing and deletion endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from org_headshots.api.dependencies import require_member, unwrap
from org_headshots.api.schemas import PhotoOut, UploadedPhotoOut
from org_headshots.domain.models import MemberProfile  # noqa: TC001

if TYPE_CHECKING:
    from org_headshots.containers import AppContainer

router = APIRouter(prefix="/photos", tags=["photos"])


@router.post("", status_code=201)
async def upload_photo(
    request: Request,
    file: UploadFile = File(...),
    owner_member_id: str | None = Form(default=None),
    member: MemberProfile = Depends(require_member),
) -> UploadedPhotoOut:
    """Upload a headshot for the caller or another member of the organization."""
    container: AppContainer = request.app.state.container
    data = await file.read()
    uploaded = unwrap(
        await container.photo_service.upload(
            file_bytes=data,
            mime_type=file.content_type or "",
            size_bytes=len(data),
            owner_member_id=owner_member_id or member.id,
            organization_id=member.organization_id,
            original_name=file.filename or "photo.jpg",
        )
    )
    return UploadedPhotoOut.from_domain(uploaded)


@router.get("", dependencies=[Depends(require_member)])
async def list_photos_for_members(
    request: Request, owner_id: list[str] | None = Query(default=None)
) -> dict[str, list[PhotoOut]]:
    """Return photos grouped by owner for every requested member."""
    container: AppContainer = request.app.state.container
    grouped = unwrap(await container.photo_service.list_for_owners(owner_id or []))
    return {
        owner: [PhotoOut.from_domain(photo) for photo in photos]
        for owner, photos in grouped.items()
    }


@router.get("/{member_id}", dependencies=[Depends(require_member)])
async def list_member_photos(
    member_id: str, request: Request
) -> dict[str, list[PhotoOut]]:
    container: AppContainer = request.app.state.container
    photos = unwrap(await container.photo_service.list_for_owner(member_id))
    return {"photos": [PhotoOut.from_domain(photo) for photo in photos]}


@router.delete("/{photo_id}", dependencies=[Depends(require_member)])
async def delete_photo(photo_id: str, request: Request) -> dict[str, str]:
    container: AppContainer = request.app.state.container
    unwrap(await container.photo_service.delete(photo_id))
    return {"status": "deleted"}
