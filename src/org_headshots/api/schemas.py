"""Pydantic request and response models for the HTTP surface."""

from datetime import datetime

from pydantic import BaseModel, Field

from org_headshots.domain.models import MemberProfile, OrgMember
from org_headshots.domain.photos import Photo, UploadedPhoto
from org_headshots.domain.sessions import SessionSnapshot


class SignUpRequest(BaseModel):
    """Email sign-up form."""

    email: str
    password: str = Field(min_length=6)
    name: str
    join_code: str
    role: str | None = None


class SignInRequest(BaseModel):
    """Email sign-in form."""

    email: str
    password: str


class CallbackRequest(BaseModel):
    """Address the browser landed on after a federated login."""

    url: str


class CallbackResponse(BaseModel):
    state: str
    destination: str | None = None
    error: str | None = None


class ProvisionRequest(BaseModel):
    """Join-organization form shown after a first federated login."""

    join_code: str
    role: str = "member"
    name: str | None = None


class OrganizationOut(BaseModel):
    name: str
    join_code: str


class ProfileOut(BaseModel):
    """Member profile as returned to clients."""

    id: str
    name: str
    email: str
    organization_id: str
    role: str | None = None
    organization: OrganizationOut | None = None

    @classmethod
    def from_domain(cls, profile: MemberProfile) -> "ProfileOut":
        organization = None
        if profile.organization is not None:
            organization = OrganizationOut(
                name=profile.organization.name,
                join_code=profile.organization.join_code,
            )
        return cls(
            id=profile.id,
            name=profile.name,
            email=profile.email,
            organization_id=profile.organization_id,
            role=profile.role,
            organization=organization,
        )


class SessionOut(BaseModel):
    """Session store snapshot."""

    state: str
    authenticated: bool
    needs_provisioning: bool
    identity_id: str | None = None
    profile: ProfileOut | None = None
    error: str | None = None

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> "SessionOut":
        return cls(
            state=snapshot.state.value,
            authenticated=snapshot.is_authenticated,
            needs_provisioning=snapshot.needs_provisioning,
            identity_id=snapshot.identity.id if snapshot.identity else None,
            profile=(
                ProfileOut.from_domain(snapshot.profile) if snapshot.profile else None
            ),
            error=snapshot.error,
        )


class MemberOut(BaseModel):
    id: str
    name: str
    email: str
    role: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, member: OrgMember) -> "MemberOut":
        return cls(
            id=member.id,
            name=member.name,
            email=member.email,
            role=member.role,
            created_at=member.created_at,
        )


class PhotoOut(BaseModel):
    """Photo metadata as returned to clients."""

    id: str
    owner_member_id: str
    image_url: str
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, photo: Photo) -> "PhotoOut":
        return cls(
            id=photo.id,
            owner_member_id=photo.owner_member_id,
            image_url=photo.image_url,
            created_at=photo.created_at,
        )


class UploadedPhotoOut(BaseModel):
    id: str
    image_url: str
    owner_member_id: str

    @classmethod
    def from_domain(cls, photo: UploadedPhoto) -> "UploadedPhotoOut":
        return cls(
            id=photo.id,
            image_url=photo.image_url,
            owner_member_id=photo.owner_member_id,
        )
